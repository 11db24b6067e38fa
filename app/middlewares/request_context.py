from uuid import uuid4

from starlette.datastructures import MutableHeaders
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from app.core import context

REQUEST_ID_HEADER = "X-Request-ID"


class RequestContextMiddleware:
    """Tag every HTTP request with a correlation id.

    A caller-supplied ``X-Request-ID`` is reused, otherwise one is generated.
    The id is bound to the logging context for the lifetime of the request
    and returned on the response so audit entries can be traced back.
    """

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    @staticmethod
    def _incoming_id(scope: Scope) -> str:
        wanted = REQUEST_ID_HEADER.lower().encode()
        for name, value in scope.get("headers", []):
            if name == wanted and value:
                return value.decode("latin-1")
        return uuid4().hex

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            return await self.app(scope, receive, send)

        request_id = self._incoming_id(scope)
        context.clear_context()
        context.set_request_id(request_id)

        async def tag_response(message: Message) -> None:
            if message["type"] == "http.response.start":
                MutableHeaders(scope=message)[REQUEST_ID_HEADER] = request_id
            await send(message)

        await self.app(scope, receive, tag_response)
