import hashlib

from fastapi import Request
from slowapi import Limiter
from slowapi.util import get_remote_address

from app.core.settings import settings


def caller_key(request: Request) -> str:
    """Bucket authenticated callers by token so a shared branch NAT does not pool them."""
    authorization = request.headers.get("authorization", "")
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() == "bearer" and token:
        return "token:" + hashlib.sha256(token.encode()).hexdigest()[:32]
    return get_remote_address(request)


# Shared by SlowAPIMiddleware; health probes opt out with ``@limiter.exempt``.
limiter = Limiter(
    key_func=caller_key,
    default_limits=[f"{settings.rate_limit_per_minute}/minute"],
    storage_uri=settings.redis_url,
    strategy="moving-window",
    headers_enabled=True,
)
