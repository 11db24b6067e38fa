from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi.middleware import SlowAPIMiddleware

from app.api.v1 import api_router
from app.core.errors import register_exception_handlers
from app.core.health import APP_VERSION
from app.core.limiter import limiter
from app.core.logging import configure_logging
from app.core.response_envelope import register_response_envelope
from app.core.settings import settings
from app.events import register_event_handlers
from app.middlewares.request_context import REQUEST_ID_HEADER, RequestContextMiddleware

OPENAPI_TAGS = [
    {"name": "loans", "description": "Submit, list and inspect loan applications."},
    {"name": "loan-workflow", "description": "Review, resubmission and disbursement actions."},
    {"name": "health", "description": "Liveness and readiness probes."},
    {"name": "status", "description": "Version and active approval policy."},
]


def _add_middleware(app: FastAPI) -> None:
    # Starlette runs the last-added middleware first, so CORS wraps everything.
    app.state.limiter = limiter
    app.add_middleware(SlowAPIMiddleware)
    app.add_middleware(RequestContextMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", REQUEST_ID_HEADER],
        expose_headers=[REQUEST_ID_HEADER],
    )


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(
        title="LMS Loan Workflow API",
        version=APP_VERSION,
        openapi_tags=OPENAPI_TAGS,
        docs_url=None if settings.environment == "production" else "/docs",
    )
    register_exception_handlers(app)
    register_response_envelope(app)
    _add_middleware(app)
    app.include_router(api_router, prefix="/api/v1")
    register_event_handlers(app)
    return app


app = create_app()
