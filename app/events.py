import logging

from fastapi import FastAPI

from app.core.settings import settings
from app.db.init_db import init_db
from app.db.session import engine
from app.utils.redis_client import close_redis_client

logger = logging.getLogger(__name__)


def register_event_handlers(app: FastAPI) -> None:
    @app.on_event("startup")
    async def start_loan_service() -> None:
        logger.info(
            "Loan workflow starting (environment=%s, gm_review_threshold=%s, notifications=%s)",
            settings.environment,
            settings.gm_review_threshold,
            "on" if settings.notifications_enabled else "off",
        )
        await init_db()

    @app.on_event("shutdown")
    async def stop_loan_service() -> None:
        await close_redis_client()
        await engine.dispose()
        logger.info("Loan workflow stopped")
