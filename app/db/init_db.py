import asyncio
import logging

from sqlalchemy import select

from app.core.permissions import Role
from app.core.settings import settings
from app.db.session import AsyncSessionLocal
from app.models.user import User

logger = logging.getLogger(__name__)


async def init_db() -> None:
    """Create the bootstrap administrator when ``SEED_ADMIN_EMAIL`` is set."""
    if not settings.seed_admin_email:
        return
    async with AsyncSessionLocal() as session:
        stmt = select(User).where(User.email == settings.seed_admin_email)
        user = (await session.execute(stmt)).scalar_one_or_none()
        if user is not None:
            logger.info("Seed admin %s already exists", settings.seed_admin_email)
            return
        session.add(
            User(
                email=settings.seed_admin_email,
                full_name=settings.seed_admin_full_name,
                role=Role.ADMIN.value,
                officer_bank=None,
                is_active=True,
            )
        )
        await session.commit()
        logger.info("Seed admin %s created", settings.seed_admin_email)


if __name__ == "__main__":
    asyncio.run(init_db())
