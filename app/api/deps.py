from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.context import set_principal_id
from app.db.session import get_db
from app.services.identity import Principal, resolve_principal

bearer_scheme = HTTPBearer(auto_error=False)


async def get_db_session(db: AsyncSession = Depends(get_db)) -> AsyncSession:
    return db


async def get_current_principal(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_db_session),
) -> Principal:
    token = credentials.credentials if credentials else None
    principal = await resolve_principal(db, token)
    set_principal_id(str(principal.id))
    return principal
