from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.permissions import ROLE_LABELS, Role
from app.core.security import decode_token
from app.models.user import User
from app.services.loan_errors import Forbidden, PrincipalNotFound, Unauthenticated


@dataclass(slots=True, frozen=True)
class Principal:
    """The authenticated caller, passed explicitly into every loan operation."""

    id: UUID
    role: Role
    bank_affiliation: str | None = None
    full_name: str = ""

    @property
    def is_staff(self) -> bool:
        return self.role.is_staff

    @property
    def display_name(self) -> str:
        return self.full_name or ROLE_LABELS[self.role]


def principal_from_user(user: User) -> Principal:
    try:
        role = Role(user.role)
    except ValueError as exc:
        raise Forbidden(f"Unsupported role: {user.role}", details={"role": user.role}) from exc
    return Principal(
        id=user.id,
        role=role,
        bank_affiliation=user.officer_bank if role.is_staff else None,
        full_name=user.full_name or "",
    )


async def resolve_principal(db: AsyncSession, token: str | None) -> Principal:
    if not token:
        raise Unauthenticated("Not authenticated")
    try:
        payload = decode_token(token, expected_type="access")
    except ValueError as exc:
        raise Unauthenticated(str(exc)) from exc

    subject = payload.get("sub")
    try:
        user_id = UUID(str(subject))
    except (TypeError, ValueError) as exc:
        raise Unauthenticated("Invalid token") from exc

    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if user is None:
        # Deleted accounts must sign in again.
        raise PrincipalNotFound("User no longer exists", details={"user_id": str(user_id)})
    if not user.is_active:
        raise Unauthenticated("Inactive user")
    return principal_from_user(user)
