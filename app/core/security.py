"""Bearer token handling.

Access tokens are minted by the identity provider in front of this service.
HS* algorithms verify with ``SECRET_KEY``; asymmetric ones read PEM material
from the environment or from a file path.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from functools import lru_cache
from pathlib import Path
from typing import Any

from jose import JWTError, jwt

from app.core.settings import settings

ACCESS_TOKEN_TYPE = "access"


class JWTKeyError(RuntimeError):
    pass


def _resolve_key(kind: str, inline: str | None, path: str | None) -> str:
    if settings.jwt_algorithm.upper().startswith("HS"):
        return settings.secret_key
    if inline:
        return inline
    if path:
        return Path(path).read_text(encoding="utf-8")
    raise JWTKeyError(f"JWT {kind} key not configured for {settings.jwt_algorithm}")


@lru_cache(maxsize=1)
def _load_signing_key() -> str:
    return _resolve_key("private", settings.jwt_private_key, settings.jwt_private_key_path)


@lru_cache(maxsize=1)
def _load_verification_key() -> str:
    return _resolve_key("public", settings.jwt_public_key, settings.jwt_public_key_path)


def create_access_token(
    subject: str,
    expires_delta: timedelta | None = None,
    extra_claims: dict[str, Any] | None = None,
) -> str:
    """Sign an access token for a user id.

    Production tokens come from the upstream identity provider. This signer is
    for local development against a running API, seeding scripts and tests.
    """
    issued_at = datetime.now(timezone.utc)
    lifetime = expires_delta or timedelta(minutes=settings.access_token_expire_minutes)
    claims = {
        **(extra_claims or {}),
        "sub": subject,
        "iat": issued_at,
        "exp": issued_at + lifetime,
        "type": ACCESS_TOKEN_TYPE,
    }
    return jwt.encode(claims, _load_signing_key(), algorithm=settings.jwt_algorithm)


def decode_token(token: str, expected_type: str | None = ACCESS_TOKEN_TYPE) -> dict[str, Any]:
    try:
        claims = jwt.decode(token, _load_verification_key(), algorithms=[settings.jwt_algorithm])
    except JWTError as exc:
        raise ValueError("Invalid token") from exc
    token_type = claims.get("type")
    if expected_type is not None and token_type != expected_type:
        raise ValueError(f"Unexpected token type: {token_type}")
    return claims
