from __future__ import annotations

from dataclasses import dataclass

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import ExpiredOrInvalidRenewalCredential, InvalidCredentials
from app.core.security import (
    TokenError,
    access_token_ttl,
    create_access_token,
    create_refresh_token,
    decode_token,
    verify_password,
)
from app.models.user import User
from app.services.users import get_user_by_username


@dataclass(frozen=True)
class AuthResult:
    access_token: str
    refresh_token: str
    user: User

    @property
    def role(self) -> str:
        return self.user.role

    @property
    def expires_in(self) -> int:
        return int(access_token_ttl().total_seconds())


def _issue(user: User) -> AuthResult:
    return AuthResult(
        access_token=create_access_token(user_id=int(user.id), role=user.role),
        refresh_token=create_refresh_token(user_id=int(user.id)),
        user=user,
    )


async def authenticate(db: AsyncSession, *, username: str, password: str) -> AuthResult:
    user = await get_user_by_username(db, username)

    # same failure for unknown user and wrong password
    if not user or not verify_password(password, user.password_hash):
        logger.info("Failed login for username={}", username)
        raise InvalidCredentials()

    logger.info("User id={} logged in as {}", user.id, user.role)
    return _issue(user)


async def renew(db: AsyncSession, *, refresh_token: str | None) -> AuthResult:
    """Exchange a refresh token for a new access token and a rotated refresh token."""
    if not refresh_token:
        raise ExpiredOrInvalidRenewalCredential("No refresh token provided")

    try:
        payload = decode_token(refresh_token, expected_type="refresh")
        user_id = int(payload["sub"])
    except (TokenError, KeyError, ValueError):
        raise ExpiredOrInvalidRenewalCredential()

    user = await db.get(User, user_id)
    if not user:
        raise ExpiredOrInvalidRenewalCredential("User no longer exists")

    return _issue(user)
