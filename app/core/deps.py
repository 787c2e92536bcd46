from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable

from fastapi import Depends
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.db import get_db
from app.core.errors import Forbidden, Unauthorized
from app.core.security import TokenError, decode_token
from app.models.user import User

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login", auto_error=False)


@dataclass(frozen=True)
class Principal:
    """Authenticated caller resolved from a bearer access token."""

    user: User
    role: str
    expires_at: datetime

    @property
    def user_id(self) -> int:
        return int(self.user.id)


async def get_current_user(
    token: str | None = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_db),
) -> Principal:
    if not token:
        raise Unauthorized("Missing bearer token")

    try:
        payload = decode_token(token, expected_type="access")
    except TokenError:
        raise Unauthorized("Invalid or expired token")

    try:
        user_id = int(payload["sub"])
    except (KeyError, TypeError, ValueError):
        raise Unauthorized("Invalid user id in token")

    user = await db.get(User, user_id)
    if not user:
        raise Unauthorized("User not found")

    return Principal(
        user=user,
        # role is re-read from the row so demotions apply immediately
        role=user.role,
        expires_at=datetime.fromtimestamp(int(payload["exp"]), tz=timezone.utc),
    )


def require_roles(*roles: str) -> Callable[..., Principal]:
    def _check(principal: Principal = Depends(get_current_user)) -> Principal:
        if principal.role not in roles:
            raise Forbidden("Access denied")
        return principal

    return _check


require_admin = require_roles("admin")
require_staff = require_roles("admin", "agent")
