from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel


class MeOut(BaseModel):
    id: int
    name: str
    username: str
    role: str
    token_expires_at: datetime
