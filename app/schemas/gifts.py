from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict


class GiftBrief(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    image: str


class GiftOut(GiftBrief):
    created_at: datetime
    updated_at: datetime


class GiftListResponse(BaseModel):
    count: int
    data: list[GiftOut]
