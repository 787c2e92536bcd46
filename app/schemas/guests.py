from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from app.schemas.gifts import GiftBrief


class GuestRegister(BaseModel):
    event_id: int
    name: str
    mobile: str
    gift_id: Optional[int] = None
    custom_message: Optional[str] = None


class GuestVerify(BaseModel):
    otp: str
    event_id: int


class GuestUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = None
    mobile: Optional[str] = None
    gift_id: Optional[int] = None
    custom_message: Optional[str] = Field(default=None, max_length=50)


class PersonRef(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str


class GuestEventRef(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    event_name: str
    event_date: Optional[datetime] = None
    welcome_image: Optional[str] = None


class GuestOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    mobile: str
    gift: GiftBrief
    custom_message: Optional[str] = None
    event_id: int
    event: Optional[GuestEventRef] = None
    redeemed: bool
    agent_id: Optional[int] = None
    verified_by: Optional[int] = None
    verifier: Optional[PersonRef] = None
    verified_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


class GuestRegistered(GuestOut):
    # returned to the registering guest only
    code: str


class GuestAdminOut(GuestOut):
    code: str


class RedeemResponse(BaseModel):
    message: str = "Guest verified successfully"
    guest: GuestOut
    redeemed_count: int


class GuestReportEventRef(BaseModel):
    id: int
    event_name: str
    welcome_image: Optional[str] = None


class GuestReportRow(BaseModel):
    """Reporting row; timestamps are pre-rendered in the display timezone."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    mobile: str
    gift: GiftBrief
    custom_message: Optional[str] = None
    code: str
    redeemed: bool
    event: Optional[GuestReportEventRef] = None
    agent: Optional[PersonRef] = None
    verified_by: Optional[PersonRef] = None
    verified_at: Optional[str] = None
    created_at: str
    updated_at: str
    status: str
