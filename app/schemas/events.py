from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict

from app.schemas.gifts import GiftBrief


class EventStatus(str, Enum):
    pending = "pending"
    active = "active"
    completed = "completed"


class EventAgentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    username: str


class EventOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    event_name: str
    contact_person: str
    contact_no: str
    function_name: str
    function_type: str
    relation_enabled: bool
    bride_name: Optional[str] = None
    groom_name: Optional[str] = None

    agent_id: int
    agent: Optional[EventAgentOut] = None
    gifts: list[GiftBrief]

    welcome_image: Optional[str] = None
    guest_form_url: str
    event_date: datetime
    status: EventStatus

    created_at: datetime
    updated_at: datetime


class PublicEventOut(BaseModel):
    """What an unauthenticated guest may see about an event."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    event_name: str
    event_date: datetime
    status: EventStatus
    welcome_image: Optional[str] = None
    agent_name: Optional[str] = None
    gifts: list[GiftBrief]
    completed: bool = False
    message: Optional[str] = None


class ActiveEventOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    event_name: str
    event_date: datetime


class EventStatusUpdate(BaseModel):
    # plain str so an unknown value reaches the InvalidStatus check
    status: str


class EventStatsOut(BaseModel):
    event_id: int
    status: EventStatus
    total_guests: int
    redeemed_guests: int
    pending_guests: int
