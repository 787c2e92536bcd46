from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    String,
    Table,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.db import Base
from app.models.base import utcnow
from app.models.gift import Gift
from app.models.user import PK, User

EVENT_STATUSES = ("pending", "active", "completed")

event_gifts = Table(
    "event_gifts",
    Base.metadata,
    Column("event_id", BigInteger, ForeignKey("events.id", ondelete="CASCADE"), primary_key=True),
    Column("gift_id", BigInteger, ForeignKey("gifts.id", ondelete="CASCADE"), primary_key=True),
)


class Event(Base):
    __tablename__ = "events"
    __table_args__ = (
        CheckConstraint(
            "status IN ('pending','active','completed')",
            name="events_status_check",
        ),
        Index("ix_events_agent_status", "agent_id", "status"),
    )

    id: Mapped[int] = mapped_column(PK, primary_key=True)

    event_name: Mapped[str] = mapped_column(String(255), nullable=False)
    contact_person: Mapped[str] = mapped_column(String(255), nullable=False)
    contact_no: Mapped[str] = mapped_column(String(32), nullable=False)
    function_name: Mapped[str] = mapped_column(String(255), nullable=False)
    function_type: Mapped[str] = mapped_column(String(255), nullable=False)

    relation_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    bride_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    groom_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    agent_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("users.id"), nullable=False, index=True)

    welcome_image: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)
    guest_form_url: Mapped[str] = mapped_column(String(512), nullable=False, default="")
    event_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending")

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )

    agent: Mapped[User] = relationship(User, lazy="selectin")
    gifts: Mapped[list[Gift]] = relationship(
        Gift, secondary=event_gifts, lazy="selectin", order_by=Gift.id
    )
