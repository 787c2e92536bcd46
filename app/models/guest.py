from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import BigInteger, Boolean, DateTime, ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.db import Base
from app.models.base import utcnow
from app.models.event import Event
from app.models.gift import Gift
from app.models.user import PK, User


class Guest(Base):
    __tablename__ = "guests"
    __table_args__ = (
        # one registration per mobile per event
        UniqueConstraint("event_id", "mobile", name="uq_guests_event_mobile"),
        # a code resolves to at most one guest within its event
        UniqueConstraint("event_id", "code", name="uq_guests_event_code"),
    )

    id: Mapped[int] = mapped_column(PK, primary_key=True)

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    mobile: Mapped[str] = mapped_column(String(20), nullable=False)
    gift_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("gifts.id"), nullable=False)
    custom_message: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    code: Mapped[str] = mapped_column(String(6), nullable=False)
    event_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("events.id", ondelete="CASCADE"), nullable=False, index=True
    )

    redeemed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    agent_id: Mapped[Optional[int]] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    verified_by: Mapped[Optional[int]] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    verified_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )

    gift: Mapped[Gift] = relationship(Gift, lazy="selectin")
    event: Mapped[Event] = relationship(Event, lazy="selectin")
    agent: Mapped[Optional[User]] = relationship(User, foreign_keys=[agent_id], lazy="selectin")
    verifier: Mapped[Optional[User]] = relationship(User, foreign_keys=[verified_by], lazy="selectin")
