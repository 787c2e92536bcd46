from __future__ import annotations

import re
import secrets
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Protocol
from zoneinfo import ZoneInfo

from loguru import logger
from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.errors import (
    AlreadyRedeemed,
    CodeAllocationFailed,
    DuplicateRegistration,
    EventNotActive,
    InvalidCode,
    NotFound,
    ValidationError,
)
from app.models.event import Event
from app.models.guest import Guest
from app.services.events import load_event

MOBILE_RE = re.compile(r"^\+?\d{7,10}$")
CODE_RE = re.compile(r"^\d{6}$")
DISPLAY_FORMAT = "%Y-%m-%d %H:%M:%S"


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


# -------------------------
# Code issuance
# -------------------------
class CodeNotifier(Protocol):
    async def send_code(self, *, guest: Guest, event: Event) -> None: ...


class LogCodeNotifier:
    """Delivery stand-in: records that a code was issued without exposing it."""

    async def send_code(self, *, guest: Guest, event: Event) -> None:
        logger.info(
            "Verification code issued guest_id={} event_id={} mobile=***{}",
            guest.id,
            event.id,
            guest.mobile[-3:],
        )


def generate_code() -> str:
    """Uniform 6-digit numeric code in [100000, 999999]."""
    return str(100000 + secrets.randbelow(900000))


def normalize_mobile(raw: str | None) -> str:
    return re.sub(r"[\s\-]", "", raw or "")


def _registration_errors(
    *,
    name: str | None,
    mobile: str | None,
    gift_id: Any,
    custom_message: str | None,
) -> list[dict]:
    errors = []
    if len((name or "").strip()) < 3:
        errors.append({"field": "name", "message": "Name must be at least 3 characters"})
    if not MOBILE_RE.match(normalize_mobile(mobile)):
        errors.append({"field": "mobile", "message": "Mobile number is invalid"})
    if gift_id in (None, ""):
        errors.append({"field": "gift_id", "message": "Gift option is required"})
    if custom_message and len(custom_message) > 50:
        errors.append({"field": "custom_message", "message": "Custom message cannot exceed 50 characters"})
    return errors


def _gift_in_event(event: Event, gift_id: int) -> bool:
    return any(int(g.id) == int(gift_id) for g in event.gifts)


async def _mobile_registered(
    db: AsyncSession, *, event_id: int, mobile: str, exclude_id: int | None = None
) -> bool:
    stmt = select(Guest.id).where(Guest.event_id == event_id, Guest.mobile == mobile)
    if exclude_id is not None:
        stmt = stmt.where(Guest.id != exclude_id)
    res = await db.execute(stmt)
    return res.first() is not None


async def _code_taken(db: AsyncSession, *, event_id: int, code: str) -> bool:
    res = await db.execute(select(Guest.id).where(Guest.event_id == event_id, Guest.code == code))
    return res.first() is not None


async def load_guest(db: AsyncSession, guest_id: int) -> Guest:
    stmt = select(Guest).where(Guest.id == guest_id).execution_options(populate_existing=True)
    res = await db.execute(stmt)
    guest = res.scalar_one_or_none()
    if not guest:
        raise NotFound("Guest not found")
    return guest


async def register_guest(
    db: AsyncSession,
    *,
    event_id: int,
    name: str | None,
    mobile: str | None,
    gift_id: Any,
    custom_message: str | None = None,
    notifier: CodeNotifier | None = None,
) -> Guest:
    """
    Register a guest against an active event and issue a single-use code.

    (event_id, mobile) and (event_id, code) are unique in the store, so two
    concurrent submissions for the same mobile cannot both land: the loser
    gets DuplicateRegistration. A code collision is retried with a fresh code.
    """
    errors = _registration_errors(name=name, mobile=mobile, gift_id=gift_id, custom_message=custom_message)
    if errors:
        raise ValidationError("Invalid registration", errors=errors)

    try:
        gift_pk = int(gift_id)
    except (TypeError, ValueError):
        raise ValidationError.field("gift_id", "Gift option is invalid")

    event = await load_event(db, event_id)
    if event.status != "active":
        raise EventNotActive("Event is not accepting registrations")
    if not _gift_in_event(event, gift_pk):
        raise ValidationError.field("gift_id", "Gift is not offered at this event")

    clean_mobile = normalize_mobile(mobile)
    if await _mobile_registered(db, event_id=event.id, mobile=clean_mobile):
        raise DuplicateRegistration()

    # rollback expires loaded rows, keep plain values for the retry loop
    event_pk = int(event.id)
    event_agent_id = int(event.agent_id)

    guest_id: int | None = None
    for attempt in range(1, settings.CODE_GENERATION_ATTEMPTS + 1):
        code = generate_code()
        if await _code_taken(db, event_id=event_pk, code=code):
            continue

        guest = Guest(
            name=name.strip(),
            mobile=clean_mobile,
            gift_id=gift_pk,
            custom_message=custom_message or None,
            code=code,
            event_id=event_pk,
            redeemed=False,
            agent_id=event_agent_id,
        )
        db.add(guest)
        try:
            await db.commit()
        except IntegrityError:
            await db.rollback()
            if await _mobile_registered(db, event_id=event_pk, mobile=clean_mobile):
                raise DuplicateRegistration()
            if not await _code_taken(db, event_id=event_pk, code=code):
                # neither unique key clashed, e.g. the gift row vanished
                raise
            logger.warning("Code collision on event_id={} (attempt {})", event_pk, attempt)
            continue

        guest_id = int(guest.id)
        break

    if guest_id is None:
        raise CodeAllocationFailed()

    guest = await load_guest(db, guest_id)
    logger.info("Registered guest id={} on event_id={}", guest.id, event_pk)

    try:
        await (notifier or LogCodeNotifier()).send_code(guest=guest, event=guest.event)
    except Exception:
        # the registration is committed; delivery can be retried out of band
        logger.exception("Code delivery failed for guest id={}", guest.id)

    return guest


# -------------------------
# Redemption
# -------------------------
@dataclass(frozen=True)
class RedeemResult:
    guest: Guest
    redeemed_count: int


async def count_redeemed(db: AsyncSession, *, event_id: int) -> int:
    res = await db.execute(
        select(func.count(Guest.id)).where(Guest.event_id == event_id, Guest.redeemed.is_(True))
    )
    return int(res.scalar_one())


async def redeem_code(db: AsyncSession, *, code: str, event_id: int, agent_id: int) -> RedeemResult:
    """
    Consume a guest's code exactly once.

    The flag flip is a single conditional UPDATE guarded by redeemed = false,
    so when two agents race on one code only one UPDATE matches a row.
    """
    clean = (code or "").strip()
    if not CODE_RE.match(clean):
        raise ValidationError.field("otp", "OTP must be exactly 6 digits")

    event = await load_event(db, event_id)
    if event.status != "active":
        raise EventNotActive()

    # scoped to the event so a code from another event reads as unknown
    res = await db.execute(select(Guest.id, Guest.redeemed).where(Guest.code == clean, Guest.event_id == event.id))
    row = res.first()
    if row is None:
        logger.info("Rejected unknown code on event_id={} by agent_id={}", event_id, agent_id)
        raise InvalidCode()

    guest_id, already = int(row[0]), bool(row[1])
    if already:
        logger.info("Rejected reused code for guest id={} by agent_id={}", guest_id, agent_id)
        raise AlreadyRedeemed()

    now = _now_utc()
    result = await db.execute(
        update(Guest)
        .where(Guest.id == guest_id, Guest.redeemed.is_(False))
        .values(redeemed=True, verified_by=agent_id, verified_at=now, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        await db.rollback()
        logger.info("Lost redemption race for guest id={} event_id={}", guest_id, event_id)
        raise AlreadyRedeemed()

    await db.commit()

    redeemed_count = await count_redeemed(db, event_id=event_id)
    guest = await load_guest(db, guest_id)
    logger.info(
        "Redeemed guest id={} event_id={} by agent_id={} ({} redeemed)",
        guest_id,
        event_id,
        agent_id,
        redeemed_count,
    )
    return RedeemResult(guest=guest, redeemed_count=redeemed_count)


# -------------------------
# Reporting
# -------------------------
def _display_tz() -> ZoneInfo:
    return ZoneInfo(settings.DISPLAY_TIMEZONE)


def to_display(value: datetime | None) -> str | None:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(_display_tz()).strftime(DISPLAY_FORMAT)


def _range_start(value: date | datetime) -> datetime:
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=_display_tz())
    return datetime.combine(value, time.min, tzinfo=_display_tz())


def _range_end(value: date | datetime) -> datetime:
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=_display_tz())
    # a bare date covers the whole day
    return datetime.combine(value + timedelta(days=1), time.min, tzinfo=_display_tz()) - timedelta(microseconds=1)


def _as_utc(value: datetime) -> datetime:
    return value.astimezone(timezone.utc)


def _person(user) -> dict | None:
    if user is None:
        return None
    return {"id": int(user.id), "name": user.name}


def report_row(guest: Guest) -> dict:
    return {
        "id": int(guest.id),
        "name": guest.name,
        "mobile": guest.mobile,
        "gift": guest.gift,
        "custom_message": guest.custom_message,
        "code": guest.code,
        "redeemed": bool(guest.redeemed),
        "event": {
            "id": int(guest.event.id),
            "event_name": guest.event.event_name,
            "welcome_image": guest.event.welcome_image,
        }
        if guest.event
        else None,
        "agent": _person(guest.agent),
        "verified_by": _person(guest.verifier),
        "verified_at": to_display(guest.verified_at),
        "created_at": to_display(guest.created_at),
        "updated_at": to_display(guest.updated_at),
        "status": "Claimed" if guest.redeemed else "Not Claimed",
    }


async def list_guests(
    db: AsyncSession,
    *,
    start_date: date | datetime | None = None,
    end_date: date | datetime | None = None,
    redeemed: bool | None = None,
    date_field: str = "created_at",
    event_id: int | None = None,
) -> list[dict]:
    if date_field not in ("created_at", "verified_at"):
        raise ValidationError.field("date_field", "date_field must be created_at or verified_at")

    column = Guest.verified_at if date_field == "verified_at" else Guest.created_at

    stmt = select(Guest)
    if redeemed is not None:
        stmt = stmt.where(Guest.redeemed.is_(redeemed))
    if event_id is not None:
        stmt = stmt.where(Guest.event_id == event_id)
    if start_date is not None:
        stmt = stmt.where(column >= _as_utc(_range_start(start_date)))
    if end_date is not None:
        stmt = stmt.where(column <= _as_utc(_range_end(end_date)))

    res = await db.execute(stmt.order_by(Guest.created_at.desc(), Guest.id.desc()))
    return [report_row(g) for g in res.scalars().all()]


async def list_redeemed(db: AsyncSession, *, event_id: int | None = None) -> list[Guest]:
    stmt = select(Guest).where(Guest.redeemed.is_(True))
    if event_id is not None:
        stmt = stmt.where(Guest.event_id == event_id)

    res = await db.execute(stmt.order_by(Guest.verified_at.desc(), Guest.id.desc()))
    return list(res.scalars().all())


# -------------------------
# Administrative corrections
# -------------------------
async def update_guest(
    db: AsyncSession,
    *,
    guest_id: int,
    name: str | None = None,
    mobile: str | None = None,
    gift_id: int | None = None,
    custom_message: str | None = None,
) -> Guest:
    guest = await load_guest(db, guest_id)

    errors = _registration_errors(
        name=name if name is not None else guest.name,
        mobile=mobile if mobile is not None else guest.mobile,
        gift_id=gift_id if gift_id is not None else guest.gift_id,
        custom_message=custom_message,
    )
    if errors:
        raise ValidationError("Invalid guest fields", errors=errors)

    if gift_id is not None and int(gift_id) != guest.gift_id:
        if not _gift_in_event(guest.event, int(gift_id)):
            raise ValidationError.field("gift_id", "Gift is not offered at this event")
        guest.gift_id = int(gift_id)

    if mobile is not None:
        clean_mobile = normalize_mobile(mobile)
        if clean_mobile != guest.mobile:
            if await _mobile_registered(db, event_id=guest.event_id, mobile=clean_mobile, exclude_id=guest.id):
                raise DuplicateRegistration()
            guest.mobile = clean_mobile

    if name is not None:
        guest.name = name.strip()
    if custom_message is not None:
        guest.custom_message = custom_message or None

    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise DuplicateRegistration()

    return await load_guest(db, guest_id)


async def delete_guest(db: AsyncSession, *, guest_id: int) -> None:
    res = await db.execute(delete(Guest).where(Guest.id == guest_id))
    if res.rowcount == 0:
        await db.rollback()
        raise NotFound("Guest not found")
    await db.commit()
    logger.info("Deleted guest id={}", guest_id)
