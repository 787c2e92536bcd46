from __future__ import annotations

import json
import re
from datetime import date, datetime, time, timezone
from typing import Any, Iterable

from loguru import logger
from sqlalchemy import case, delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.errors import EventNotActive, InvalidStatus, NotFound, ValidationError
from app.models.event import EVENT_STATUSES, Event
from app.models.guest import Guest
from app.models.user import User
from app.services.gifts import get_gifts_by_ids
from app.services.media import ImageUpload, delete_image, store_image, validate_image

EVENT_FOLDER = "events"
CONTACT_RE = re.compile(r"^\+?[0-9\s\-]{7,15}$")

REQUIRED_TEXT_FIELDS = ("event_name", "contact_person", "contact_no", "function_name", "function_type")


def parse_gift_ids(raw: Any) -> list[int]:
    """Accept a list, a JSON array string, or a comma separated string of ids."""
    if raw is None or raw == "":
        return []

    items: Iterable[Any]
    if isinstance(raw, (list, tuple)):
        # repeated multipart fields may each still be "1,2" or "[1,2]"
        if len(raw) == 1 and isinstance(raw[0], str):
            return parse_gift_ids(raw[0])
        items = raw
    elif isinstance(raw, str):
        try:
            parsed = json.loads(raw)
        except ValueError:
            parsed = None
        if isinstance(parsed, list):
            items = parsed
        elif isinstance(parsed, int):
            items = [parsed]
        else:
            items = [s.strip() for s in raw.split(",") if s.strip()]
    else:
        items = [raw]

    ids: list[int] = []
    for item in items:
        try:
            gid = int(item)
        except (TypeError, ValueError):
            raise ValidationError.field("gifts", f"Invalid gift id: {item!r}")
        if gid not in ids:
            ids.append(gid)
    return ids


def parse_event_date(raw: Any) -> datetime:
    if isinstance(raw, datetime):
        value = raw
    elif isinstance(raw, date):
        value = datetime.combine(raw, time.min)
    elif isinstance(raw, str) and raw.strip():
        try:
            value = datetime.fromisoformat(raw.strip())
        except ValueError:
            raise ValidationError.field(
                "event_date", "eventDate is required and must be a valid date (YYYY-MM-DD)"
            )
    else:
        raise ValidationError.field("event_date", "eventDate is required and must be a valid date (YYYY-MM-DD)")

    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


def guest_form_url(event_id: int) -> str:
    return f"{settings.FRONTEND_URL.rstrip('/')}/guest_form/{event_id}"


async def _resolve_agent(db: AsyncSession, agent_id: Any) -> User:
    try:
        aid = int(agent_id)
    except (TypeError, ValueError):
        raise ValidationError.field("agent_id", "Agent is required")

    agent = await db.get(User, aid)
    if not agent or agent.role != "agent":
        raise ValidationError.field("agent_id", "Agent not found")
    return agent


def _check_relation(relation_enabled: bool, bride_name: str | None, groom_name: str | None) -> list[dict]:
    errors = []
    if relation_enabled:
        if not (bride_name or "").strip():
            errors.append({"field": "bride_name", "message": "Bride name is required"})
        if not (groom_name or "").strip():
            errors.append({"field": "groom_name", "message": "Groom name is required"})
    return errors


async def load_event(db: AsyncSession, event_id: int) -> Event:
    stmt = select(Event).where(Event.id == event_id).execution_options(populate_existing=True)
    res = await db.execute(stmt)
    event = res.scalar_one_or_none()
    if not event:
        raise NotFound("Event not found")
    return event


async def create_event(
    db: AsyncSession,
    *,
    event_name: str | None,
    contact_person: str | None,
    contact_no: str | None,
    function_name: str | None,
    function_type: str | None,
    agent_id: Any,
    event_date: Any,
    gift_ids: Any = None,
    relation_enabled: bool = False,
    bride_name: str | None = None,
    groom_name: str | None = None,
    welcome_image: ImageUpload | None = None,
) -> Event:
    values = {
        "event_name": event_name,
        "contact_person": contact_person,
        "contact_no": contact_no,
        "function_name": function_name,
        "function_type": function_type,
    }
    errors = [
        {"field": f, "message": f"{f} is required"}
        for f in REQUIRED_TEXT_FIELDS
        if not (values[f] or "").strip()
    ]
    if values["contact_no"] and not CONTACT_RE.match(values["contact_no"].strip()):
        errors.append({"field": "contact_no", "message": "Contact number is not valid"})
    errors.extend(_check_relation(relation_enabled, bride_name, groom_name))
    if errors:
        raise ValidationError("Missing or invalid event fields", errors=errors)

    parsed_date = parse_event_date(event_date)
    agent = await _resolve_agent(db, agent_id)
    gifts = await get_gifts_by_ids(db, parse_gift_ids(gift_ids))

    image_ref = None
    if welcome_image is not None:
        image_ref = store_image(validate_image(welcome_image, field="welcome_image"), folder=EVENT_FOLDER)

    event = Event(
        event_name=values["event_name"].strip(),
        contact_person=values["contact_person"].strip(),
        contact_no=values["contact_no"].strip(),
        function_name=values["function_name"].strip(),
        function_type=values["function_type"].strip(),
        relation_enabled=bool(relation_enabled),
        bride_name=bride_name if relation_enabled else None,
        groom_name=groom_name if relation_enabled else None,
        agent_id=agent.id,
        welcome_image=image_ref,
        event_date=parsed_date,
        status="pending",
    )
    event.gifts = gifts

    try:
        db.add(event)
        await db.flush()
        event.guest_form_url = guest_form_url(int(event.id))
        await db.commit()
    except Exception:
        await db.rollback()
        delete_image(image_ref)
        raise

    logger.info("Created event id={} agent_id={} gifts={}", event.id, agent.id, [g.id for g in gifts])
    return await load_event(db, int(event.id))


async def list_events(db: AsyncSession) -> list[Event]:
    res = await db.execute(select(Event).order_by(Event.event_date.desc(), Event.id.desc()))
    return list(res.scalars().all())


async def get_event(db: AsyncSession, *, event_id: int) -> Event:
    return await load_event(db, event_id)


async def get_public_event(db: AsyncSession, *, event_id: int) -> dict:
    """Guest-facing projection; pending events are hidden, completed ones are flagged."""
    event = await load_event(db, event_id)

    if event.status == "pending":
        raise EventNotActive()

    out = {
        "id": int(event.id),
        "event_name": event.event_name,
        "event_date": event.event_date,
        "status": event.status,
        "welcome_image": event.welcome_image,
        "agent_name": event.agent.name if event.agent else None,
        "gifts": event.gifts,
        "completed": event.status == "completed",
        "message": None,
    }
    if event.status == "completed":
        out["message"] = "Gift selection completed"
    return out


async def update_event(
    db: AsyncSession,
    *,
    event_id: int,
    fields: dict[str, Any],
    welcome_image: ImageUpload | None = None,
) -> Event:
    event = await load_event(db, event_id)

    data = {k: v for k, v in fields.items() if v is not None}
    # status only moves through set_status
    data.pop("status", None)

    errors = [
        {"field": f, "message": f"{f} cannot be empty"}
        for f in REQUIRED_TEXT_FIELDS
        if f in data and not str(data[f]).strip()
    ]
    if "contact_no" in data and data["contact_no"] and not CONTACT_RE.match(str(data["contact_no"]).strip()):
        errors.append({"field": "contact_no", "message": "Contact number is not valid"})

    relation_enabled = bool(data.get("relation_enabled", event.relation_enabled))
    bride = data.get("bride_name", event.bride_name)
    groom = data.get("groom_name", event.groom_name)
    errors.extend(_check_relation(relation_enabled, bride, groom))

    gift_ids = parse_gift_ids(data["gifts"]) if "gifts" in data else None
    if gift_ids == [] and event.status == "active":
        errors.append({"field": "gifts", "message": "An active event must keep at least one gift"})
    if errors:
        raise ValidationError("Missing or invalid event fields", errors=errors)

    for f in REQUIRED_TEXT_FIELDS:
        if f in data:
            setattr(event, f, str(data[f]).strip())

    event.relation_enabled = relation_enabled
    event.bride_name = bride if relation_enabled else None
    event.groom_name = groom if relation_enabled else None

    if "event_date" in data:
        event.event_date = parse_event_date(data["event_date"])

    if "agent_id" in data:
        agent = await _resolve_agent(db, data["agent_id"])
        event.agent_id = agent.id

    if gift_ids is not None:
        event.gifts = await get_gifts_by_ids(db, gift_ids)

    old_ref: str | None = None
    new_ref: str | None = None
    if welcome_image is not None:
        new_ref = store_image(validate_image(welcome_image, field="welcome_image"), folder=EVENT_FOLDER)
        old_ref = event.welcome_image
        event.welcome_image = new_ref

    try:
        await db.commit()
    except Exception:
        await db.rollback()
        delete_image(new_ref)
        raise

    if old_ref and old_ref != new_ref:
        delete_image(old_ref)

    return await load_event(db, event_id)


async def delete_event(db: AsyncSession, *, event_id: int) -> None:
    event = await load_event(db, event_id)
    image_ref = event.welcome_image

    try:
        # guests belong to the event; removing it removes its registrations
        res = await db.execute(delete(Guest).where(Guest.event_id == event.id))
        await db.delete(event)
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    delete_image(image_ref)
    logger.info("Deleted event id={} with {} guest(s)", event_id, res.rowcount)


async def set_status(db: AsyncSession, *, event_id: int, status: str) -> Event:
    if status not in EVENT_STATUSES:
        raise InvalidStatus()

    event = await load_event(db, event_id)

    if status == "active" and not event.gifts:
        raise ValidationError.field("gifts", "An event needs at least one gift before it can be activated")

    previous = event.status
    event.status = status
    await db.commit()

    logger.info("Event id={} status {} -> {}", event_id, previous, status)
    return await load_event(db, event_id)


async def list_active_for_agent(db: AsyncSession, *, agent_id: int) -> list[Event]:
    stmt = (
        select(Event)
        .where(Event.agent_id == agent_id, Event.status == "active")
        .order_by(Event.event_date.desc(), Event.id.desc())
    )
    res = await db.execute(stmt)
    return list(res.scalars().all())


async def event_stats(db: AsyncSession, *, event_id: int) -> dict:
    event = await load_event(db, event_id)

    res = await db.execute(
        select(
            func.count(Guest.id),
            func.coalesce(func.sum(case((Guest.redeemed.is_(True), 1), else_=0)), 0),
        ).where(Guest.event_id == event.id)
    )
    total, redeemed = res.one()
    return {
        "event_id": int(event.id),
        "status": event.status,
        "total_guests": int(total or 0),
        "redeemed_guests": int(redeemed or 0),
        "pending_guests": int(total or 0) - int(redeemed or 0),
    }
