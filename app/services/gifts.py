from __future__ import annotations

from loguru import logger
from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import GiftInUse, NotFound, ValidationError
from app.models.event import Event, event_gifts
from app.models.gift import Gift
from app.models.guest import Guest
from app.services.media import ImageUpload, delete_image, store_image, validate_image

GIFT_FOLDER = "gifts"


def _clean_name(name: str | None) -> str:
    clean = (name or "").strip()
    if len(clean) < 3:
        raise ValidationError.field("name", "Gift name must be at least 3 characters")
    if len(clean) > 50:
        raise ValidationError.field("name", "Gift name must be at most 50 characters")
    return clean


async def create_gift(db: AsyncSession, *, name: str | None, image: ImageUpload | None) -> Gift:
    clean_name = _clean_name(name)
    upload = validate_image(image, field="image")

    ref = store_image(upload, folder=GIFT_FOLDER)
    gift = Gift(name=clean_name, image=ref)
    db.add(gift)
    try:
        await db.commit()
    except Exception:
        await db.rollback()
        delete_image(ref)
        raise

    await db.refresh(gift)
    logger.info("Created gift id={} name={}", gift.id, gift.name)
    return gift


async def list_gifts(db: AsyncSession) -> list[Gift]:
    res = await db.execute(select(Gift).order_by(Gift.created_at.desc(), Gift.id.desc()))
    return list(res.scalars().all())


async def get_gift(db: AsyncSession, *, gift_id: int) -> Gift:
    gift = await db.get(Gift, gift_id)
    if not gift:
        raise NotFound("Gift not found")
    return gift


async def get_gifts_by_ids(db: AsyncSession, gift_ids: list[int]) -> list[Gift]:
    if not gift_ids:
        return []

    res = await db.execute(select(Gift).where(Gift.id.in_(gift_ids)).order_by(Gift.id))
    found = list(res.scalars().all())

    missing = sorted(set(gift_ids) - {int(g.id) for g in found})
    if missing:
        raise ValidationError.field("gifts", f"Unknown gift id(s): {missing}")
    return found


async def update_gift(
    db: AsyncSession,
    *,
    gift_id: int,
    name: str | None = None,
    image: ImageUpload | None = None,
) -> Gift:
    gift = await get_gift(db, gift_id=gift_id)

    if name is not None and name.strip():
        gift.name = _clean_name(name)

    old_ref: str | None = None
    new_ref: str | None = None
    if image is not None:
        upload = validate_image(image, field="image")
        # new file is durable before the row points at it; old file goes after commit
        new_ref = store_image(upload, folder=GIFT_FOLDER)
        old_ref = gift.image
        gift.image = new_ref

    try:
        await db.commit()
    except Exception:
        await db.rollback()
        delete_image(new_ref)
        raise

    if old_ref and old_ref != new_ref:
        delete_image(old_ref)

    await db.refresh(gift)
    return gift


async def delete_gift(db: AsyncSession, *, gift_id: int) -> None:
    gift = await get_gift(db, gift_id=gift_id)

    chosen = await db.execute(select(func.count(Guest.id)).where(Guest.gift_id == gift.id))
    if int(chosen.scalar_one()) > 0:
        raise GiftInUse()

    # active events whose gift set is exactly this gift
    sole = await db.execute(
        select(event_gifts.c.event_id)
        .join(Event, Event.id == event_gifts.c.event_id)
        .where(Event.status == "active")
        .group_by(event_gifts.c.event_id)
        .having(func.count() == 1, func.max(event_gifts.c.gift_id) == gift.id)
    )
    if sole.first() is not None:
        raise GiftInUse("Gift is the only gift of an active event")

    image_ref = gift.image
    try:
        await db.execute(delete(event_gifts).where(event_gifts.c.gift_id == gift.id))
        await db.delete(gift)
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    delete_image(image_ref)
    logger.info("Deleted gift id={}", gift_id)
