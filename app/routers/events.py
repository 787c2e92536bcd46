from __future__ import annotations

from fastapi import APIRouter, Depends, File, Form, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.db import get_db
from app.core.deps import Principal, require_admin, require_staff
from app.core.errors import Forbidden
from app.schemas.auth import MessageOut
from app.schemas.events import (
    ActiveEventOut,
    EventOut,
    EventStatsOut,
    EventStatusUpdate,
    PublicEventOut,
)
from app.services.events import (
    create_event,
    delete_event,
    event_stats,
    get_event,
    get_public_event,
    list_active_for_agent,
    list_events,
    set_status,
    update_event,
)
from app.services.media import read_upload

router = APIRouter(prefix="/events", tags=["events"])


@router.post("", response_model=EventOut, status_code=201)
async def create(
    event_name: str | None = Form(default=None),
    contact_person: str | None = Form(default=None),
    contact_no: str | None = Form(default=None),
    function_name: str | None = Form(default=None),
    function_type: str | None = Form(default=None),
    relation_enabled: bool = Form(default=False),
    bride_name: str | None = Form(default=None),
    groom_name: str | None = Form(default=None),
    agent_id: str | None = Form(default=None),
    gifts: list[str] | None = Form(default=None),
    event_date: str | None = Form(default=None),
    welcome_image: UploadFile | None = File(default=None),
    db: AsyncSession = Depends(get_db),
    admin: Principal = Depends(require_admin),
):
    return await create_event(
        db,
        event_name=event_name,
        contact_person=contact_person,
        contact_no=contact_no,
        function_name=function_name,
        function_type=function_type,
        relation_enabled=relation_enabled,
        bride_name=bride_name,
        groom_name=groom_name,
        agent_id=agent_id,
        gift_ids=gifts,
        event_date=event_date,
        welcome_image=await read_upload(welcome_image),
    )


@router.get("", response_model=list[EventOut])
async def list_all(
    db: AsyncSession = Depends(get_db),
    admin: Principal = Depends(require_admin),
):
    return await list_events(db)


@router.get("/public/{event_id}", response_model=PublicEventOut)
async def public_event(event_id: int, db: AsyncSession = Depends(get_db)):
    return await get_public_event(db, event_id=event_id)


@router.get("/active/{agent_id}", response_model=list[ActiveEventOut])
async def active_for_agent(
    agent_id: int,
    db: AsyncSession = Depends(get_db),
    current: Principal = Depends(require_staff),
):
    if current.role == "agent" and current.user_id != agent_id:
        raise Forbidden("Agents can only list their own events")
    return await list_active_for_agent(db, agent_id=agent_id)


@router.get("/{event_id}", response_model=EventOut)
async def get_one(
    event_id: int,
    db: AsyncSession = Depends(get_db),
    staff: Principal = Depends(require_staff),
):
    return await get_event(db, event_id=event_id)


@router.get("/{event_id}/stats", response_model=EventStatsOut)
async def stats(
    event_id: int,
    db: AsyncSession = Depends(get_db),
    staff: Principal = Depends(require_staff),
):
    return await event_stats(db, event_id=event_id)


@router.put("/{event_id}/status", response_model=EventOut)
async def update_status(
    event_id: int,
    body: EventStatusUpdate,
    db: AsyncSession = Depends(get_db),
    admin: Principal = Depends(require_admin),
):
    return await set_status(db, event_id=event_id, status=body.status)


@router.put("/{event_id}", response_model=EventOut)
async def update(
    event_id: int,
    event_name: str | None = Form(default=None),
    contact_person: str | None = Form(default=None),
    contact_no: str | None = Form(default=None),
    function_name: str | None = Form(default=None),
    function_type: str | None = Form(default=None),
    relation_enabled: bool | None = Form(default=None),
    bride_name: str | None = Form(default=None),
    groom_name: str | None = Form(default=None),
    agent_id: str | None = Form(default=None),
    gifts: list[str] | None = Form(default=None),
    event_date: str | None = Form(default=None),
    welcome_image: UploadFile | None = File(default=None),
    db: AsyncSession = Depends(get_db),
    admin: Principal = Depends(require_admin),
):
    fields = {
        "event_name": event_name,
        "contact_person": contact_person,
        "contact_no": contact_no,
        "function_name": function_name,
        "function_type": function_type,
        "relation_enabled": relation_enabled,
        "bride_name": bride_name,
        "groom_name": groom_name,
        "agent_id": agent_id,
        "gifts": gifts,
        "event_date": event_date,
    }
    return await update_event(
        db,
        event_id=event_id,
        fields=fields,
        welcome_image=await read_upload(welcome_image),
    )


@router.delete("/{event_id}", response_model=MessageOut)
async def delete(
    event_id: int,
    db: AsyncSession = Depends(get_db),
    admin: Principal = Depends(require_admin),
):
    await delete_event(db, event_id=event_id)
    return MessageOut(message="Event deleted successfully")
