from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.db import get_db
from app.core.deps import Principal, require_admin, require_staff
from app.schemas.auth import MessageOut
from app.schemas.guests import (
    GuestAdminOut,
    GuestOut,
    GuestRegister,
    GuestRegistered,
    GuestReportRow,
    GuestUpdate,
    GuestVerify,
    RedeemResponse,
)
from app.services.guests import (
    delete_guest,
    list_guests,
    list_redeemed,
    redeem_code,
    register_guest,
    update_guest,
)

router = APIRouter(prefix="/guests", tags=["guests"])


@router.post("/register", response_model=GuestRegistered, status_code=201)
async def register(payload: GuestRegister, db: AsyncSession = Depends(get_db)):
    return await register_guest(
        db,
        event_id=payload.event_id,
        name=payload.name,
        mobile=payload.mobile,
        gift_id=payload.gift_id,
        custom_message=payload.custom_message,
    )


@router.post("/verify-otp", response_model=RedeemResponse)
async def verify_otp(
    payload: GuestVerify,
    db: AsyncSession = Depends(get_db),
    staff: Principal = Depends(require_staff),
):
    result = await redeem_code(db, code=payload.otp, event_id=payload.event_id, agent_id=staff.user_id)
    return RedeemResponse(
        guest=GuestOut.model_validate(result.guest),
        redeemed_count=result.redeemed_count,
    )


@router.get("", response_model=list[GuestReportRow])
async def list_all(
    start_date: date | None = Query(default=None),
    end_date: date | None = Query(default=None),
    redeemed: bool | None = Query(default=None),
    date_field: str = Query(default="created_at"),
    event_id: int | None = Query(default=None),
    db: AsyncSession = Depends(get_db),
    admin: Principal = Depends(require_admin),
):
    return await list_guests(
        db,
        start_date=start_date,
        end_date=end_date,
        redeemed=redeemed,
        date_field=date_field,
        event_id=event_id,
    )


@router.get("/verified", response_model=list[GuestOut])
async def verified(
    event_id: int | None = Query(default=None),
    db: AsyncSession = Depends(get_db),
    staff: Principal = Depends(require_staff),
):
    return await list_redeemed(db, event_id=event_id)


@router.put("/{guest_id}", response_model=GuestAdminOut)
async def update(
    guest_id: int,
    payload: GuestUpdate,
    db: AsyncSession = Depends(get_db),
    admin: Principal = Depends(require_admin),
):
    return await update_guest(
        db,
        guest_id=guest_id,
        name=payload.name,
        mobile=payload.mobile,
        gift_id=payload.gift_id,
        custom_message=payload.custom_message,
    )


@router.delete("/{guest_id}", response_model=MessageOut)
async def delete(
    guest_id: int,
    db: AsyncSession = Depends(get_db),
    admin: Principal = Depends(require_admin),
):
    await delete_guest(db, guest_id=guest_id)
    return MessageOut(message="Guest deleted")
