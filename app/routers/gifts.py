from __future__ import annotations

from fastapi import APIRouter, Depends, File, Form, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.db import get_db
from app.core.deps import Principal, require_admin, require_staff
from app.schemas.auth import MessageOut
from app.schemas.gifts import GiftListResponse, GiftOut
from app.services.gifts import create_gift, delete_gift, get_gift, list_gifts, update_gift
from app.services.media import read_upload

router = APIRouter(prefix="/gifts", tags=["gifts"])


@router.post("", response_model=GiftOut, status_code=201)
async def create(
    name: str = Form(default=""),
    image: UploadFile | None = File(default=None),
    db: AsyncSession = Depends(get_db),
    admin: Principal = Depends(require_admin),
):
    return await create_gift(db, name=name, image=await read_upload(image))


@router.get("", response_model=GiftListResponse)
async def list_all(
    db: AsyncSession = Depends(get_db),
    staff: Principal = Depends(require_staff),
):
    gifts = await list_gifts(db)
    return GiftListResponse(count=len(gifts), data=[GiftOut.model_validate(g) for g in gifts])


@router.get("/{gift_id}", response_model=GiftOut)
async def get_one(
    gift_id: int,
    db: AsyncSession = Depends(get_db),
    staff: Principal = Depends(require_staff),
):
    return await get_gift(db, gift_id=gift_id)


@router.put("/{gift_id}", response_model=GiftOut)
async def update(
    gift_id: int,
    name: str | None = Form(default=None),
    image: UploadFile | None = File(default=None),
    db: AsyncSession = Depends(get_db),
    admin: Principal = Depends(require_admin),
):
    return await update_gift(db, gift_id=gift_id, name=name, image=await read_upload(image))


@router.delete("/{gift_id}", response_model=MessageOut)
async def delete(
    gift_id: int,
    db: AsyncSession = Depends(get_db),
    admin: Principal = Depends(require_admin),
):
    await delete_gift(db, gift_id=gift_id)
    return MessageOut(message="Gift deleted")
