from __future__ import annotations

import math

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.db import get_db
from app.core.deps import Principal, get_current_user, require_admin
from app.schemas.auth import MessageOut
from app.schemas.me import MeOut
from app.schemas.users import AgentUpdate, UserListResponse, UserOut
from app.services.users import delete_user, get_user, list_agents, update_user

router = APIRouter(prefix="/users", tags=["users"])


@router.get("", response_model=UserListResponse)
async def list_users(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
    admin: Principal = Depends(require_admin),
):
    users, total = await list_agents(db, page=page, limit=limit)
    return UserListResponse(
        users=[UserOut.model_validate(u) for u in users],
        total=total,
        total_pages=math.ceil(total / limit) if total else 0,
        current_page=page,
    )


@router.get("/me", response_model=MeOut)
async def me(current: Principal = Depends(get_current_user)) -> MeOut:
    user = current.user
    return MeOut(
        id=int(user.id),
        name=user.name or user.username,
        username=user.username,
        role=user.role,
        token_expires_at=current.expires_at,
    )


@router.get("/{user_id}", response_model=UserOut)
async def get_one(
    user_id: int,
    db: AsyncSession = Depends(get_db),
    admin: Principal = Depends(require_admin),
):
    return await get_user(db, user_id=user_id)


@router.put("/{user_id}", response_model=UserOut)
async def update_one(
    user_id: int,
    payload: AgentUpdate,
    db: AsyncSession = Depends(get_db),
    admin: Principal = Depends(require_admin),
):
    return await update_user(
        db,
        user_id=user_id,
        name=payload.name,
        username=payload.username,
        password=payload.password,
    )


@router.delete("/{user_id}", response_model=MessageOut)
async def delete_one(
    user_id: int,
    db: AsyncSession = Depends(get_db),
    admin: Principal = Depends(require_admin),
):
    await delete_user(db, user_id=user_id)
    return MessageOut(message="User deleted successfully")
