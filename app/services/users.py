from __future__ import annotations

from loguru import logger
from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import AgentAssigned, DuplicateUsername, ForbiddenRoleDeletion, NotFound
from app.core.security import hash_password
from app.models.event import Event
from app.models.guest import Guest
from app.models.user import User


async def get_user(db: AsyncSession, *, user_id: int) -> User:
    user = await db.get(User, user_id)
    if not user:
        raise NotFound("User not found")
    return user


async def get_user_by_username(db: AsyncSession, username: str) -> User | None:
    res = await db.execute(select(User).where(User.username == username))
    return res.scalar_one_or_none()


async def _username_taken(db: AsyncSession, username: str, *, exclude_id: int | None = None) -> bool:
    stmt = select(User.id).where(User.username == username)
    if exclude_id is not None:
        stmt = stmt.where(User.id != exclude_id)
    res = await db.execute(stmt)
    return res.first() is not None


async def list_agents(db: AsyncSession, *, page: int, limit: int) -> tuple[list[User], int]:
    total_res = await db.execute(select(func.count(User.id)).where(User.role == "agent"))
    total = int(total_res.scalar_one())

    stmt = (
        select(User)
        .where(User.role == "agent")
        .order_by(User.created_at.desc(), User.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    res = await db.execute(stmt)
    return list(res.scalars().all()), total


async def create_user(
    db: AsyncSession,
    *,
    name: str,
    username: str,
    password: str,
    role: str = "agent",
) -> User:
    if await _username_taken(db, username):
        raise DuplicateUsername()

    user = User(name=name, username=username, password_hash=hash_password(password), role=role)
    db.add(user)
    try:
        await db.commit()
    except IntegrityError:
        # concurrent signup with the same username
        await db.rollback()
        raise DuplicateUsername()

    await db.refresh(user)
    logger.info("Created {} user id={} username={}", role, user.id, user.username)
    return user


async def update_user(
    db: AsyncSession,
    *,
    user_id: int,
    name: str | None = None,
    username: str | None = None,
    password: str | None = None,
) -> User:
    user = await get_user(db, user_id=user_id)

    if username and username != user.username:
        if await _username_taken(db, username, exclude_id=user.id):
            raise DuplicateUsername()
        user.username = username

    if name:
        user.name = name

    # blank password means "keep the current one"
    if password and password.strip():
        user.password_hash = hash_password(password)

    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise DuplicateUsername()

    await db.refresh(user)
    return user


async def delete_user(db: AsyncSession, *, user_id: int) -> None:
    user = await get_user(db, user_id=user_id)
    if user.role == "admin":
        raise ForbiddenRoleDeletion()

    assigned = await db.execute(select(func.count(Event.id)).where(Event.agent_id == user.id))
    if int(assigned.scalar_one()) > 0:
        raise AgentAssigned()

    username = user.username
    try:
        await db.execute(update(Guest).where(Guest.agent_id == user.id).values(agent_id=None))
        await db.execute(update(Guest).where(Guest.verified_by == user.id).values(verified_by=None))
        await db.delete(user)
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info("Deleted agent id={} username={}", user_id, username)


async def ensure_bootstrap_admin(db: AsyncSession, *, username: str, password: str, name: str) -> User:
    existing = await get_user_by_username(db, username)
    if existing:
        return existing

    user = await create_user(db, name=name, username=username, password=password, role="admin")
    logger.info("Bootstrapped admin account {}", username)
    return user
