from fastapi import APIRouter, Depends, Request, Response
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.db import get_db
from app.core.deps import require_admin
from app.core.security import refresh_token_ttl
from app.schemas.auth import AccessTokenResponse, MessageOut, TokenResponse
from app.schemas.users import AgentCreate, UserSummary
from app.services.auth import authenticate, renew
from app.services.users import create_user

router = APIRouter(prefix="/auth", tags=["auth"])


def _set_refresh_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        key=settings.REFRESH_COOKIE_NAME,
        value=token,
        max_age=int(refresh_token_ttl().total_seconds()),
        httponly=True,
        secure=settings.COOKIE_SECURE,
        samesite="strict",
        path="/auth",
    )


@router.post("/login", response_model=TokenResponse)
async def login(
    response: Response,
    form_data: OAuth2PasswordRequestForm = Depends(),
    db: AsyncSession = Depends(get_db),
):
    result = await authenticate(db, username=form_data.username, password=form_data.password)
    _set_refresh_cookie(response, result.refresh_token)

    return TokenResponse(
        access_token=result.access_token,
        refresh_token=result.refresh_token,
        expires_in=result.expires_in,
        role=result.role,
        user=UserSummary.model_validate(result.user),
    )


@router.post("/refresh", response_model=AccessTokenResponse)
async def refresh(
    request: Request,
    response: Response,
    db: AsyncSession = Depends(get_db),
):
    result = await renew(db, refresh_token=request.cookies.get(settings.REFRESH_COOKIE_NAME))
    _set_refresh_cookie(response, result.refresh_token)

    return AccessTokenResponse(
        access_token=result.access_token,
        expires_in=result.expires_in,
        user=UserSummary.model_validate(result.user),
    )


@router.post("/logout", response_model=MessageOut)
async def logout(response: Response):
    response.delete_cookie(
        key=settings.REFRESH_COOKIE_NAME,
        path="/auth",
        httponly=True,
        secure=settings.COOKIE_SECURE,
        samesite="strict",
    )
    return MessageOut(message="Logged out successfully")


@router.post("/register", response_model=UserSummary, status_code=201)
async def register_agent(
    payload: AgentCreate,
    db: AsyncSession = Depends(get_db),
    admin=Depends(require_admin),
):
    return await create_user(
        db,
        name=payload.name,
        username=payload.username,
        password=payload.password,
        role="agent",
    )
