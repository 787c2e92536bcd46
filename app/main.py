import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from loguru import logger

# IMPORTANT:
# This imports ALL models so SQLAlchemy registers tables + FKs correctly
import app.models  # noqa: F401

from app.core.config import settings
from app.core.db import SessionLocal, create_tables
from app.core.errors import register_exception_handlers
from app.core.logging import configure_logging
from app.services.users import ensure_bootstrap_admin

# Routers
from app.routers.auth import router as auth_router
from app.routers.users import router as users_router
from app.routers.gifts import router as gifts_router
from app.routers.events import router as events_router
from app.routers.guests import router as guests_router


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()

    if settings.AUTO_CREATE_TABLES:
        await create_tables()
        logger.info("Database tables ensured")

    if settings.BOOTSTRAP_ADMIN_USERNAME and settings.BOOTSTRAP_ADMIN_PASSWORD:
        async with SessionLocal() as db:
            await ensure_bootstrap_admin(
                db,
                username=settings.BOOTSTRAP_ADMIN_USERNAME,
                password=settings.BOOTSTRAP_ADMIN_PASSWORD,
                name=settings.BOOTSTRAP_ADMIN_NAME,
            )

    yield
    logger.info("Application shutdown")


app = FastAPI(title="Giftdesk API", version="1.0.0", lifespan=lifespan)

# must precede CORS: the last middleware added is the outermost
register_exception_handlers(app)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Uploaded gift and welcome images
os.makedirs(settings.MEDIA_ROOT, exist_ok=True)
app.mount(settings.MEDIA_URL, StaticFiles(directory=settings.MEDIA_ROOT), name="uploads")

app.include_router(auth_router)
app.include_router(users_router)
app.include_router(gifts_router)
app.include_router(events_router)
app.include_router(guests_router)


@app.get("/", include_in_schema=False)
async def root():
    return {"status": "ok"}
