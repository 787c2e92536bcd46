from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    DATABASE_URL: str = "sqlite+aiosqlite:///./giftdesk.db"
    AUTO_CREATE_TABLES: bool = True

    JWT_SECRET: str = "change-me"
    JWT_ACCESS_MINUTES: int = 30
    JWT_REFRESH_DAYS: int = 7
    JWT_ALG: str = "HS256"

    REFRESH_COOKIE_NAME: str = "refreshToken"
    COOKIE_SECURE: bool = False

    FRONTEND_URL: str = "http://localhost:5173"
    CORS_ORIGINS: list[str] = ["http://localhost:5173"]

    MEDIA_ROOT: str = "uploads"
    MEDIA_URL: str = "/uploads"
    MAX_IMAGE_BYTES: int = 2 * 1024 * 1024
    ALLOWED_IMAGE_TYPES: dict[str, str] = {
        "image/jpeg": ".jpg",
        "image/png": ".png",
        "image/gif": ".gif",
        "image/webp": ".webp",
    }

    DISPLAY_TIMEZONE: str = "Asia/Kolkata"
    CODE_GENERATION_ATTEMPTS: int = 5

    BOOTSTRAP_ADMIN_USERNAME: str | None = None
    BOOTSTRAP_ADMIN_PASSWORD: str | None = None
    BOOTSTRAP_ADMIN_NAME: str = "Administrator"

    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = False


settings = Settings()
