# app/core/config.py
from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Centralized application settings loaded from environment.

    Required env vars (.env):
      - DATABASE_URL (Postgres connection string; SQLite works for tests)
      - JWT_SECRET (signing secret of the identity provider's access tokens)

    Optional:
      - RAZORPAY_KEY_ID / RAZORPAY_KEY_SECRET (online payments)
      - SMTP_* (order emails; unset => emails are skipped and logged)
      - ADMIN_EMAIL (shop inbox for new-order notices)
    """

    PROJECT_NAME: str = "Ruchulu Pickles API"
    API_V1_STR: str = "/api/v1"
    LOG_LEVEL: str = "INFO"

    CORS_ORIGINS: list[str] = [
        "http://localhost:5173",
        "http://127.0.0.1:5173",
        "http://localhost:5174",  # admin console
    ]

    # DB config
    DATABASE_URL: str

    # JWT verification (backend-side)
    JWT_SECRET: str
    JWT_ALG: str = "HS256"

    # Razorpay gateway
    RAZORPAY_KEY_ID: str | None = None
    RAZORPAY_KEY_SECRET: str | None = None
    CURRENCY: str = "INR"

    # SMTP (see app/core/email_client.py)
    SMTP_HOST: str | None = None
    SMTP_PORT: int = 587
    SMTP_USERNAME: str | None = None
    SMTP_PASSWORD: str | None = None
    SMTP_FROM_EMAIL: str | None = None
    SMTP_FROM_NAME: str = "Ruchulu Pickles"
    SMTP_USE_TLS: bool = True
    SMTP_USE_SSL: bool = False

    ADMIN_EMAIL: str | None = None

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


@lru_cache
def get_settings() -> Settings:
    """
    Cached settings loader.
    Ensures we don't re-parse .env on every import / request.
    """
    return Settings()
