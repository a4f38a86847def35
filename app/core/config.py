# app/core/config.py

import os
from functools import lru_cache
from typing import List, Optional, Annotated
from pydantic import ConfigDict, BeforeValidator
from pydantic_settings import BaseSettings, NoDecode


def _parse_csv_list(value):
    if value in (None, "", []):
        return []
    if isinstance(value, str):
        return [item.strip() for item in value.split(",") if item.strip()]
    if isinstance(value, (list, tuple, set)):
        return [str(item).strip() for item in value if str(item).strip()]
    return []


class Settings(BaseSettings):
    """
    Application settings.
    Loads values from environment variables (.env file)
    """
    # Database settings
    DATABASE_URL: str = ""

    # Hosted auth provider (JWT issued to the front end)
    AUTH_JWT_SECRET: str = ""
    AUTH_JWT_ALGORITHM: str = "HS256"
    AUTH_JWT_AUDIENCE: Optional[str] = "authenticated"

    # Stripe
    STRIPE_SECRET_KEY: str = ""
    STRIPE_WEBHOOK_SECRET: str = ""
    STRIPE_CURRENCY: str = "aud"
    STRIPE_CONNECT_COUNTRY: str = "AU"
    CHECKOUT_ALLOWED_COUNTRIES: Annotated[List[str], NoDecode, BeforeValidator(lambda v: _parse_csv_list(v))] = ["AU", "NZ"]

    # Front end
    APP_URL: str = "http://localhost:3000"
    PLATFORM_NAME: str = "yellow-jersey"

    # Cron / admin access
    CRON_SECRET: str = ""
    BASIC_AUTH_USERNAME: Optional[str] = None
    BASIC_AUTH_PASSWORD: Optional[str] = None

    # Scheduler
    SCHEDULER_ENABLED: bool = False
    RELEASE_FUNDS_SCHEDULE: str = "0 * * * *"    # hourly
    OFFER_EXPIRY_SCHEDULE: str = "0 2 * * *"     # daily at 2 AM

    # Environment
    ENVIRONMENT: str = "development"
    DEBUG: bool = False

    model_config = ConfigDict(
        env_file=os.environ.get('ENV_FILE', '.env') if os.path.exists('.env') else None,
        case_sensitive=True
    )


@lru_cache()
def get_settings():
    """Cached settings to avoid loading .env file for every request"""
    return Settings()
