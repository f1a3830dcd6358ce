"""Configuration settings using Pydantic."""

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from creditledger.models import DEFAULT_DAILY_CREDITS

# Docs: https://docs.pydantic.dev/2.8/concepts/pydantic_settings/


class Settings(BaseSettings):
    # App name used in logs
    app_name: str = "creditledger"

    # Allows to detect type of deployment
    environment: Literal["dev", "prod"] = "dev"

    # PostgreSQL connection string (asyncpg driver)
    database_url: str

    # Logfire token, logs stay local when empty
    logfire_token: str | None = None

    # --- Credits ---

    # Allowance given to every user per reset period
    credits_default_daily_credits: int = Field(default=DEFAULT_DAILY_CREDITS, ge=0)

    # IANA zone whose calendar day defines the reset period
    credits_reset_timezone: str = "UTC"

    # Upper bound for a single history page
    credits_history_max_limit: int = Field(default=100, ge=1)

    model_config = SettingsConfigDict(
        # `.env.prod` takes priority over `.env`
        env_file=(".env", ".env.prod"),
        env_file_encoding="utf-8",
        extra="ignore",  # Ignore extra fields from .env
    )

    @property
    def is_dev(self) -> bool:
        return self.environment == "dev"


settings = Settings()
