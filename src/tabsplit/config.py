from __future__ import annotations

from datetime import timedelta
from functools import lru_cache
from typing import Optional
from zoneinfo import ZoneInfo

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from tabsplit.db.models import DeadlinePolicy


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", case_sensitive=False, extra="ignore", populate_by_name=True
    )

    bot_token: Optional[str] = Field(None, alias="BOT_TOKEN")
    database_url: Optional[str] = Field(None, alias="DATABASE_URL")
    tz: str = Field("UTC", alias="TZ")
    currency: str = Field("USD", alias="CURRENCY")
    log_level: str = Field("INFO", alias="LOG_LEVEL")

    allocation_window_minutes: int = Field(0, ge=0, alias="ALLOCATION_WINDOW_MINUTES")
    deadline_policy: DeadlinePolicy = Field(DeadlinePolicy.EVEN_FALLBACK, alias="DEADLINE_POLICY")
    deadline_sweep_seconds: int = Field(30, gt=0, alias="DEADLINE_SWEEP_SECONDS")
    receipt_extract_timeout_seconds: float = Field(35.0, gt=0, alias="RECEIPT_EXTRACT_TIMEOUT_SECONDS")

    @property
    def zoneinfo(self) -> ZoneInfo:
        return ZoneInfo(self.tz)

    @property
    def allocation_window(self) -> timedelta | None:
        if self.allocation_window_minutes == 0:
            return None
        return timedelta(minutes=self.allocation_window_minutes)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()  # type: ignore[call-arg]
