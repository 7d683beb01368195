"""Application configuration management."""

from __future__ import annotations

from functools import lru_cache
from typing import Annotated, Any, List, Optional

from pydantic import AnyHttpUrl, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration loaded from environment or `.env`."""

    model_config = SettingsConfigDict(
        env_file=(".env",),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    telegram_bot_token: str = Field(..., alias="TELEGRAM_BOT_TOKEN")
    authorized_user_ids: Annotated[List[int], NoDecode] = Field(
        default_factory=list, alias="AUTHORIZED_USER_IDS"
    )

    database_url: str = Field(
        default="sqlite+aiosqlite:///./.tmp/wallets.db",
        alias="DATABASE_URL",
    )

    helius_api_key: Optional[str] = Field(default=None, alias="HELIUS_API_KEY")
    helius_webhook_id: Optional[str] = Field(default=None, alias="HELIUS_WEBHOOK_ID")
    helius_api_base: str = Field(
        default="https://api.helius.xyz",
        alias="HELIUS_API_BASE",
    )
    webhook_url: Optional[AnyHttpUrl] = Field(default=None, alias="WEBHOOK_URL")
    webhook_auth_header: Optional[str] = Field(
        default=None, alias="WEBHOOK_AUTH_HEADER"
    )

    dexscreener_api_base: str = Field(
        default="https://api.dexscreener.com",
        alias="DEXSCREENER_API_BASE",
    )
    http_timeout_seconds: float = Field(
        default=10.0, alias="HTTP_TIMEOUT_SECONDS", gt=0, le=120
    )

    host: str = Field(default="0.0.0.0", alias="HOST")
    port: int = Field(default=3000, alias="PORT", ge=1, le=65535)

    state_ttl_minutes: float = Field(
        default=5, alias="STATE_TTL_MINUTES", gt=0, le=60
    )

    allowlist_sync_retries: int = Field(
        default=0, alias="ALLOWLIST_SYNC_RETRIES", ge=0, le=5
    )
    allowlist_sync_retry_delay_seconds: float = Field(
        default=1.0, alias="ALLOWLIST_SYNC_RETRY_DELAY_SECONDS", ge=0, le=60
    )
    # 0 disables the periodic full resync.
    allowlist_resync_minutes: int = Field(
        default=0, alias="ALLOWLIST_RESYNC_MINUTES", ge=0, le=1440
    )

    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    @field_validator("authorized_user_ids", mode="before")
    @classmethod
    def _parse_user_ids(cls, value: Any) -> List[int]:
        if value in (None, "", []):
            return []
        if isinstance(value, str):
            return [int(part.strip()) for part in value.split(",") if part.strip()]
        if isinstance(value, (list, tuple, set)):
            return [int(v) for v in value]
        return [int(value)]

    @property
    def allowlist_sync_enabled(self) -> bool:
        return bool(self.helius_api_key and self.helius_webhook_id and self.webhook_url)


@lru_cache(maxsize=1)
def load_settings() -> Settings:
    """Return cached Settings instance, raising a helpful message on failure."""
    try:
        return Settings()
    except (
        ValidationError
    ) as exc:  # pragma: no cover - configuration failure visible on boot
        raise RuntimeError(f"Invalid configuration: {exc}") from exc


__all__ = ["Settings", "load_settings"]
