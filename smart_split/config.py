from __future__ import annotations

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        extra="ignore",
        case_sensitive=False,
        env_file=".env",
    )

    bot_token: Optional[str] = Field(None, alias="BOT_TOKEN")
    database_url: str = Field("sqlite+aiosqlite:///smart_split.db", alias="DATABASE_URL")
    # Shared store for multi-client rooms. Unset means live sync is not configured.
    room_database_url: Optional[str] = Field(None, alias="ROOM_DATABASE_URL")

    log_level: str = Field("INFO", alias="LOG_LEVEL")
    sql_echo: bool = Field(False, alias="SQL_ECHO")

    sync_debounce_seconds: float = Field(0.5, alias="SYNC_DEBOUNCE_SECONDS")
    room_poll_seconds: float = Field(1.0, alias="ROOM_POLL_SECONDS")
    dashboard_debounce_seconds: float = Field(2.0, alias="DASHBOARD_DEBOUNCE_SECONDS")

    app_base_url: str = Field("https://smart-split.app/", alias="APP_BASE_URL")
    snapshot_max_url_length: int = Field(8000, alias="SNAPSHOT_MAX_URL_LENGTH")
    shortener_url: str = Field("https://tinyurl.com/api-create.php", alias="SHORTENER_URL")
    shortener_max_url_length: int = Field(2500, alias="SHORTENER_MAX_URL_LENGTH")
    http_timeout_seconds: float = Field(10.0, alias="HTTP_TIMEOUT_SECONDS")

    default_member_count: int = Field(11, alias="DEFAULT_MEMBER_COUNT")

    gemini_api_key: Optional[str] = Field(None, alias="GEMINI_API_KEY")
    gemini_model: str = Field("gemini-2.0-flash", alias="GEMINI_MODEL")


settings = Settings()
