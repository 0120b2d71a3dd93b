from __future__ import annotations

import logging

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", case_sensitive=False, extra="ignore")

    # IANA zone used when neither the caller nor the stored plan names one
    default_timezone: str = Field(default="Europe/Madrid", validation_alias="DEFAULT_TIMEZONE")

    db_path: str = Field(default="data/liacoach.sqlite3", validation_alias="DB_PATH")
    database_url: str | None = Field(default=None, validation_alias="DATABASE_URL")

    # The core never calls OpenAI; only the chat layer does, and it falls back without a key
    openai_api_key: str | None = Field(default=None, validation_alias="OPENAI_API_KEY")
    openai_text_model: str = Field(default="gpt-4o-mini", validation_alias="OPENAI_TEXT_MODEL")
    openai_memory_model: str = Field(default="gpt-4o-mini", validation_alias="OPENAI_MEMORY_MODEL")
    openai_timeout_s: int = Field(default=45, validation_alias="OPENAI_TIMEOUT_S")

    # foods/activities kept in signals.today
    recent_items_cap: int = Field(default=12, validation_alias="RECENT_ITEMS_CAP")

    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")


settings = Settings()


def setup_logging() -> None:
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
