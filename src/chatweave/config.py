"""Runtime configuration and logging setup."""

from __future__ import annotations

import logging
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


class Settings(BaseSettings):
    """Runtime configuration for a chatweave app."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    api_key: str = Field(default="", alias="GEMINI_API_KEY")
    model: str = Field(default="gemini-2.5-flash", alias="GEMINI_MODEL")
    # offered by each chat's model picker; new chats start on ``model``
    available_models: list[str] = Field(
        default=["gemini-2.5-flash", "gemini-2.5-pro", "gemini-2.5-flash-lite"],
        alias="CHATWEAVE_AVAILABLE_MODELS",
    )
    system_instruction: str | None = Field(
        default=None, alias="CHATWEAVE_SYSTEM_INSTRUCTION"
    )

    use_streaming: bool = Field(default=True, alias="CHATWEAVE_USE_STREAMING")
    # ask the backend to return its reasoning as thought parts
    include_thoughts: bool = Field(default=True, alias="CHATWEAVE_INCLUDE_THOUGHTS")
    # feed earlier thoughts back as context on the next request
    include_thoughts_in_history: bool = Field(
        default=False, alias="CHATWEAVE_INCLUDE_THOUGHTS_IN_HISTORY"
    )

    cancel_poll_interval: float = Field(
        default=0.3, gt=0, alias="CHATWEAVE_CANCEL_POLL_INTERVAL"
    )
    ui_poll_interval_ms: int = Field(
        default=250, gt=0, alias="CHATWEAVE_UI_POLL_INTERVAL_MS"
    )
    upload_dir: Path = Field(
        default=Path(".chatweave/uploads"), alias="CHATWEAVE_UPLOAD_DIR"
    )
    export_format: Literal["plaintext", "json", "yaml"] = Field(
        default="plaintext", alias="CHATWEAVE_EXPORT_FORMAT"
    )
    log_level: str = Field(default="INFO", alias="CHATWEAVE_LOG_LEVEL")


@lru_cache
def get_settings() -> Settings:
    return Settings()


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT)
