"""Runtime settings read from the environment."""

from functools import lru_cache
from typing import Optional

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings.

    Fields are read from ``CHAT_``-prefixed variables (``CHAT_RATE_LIMIT``),
    except the model, key and logging options which keep their common names.
    Malformed values fail at startup instead of falling back to defaults.
    """

    model_config = SettingsConfigDict(
        env_prefix="CHAT_",
        env_file=".env",
        env_ignore_empty=True,
        extra="ignore",
        populate_by_name=True,
    )

    gemini_api_key: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("GEMINI_API_KEY", "GOOGLE_API_KEY"),
    )
    gemini_model: str = Field(
        default="gemini-1.5-flash", validation_alias=AliasChoices("GEMINI_MODEL")
    )
    temperature: float = 0.7
    generation_timeout: float = 60.0
    # 0 forwards the whole transcript
    max_context_turns: int = 0
    default_service_type: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("CHAT_SERVICE_TYPE")
    )

    database_url: str = ""
    allow_anonymous: bool = False

    rate_limit: int = 50
    rate_window: int = 60
    max_concurrent: int = 10
    queue_timeout: float = 90.0

    log_level: str = Field(default="INFO", validation_alias=AliasChoices("LOG_LEVEL"))
    log_json: bool = Field(default=False, validation_alias=AliasChoices("LOG_JSON"))


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Returns the process-wide settings"""
    return Settings()
