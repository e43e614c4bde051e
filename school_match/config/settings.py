"""Runtime settings for the school search bot.

Everything is read from the process environment, with a local `.env` file as a fallback source, and
validated once at startup so a misconfigured deployment fails before the bot starts polling.
"""

from __future__ import annotations

from pydantic import Field, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Bot, directory, LLM parser and search settings.

    The directory is read from Postgres when `DATABASE_URL` is set, otherwise from `SCHOOLS_FILE`.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    telegram_bot_token: str = Field(alias="TELEGRAM_BOT_TOKEN")
    database_url: str | None = Field(default=None, alias="DATABASE_URL")
    schools_file: str = Field(default="data/schools.json", alias="SCHOOLS_FILE")
    locale: str = Field(default="ru", alias="DIRECTORY_LOCALE")

    llm_enabled: bool = Field(default=False, alias="LLM_ENABLED")
    llm_api_key: str | None = Field(default=None, alias="LLM_API_KEY")
    llm_provider: str = Field(default="openai", alias="LLM_PROVIDER")
    llm_model: str = Field(default="gpt-4o-mini", alias="LLM_MODEL")
    llm_api_base: str = Field(default="https://api.openai.com/v1", alias="LLM_API_BASE")
    llm_timeout_s: float = Field(default=15.0, gt=0, alias="LLM_TIMEOUT_S")
    llm_max_retries: int = Field(default=2, ge=0, alias="LLM_MAX_RETRIES")
    # Remote parses per chat per window; 0 disables the limit.
    llm_rate_limit: int = Field(default=20, ge=0, alias="LLM_RATE_LIMIT")
    llm_rate_window_s: float = Field(default=60.0, gt=0, alias="LLM_RATE_WINDOW_S")

    nearby_radius_km: float = Field(default=5.0, alias="NEARBY_RADIUS_KM")
    results_limit: int = Field(default=10, ge=1, alias="RESULTS_LIMIT")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    @field_validator("database_url")
    @classmethod
    def empty_database_url_is_unset(cls, value: str | None) -> str | None:
        """Treat `DATABASE_URL=` (empty) as "no database": use the file store."""

        return value or None

    @field_validator("locale")
    @classmethod
    def validate_locale(cls, value: str) -> str:
        if value not in ("ru", "en"):
            raise ValueError("DIRECTORY_LOCALE must be 'ru' or 'en'")
        return value

    @field_validator("nearby_radius_km")
    @classmethod
    def validate_radius(cls, value: float) -> float:
        """The nearby radius is limited to (0, 50] km, the range the directory UI offers."""

        if not 0 < value <= 50:
            raise ValueError("NEARBY_RADIUS_KM must be in (0, 50]")
        return value

    @model_validator(mode="after")
    def require_llm_key(self) -> Settings:
        """An enabled LLM parser without credentials would fail on every query."""

        if self.llm_enabled and not (self.llm_api_key or "").strip():
            raise ValueError("LLM_ENABLED=true needs a non-empty LLM_API_KEY")
        return self


def load_settings() -> Settings:
    """Build `Settings` from the environment.

    Raises:
        RuntimeError: With the pydantic error summary when a variable is missing or invalid.
    """

    try:
        return Settings()
    except ValidationError as exc:
        raise RuntimeError(f"Invalid environment configuration: {exc}") from exc
