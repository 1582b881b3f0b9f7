"""Environment settings for the SEC filing packager."""

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from sec_packager.errors import ConfigurationError


class Settings(BaseSettings):
    """
    Settings read from ``SEC_*`` environment variables (or a ``.env`` file).

    SEC requires every request to identify the caller, so ``SEC_USER_AGENT``
    has no default and is checked by :meth:`require_user_agent`.
    """

    model_config = SettingsConfigDict(
        env_prefix="SEC_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    user_agent: Optional[str] = Field(default=None)
    max_attempts: int = Field(default=4, ge=1)
    backoff_base: float = Field(default=0.5, ge=0)
    timeout: float = Field(default=30.0, gt=0)
    ticker_cache_ttl: float = Field(default=24 * 60 * 60, ge=0)
    log_level: str = Field(default="INFO")
    host: str = Field(default="127.0.0.1")
    port: int = Field(default=8000)

    def require_user_agent(self) -> str:
        """
        Return the configured User-Agent.

        Raises:
            ConfigurationError: If SEC_USER_AGENT is unset or blank
        """
        if not self.user_agent or not self.user_agent.strip():
            raise ConfigurationError("Missing SEC_USER_AGENT (required by SEC).")
        return self.user_agent.strip()


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return the process-wide settings instance."""
    return Settings()
