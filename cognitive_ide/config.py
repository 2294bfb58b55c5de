"""Runtime configuration loaded from environment variables.

Uses ``pydantic-settings`` for env-var loading, type coercion and ``.env``
file support.  Every setting has a default so the package works with no
environment at all.
"""

import sys

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from cognitive_ide.rate_limit import RateLimitConfig

VERSION = "0.1.0"


def _default_os() -> str:
    if sys.platform.startswith("win"):
        return "windows"
    if sys.platform == "darwin":
        return "macos"
    return "linux"


class Settings(BaseSettings):
    """Runtime settings — sourced from environment / ``.env`` file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # -- agent loop --
    MAX_AGENT_ITERATIONS: int = Field(default=10, ge=1)

    # -- tool rate limiting --
    TOOL_MAX_CALLS_PER_MINUTE: int = Field(default=30, ge=1)
    TOOL_MAX_CALLS_PER_SESSION: int = Field(default=100, ge=1)
    TOOL_COOLDOWN_MS: int = Field(default=2000, ge=0)
    TOOL_RATE_WINDOW_MS: int = Field(default=60_000, ge=1)

    # -- sandbox --
    # Absolute roots a tool may reach outside the workspace
    ALLOWED_ABSOLUTE_PREFIXES: list[str] = ["/home", "/usr", "/tmp", "/Users"]

    # -- environment shown to the model --
    USER_OS: str = Field(default_factory=_default_os)

    # -- logging --
    LOG_LEVEL: str = "INFO"
    LOG_FILE: str = ""  # empty = stderr only

    # -- reference OpenAI-compatible provider --
    LLM_BASE_URL: str = "https://api.openai.com/v1"
    LLM_API_KEY: str = ""
    LLM_MODEL: str = "gpt-4o-mini"
    LLM_TIMEOUT_S: float = 300.0


settings = Settings()


def get_settings() -> Settings:
    """Return the module-level settings (patched by tests)."""
    return settings


def rate_limit_config(cfg: Settings) -> RateLimitConfig:
    return RateLimitConfig(
        max_calls_per_minute=cfg.TOOL_MAX_CALLS_PER_MINUTE,
        max_calls_per_session=cfg.TOOL_MAX_CALLS_PER_SESSION,
        cooldown_ms=cfg.TOOL_COOLDOWN_MS,
        window_ms=cfg.TOOL_RATE_WINDOW_MS,
    )
