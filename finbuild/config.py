"""Application configuration loaded from environment variables.

Uses ``pydantic-settings`` for automatic env-var loading, type coercion,
and ``.env`` file support.  Validates required settings on import and fails
fast if critical vars are missing outside of tests.
"""

VERSION = "0.1.0"

import sys

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


# ---------------------------------------------------------------------------
# Required var names, checked after instantiation (not during), so tests
# that leave them blank still work.
# ---------------------------------------------------------------------------
_REQUIRED_VARS: list[str] = [
    "DATABASE_URL",
    "JWT_SECRET",
]


class Settings(BaseSettings):
    """Application settings, sourced from environment / ``.env`` file.

    Required vars (must be set in production, may be blank in test):
      DATABASE_URL, JWT_SECRET
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # -- required in production (default empty so tests don't fail) --
    DATABASE_URL: str = ""
    JWT_SECRET: str = ""

    # -- optional with sensible defaults --
    FRONTEND_URL: str = "http://localhost:5173"
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"
    LOG_FILE: str = ""

    # -------------------------------------------------------------------------
    # Completion provider.  LLM_PROVIDER picks "anthropic" or "openai"; left
    # blank, the provider is chosen by whichever API key is present.
    # -------------------------------------------------------------------------
    LLM_PROVIDER: str = ""
    ANTHROPIC_API_KEY: str = ""
    OPENAI_API_KEY: str = ""
    LLM_MODEL: str = "claude-sonnet-4-5"
    OPENAI_MODEL: str = "gpt-4o"
    LLM_MAX_TOKENS: int = Field(default=4000, ge=1)
    LLM_TEMPERATURE: float = Field(default=0.5, ge=0.0, le=1.0)
    LLM_TIMEOUT_SECONDS: float = 120.0

    # Rate-limit retry: delay = LLM_RETRY_BASE_DELAY * 2 ** attempt
    LLM_MAX_RETRIES: int = Field(default=3, ge=0)
    LLM_RETRY_BASE_DELAY: float = Field(default=1.0, gt=0)
    LLM_RETRY_MAX_DELAY: float = 60.0

    # Insert the built-in prompt templates at startup when a name has no
    # stored version yet.
    SEED_DEFAULT_TEMPLATES: bool = True
    PERFORMANCE_STATS_LIMIT: int = Field(default=100, ge=1, le=1000)

    DB_POOL_MIN_SIZE: int = Field(default=1, ge=0)
    DB_POOL_MAX_SIZE: int = Field(default=10, ge=1)


settings = Settings()


def resolve_provider() -> str:
    """Return the completion provider name.

    Resolution order:
      1. LLM_PROVIDER (explicit)
      2. "anthropic" when ANTHROPIC_API_KEY is set
      3. "openai"
    """
    provider = settings.LLM_PROVIDER.strip().lower() if settings.LLM_PROVIDER else ""
    if provider in ("anthropic", "openai"):
        return provider
    return "anthropic" if settings.ANTHROPIC_API_KEY else "openai"


# Validate at import time, but only when NOT running under pytest.
if "pytest" not in sys.modules:
    _missing = [v for v in _REQUIRED_VARS if not getattr(settings, v)]
    if _missing:
        print(
            f"[config] FATAL: missing required environment variables: "
            f"{', '.join(_missing)}",
            file=sys.stderr,
        )
        sys.exit(1)
