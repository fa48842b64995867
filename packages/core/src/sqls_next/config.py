"""Configuration for sqls-next."""

import os
from pathlib import Path

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Restart budget for unexpected connection closures
MAX_RESTARTS = 5

# Transport errors tolerated before the connection is shut down
TRANSPORT_ERROR_THRESHOLD = 3

# Messages from sqls that are noise on every keystroke
DEFAULT_SUPPRESSED_MESSAGES = [
    "no database connection",
    "Request workspace/executeCommand failed.",
]


def _get_env_files() -> list[Path]:
    """Get list of .env files to load, in priority order.

    Priority (later files override earlier):
    1. State directory .env (SQLS_NEXT_STATE_DIR or ~/.sqls-next)
    2. Current directory .env
    """
    env_files = []

    state_dir = os.environ.get("SQLS_NEXT_STATE_DIR", "")
    base = Path(state_dir) if state_dir else Path.home() / ".sqls-next"
    state_env = base / ".env"
    if state_env.exists():
        env_files.append(state_env)

    cwd_env = Path(".env")
    if cwd_env.exists():
        env_files.append(cwd_env)

    return env_files


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="SQLS_NEXT_",
        env_file=_get_env_files(),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ==========================================================================
    # Paths
    # ==========================================================================

    state_dir: str = Field(
        default="",
        description="Directory holding persisted state (default: ~/.sqls-next)",
    )
    resources_dir: str = Field(
        default="",
        description="Root containing {os}_{arch}/sqls binaries (default: <state_dir>/server)",
    )
    state_prefix: str = Field(
        default="sqls",
        description="Key prefix for persisted connection entries",
    )

    # ==========================================================================
    # Language server
    # ==========================================================================

    lowercase_keywords: bool = Field(
        default=False,
        description="Ask sqls to complete keywords in lowercase",
    )
    max_restarts: int = Field(
        default=MAX_RESTARTS,
        ge=0,
        description="Automatic restarts allowed after unexpected closures",
    )
    transport_error_threshold: int = Field(
        default=TRANSPORT_ERROR_THRESHOLD,
        ge=0,
        description="Transport errors tolerated before shutting the connection down",
    )
    result_preview_chars: int = Field(
        default=500,
        ge=0,
        description="Characters of each command result written to the log",
    )
    suppressed_messages: list[str] = Field(
        default_factory=lambda: list(DEFAULT_SUPPRESSED_MESSAGES),
        description="Server messages never shown to the user (substring match)",
    )

    # ==========================================================================
    # Logging
    # ==========================================================================

    log_level: str = Field(default="WARNING", description="Root log level")
    log_file: str = Field(
        default="",
        description="Optional file receiving the client trace (the output channel)",
    )

    @model_validator(mode="after")
    def fill_paths(self) -> "Settings":
        """Derive directories that were not provided explicitly."""
        if not self.state_dir:
            self.state_dir = str(Path.home() / ".sqls-next")
        if not self.resources_dir:
            self.resources_dir = str(Path(self.state_dir) / "server")
        return self

    def get_state_file(self) -> Path:
        """Path of the persisted key-value state file."""
        return Path(self.state_dir) / "state.yaml"


_settings: Settings | None = None


def get_settings() -> Settings:
    """Get cached settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reset_settings() -> None:
    """Reset cached settings (useful for testing)."""
    global _settings
    _settings = None
