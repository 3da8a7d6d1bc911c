"""Configuration management for ghcmodi."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ghcmodi.errors import ConfigurationError


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_prefix="GHCMODI_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Tool invocation
    executable: str = Field(default="ghc-mod", description="ghc-mod executable or wrapper")
    executable_args: list[str] = Field(default_factory=list, description="Arguments placed before the mode flag")
    interactive_flag: str = Field(default="legacy-interactive", description="Flag that starts the REPL mode")
    version_flag: str = Field(default="version", description="Startup probe argument; empty disables the probe")
    workspace_root: Path | None = Field(default=None, description="Analysis root directory")

    # Session behaviour
    command_timeout_seconds: float = Field(default=60.0, gt=0, description="Per-command response timeout")
    kill_on_timeout: bool = Field(default=False, description="Restart ghc-mod after a command times out")
    startup_grace_seconds: float = Field(
        default=0.5, ge=0, description="An exit within this window after spawning is a spawn failure"
    )
    map_unsaved_files: bool = Field(default=True, description="Send editor buffers as in-memory overlays")

    # Rate limiting
    check_delay_seconds: float = Field(default=0.25, ge=0)
    hover_delay_seconds: float = Field(default=0.1, ge=0)
    stderr_delay_seconds: float = Field(default=0.1, ge=0)
    max_number_of_problems: int = Field(default=100, ge=0)

    # Logging
    log_level: str = Field(default="INFO", description="Log level")
    log_profile: Literal["default", "rich"] = Field(default="default", description="Log output profile")

    @field_validator("executable")
    @classmethod
    def _executable_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("executable must not be empty")
        return value

    def resolve_root(self) -> Path:
        return (self.workspace_root or Path.cwd()).resolve()

    def tool_argv(self) -> list[str]:
        """Command line of the long-lived interactive process."""
        return [self.executable, *self.executable_args, self.interactive_flag]

    def probe_argv(self) -> list[str] | None:
        """Command line used to check that the executable runs at all."""
        if not self.version_flag:
            return None
        return [self.executable, *self.executable_args, self.version_flag]


def get_settings(**overrides: Any) -> Settings:
    """Build settings from the environment, applying explicit overrides.

    Args:
        **overrides: Field values that take precedence over the environment.
            ``None`` values are ignored so CLI options can be passed through.

    Returns:
        Settings instance

    Raises:
        ConfigurationError: If the resulting settings fail validation.
    """
    values = {key: value for key, value in overrides.items() if value is not None}
    try:
        return Settings(**values)
    except ValueError as exc:
        raise ConfigurationError(str(exc)) from exc
