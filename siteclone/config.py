"""Configuration loading for siteclone.

config.toml:
    machine_token = "..."
    api_url = "https://terminus.pantheon.io/api"   # optional
    scope_backups = false                          # optional

    [polling]                                      # optional
    initial_interval = 2.0
    max_interval = 30.0
    max_wait = 3600.0

The machine token may also come from the SITECLONE_MACHINE_TOKEN environment
variable, which takes precedence over the file.
"""

import os
import tomllib
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator

TOKEN_ENV_VAR = "SITECLONE_MACHINE_TOKEN"
DEFAULT_API_URL = "https://terminus.pantheon.io/api"


class PollingConfig(BaseModel):  # type: ignore[misc]
    """Backup completion polling policy.

    Attributes:
        initial_interval: Seconds before the first status check.
        max_interval: Upper bound for the exponentially growing interval.
        max_wait: Total seconds to wait before giving up on a backup.
    """

    initial_interval: float = 2.0
    max_interval: float = 30.0
    max_wait: float = 3600.0

    @field_validator("initial_interval", "max_interval")  # type: ignore[untyped-decorator]
    @classmethod
    def validate_interval(cls, v: float) -> float:
        """Intervals may be zero (tests) but never negative."""
        if v < 0:
            msg = "Polling intervals must be non-negative"
            raise ValueError(msg)
        return v

    @field_validator("max_wait")  # type: ignore[untyped-decorator]
    @classmethod
    def validate_max_wait(cls, v: float) -> float:
        """Ensure there is a finite, positive wait budget."""
        if v <= 0:
            msg = "max_wait must be positive"
            raise ValueError(msg)
        return v

    @model_validator(mode="after")  # type: ignore[untyped-decorator]
    def validate_bounds(self) -> "PollingConfig":
        """max_interval must not be smaller than initial_interval."""
        if self.max_interval < self.initial_interval:
            msg = "max_interval must be >= initial_interval"
            raise ValueError(msg)
        return self


class Config(BaseModel):  # type: ignore[misc]
    """siteclone configuration."""

    machine_token: str
    api_url: str = DEFAULT_API_URL
    request_timeout: float = 30.0
    scope_backups: bool = False
    polling: PollingConfig = Field(default_factory=PollingConfig)

    @field_validator("machine_token")  # type: ignore[untyped-decorator]
    @classmethod
    def validate_token(cls, v: str) -> str:
        """Reject blank tokens early instead of failing at the first API call."""
        v = v.strip()
        if not v:
            msg = "machine_token must not be empty"
            raise ValueError(msg)
        return v

    @field_validator("api_url")  # type: ignore[untyped-decorator]
    @classmethod
    def validate_api_url(cls, v: str) -> str:
        """Strip trailing slash so paths can be appended."""
        return v.rstrip("/")


def get_config_dir() -> Path:
    """Get or create config directory."""
    config_dir = Path.home() / ".siteclone"
    config_dir.mkdir(exist_ok=True)
    return config_dir


def get_config_path() -> Path:
    """Path of the TOML config file."""
    return get_config_dir() / "config.toml"


def load_config() -> Config:
    """Load configuration from ~/.siteclone/config.toml and the environment."""
    config_path = get_config_path()
    data: dict[str, Any] = {}
    if config_path.exists():
        with open(config_path, "rb") as f:
            data = tomllib.load(f)

    env_token = os.environ.get(TOKEN_ENV_VAR)
    if env_token:
        data["machine_token"] = env_token

    if "machine_token" not in data:
        raise FileNotFoundError(
            f"Config file not found: {config_path}\n"
            "Create it with:\n"
            "  machine_token = 'your-machine-token'\n\n"
            f"Or export {TOKEN_ENV_VAR}."
        )
    config: Config = Config.model_validate(data)
    return config
