"""Pydantic configuration models for skill-get.

``FileConfig`` validates the optional YAML file; ``Settings`` is the
resolved, process-wide configuration object handed to the registry
client and the skill manager.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from skill_get.constants import DEFAULT_API_URL, DEFAULT_LOG_LEVEL, DEFAULT_TIMEOUT

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


def _validate_api_url(v: str) -> str:
    v = v.strip().rstrip("/")
    if not v.startswith(("http://", "https://")):
        raise ValueError(f"URL '{v}' must start with http:// or https://")
    return v


def _normalise_level(v: object) -> object:
    if isinstance(v, str):
        return v.strip().upper()
    return v


class FileConfig(BaseModel):
    """Optional ``config.yaml`` contents.

    Example::

        api_url: https://registry.internal.example
        agent: cursor
        timeout: 10
        log_level: info
    """

    model_config = ConfigDict(extra="forbid")

    api_url: Optional[str] = Field(default=None, description="Registry base URL.")
    agent: Optional[str] = Field(default=None, description="Target agent identifier.")
    timeout: Optional[float] = Field(
        default=None,
        gt=0,
        description="Per-request registry timeout in seconds.",
    )
    log_level: Optional[LogLevel] = Field(default=None, description="File log level.")

    @field_validator("api_url")
    @classmethod
    def _check_url(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        return _validate_api_url(v)

    @field_validator("agent")
    @classmethod
    def _strip_agent(cls, v: Optional[str]) -> Optional[str]:
        if v is not None:
            v = v.strip()
            if not v:
                raise ValueError("agent must be a non-empty string if provided")
        return v

    @field_validator("log_level", mode="before")
    @classmethod
    def _upper_level(cls, v: object) -> object:
        return _normalise_level(v)


class Settings(BaseModel):
    """Resolved configuration for one process.

    Built once by :func:`skill_get.config.loader.load_settings`.
    """

    api_url: str = DEFAULT_API_URL
    agent: str = "default"
    skills_path: Path
    token: Optional[str] = None
    username: Optional[str] = None
    timeout: float = Field(default=DEFAULT_TIMEOUT, gt=0)
    log_level: LogLevel = DEFAULT_LOG_LEVEL
    state_path: Path
    cache_dir: Path

    @field_validator("api_url")
    @classmethod
    def _check_url(cls, v: str) -> str:
        return _validate_api_url(v)

    @field_validator("log_level", mode="before")
    @classmethod
    def _upper_level(cls, v: object) -> object:
        return _normalise_level(v)

    @property
    def is_authenticated(self) -> bool:
        return bool(self.token)

    @property
    def scratch_dir(self) -> Path:
        """Where downloaded archives live until they are extracted."""
        return self.cache_dir / "tmp"

    @property
    def log_dir(self) -> Path:
        return self.cache_dir / "logs"
