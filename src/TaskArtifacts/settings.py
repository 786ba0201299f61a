"""Pydantic v2 settings for artifact resolution.

All fields can be supplied through environment variables with the
``TASKARTIFACTS_`` prefix (for example ``TASKARTIFACTS_CACHE_DIRECTORY``).
Explicit keyword overrides passed to :func:`load_settings` take precedence
over the environment.
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import List, Literal, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .checksums import SUPPORTED_ALGORITHMS
from .retries import RetryPolicy

__all__ = ["ArtifactSettings", "load_settings"]


class ArtifactSettings(BaseSettings):
    """Configuration consumed by :class:`~TaskArtifacts.cache.ArtifactCache`."""

    model_config = SettingsConfigDict(
        env_prefix="TASKARTIFACTS_",
        case_sensitive=False,
        extra="ignore",
        validate_assignment=True,
    )

    cache_directory: Path = Field(
        default=Path("/var/cache/task-artifacts"),
        description="Directory where resolved external artifacts are cached",
    )
    log_directory: Path = Field(
        default=Path("/var/log/task-artifacts"),
        description="Directory holding per-task tool output logs",
    )
    fetch_backend: Literal["wget", "httpx"] = Field(
        default="wget", description="Retrieve artifacts with the external tool or httpx"
    )
    fetch_tool: str = Field(default="wget", description="Fetch tool executable")
    archive_tool: str = Field(default="tar", description="Archive tool executable")
    checksum_algorithm: str = Field(default="md5", description="Digest algorithm for checksums")
    command_timeout_sec: Optional[float] = Field(
        default=3600.0, description="Deadline for each external command; None disables it"
    )
    termination_grace_sec: float = Field(
        default=5.0, description="Seconds between SIGTERM and SIGKILL on deadline expiry"
    )
    download_max_attempts: int = Field(default=3, description="Total download attempts")
    download_backoff_multiplier: float = Field(default=1.0, description="Backoff multiplier")
    download_backoff_max_sec: float = Field(default=30.0, description="Maximum backoff wait")
    retryable_exit_codes: List[int] = Field(
        default_factory=lambda: [4, 8],
        description="Fetch tool exit codes treated as transient",
    )
    http_timeout_sec: float = Field(default=60.0, description="httpx request timeout")
    use_locks: bool = Field(default=True, description="Serialise cache population per filename")
    lock_timeout_sec: float = Field(default=300.0, description="Cache lock acquisition timeout")
    log_level: str = Field(default="INFO", description="Logging level")

    @field_validator("checksum_algorithm")
    @classmethod
    def validate_algorithm(cls, v: str) -> str:
        candidate = v.strip().lower()
        if candidate not in SUPPORTED_ALGORITHMS:
            raise ValueError(f"checksum_algorithm must be one of {', '.join(SUPPORTED_ALGORITHMS)}")
        return candidate

    @field_validator("command_timeout_sec")
    @classmethod
    def validate_command_timeout(cls, v: Optional[float]) -> Optional[float]:
        if v is not None and v <= 0:
            raise ValueError("command_timeout_sec must be > 0")
        return v

    @field_validator(
        "termination_grace_sec", "http_timeout_sec", "lock_timeout_sec", "download_backoff_max_sec"
    )
    @classmethod
    def validate_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("Must be > 0")
        return v

    @field_validator("download_backoff_multiplier")
    @classmethod
    def validate_multiplier(cls, v: float) -> float:
        if v < 0:
            raise ValueError("download_backoff_multiplier must be >= 0")
        return v

    @field_validator("download_max_attempts")
    @classmethod
    def validate_attempts(cls, v: int) -> int:
        if v < 1:
            raise ValueError("download_max_attempts must be >= 1")
        return v

    def task_log_path(self, task_id: Optional[str]) -> Path:
        """Return the log file receiving tool output for ``task_id``."""

        safe = re.sub(r"[^A-Za-z0-9._-]", "_", task_id or "").strip("._") or "executor"
        return self.log_directory / f"{safe}.log"

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_attempts=self.download_max_attempts,
            multiplier=self.download_backoff_multiplier,
            max_wait_s=self.download_backoff_max_sec,
            retryable_exit_codes=frozenset(self.retryable_exit_codes),
        )


def load_settings(**overrides: object) -> ArtifactSettings:
    """Build settings from the environment, applying non-``None`` overrides."""

    explicit = {key: value for key, value in overrides.items() if value is not None}
    return ArtifactSettings(**explicit)
