"""Runtime configuration for the generation queue, backends, and export."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

DEFAULT_API_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"


class ConfigurationError(ValueError):
    """Invalid capacity, rate, or backend setting."""


@dataclass(slots=True)
class SchedulerSettings:
    """Admission capacity and rate-window settings."""

    max_concurrent: int = 4
    rate_limit: int = 10
    window_seconds: float = 60.0
    poll_interval_seconds: float = 1.0


@dataclass(slots=True)
class BackendSettings:
    """Generation service client settings."""

    api_key: str = ""
    base_url: str = DEFAULT_API_BASE_URL
    default_model: str = "veo-2.0-generate-001"
    planner_model: str = "gemini-2.5-flash"
    operation_poll_seconds: float = 10.0
    request_timeout_seconds: float = 60.0
    mock_min_delay_seconds: float = 5.0
    mock_max_delay_seconds: float = 10.0
    mock_failure_rate: float = 0.0

    @property
    def use_mock(self) -> bool:
        return not self.api_key.strip()


@dataclass(slots=True)
class ExportSettings:
    """Local artifact export settings."""

    output_dir: Path = Path("exports")
    stagger_seconds: float = 0.3


@dataclass(slots=True)
class Settings:
    """Application settings grouped by domain concerns."""

    scheduler: SchedulerSettings = field(default_factory=SchedulerSettings)
    backend: BackendSettings = field(default_factory=BackendSettings)
    export: ExportSettings = field(default_factory=ExportSettings)

    @classmethod
    def from_env(cls) -> Settings:
        """Load settings from environment with defaults suited to local runs."""

        return cls(
            scheduler=SchedulerSettings(
                max_concurrent=_env_int("BULK_GEN_MAX_CONCURRENT", 4),
                rate_limit=_env_int("BULK_GEN_RATE_LIMIT", 10),
                window_seconds=_env_float("BULK_GEN_RATE_WINDOW_SECONDS", 60.0),
                poll_interval_seconds=_env_float("BULK_GEN_POLL_INTERVAL_SECONDS", 1.0),
            ),
            backend=BackendSettings(
                api_key=os.getenv("BULK_GEN_API_KEY", "").strip(),
                base_url=os.getenv("BULK_GEN_API_BASE_URL", DEFAULT_API_BASE_URL).rstrip("/"),
                default_model=os.getenv("BULK_GEN_DEFAULT_MODEL", "veo-2.0-generate-001"),
                planner_model=os.getenv("BULK_GEN_PLANNER_MODEL", "gemini-2.5-flash"),
                operation_poll_seconds=_env_float("BULK_GEN_OPERATION_POLL_SECONDS", 10.0),
                request_timeout_seconds=_env_float("BULK_GEN_REQUEST_TIMEOUT_SECONDS", 60.0),
                mock_min_delay_seconds=_env_float("BULK_GEN_MOCK_MIN_DELAY_SECONDS", 5.0),
                mock_max_delay_seconds=_env_float("BULK_GEN_MOCK_MAX_DELAY_SECONDS", 10.0),
                mock_failure_rate=_env_float("BULK_GEN_MOCK_FAILURE_RATE", 0.0),
            ),
            export=ExportSettings(
                output_dir=Path(os.getenv("BULK_GEN_EXPORT_DIR", "exports")),
                stagger_seconds=_env_float("BULK_GEN_EXPORT_STAGGER_SECONDS", 0.3),
            ),
        )

    def validate(self) -> None:
        """Raise configuration error if any capacity or backend setting is invalid."""

        validate_max_concurrent(self.scheduler.max_concurrent)
        if self.scheduler.rate_limit < 1:
            raise ConfigurationError("BULK_GEN_RATE_LIMIT must be >= 1.")
        if self.scheduler.window_seconds <= 0:
            raise ConfigurationError("BULK_GEN_RATE_WINDOW_SECONDS must be > 0.")
        if self.scheduler.poll_interval_seconds <= 0:
            raise ConfigurationError("BULK_GEN_POLL_INTERVAL_SECONDS must be > 0.")
        if self.backend.operation_poll_seconds <= 0:
            raise ConfigurationError("BULK_GEN_OPERATION_POLL_SECONDS must be > 0.")
        if self.backend.request_timeout_seconds <= 0:
            raise ConfigurationError("BULK_GEN_REQUEST_TIMEOUT_SECONDS must be > 0.")
        if not 0.0 <= self.backend.mock_failure_rate <= 1.0:
            raise ConfigurationError("BULK_GEN_MOCK_FAILURE_RATE must be within [0, 1].")
        if self.backend.mock_min_delay_seconds < 0:
            raise ConfigurationError("BULK_GEN_MOCK_MIN_DELAY_SECONDS must be >= 0.")
        if self.backend.mock_max_delay_seconds < self.backend.mock_min_delay_seconds:
            raise ConfigurationError(
                "BULK_GEN_MOCK_MAX_DELAY_SECONDS must be >= BULK_GEN_MOCK_MIN_DELAY_SECONDS.",
            )
        if self.export.stagger_seconds < 0:
            raise ConfigurationError("BULK_GEN_EXPORT_STAGGER_SECONDS must be >= 0.")


def validate_max_concurrent(value: int) -> None:
    if value < 1:
        raise ConfigurationError(f"max_concurrent must be >= 1, got {value}.")


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw.strip())
    except ValueError as error:
        raise ConfigurationError(f"Invalid integer value for {name}: {raw!r}") from error


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw.strip())
    except ValueError as error:
        raise ConfigurationError(f"Invalid number value for {name}: {raw!r}") from error
