"""Runtime configuration helpers."""

from __future__ import annotations

import logging
import math
import os
from collections.abc import Mapping
from dataclasses import dataclass

from .constants import DEFAULT_SYNC_SPEC
from .cron import CronSpec
from .errors import ScheduleConfigError

LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


@dataclass(frozen=True)
class RuntimeDefaults:
    """Runtime settings sourced from environment variables."""

    default_sync_spec: str
    log_level: str
    discovery_timeout_seconds: float


def get_runtime_defaults(env: Mapping[str, str] | None = None) -> RuntimeDefaults:
    """Validate and return runtime defaults from environment variables."""
    source = os.environ if env is None else env

    sync_spec = source.get("MULTIBRANCH_SYNC_SPEC", "").strip() or DEFAULT_SYNC_SPEC
    try:
        CronSpec.parse(sync_spec)
    except ScheduleConfigError as exc:
        raise ValueError(f"MULTIBRANCH_SYNC_SPEC is not a valid schedule: {exc}") from exc

    log_level = source.get("MULTIBRANCH_LOG_LEVEL", "WARNING").strip().upper() or "WARNING"
    if log_level not in LOG_LEVELS:
        allowed_levels = ", ".join(sorted(LOG_LEVELS))
        raise ValueError(f"MULTIBRANCH_LOG_LEVEL must be one of: {allowed_levels}.")

    timeout_seconds = _parse_float_env(
        source=source,
        key="MULTIBRANCH_DISCOVERY_TIMEOUT_SECONDS",
        default=0.0,
        min_value=0.0,
    )

    return RuntimeDefaults(
        default_sync_spec=sync_spec,
        log_level=log_level,
        discovery_timeout_seconds=timeout_seconds,
    )


def configure_logging(log_level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, log_level.upper(), logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def parse_csv_values(value: str | None) -> tuple[str, ...]:
    """Parse comma-separated values into a normalized tuple."""
    if not value:
        return ()
    return tuple(part.strip() for part in value.split(",") if part.strip())


def _parse_float_env(
    source: Mapping[str, str],
    key: str,
    default: float,
    min_value: float | None = None,
) -> float:
    raw = source.get(key)
    if raw is None or not str(raw).strip():
        return default
    try:
        parsed = float(str(raw).strip())
    except ValueError as exc:
        raise ValueError(f"{key} must be a number.") from exc
    if not math.isfinite(parsed):
        raise ValueError(f"{key} must be a finite number.")
    if min_value is not None and parsed < min_value:
        raise ValueError(f"{key} must be >= {min_value}.")
    return parsed
