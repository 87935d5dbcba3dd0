from __future__ import annotations

import pytest

from multibranch.runtime import get_runtime_defaults, parse_csv_values


def test_runtime_defaults_without_environment() -> None:
    defaults = get_runtime_defaults({})
    assert defaults.default_sync_spec == "H/5 * * * *"
    assert defaults.log_level == "WARNING"
    assert defaults.discovery_timeout_seconds == 0.0


def test_runtime_defaults_from_environment() -> None:
    defaults = get_runtime_defaults(
        {
            "MULTIBRANCH_SYNC_SPEC": "@hourly",
            "MULTIBRANCH_LOG_LEVEL": "debug",
            "MULTIBRANCH_DISCOVERY_TIMEOUT_SECONDS": "12.5",
        }
    )
    assert defaults.default_sync_spec == "@hourly"
    assert defaults.log_level == "DEBUG"
    assert defaults.discovery_timeout_seconds == 12.5


@pytest.mark.parametrize(
    ("key", "value"),
    [
        ("MULTIBRANCH_SYNC_SPEC", "not cron"),
        ("MULTIBRANCH_LOG_LEVEL", "LOUD"),
        ("MULTIBRANCH_DISCOVERY_TIMEOUT_SECONDS", "soon"),
        ("MULTIBRANCH_DISCOVERY_TIMEOUT_SECONDS", "-1"),
        ("MULTIBRANCH_DISCOVERY_TIMEOUT_SECONDS", "inf"),
    ],
)
def test_runtime_defaults_reject_invalid_values(key: str, value: str) -> None:
    with pytest.raises(ValueError):
        get_runtime_defaults({key: value})


def test_parse_csv_values() -> None:
    assert parse_csv_values("main, dev,,feature/x ") == ("main", "dev", "feature/x")
    assert parse_csv_values(None) == ()
