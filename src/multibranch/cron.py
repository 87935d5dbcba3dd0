"""Five-field cron specs with ``H`` hashing for load spreading."""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from datetime import datetime, timedelta

from .errors import ScheduleConfigError

# name, minimum, maximum, upper bound used for "H" without explicit range
FIELDS = (
    ("minute", 0, 59, 59),
    ("hour", 0, 23, 23),
    ("day of month", 1, 31, 28),
    ("month", 1, 12, 12),
    ("day of week", 0, 7, 6),
)
ALIASES = {
    "@yearly": "H H H H *",
    "@annually": "H H H H *",
    "@monthly": "H H H * *",
    "@weekly": "H H * * H",
    "@daily": "H H * * *",
    "@midnight": "H H(0-2) * * *",
    "@hourly": "H * * * *",
}
DAYS_IN_MONTH = {
    1: 31, 2: 29, 3: 31, 4: 30, 5: 31, 6: 30,
    7: 31, 8: 31, 9: 30, 10: 31, 11: 30, 12: 31,
}
MAX_SEARCH_DAYS = 366 * 5


@dataclass(frozen=True)
class CronTab:
    """One parsed schedule line."""

    minutes: frozenset[int]
    hours: frozenset[int]
    days: frozenset[int]
    months: frozenset[int]
    weekdays: frozenset[int]

    def next_at_or_after(self, start: datetime) -> datetime | None:
        day = start.replace(hour=0, minute=0, second=0, microsecond=0)
        for _ in range(MAX_SEARCH_DAYS):
            if self._day_matches(day):
                for hour in sorted(self.hours):
                    for minute in sorted(self.minutes):
                        moment = day.replace(hour=hour, minute=minute)
                        if moment >= start:
                            return moment
            day += timedelta(days=1)
        return None

    def _day_matches(self, moment: datetime) -> bool:
        weekday = (moment.weekday() + 1) % 7
        return moment.day in self.days and moment.month in self.months and weekday in self.weekdays

    def can_fire(self) -> bool:
        return any(
            day <= DAYS_IN_MONTH[month] for month in self.months for day in self.days
        )


class CronSpec:
    """A validated schedule made of one or more cron lines."""

    def __init__(self, text: str, tabs: tuple[CronTab, ...]) -> None:
        self.text = text
        self.tabs = tabs

    def __repr__(self) -> str:
        return f"CronSpec({self.text!r})"

    @classmethod
    def parse(cls, text: str | None, seed: str = "") -> CronSpec:
        """Parse ``text``; ``seed`` makes ``H`` stable per owner.

        Raises ScheduleConfigError for anything that is not a usable schedule.
        """
        if text is None:
            raise ScheduleConfigError("Schedule spec must not be null")
        tabs: list[CronTab] = []
        for line_number, raw_line in enumerate(str(text).splitlines(), start=1):
            line = raw_line.split("#", 1)[0].strip()
            if not line:
                continue
            line = ALIASES.get(line.lower(), line)
            tab = _parse_line(line, seed, line_number)
            if not tab.can_fire():
                raise ScheduleConfigError(
                    f"Schedule line {line_number} can never fire: {raw_line.strip()}",
                    details={"line": line_number},
                )
            tabs.append(tab)
        if not tabs:
            raise ScheduleConfigError("Schedule spec must contain at least one entry")
        return cls(str(text), tuple(tabs))

    def next_fire_after(self, moment: datetime) -> datetime | None:
        """Return the first matching minute strictly after ``moment``."""
        start = moment.replace(second=0, microsecond=0) + timedelta(minutes=1)
        candidates = [tab.next_at_or_after(start) for tab in self.tabs]
        found = [candidate for candidate in candidates if candidate is not None]
        return min(found) if found else None


def _parse_line(line: str, seed: str, line_number: int) -> CronTab:
    fields = line.split()
    if len(fields) != len(FIELDS):
        raise ScheduleConfigError(
            f"Schedule line {line_number} must have {len(FIELDS)} fields, got {len(fields)}: {line}",
            details={"line": line_number},
        )
    values: list[frozenset[int]] = []
    for index, (token, field) in enumerate(zip(fields, FIELDS)):
        values.append(_parse_field(token, field, _field_hash(seed, index), line_number))
    weekdays = frozenset(0 if day == 7 else day for day in values[4])
    return CronTab(
        minutes=values[0],
        hours=values[1],
        days=values[2],
        months=values[3],
        weekdays=weekdays,
    )


def _parse_field(
    token: str,
    field: tuple[str, int, int, int],
    hash_value: int,
    line_number: int,
) -> frozenset[int]:
    name, low, high, hash_high = field
    selected: set[int] = set()
    for part in token.split(","):
        if not part:
            raise _field_error(name, token, line_number)
        base, step = part, None
        if "/" in part:
            base, step_text = part.split("/", 1)
            step = _parse_int(step_text, name, token, line_number)
            if step <= 0:
                raise _field_error(name, token, line_number)

        if base == "*":
            start, end = low, high
        elif base == "H" or (base.startswith("H(") and base.endswith(")")):
            if base == "H":
                range_low, range_high = low, hash_high
            else:
                range_low, range_high = _parse_range(base[2:-1], name, token, line_number)
                _check_bounds(range_low, range_high, low, high, name, token, line_number)
            if step is None:
                selected.add(range_low + hash_value % (range_high - range_low + 1))
                continue
            start, end = range_low + hash_value % step, range_high
        elif "-" in base:
            start, end = _parse_range(base, name, token, line_number)
        else:
            start = _parse_int(base, name, token, line_number)
            end = high if step is not None else start

        _check_bounds(start, end, low, high, name, token, line_number)
        selected.update(range(start, end + 1, step or 1))

    if not selected:
        raise _field_error(name, token, line_number)
    return frozenset(selected)


def _parse_range(text: str, name: str, token: str, line_number: int) -> tuple[int, int]:
    parts = text.split("-")
    if len(parts) != 2:
        raise _field_error(name, token, line_number)
    return (
        _parse_int(parts[0], name, token, line_number),
        _parse_int(parts[1], name, token, line_number),
    )


def _parse_int(text: str, name: str, token: str, line_number: int) -> int:
    if not (text.isascii() and text.isdigit()):
        raise _field_error(name, token, line_number)
    return int(text)


def _check_bounds(
    start: int,
    end: int,
    low: int,
    high: int,
    name: str,
    token: str,
    line_number: int,
) -> None:
    if start < low or end > high or start > end:
        raise ScheduleConfigError(
            f"Schedule line {line_number}: {name} value '{token}' is outside {low}-{high}",
            details={"line": line_number, "field": name},
        )


def _field_error(name: str, token: str, line_number: int) -> ScheduleConfigError:
    return ScheduleConfigError(
        f"Schedule line {line_number}: invalid {name} value '{token}'",
        details={"line": line_number, "field": name},
    )


def _field_hash(seed: str, index: int) -> int:
    digest = hashlib.sha256(f"{seed}:{index}".encode("utf-8")).digest()
    return int.from_bytes(digest[:8], "big")
