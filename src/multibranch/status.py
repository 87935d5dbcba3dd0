"""Roll child status and build health up to the project level."""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime, timezone

from .models import BuildResult, HealthReport, StatusColor, StatusIndicator
from .units import BranchUnit

SECONDS_PER_DAY = 86400


def aggregate_status_color(
    units: Iterable[BranchUnit],
    parent_disabled: bool = False,
) -> StatusIndicator:
    """Return the worst static child color, animated if any child is."""
    if parent_disabled:
        return StatusIndicator(color=StatusColor.DISABLED)

    worst: StatusColor | None = None
    animated = False
    for unit in units:
        indicator = unit.icon_color
        animated = animated or indicator.animated
        if worst is None or indicator.color.severity < worst.severity:
            worst = indicator.color

    if worst is None:
        return StatusIndicator(color=StatusColor.NOT_BUILT)
    return StatusIndicator(color=worst, animated=animated)


def aggregate_health(
    units: Iterable[BranchUnit],
    now: datetime | None = None,
) -> list[HealthReport]:
    """Compute success, coverage and age health scores across children.

    Percentages use every child as the denominator. Children without a
    completed build count as unsuccessful, unbuilt and zero days old.
    """
    current = now or datetime.now(timezone.utc)
    branch_count = 0
    branch_built = 0
    branch_success = 0
    branch_age_days = 0
    for unit in units:
        branch_count += 1
        last = unit.last_completed_build
        if last is None or last.result is None:
            continue
        branch_built += 1
        if last.result.is_better_or_equal_to(BuildResult.SUCCESS):
            branch_success += 1
        branch_age_days += _age_in_days(last.started_at, current)

    if branch_count == 0:
        return []

    reports = [
        HealthReport(
            score=branch_success * 100 // branch_count,
            description=f"Branches with a successful latest build: {branch_success} of {branch_count}",
        ),
        HealthReport(
            score=branch_built * 100 // branch_count,
            description=f"Branches built at least once: {branch_built} of {branch_count}",
        ),
        HealthReport(
            score=min(100, max(0, 100 - branch_age_days // branch_count)),
            description="Recency of the latest branch builds",
        ),
    ]
    reports.sort(key=lambda report: report.score)
    return reports


def _age_in_days(started_at: datetime, now: datetime) -> int:
    if started_at.tzinfo is None:
        started_at = started_at.replace(tzinfo=timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    elapsed = (now - started_at).total_seconds()
    return max(0, int(elapsed // SECONDS_PER_DAY))
