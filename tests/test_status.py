from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from multibranch.errors import MultiBranchError
from multibranch.models import BuildRecord, BuildResult, StatusColor, StatusIndicator
from multibranch.status import aggregate_health, aggregate_status_color
from multibranch.units import BranchUnit

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


class _Owner:
    def __init__(self, name: str = "demo", disabled: bool = False) -> None:
        self.name = name
        self.disabled = disabled


def _unit(owner: _Owner, name: str, *results: BuildResult | None, age_days: int = 0) -> BranchUnit:
    builds = [
        BuildRecord(
            number=index,
            started_at=NOW - timedelta(days=age_days),
            result=result,
        )
        for index, result in enumerate(results, start=1)
    ]
    return BranchUnit(owner, name, builds=builds)


def test_worst_child_color_wins() -> None:
    owner = _Owner()
    units = [
        _unit(owner, "a", BuildResult.SUCCESS),
        _unit(owner, "b", BuildResult.UNSTABLE),
        _unit(owner, "c", BuildResult.FAILURE),
    ]
    assert aggregate_status_color(units) == StatusIndicator(color=StatusColor.FAILURE)


def test_animation_is_or_of_children() -> None:
    owner = _Owner()
    units = [
        _unit(owner, "a", BuildResult.SUCCESS, None),
        _unit(owner, "b", BuildResult.UNSTABLE),
    ]
    indicator = aggregate_status_color(units)
    assert indicator.color == StatusColor.UNSTABLE
    assert indicator.animated
    assert indicator.icon_name == "yellow_anime"


def test_disabled_parent_and_empty_project() -> None:
    owner = _Owner(disabled=True)
    units = [_unit(owner, "a", BuildResult.FAILURE)]
    assert aggregate_status_color(units, parent_disabled=True).color == StatusColor.DISABLED
    assert aggregate_status_color([]).color == StatusColor.NOT_BUILT


def test_unit_icon_color() -> None:
    owner = _Owner()
    unbuilt = BranchUnit(owner, "new")
    assert unbuilt.icon_color.color == StatusColor.NOT_BUILT
    disabled = _unit(owner, "off", BuildResult.SUCCESS)
    disabled.disable()
    assert disabled.icon_color.color == StatusColor.DISABLED
    assert disabled.disabled_intent
    owner.disabled = True
    fresh = BranchUnit(owner, "inherits")
    assert fresh.is_disabled
    assert not fresh.disabled_intent


def test_health_scores_use_all_children() -> None:
    owner = _Owner()
    units = [
        _unit(owner, "a", BuildResult.SUCCESS, age_days=2),
        _unit(owner, "b", BuildResult.FAILURE, age_days=4),
        _unit(owner, "c", BuildResult.SUCCESS, age_days=0),
        BranchUnit(owner, "d"),
    ]
    reports = aggregate_health(units, NOW)
    assert [report.score for report in reports] == [50, 75, 99]
    assert "2 of 4" in reports[0].description
    assert "3 of 4" in reports[1].description


def test_health_for_no_children_is_empty() -> None:
    assert aggregate_health([], NOW) == []


def test_health_age_is_clamped() -> None:
    owner = _Owner()
    reports = aggregate_health([_unit(owner, "old", BuildResult.SUCCESS, age_days=400)], NOW)
    assert min(report.score for report in reports) == 0


def test_builds_track_numbers_and_completion() -> None:
    owner = _Owner()
    unit = BranchUnit(owner, "main")
    first = unit.start_build("manual", started_at=NOW)
    assert first.number == 1
    assert unit.next_build_number == 2
    assert unit.last_completed_build is None
    unit.complete_build(1, BuildResult.SUCCESS, 3.5)
    assert unit.last_completed_build is not None
    assert unit.last_completed_build.result == BuildResult.SUCCESS
    with pytest.raises(MultiBranchError):
        unit.complete_build(9, BuildResult.FAILURE)


def test_template_never_builds() -> None:
    template = BranchUnit(_Owner(), "template", is_template=True)
    with pytest.raises(MultiBranchError):
        template.start_build()
