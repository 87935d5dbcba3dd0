from __future__ import annotations

import pytest

from multibranch.collaborators import InMemoryBuildQueue
from multibranch.errors import BuildScheduleError
from multibranch.models import UnitConfig
from multibranch.units import BranchUnit


class _Owner:
    def __init__(self, disabled: bool = False) -> None:
        self.name = "demo"
        self.disabled = disabled


def test_queue_deduplicates_and_cancels() -> None:
    queue = InMemoryBuildQueue()
    unit = BranchUnit(_Owner(), "main", UnitConfig(quiet_period=7))

    queue.schedule_build(unit, "first")
    queue.schedule_build(unit, "second")

    pending = queue.pending()
    assert len(pending) == 1
    assert pending[0].cause == "first"
    assert pending[0].quiet_period == 7

    queue.cancel(unit)
    assert queue.pending() == []


def test_queue_rejects_template_and_disabled_units() -> None:
    queue = InMemoryBuildQueue()
    with pytest.raises(BuildScheduleError):
        queue.schedule_build(BranchUnit(_Owner(), "template", is_template=True), "push")
    with pytest.raises(BuildScheduleError):
        queue.schedule_build(BranchUnit(_Owner(disabled=True), "main"), "push")


def test_drain_empties_queue() -> None:
    queue = InMemoryBuildQueue()
    queue.schedule_build(BranchUnit(_Owner(), "a"), "push")
    queue.schedule_build(BranchUnit(_Owner(), "b"), "push")
    assert [request.branch for request in queue.drain()] == ["a", "b"]
    assert queue.pending() == []
