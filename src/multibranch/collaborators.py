"""Ports to the build queue and dependency infrastructure."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from threading import Lock
from typing import Any, Protocol

from .errors import BuildScheduleError
from .units import BranchUnit

logger = logging.getLogger(__name__)


class TopologyListener(Protocol):
    """Told when a project's set of children or their wiring changed."""

    def topology_changed(self, project: Any) -> None: ...


class BuildQueue(Protocol):
    """Accepts build requests for branch units."""

    def schedule_build(self, unit: BranchUnit, cause: str) -> None: ...

    def cancel(self, unit: BranchUnit) -> None: ...


class NullTopologyListener:
    def topology_changed(self, project: Any) -> None:
        logger.debug("Topology changed for %s", getattr(project, "name", project))


@dataclass(frozen=True)
class BuildRequest:
    owner: str
    branch: str
    cause: str
    quiet_period: int | None = None


class InMemoryBuildQueue:
    """Build queue that records requests for an external executor to drain."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._pending: list[BuildRequest] = []

    def schedule_build(self, unit: BranchUnit, cause: str) -> None:
        if unit.is_template:
            raise BuildScheduleError(
                "The template never builds",
                details={"branch": unit.name},
            )
        if unit.is_disabled:
            raise BuildScheduleError(
                f"Branch '{unit.name}' is disabled",
                "Enable the branch or the project before requesting builds.",
                {"branch": unit.name},
            )
        request = BuildRequest(
            owner=unit.owner.name,
            branch=unit.name,
            cause=cause,
            quiet_period=unit.config.quiet_period,
        )
        with self._lock:
            if any(
                item.owner == request.owner and item.branch == request.branch
                for item in self._pending
            ):
                return
            self._pending.append(request)

    def cancel(self, unit: BranchUnit) -> None:
        with self._lock:
            self._pending = [
                item
                for item in self._pending
                if not (item.owner == unit.owner.name and item.branch == unit.name)
            ]

    def pending(self) -> list[BuildRequest]:
        with self._lock:
            return list(self._pending)

    def drain(self) -> list[BuildRequest]:
        with self._lock:
            drained, self._pending = self._pending, []
            return drained
