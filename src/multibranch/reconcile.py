"""One reconciliation pass: converge branch units onto discovered branches."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from .collaborators import BuildQueue, InMemoryBuildQueue, NullTopologyListener, TopologyListener
from .constants import NEW_BRANCH_CAUSE
from .errors import ErrorCode, MultiBranchError
from .models import BranchFailure, BranchHead, ReconcileOutcome
from .propagation import ConfigPropagator
from .store import BranchUnitStore

if TYPE_CHECKING:
    from .project import MultiBranchProject

logger = logging.getLogger(__name__)

STAGE_ERROR_CODES = {
    "discover": ErrorCode.DISCOVERY_FAILED,
    "create": ErrorCode.CREATION_FAILED,
    "delete": ErrorCode.DELETION_FAILED,
    "sync": ErrorCode.SYNC_FAILED,
    "build": ErrorCode.BUILD_SCHEDULE_FAILED,
}


class ReconciliationEngine:
    """Create, delete and sync branch units to match the branch source.

    Every per-branch step is isolated: a failure is logged, recorded on the
    outcome, and the pass moves on. Only a discovery failure ends a pass
    early, and it does so before anything is mutated.
    """

    def __init__(
        self,
        store: BranchUnitStore,
        propagator: ConfigPropagator | None = None,
        topology_listener: TopologyListener | None = None,
        build_queue: BuildQueue | None = None,
    ) -> None:
        self.store = store
        self.propagator = propagator or ConfigPropagator()
        self.topology_listener = topology_listener or NullTopologyListener()
        self.build_queue = build_queue or InMemoryBuildQueue()

    def reconcile(self, project: MultiBranchProject) -> ReconcileOutcome:
        with project.lock:
            outcome = ReconcileOutcome(
                project=project.name,
                status="completed",
                started_at=_now_iso(),
            )
            if project.disabled:
                logger.info("Project %s disabled; skipping branch sync", project.name)
                outcome.status = "skipped"
                outcome.message = "Project disabled."
                return self._finish(outcome)

            source = project.scm_source
            if source is None:
                logger.info("Project %s has no SCM source; deleting all branch units", project.name)
                self._delete_all(project, outcome)
                outcome.message = "SCM not selected."
                return self._finish(outcome)

            try:
                heads = source.discover()
            except Exception as exc:  # noqa: BLE001
                logger.warning("Branch discovery failed for %s", project.name, exc_info=True)
                outcome.status = "aborted"
                outcome.message = f"Branch discovery failed: {exc}"
                outcome.failures.append(_failure("", "discover", exc))
                return self._finish(outcome)

            heads_by_name = {head.name: head for head in heads}
            new_branches = self._create_missing(project, heads_by_name, outcome)
            self._delete_missing(project, heads_by_name, outcome)
            self._sync_units(project, heads_by_name, outcome)
            self._schedule_new(project, new_branches, outcome)

            try:
                self.topology_listener.topology_changed(project)
            except Exception:  # noqa: BLE001
                logger.warning("Topology notification failed for %s", project.name, exc_info=True)

            outcome.message = (
                f"{len(outcome.created)} created, {len(outcome.deleted)} deleted, "
                f"{len(outcome.synced)} synced"
            )
            return self._finish(outcome)

    def _delete_all(self, project: MultiBranchProject, outcome: ReconcileOutcome) -> None:
        for unit in project.children.values():
            logger.info("Deleting unit for branch %s", unit.name)
            try:
                self.store.delete(unit)
                outcome.deleted.append(unit.name)
            except Exception as exc:  # noqa: BLE001
                logger.warning("Failed to delete unit for branch %s", unit.name, exc_info=True)
                outcome.failures.append(_failure(unit.name, "delete", exc))
        project.children.clear()

    def _create_missing(
        self,
        project: MultiBranchProject,
        heads_by_name: dict[str, BranchHead],
        outcome: ReconcileOutcome,
    ) -> list[str]:
        created: list[str] = []
        for name in sorted(heads_by_name):
            if name in project.children:
                continue
            logger.info("Creating unit for branch %s", name)
            try:
                unit = self.store.create(project, name)
            except Exception as exc:  # noqa: BLE001
                logger.warning("Failed to create unit for branch %s", name, exc_info=True)
                outcome.failures.append(_failure(name, "create", exc))
                continue
            project.children.put(unit)
            created.append(name)
            outcome.created.append(name)
        return created

    def _delete_missing(
        self,
        project: MultiBranchProject,
        heads_by_name: dict[str, BranchHead],
        outcome: ReconcileOutcome,
    ) -> None:
        for name in project.children.names():
            if name in heads_by_name:
                continue
            unit = project.children.get(name)
            logger.info("Deleting unit for branch %s", name)
            try:
                self.store.delete(unit)
            except Exception as exc:  # noqa: BLE001
                # The entry stays mapped so the next pass retries the deletion.
                logger.warning("Failed to delete unit for branch %s", name, exc_info=True)
                outcome.failures.append(_failure(name, "delete", exc))
                continue
            project.children.remove(name)
            outcome.deleted.append(name)

    def _sync_units(
        self,
        project: MultiBranchProject,
        heads_by_name: dict[str, BranchHead],
        outcome: ReconcileOutcome,
    ) -> None:
        source = project.scm_source
        for name in project.children.names():
            head = heads_by_name.get(name)
            if head is None or source is None:
                continue
            unit = project.children.get(name)
            logger.info("Syncing configuration to unit for branch %s", name)
            try:
                self.propagator.apply(project.template, unit)
                unit.config.scm = source.materialize(head)
                self.store.save(unit)
            except Exception as exc:  # noqa: BLE001
                logger.warning("Failed to sync unit for branch %s", name, exc_info=True)
                outcome.failures.append(_failure(name, "sync", exc))
                continue
            outcome.synced.append(name)

    def _schedule_new(
        self,
        project: MultiBranchProject,
        new_branches: list[str],
        outcome: ReconcileOutcome,
    ) -> None:
        for name in new_branches:
            unit = project.children.get(name)
            if unit is None:
                continue
            logger.info("Scheduling build for branch %s", name)
            try:
                self.build_queue.schedule_build(unit, NEW_BRANCH_CAUSE)
            except Exception as exc:  # noqa: BLE001
                logger.warning("Failed to schedule build for branch %s", name, exc_info=True)
                outcome.failures.append(_failure(name, "build", exc))
                continue
            outcome.builds_scheduled.append(name)

    def _finish(self, outcome: ReconcileOutcome) -> ReconcileOutcome:
        outcome.finished_at = _now_iso()
        logger.info(
            "Branch sync for %s %s with %d failure(s)",
            outcome.project,
            outcome.status,
            len(outcome.failures),
        )
        return outcome


def _failure(branch: str, stage: str, exc: Exception) -> BranchFailure:
    if isinstance(exc, MultiBranchError):
        code = exc.code.value
    else:
        code = STAGE_ERROR_CODES[stage].value
    return BranchFailure(branch=branch, stage=stage, error_code=code, message=str(exc))


def _now_iso() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat()
