"""The multi-branch project aggregate and its owned capabilities."""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable

from pydantic import ValidationError

from .collaborators import BuildQueue, InMemoryBuildQueue, NullTopologyListener, TopologyListener
from .constants import CONFIG_FILE_NAME, DEFAULT_SYNC_SPEC, DEFAULT_VIEW_REGEX
from .cron import CronSpec
from .errors import ErrorCode, MultiBranchError
from .file_manager import FileManager
from .models import (
    BuildRecord,
    BuildResult,
    HealthReport,
    ProjectConfigRequest,
    ProjectSettings,
    ReconcileOutcome,
    StatusIndicator,
    UnitConfig,
)
from .propagation import ConfigPropagator
from .reconcile import ReconciliationEngine
from .scheduler import SyncScheduler
from .sources import BranchSource, build_branch_source
from .status import aggregate_health, aggregate_status_color
from .store import FileBranchUnitStore
from .units import BranchUnit
from .views import BranchListView, ViewContainer

logger = logging.getLogger(__name__)


class ChildContainer:
    """Branch name to unit mapping owned by one project."""

    def __init__(self, store: FileBranchUnitStore) -> None:
        self._store = store
        self._units: dict[str, BranchUnit] = {}

    def __contains__(self, name: object) -> bool:
        return name in self._units

    def __len__(self) -> int:
        return len(self._units)

    def get(self, name: str) -> BranchUnit | None:
        return self._units.get(name)

    def put(self, unit: BranchUnit) -> None:
        if unit.is_template:
            raise MultiBranchError(
                ErrorCode.UNSUPPORTED_OPERATION,
                "The template unit is not a branch",
                "Use the project's template attribute instead.",
            )
        self._units[unit.name] = unit

    def remove(self, name: str) -> BranchUnit | None:
        return self._units.pop(name, None)

    def clear(self) -> None:
        self._units.clear()

    def names(self) -> list[str]:
        return sorted(list(self._units))

    def values(self) -> list[BranchUnit]:
        return [unit for _, unit in sorted(list(self._units.items()))]

    def root_dir_for(self, unit: BranchUnit) -> Path:
        return self._store.unit_dir(unit)

    def on_renamed(self, unit: BranchUnit, old_name: str, new_name: str) -> None:
        raise MultiBranchError(
            ErrorCode.UNSUPPORTED_OPERATION,
            "Renaming branch units is not supported; they are only added or deleted",
            details={"old_name": old_name, "new_name": new_name},
        )


class ScmSourceOwner:
    """Holds the project's single (optional) branch source."""

    def __init__(
        self,
        source: BranchSource | None = None,
        on_updated: Callable[[BranchSource], Any] | None = None,
    ) -> None:
        self._source = source
        self._on_updated = on_updated

    @property
    def source(self) -> BranchSource | None:
        return self._source

    def sources(self) -> list[BranchSource]:
        return [self._source] if self._source is not None else []

    def get_source(self, source_id: str | None) -> BranchSource | None:
        if self._source is not None and self._source.source_id == source_id:
            return self._source
        return None

    def replace(self, source: BranchSource | None) -> None:
        self._source = source

    def on_source_updated(self, source: BranchSource) -> Any:
        if self._on_updated is None:
            return None
        return self._on_updated(source)


class MultiBranchProject:
    """A template unit plus one branch unit per discovered branch.

    Every mutating operation holds ``lock``; passes triggered by the
    schedule take the same lock, so two projects never block each other but
    operations on one project are serialized.
    """

    def __init__(
        self,
        root_dir: Path,
        settings: ProjectSettings,
        *,
        file_manager: FileManager | None = None,
        topology_listener: TopologyListener | None = None,
        build_queue: BuildQueue | None = None,
        default_sync_spec: str = DEFAULT_SYNC_SPEC,
        discovery_timeout_seconds: float = 0.0,
        run_timers: bool = True,
        now_fn: Callable[[], datetime] | None = None,
    ) -> None:
        self.root_dir = Path(root_dir)
        self.lock = threading.RLock()
        self.name = settings.name
        self.description = settings.description
        self.display_name = settings.display_name
        self._disabled = settings.disabled
        self.discovery_timeout_seconds = discovery_timeout_seconds
        self.file_manager = file_manager or FileManager()
        self.store = FileBranchUnitStore(self.root_dir, self.file_manager)
        self.topology_listener = topology_listener or NullTopologyListener()
        self.build_queue = build_queue or InMemoryBuildQueue()
        self.engine = ReconciliationEngine(
            self.store,
            ConfigPropagator(),
            self.topology_listener,
            self.build_queue,
        )
        self.children = ChildContainer(self.store)
        self.views = ViewContainer.from_settings(settings.views, settings.primary_view)
        self.scm = ScmSourceOwner(
            build_branch_source(settings.scm_source, discovery_timeout_seconds),
            self.on_scm_source_updated,
        )
        self.scheduler = SyncScheduler.restore(
            self.name,
            self.sync_branches,
            settings.trigger_specs,
            lock=self.lock,
            default_spec=default_sync_spec,
            run_timers=run_timers,
            now_fn=now_fn,
        )
        with self.lock:
            self.template = self.store.open_template(self)
            self._load_children()
            self.scheduler.start()

    @classmethod
    def create(
        cls,
        root_dir: Path,
        name: str,
        *,
        scm_source: BranchSource | None = None,
        sync_cron_spec: str = DEFAULT_SYNC_SPEC,
        template: UnitConfig | None = None,
        description: str = "",
        **kwargs: Any,
    ) -> MultiBranchProject:
        """Create a project directory with its template unit."""
        root = Path(root_dir)
        if (root / CONFIG_FILE_NAME).exists():
            raise MultiBranchError(
                ErrorCode.PROJECT_EXISTS,
                f"A project already exists in {root}",
                "Load it instead, or pick an empty directory.",
            )
        CronSpec.parse(sync_cron_spec, name)
        try:
            settings = ProjectSettings(
                name=name,
                description=description,
                trigger_specs=[sync_cron_spec],
            )
        except ValidationError as exc:
            raise MultiBranchError(
                ErrorCode.INVALID_INPUT,
                "Invalid project settings",
                "Provide a non-empty project name.",
                {"errors": exc.errors(include_context=False, include_input=False)},
            ) from exc
        project = cls(root, settings, **kwargs)
        with project.lock:
            project.scm.replace(scm_source)
            if template is not None:
                project._replace_template_config(template)
            project.save()
        return project

    @classmethod
    def load(cls, root_dir: Path, **kwargs: Any) -> MultiBranchProject:
        """Reload a project and its units from disk."""
        root = Path(root_dir)
        config_path = root / CONFIG_FILE_NAME
        file_manager = kwargs.get("file_manager") or FileManager()
        if not config_path.is_file():
            raise MultiBranchError(
                ErrorCode.PROJECT_NOT_FOUND,
                f"No multi-branch project found in {root}",
                "Run init first or check the directory.",
            )
        payload = file_manager.read_yaml(config_path)
        try:
            settings = ProjectSettings.model_validate(payload)
        except ValidationError as exc:
            raise MultiBranchError(
                ErrorCode.INVALID_INPUT,
                f"Corrupt project configuration in {config_path}",
                "Fix the project config.yaml.",
                {"errors": exc.errors(include_context=False, include_input=False)},
            ) from exc
        kwargs["file_manager"] = file_manager
        project = cls(root, settings, **kwargs)
        if project.scheduler.stored_specs() != settings.trigger_specs:
            project.save()
        return project

    @property
    def disabled(self) -> bool:
        return self._disabled

    @property
    def is_buildable(self) -> bool:
        return False

    @property
    def scm_source(self) -> BranchSource | None:
        return self.scm.source

    @property
    def sync_cron_spec(self) -> str | None:
        return self.scheduler.spec

    @property
    def branches(self) -> list[BranchUnit]:
        with self.lock:
            return self.children.values()

    def get_branch(self, name: str) -> BranchUnit | None:
        with self.lock:
            return self.children.get(name)

    def sync_branches(self) -> ReconcileOutcome:
        """Run one reconciliation pass now."""
        return self.engine.reconcile(self)

    def on_scm_source_updated(self, source: BranchSource) -> ReconcileOutcome:
        return self.scheduler.run_now()

    def set_scm_source(self, source: BranchSource | None) -> ReconcileOutcome:
        with self.lock:
            self.scm.replace(source)
            self.save()
        if source is None:
            return self.sync_branches()
        return self.scm.on_source_updated(source)

    def restart_schedule(self, spec: str | None) -> None:
        with self.lock:
            self.scheduler.restart(spec)
            self.save()

    def make_disabled(self, disabled: bool) -> None:
        with self.lock:
            self._set_disabled(disabled)
            self.save()

    def submit_configuration(self, request: ProjectConfigRequest) -> ReconcileOutcome:
        """Apply one configuration submission, then run a pass."""
        with self.lock:
            CronSpec.parse(request.sync_cron_spec, self.name)
            source = build_branch_source(request.scm_source, self.discovery_timeout_seconds)
            if self.views.get_view(request.primary_view) is None:
                raise MultiBranchError(
                    ErrorCode.VIEW_NOT_FOUND,
                    f"View '{request.primary_view}' not found",
                    "Pick one of the existing views as primary view.",
                )

            self.description = request.description
            self.display_name = request.display_name
            self._set_disabled(request.disabled)
            self.scheduler.restart(request.sync_cron_spec)
            self.views.set_primary_view(request.primary_view)
            self.scm.replace(source)
            if request.template is not None:
                self._replace_template_config(request.template)
            self.save()
            try:
                self.topology_listener.topology_changed(self)
            except Exception:  # noqa: BLE001
                logger.warning("Topology notification failed for %s", self.name, exc_info=True)
        return self.scheduler.run_now()

    def update_template(self, config: UnitConfig) -> None:
        with self.lock:
            self._replace_template_config(config)

    def add_view(self, name: str, include_regex: str = DEFAULT_VIEW_REGEX) -> BranchListView:
        with self.lock:
            view = BranchListView(name, include_regex)
            self.views.add_view(view)
            self.save()
            return view

    def delete_view(self, name: str) -> None:
        with self.lock:
            self.views.delete_view(name)
            self.save()

    def rename_view(self, old_name: str, new_name: str) -> None:
        with self.lock:
            self.views.rename_view(old_name, new_name)
            self.save()

    def set_primary_view(self, name: str) -> None:
        with self.lock:
            self.views.set_primary_view(name)
            self.save()

    def start_build(self, branch_name: str, cause: str = "") -> BuildRecord:
        """Record the start of a build run by the external executor."""
        with self.lock:
            unit = self._require_branch(branch_name)
            build = unit.start_build(cause)
            self.store.save_build(unit, build)
            return build

    def complete_build(
        self,
        branch_name: str,
        number: int,
        result: BuildResult,
        duration_seconds: float = 0.0,
    ) -> BuildRecord:
        with self.lock:
            unit = self._require_branch(branch_name)
            build = unit.complete_build(number, result, duration_seconds)
            self.store.save_build(unit, build)
            return build

    def icon_color(self) -> StatusIndicator:
        with self.lock:
            return aggregate_status_color(self.children.values(), parent_disabled=self.disabled)

    def health_reports(self, now: datetime | None = None) -> list[HealthReport]:
        with self.lock:
            return aggregate_health(self.children.values(), now)

    def delete(self) -> None:
        """Stop the schedule and remove the project with all its units."""
        with self.lock:
            self.scheduler.shutdown()
            for unit in self.children.values():
                self.build_queue.cancel(unit)
            self.file_manager.remove_tree(self.root_dir)
            self.children.clear()

    def save(self) -> None:
        with self.lock:
            views, primary_view = self.views.to_settings()
            source = self.scm.source
            to_payload = getattr(source, "to_payload", None)
            settings = ProjectSettings(
                name=self.name,
                description=self.description,
                display_name=self.display_name,
                disabled=self._disabled,
                trigger_specs=self.scheduler.stored_specs(),
                primary_view=primary_view,
                views=views,
                scm_source=to_payload() if callable(to_payload) else None,
            )
            self.file_manager.write_yaml(
                self.root_dir / CONFIG_FILE_NAME,
                settings.model_dump(mode="json"),
            )

    def status(self, now: datetime | None = None) -> dict[str, Any]:
        with self.lock:
            indicator = self.icon_color()
            source = self.scm.source
            next_fire = self.scheduler.next_fire_after(now or datetime.now(timezone.utc))
            return {
                "project_name": self.name,
                "disabled": self.disabled,
                "color": indicator.icon_name,
                "sync_cron_spec": self.sync_cron_spec,
                "next_sync": next_fire.isoformat() if next_fire else "",
                "scm_source": source.source_id if source is not None else "",
                "primary_view": self.views.primary_view.name,
                "health": [report.model_dump() for report in self.health_reports(now)],
                "branches": [unit.summary() for unit in self.children.values()],
            }

    def _set_disabled(self, disabled: bool) -> None:
        self._disabled = disabled
        if disabled:
            for unit in self.children.values():
                self.build_queue.cancel(unit)

    def _replace_template_config(self, config: UnitConfig) -> None:
        self.template.config = config.model_copy(deep=True)
        self.template.mark_template(True)
        self.template.disable()
        self.template.reload()
        self.store.save(self.template)

    def _require_branch(self, name: str) -> BranchUnit:
        unit = self.children.get(name)
        if unit is None:
            raise MultiBranchError(
                ErrorCode.BRANCH_NOT_FOUND,
                f"Branch '{name}' not found",
                "Run a sync first or check the branch name.",
            )
        return unit

    def _load_children(self) -> None:
        for directory in self.store.unit_directories():
            try:
                self.children.put(self.store.load(self, directory))
            except (MultiBranchError, OSError):
                logger.warning("Failed to load branch unit from %s", directory, exc_info=True)
