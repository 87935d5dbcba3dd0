"""Persistence of branch units and the template unit."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Protocol

import yaml
from pydantic import ValidationError

from .constants import (
    BRANCHES_DIR_NAME,
    BUILD_FILE_NAME,
    BUILDS_DIR_NAME,
    CONFIG_FILE_NAME,
    TEMPLATE_DIR_NAME,
    TEMPLATE_NAME,
)
from .errors import CreationError, DeletionError, ErrorCode, MultiBranchError
from .file_manager import FileManager
from .models import BuildRecord, UnitConfig
from .naming import decode, encode
from .units import BranchUnit, UnitOwner

logger = logging.getLogger(__name__)


class BranchUnitStore(Protocol):
    """Load/create/delete lifecycle for branch units."""

    def create(self, parent: UnitOwner, name: str) -> BranchUnit: ...

    def load(self, parent: UnitOwner, directory: Path) -> BranchUnit: ...

    def delete(self, unit: BranchUnit) -> None: ...

    def save(self, unit: BranchUnit) -> None: ...


class FileBranchUnitStore:
    """Store units as YAML under a project root.

    Layout::

        <root>/template/config.yaml
        <root>/branches/<encoded name>/config.yaml
        <root>/branches/<encoded name>/builds/<number>/build.yaml
    """

    def __init__(self, root_dir: Path, file_manager: FileManager | None = None) -> None:
        self.root_dir = Path(root_dir)
        self.file_manager = file_manager or FileManager()

    @property
    def template_dir(self) -> Path:
        return self.root_dir / TEMPLATE_DIR_NAME

    @property
    def branches_dir(self) -> Path:
        return self.root_dir / BRANCHES_DIR_NAME

    def unit_dir(self, unit: BranchUnit) -> Path:
        if unit.is_template:
            return self.template_dir
        return self.branches_dir / encode(unit.name)

    def unit_directories(self) -> list[Path]:
        return self.file_manager.list_directories(self.branches_dir, containing=CONFIG_FILE_NAME)

    def create(self, parent: UnitOwner, name: str) -> BranchUnit:
        if not name:
            raise CreationError("Branch name must not be empty")
        unit = BranchUnit(parent, name)
        try:
            self.save(unit)
        except (OSError, yaml.YAMLError, MultiBranchError) as exc:
            raise CreationError(
                f"Failed to create unit for branch '{name}'",
                "Check that the project directory is writable.",
                {"branch": name, "reason": str(exc)},
            ) from exc
        return unit

    def load(self, parent: UnitOwner, directory: Path) -> BranchUnit:
        directory = Path(directory)
        config_path = directory / CONFIG_FILE_NAME
        if not config_path.is_file():
            raise MultiBranchError(
                ErrorCode.BRANCH_NOT_FOUND,
                f"No unit configuration found in {directory}",
                "The directory may be a leftover from a failed deletion.",
            )
        is_template = directory == self.template_dir
        name = TEMPLATE_NAME if is_template else decode(directory.name)
        try:
            payload = self.file_manager.read_yaml(config_path)
            config = UnitConfig.model_validate(payload.get("config") or {})
            builds = self._load_builds(directory)
        except (yaml.YAMLError, ValidationError) as exc:
            raise MultiBranchError(
                ErrorCode.INVALID_INPUT,
                f"Corrupt unit configuration in {directory}",
                "Fix or remove the unit directory; the next sync recreates it.",
                {"reason": str(exc)},
            ) from exc
        return BranchUnit(
            parent,
            name,
            config,
            is_template=bool(payload.get("is_template", is_template)),
            disabled_intent=bool(payload.get("disabled", False)),
            builds=builds,
        )

    def delete(self, unit: BranchUnit) -> None:
        if unit.is_template:
            raise DeletionError(
                "The template unit cannot be deleted on its own",
                "Delete the whole project instead.",
            )
        try:
            self.file_manager.remove_tree(self.unit_dir(unit))
        except (OSError, MultiBranchError) as exc:
            raise DeletionError(
                f"Failed to delete unit for branch '{unit.name}'",
                "Check directory permissions; the next sync retries.",
                {"branch": unit.name, "reason": str(exc)},
            ) from exc

    def save(self, unit: BranchUnit) -> None:
        self.file_manager.write_yaml(self.unit_dir(unit) / CONFIG_FILE_NAME, unit.to_payload())

    def save_build(self, unit: BranchUnit, build: BuildRecord) -> None:
        build_path = self.unit_dir(unit) / BUILDS_DIR_NAME / str(build.number) / BUILD_FILE_NAME
        self.file_manager.write_yaml(build_path, build.model_dump(mode="json"))

    def open_template(self, parent: UnitOwner) -> BranchUnit:
        """Load the template unit, creating it on first use."""
        if (self.template_dir / CONFIG_FILE_NAME).is_file():
            template = self.load(parent, self.template_dir)
        else:
            template = BranchUnit(parent, TEMPLATE_NAME, is_template=True)
        template.mark_template(True)
        template.disable()
        self.save(template)
        return template

    def _load_builds(self, directory: Path) -> list[BuildRecord]:
        builds: list[BuildRecord] = []
        for build_dir in self.file_manager.list_directories(
            directory / BUILDS_DIR_NAME, containing=BUILD_FILE_NAME
        ):
            payload: dict[str, Any] = self.file_manager.read_yaml(build_dir / BUILD_FILE_NAME)
            try:
                builds.append(BuildRecord.model_validate(payload))
            except ValidationError:
                logger.warning("Skipping unreadable build record in %s", build_dir, exc_info=True)
        return builds
