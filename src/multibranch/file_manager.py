"""Low-level file system helpers used by the unit store."""

from __future__ import annotations

import shutil
from pathlib import Path
from typing import Any

import yaml

from .errors import ErrorCode, MultiBranchError


class FileManager:
    """Wrapper around the YAML and directory operations the store needs."""

    def write_yaml(self, path: Path, payload: dict[str, Any]) -> None:
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = path.with_name(f".{path.name}.tmp")
            with tmp_path.open("w", encoding="utf-8") as handle:
                yaml.safe_dump(payload, handle, sort_keys=False, allow_unicode=False)
            tmp_path.replace(path)
        except PermissionError as exc:
            raise MultiBranchError(
                ErrorCode.PERMISSION_DENIED,
                f"Permission denied while writing {path}",
                "Check directory permissions and try again.",
            ) from exc

    def read_yaml(self, path: Path) -> dict[str, Any]:
        if not path.exists():
            return {}
        try:
            with path.open("r", encoding="utf-8") as handle:
                loaded = yaml.safe_load(handle)
        except PermissionError as exc:
            raise MultiBranchError(
                ErrorCode.PERMISSION_DENIED,
                f"Permission denied while reading {path}",
                "Check directory permissions and try again.",
            ) from exc
        if isinstance(loaded, dict):
            return loaded
        return {}

    def remove_tree(self, path: Path) -> None:
        if not path.exists():
            return
        try:
            shutil.rmtree(path)
        except PermissionError as exc:
            raise MultiBranchError(
                ErrorCode.PERMISSION_DENIED,
                f"Permission denied while removing {path}",
                "Check directory permissions and try again.",
            ) from exc

    def list_directories(self, path: Path, containing: str | None = None) -> list[Path]:
        """Return child directories, optionally only those holding ``containing``."""
        if not path.is_dir():
            return []
        found: list[Path] = []
        for child in sorted(path.iterdir(), key=lambda item: item.name):
            if not child.is_dir():
                continue
            if containing and not (child / containing).is_file():
                continue
            found.append(child)
        return found
