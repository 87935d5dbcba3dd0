"""Display views over a project's branch units."""

from __future__ import annotations

import re
from collections.abc import Iterable

from .constants import DEFAULT_VIEW_NAME, DEFAULT_VIEW_REGEX
from .errors import ErrorCode, MultiBranchError
from .models import ViewSettings
from .units import BranchUnit


class BranchListView:
    """A named view listing the branch units whose name matches a regex."""

    def __init__(self, name: str, include_regex: str = DEFAULT_VIEW_REGEX) -> None:
        self.name = name
        self.include_regex = include_regex
        try:
            self._pattern = re.compile(include_regex)
        except re.error as exc:
            raise MultiBranchError(
                ErrorCode.INVALID_INPUT,
                f"Invalid include regex for view '{name}': {include_regex}",
                "Use a valid Python regular expression.",
            ) from exc

    def includes(self, unit: BranchUnit) -> bool:
        return self._pattern.fullmatch(unit.name) is not None

    def filter(self, units: Iterable[BranchUnit]) -> list[BranchUnit]:
        return [unit for unit in units if self.includes(unit)]

    def to_settings(self) -> ViewSettings:
        return ViewSettings(name=self.name, include_regex=self.include_regex)


class ViewContainer:
    """Views of one project plus the designated primary view."""

    def __init__(
        self,
        views: list[BranchListView] | None = None,
        primary_view: str | None = None,
    ) -> None:
        self._views: list[BranchListView] = list(views or [])
        if not self._views:
            self._views.append(BranchListView(DEFAULT_VIEW_NAME, DEFAULT_VIEW_REGEX))
        self._primary_view = primary_view if self.get_view(primary_view) else self._views[0].name

    @classmethod
    def from_settings(
        cls,
        views: list[ViewSettings],
        primary_view: str | None,
    ) -> ViewContainer:
        return cls([BranchListView(item.name, item.include_regex) for item in views], primary_view)

    @property
    def views(self) -> list[BranchListView]:
        return list(self._views)

    @property
    def primary_view(self) -> BranchListView:
        view = self.get_view(self._primary_view)
        return view if view is not None else self._views[0]

    def set_primary_view(self, name: str) -> None:
        self._require_view(name)
        self._primary_view = name

    def get_view(self, name: str | None) -> BranchListView | None:
        if name is None:
            return None
        return next((view for view in self._views if view.name == name), None)

    def add_view(self, view: BranchListView) -> None:
        if self.get_view(view.name) is not None:
            raise MultiBranchError(
                ErrorCode.VIEW_EXISTS,
                f"View '{view.name}' already exists",
                "Pick a different view name.",
            )
        self._views.append(view)

    def can_delete(self, view: BranchListView) -> bool:
        return view.name != self._primary_view and len(self._views) > 1

    def delete_view(self, name: str) -> None:
        view = self._require_view(name)
        if not self.can_delete(view):
            raise MultiBranchError(
                ErrorCode.UNSUPPORTED_OPERATION,
                f"View '{name}' cannot be deleted",
                "Choose another primary view first.",
            )
        self._views.remove(view)

    def rename_view(self, old_name: str, new_name: str) -> None:
        view = self._require_view(old_name)
        if self.get_view(new_name) is not None:
            raise MultiBranchError(
                ErrorCode.VIEW_EXISTS,
                f"View '{new_name}' already exists",
                "Pick a different view name.",
            )
        view.name = new_name
        if self._primary_view == old_name:
            self._primary_view = new_name

    def to_settings(self) -> tuple[list[ViewSettings], str]:
        return [view.to_settings() for view in self._views], self.primary_view.name

    def _require_view(self, name: str) -> BranchListView:
        view = self.get_view(name)
        if view is None:
            raise MultiBranchError(
                ErrorCode.VIEW_NOT_FOUND,
                f"View '{name}' not found",
                "Check the view name.",
            )
        return view
