"""Branch units: per-branch configuration plus build history."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Protocol

from .errors import ErrorCode, MultiBranchError
from .models import BuildRecord, BuildResult, StatusColor, StatusIndicator, UnitConfig


class UnitOwner(Protocol):
    """The part of a project a unit needs to know about."""

    name: str

    @property
    def disabled(self) -> bool: ...


class BranchUnit:
    """One child configuration owned by a multi-branch project.

    The unit keeps its own disabled intent; the effective disabled state also
    honors the owner's flag, which is read on every access instead of being
    copied down.
    """

    def __init__(
        self,
        owner: UnitOwner,
        name: str,
        config: UnitConfig | None = None,
        *,
        is_template: bool = False,
        disabled_intent: bool = False,
        builds: list[BuildRecord] | None = None,
    ) -> None:
        self.owner = owner
        self.name = name
        self.config = config or UnitConfig()
        self.is_template = is_template
        self.disabled_intent = disabled_intent
        self._builds: list[BuildRecord] = list(builds or [])
        self._last_build: BuildRecord | None = None
        self._last_completed_build: BuildRecord | None = None
        self._next_build_number = 1
        self.reload()

    def __repr__(self) -> str:
        return f"BranchUnit(name={self.name!r}, template={self.is_template})"

    @property
    def is_disabled(self) -> bool:
        return bool(self.owner.disabled) or self.disabled_intent

    def disable(self) -> None:
        self.disabled_intent = True

    def enable(self) -> None:
        self.disabled_intent = False

    def mark_template(self, is_template: bool) -> None:
        self.is_template = is_template

    @property
    def builds(self) -> tuple[BuildRecord, ...]:
        return tuple(self._builds)

    @property
    def last_build(self) -> BuildRecord | None:
        return self._last_build

    @property
    def last_completed_build(self) -> BuildRecord | None:
        return self._last_completed_build

    @property
    def next_build_number(self) -> int:
        return self._next_build_number

    def reload(self) -> None:
        """Recompute derived state from configuration and build history."""
        self._builds.sort(key=lambda build: build.number)
        self._last_build = self._builds[-1] if self._builds else None
        self._last_completed_build = next(
            (build for build in reversed(self._builds) if build.completed),
            None,
        )
        self._next_build_number = (self._last_build.number + 1) if self._last_build else 1

    def start_build(self, cause: str = "", started_at: datetime | None = None) -> BuildRecord:
        """Append an in-progress build record and return it."""
        if self.is_template:
            raise MultiBranchError(
                ErrorCode.UNSUPPORTED_OPERATION,
                "The template never builds",
                "Build a branch unit instead.",
            )
        record = BuildRecord(
            number=self._next_build_number,
            started_at=started_at or datetime.now(timezone.utc),
            cause=cause,
        )
        self._builds.append(record)
        self.reload()
        return record

    def complete_build(
        self,
        number: int,
        result: BuildResult,
        duration_seconds: float = 0.0,
    ) -> BuildRecord:
        for index, build in enumerate(self._builds):
            if build.number == number:
                completed = build.model_copy(
                    update={"result": result, "duration_seconds": duration_seconds}
                )
                self._builds[index] = completed
                self.reload()
                return completed
        raise MultiBranchError(
            ErrorCode.INVALID_INPUT,
            f"Build #{number} not found for '{self.name}'",
            "Check the build number.",
        )

    @property
    def icon_color(self) -> StatusIndicator:
        if self.is_disabled:
            return StatusIndicator(color=StatusColor.DISABLED)
        last = self._last_build
        if last is None:
            return StatusIndicator(color=StatusColor.NOT_BUILT)
        completed = self._last_completed_build
        color = completed.result.color if completed and completed.result else StatusColor.NOT_BUILT
        return StatusIndicator(color=color, animated=not last.completed)

    def to_payload(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "is_template": self.is_template,
            "disabled": self.disabled_intent,
            "config": self.config.model_dump(mode="json"),
        }

    def summary(self) -> dict[str, Any]:
        last = self._last_completed_build
        return {
            "name": self.name,
            "disabled": self.is_disabled,
            "color": self.icon_color.icon_name,
            "builds": len(self._builds),
            "last_result": last.result.value if last and last.result else None,
            "scm_branch": self.config.scm.branch if self.config.scm else "",
        }
