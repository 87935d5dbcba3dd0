"""Pydantic models for branch units, status signals and sync results."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .constants import DEFAULT_SYNC_SPEC, DEFAULT_VIEW_NAME, DEFAULT_VIEW_REGEX


class StatusColor(str, Enum):
    """Status indicator colors, declared from worst to best."""

    FAILURE = "red"
    UNSTABLE = "yellow"
    SUCCESS = "blue"
    PENDING = "grey"
    DISABLED = "disabled"
    ABORTED = "aborted"
    NOT_BUILT = "notbuilt"

    @property
    def severity(self) -> int:
        """Lower is worse."""
        return list(StatusColor).index(self)


class BuildResult(str, Enum):
    """Completed build outcomes, declared from best to worst."""

    SUCCESS = "success"
    UNSTABLE = "unstable"
    FAILURE = "failure"
    NOT_BUILT = "not_built"
    ABORTED = "aborted"

    @property
    def ordinal(self) -> int:
        return list(BuildResult).index(self)

    def is_better_or_equal_to(self, other: BuildResult) -> bool:
        return self.ordinal <= other.ordinal

    @property
    def color(self) -> StatusColor:
        return _RESULT_COLORS[self]


_RESULT_COLORS = {
    BuildResult.SUCCESS: StatusColor.SUCCESS,
    BuildResult.UNSTABLE: StatusColor.UNSTABLE,
    BuildResult.FAILURE: StatusColor.FAILURE,
    BuildResult.NOT_BUILT: StatusColor.NOT_BUILT,
    BuildResult.ABORTED: StatusColor.ABORTED,
}


class StatusIndicator(BaseModel):
    model_config = ConfigDict(frozen=True)

    color: StatusColor
    animated: bool = False

    @property
    def icon_name(self) -> str:
        if self.animated:
            return f"{self.color.value}_anime"
        return self.color.value


class BuildRecord(BaseModel):
    number: int = Field(..., ge=1)
    started_at: datetime
    duration_seconds: float = Field(default=0.0, ge=0)
    result: BuildResult | None = None
    cause: str = ""

    @property
    def completed(self) -> bool:
        return self.result is not None


class ScmConfig(BaseModel):
    """SCM settings bound to one branch unit."""

    kind: str
    repository_url: str = ""
    branch: str = ""
    options: dict[str, Any] = Field(default_factory=dict)


class UnitConfig(BaseModel):
    """Build behavior shared by the template and every branch unit."""

    description: str = ""
    display_name: str = ""
    parameters: dict[str, str] = Field(default_factory=dict)
    build_steps: list[str] = Field(default_factory=list)
    publishers: list[str] = Field(default_factory=list)
    properties: dict[str, Any] = Field(default_factory=dict)
    assigned_node: str | None = None
    quiet_period: int | None = Field(default=None, ge=0)
    concurrent_build: bool = False
    scm: ScmConfig | None = None


class BranchHead(BaseModel):
    """A branch known to the SCM at discovery time."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1)


class HealthReport(BaseModel):
    score: int = Field(..., ge=0, le=100)
    description: str


class BranchFailure(BaseModel):
    branch: str
    stage: Literal["discover", "create", "delete", "sync", "build"]
    error_code: str
    message: str


class ReconcileOutcome(BaseModel):
    project: str
    status: Literal["completed", "aborted", "skipped"]
    message: str = ""
    created: list[str] = Field(default_factory=list)
    deleted: list[str] = Field(default_factory=list)
    synced: list[str] = Field(default_factory=list)
    builds_scheduled: list[str] = Field(default_factory=list)
    failures: list[BranchFailure] = Field(default_factory=list)
    started_at: str = ""
    finished_at: str = ""


class ViewSettings(BaseModel):
    name: str = Field(..., min_length=1)
    include_regex: str = DEFAULT_VIEW_REGEX


class ProjectSettings(BaseModel):
    """Persisted project-level configuration."""

    name: str = Field(..., min_length=1)
    description: str = ""
    display_name: str = ""
    disabled: bool = False
    trigger_specs: list[str | None] = Field(default_factory=list)
    primary_view: str | None = None
    views: list[ViewSettings] = Field(default_factory=list)
    scm_source: dict[str, Any] | None = None


class ProjectConfigRequest(BaseModel):
    """One configuration submission for a multi-branch project."""

    description: str = Field(default="", max_length=2000)
    display_name: str = Field(default="", max_length=200)
    disabled: bool = False
    sync_cron_spec: str = DEFAULT_SYNC_SPEC
    primary_view: str = DEFAULT_VIEW_NAME
    scm_source: dict[str, Any] | None = None
    template: UnitConfig | None = None

    @field_validator("sync_cron_spec")
    @classmethod
    def _spec_not_blank(cls, value: str) -> str:
        stripped = value.strip()
        if not stripped:
            raise ValueError("sync_cron_spec must not be blank")
        return stripped
