"""Domain-specific error types for multi-branch sync."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Supported error codes surfaced by sync operations."""

    PROJECT_NOT_FOUND = "PROJECT_NOT_FOUND"
    PROJECT_EXISTS = "PROJECT_EXISTS"
    BRANCH_NOT_FOUND = "BRANCH_NOT_FOUND"
    DISCOVERY_FAILED = "DISCOVERY_FAILED"
    CREATION_FAILED = "CREATION_FAILED"
    DELETION_FAILED = "DELETION_FAILED"
    SYNC_FAILED = "SYNC_FAILED"
    BUILD_SCHEDULE_FAILED = "BUILD_SCHEDULE_FAILED"
    INVALID_SCHEDULE = "INVALID_SCHEDULE"
    VIEW_EXISTS = "VIEW_EXISTS"
    VIEW_NOT_FOUND = "VIEW_NOT_FOUND"
    UNSUPPORTED_OPERATION = "UNSUPPORTED_OPERATION"
    PERMISSION_DENIED = "PERMISSION_DENIED"
    INVALID_INPUT = "INVALID_INPUT"
    INTERNAL_ERROR = "INTERNAL_ERROR"


@dataclass
class MultiBranchError(Exception):
    """Structured exception carrying a stable error contract."""

    code: ErrorCode
    message: str
    suggestion: str | None = None
    details: dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        return self.message

    def to_payload(self) -> dict[str, Any]:
        return {
            "status": "error",
            "error_code": self.code.value,
            "message": self.message,
            "suggestion": self.suggestion or "",
            "details": self.details,
        }


class DiscoveryError(MultiBranchError):
    """Branch discovery failed; the current pass is aborted."""

    def __init__(
        self,
        message: str,
        suggestion: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(ErrorCode.DISCOVERY_FAILED, message, suggestion, details or {})


class CreationError(MultiBranchError):
    """A branch unit could not be created or persisted."""

    def __init__(
        self,
        message: str,
        suggestion: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(ErrorCode.CREATION_FAILED, message, suggestion, details or {})


class DeletionError(MultiBranchError):
    """A branch unit's persisted state could not be removed."""

    def __init__(
        self,
        message: str,
        suggestion: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(ErrorCode.DELETION_FAILED, message, suggestion, details or {})


class SyncError(MultiBranchError):
    """Template configuration could not be applied to a branch unit."""

    def __init__(
        self,
        message: str,
        suggestion: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(ErrorCode.SYNC_FAILED, message, suggestion, details or {})


class BuildScheduleError(MultiBranchError):
    """A build request for a branch unit was rejected."""

    def __init__(
        self,
        message: str,
        suggestion: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(ErrorCode.BUILD_SCHEDULE_FAILED, message, suggestion, details or {})


class ScheduleConfigError(MultiBranchError):
    """A cron-style schedule spec is syntactically invalid."""

    def __init__(
        self,
        message: str,
        suggestion: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            ErrorCode.INVALID_SCHEDULE,
            message,
            suggestion or "Use five fields: minute hour day-of-month month day-of-week.",
            details or {},
        )
