"""Branch sources: discovery of branch heads and per-branch SCM settings."""

from __future__ import annotations

import logging
from typing import Any, Protocol, runtime_checkable

from git import GitCommandError
from git.cmd import Git

from .errors import DiscoveryError, ErrorCode, MultiBranchError
from .models import BranchHead, ScmConfig

logger = logging.getLogger(__name__)

HEADS_PREFIX = "refs/heads/"


@runtime_checkable
class BranchSource(Protocol):
    """Discovery + materialization contract consumed by reconciliation."""

    @property
    def source_id(self) -> str: ...

    def discover(self) -> set[BranchHead]: ...

    def materialize(self, head: BranchHead) -> ScmConfig: ...

    def to_payload(self) -> dict[str, Any]: ...


class StaticBranchSource:
    """Source whose branch set is supplied by the caller."""

    kind = "static"

    def __init__(self, branches: list[str] | tuple[str, ...] = (), repository_url: str = "") -> None:
        self.branches = [branch for branch in branches if branch]
        self.repository_url = repository_url

    @property
    def source_id(self) -> str:
        return f"{self.kind}:{self.repository_url}"

    def discover(self) -> set[BranchHead]:
        return {BranchHead(name=branch) for branch in self.branches}

    def materialize(self, head: BranchHead) -> ScmConfig:
        return ScmConfig(kind=self.kind, repository_url=self.repository_url, branch=head.name)

    def to_payload(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "repository_url": self.repository_url,
            "branches": list(self.branches),
        }


class GitBranchSource:
    """Source listing the heads of a git remote via ``git ls-remote``."""

    kind = "git"

    def __init__(self, repository_url: str, timeout_seconds: float = 0.0) -> None:
        if not repository_url.strip():
            raise MultiBranchError(
                ErrorCode.INVALID_INPUT,
                "repository_url must not be empty",
                "Provide a git URL or a local repository path.",
            )
        self.repository_url = repository_url.strip()
        self.timeout_seconds = max(0.0, float(timeout_seconds))

    @property
    def source_id(self) -> str:
        return f"{self.kind}:{self.repository_url}"

    def discover(self) -> set[BranchHead]:
        kwargs: dict[str, Any] = {}
        if self.timeout_seconds > 0:
            kwargs["kill_after_timeout"] = self.timeout_seconds
        try:
            output = Git().ls_remote("--heads", self.repository_url, **kwargs)
        except GitCommandError as exc:
            raise DiscoveryError(
                f"Unable to list branches of {self.repository_url}",
                "Check the repository URL and credentials.",
                {"repository_url": self.repository_url, "reason": str(exc).strip()},
            ) from exc
        return {BranchHead(name=name) for name in parse_ls_remote_heads(output)}

    def materialize(self, head: BranchHead) -> ScmConfig:
        return ScmConfig(kind=self.kind, repository_url=self.repository_url, branch=head.name)

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"kind": self.kind, "repository_url": self.repository_url}
        if self.timeout_seconds > 0:
            payload["timeout_seconds"] = self.timeout_seconds
        return payload


def parse_ls_remote_heads(output: str) -> list[str]:
    """Extract branch names from ``git ls-remote --heads`` output."""
    names: list[str] = []
    for line in output.splitlines():
        parts = line.strip().split("\t", 1)
        if len(parts) != 2:
            continue
        ref = parts[1].strip()
        if ref.startswith(HEADS_PREFIX) and len(ref) > len(HEADS_PREFIX):
            names.append(ref[len(HEADS_PREFIX):])
    return names


def build_branch_source(
    payload: dict[str, Any] | None,
    default_timeout_seconds: float = 0.0,
) -> BranchSource | None:
    """Instantiate a source from its persisted payload."""
    if not payload:
        return None
    kind = str(payload.get("kind", "")).strip().lower()
    if kind == StaticBranchSource.kind:
        branches = payload.get("branches") or []
        if not isinstance(branches, list):
            raise MultiBranchError(
                ErrorCode.INVALID_INPUT,
                "Static source 'branches' must be a list",
                "Provide branch names as a list of strings.",
            )
        return StaticBranchSource(
            branches=[str(branch) for branch in branches],
            repository_url=str(payload.get("repository_url", "")),
        )
    if kind == GitBranchSource.kind:
        raw_timeout = payload.get("timeout_seconds", default_timeout_seconds)
        try:
            timeout_seconds = float(raw_timeout)
        except (TypeError, ValueError) as exc:
            raise MultiBranchError(
                ErrorCode.INVALID_INPUT,
                f"Git source 'timeout_seconds' must be a number, got {raw_timeout!r}",
                "Store the discovery timeout in seconds, or remove it.",
            ) from exc
        return GitBranchSource(
            repository_url=str(payload.get("repository_url", "")),
            timeout_seconds=timeout_seconds,
        )
    raise MultiBranchError(
        ErrorCode.INVALID_INPUT,
        f"Unsupported branch source kind '{kind}'",
        "Use one of: git, static.",
    )
