from __future__ import annotations

from datetime import datetime, timezone

import pytest

from multibranch.errors import ErrorCode, SyncError
from multibranch.models import BuildRecord, BuildResult, ScmConfig, UnitConfig
from multibranch.propagation import ConfigPropagator
from multibranch.units import BranchUnit


class _Owner:
    name = "demo"
    disabled = False


def test_apply_copies_template_fields_and_keeps_identity() -> None:
    owner = _Owner()
    template = BranchUnit(
        owner,
        "template",
        UnitConfig(
            description="Build all the things",
            parameters={"TARGET": "release"},
            build_steps=["make", "make test"],
            publishers=["junit"],
            properties={"retention_days": 7},
            assigned_node="linux",
            quiet_period=5,
            concurrent_build=True,
            scm=ScmConfig(kind="git", repository_url="https://example.invalid/repo.git"),
        ),
        is_template=True,
    )
    build = BuildRecord(
        number=3,
        started_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
        result=BuildResult.FAILURE,
    )
    unit = BranchUnit(
        owner,
        "feature/x",
        UnitConfig(parameters={"LOCAL": "1"}),
        disabled_intent=True,
        builds=[build],
    )

    ConfigPropagator().apply(template, unit)

    assert unit.name == "feature/x"
    assert unit.is_template is False
    assert unit.disabled_intent is True
    assert unit.builds == (build,)
    assert unit.next_build_number == 4
    assert unit.config.description == "Build all the things"
    assert unit.config.parameters == {"TARGET": "release"}
    assert unit.config.build_steps == ["make", "make test"]
    assert unit.config.assigned_node == "linux"
    assert unit.config.quiet_period == 5
    assert unit.config.concurrent_build is True


def test_apply_does_not_share_mutable_state() -> None:
    owner = _Owner()
    template = BranchUnit(
        owner,
        "template",
        UnitConfig(build_steps=["make"], scm=ScmConfig(kind="git")),
        is_template=True,
    )
    unit = BranchUnit(owner, "main")
    ConfigPropagator().apply(template, unit)

    unit.config.build_steps.append("deploy")
    assert unit.config.scm is not None
    unit.config.scm.branch = "main"

    assert template.config.build_steps == ["make"]
    assert template.config.scm is not None
    assert template.config.scm.branch == ""


def test_template_role_is_cleared_on_copy() -> None:
    owner = _Owner()
    template = BranchUnit(owner, "template", is_template=True)
    copy = BranchUnit(owner, "main", is_template=True)
    ConfigPropagator().apply(template, copy)
    assert copy.is_template is False


def test_invalid_template_config_raises_sync_error() -> None:
    owner = _Owner()
    template = BranchUnit(owner, "template", is_template=True)
    template.config.quiet_period = -1
    unit = BranchUnit(owner, "main", UnitConfig(build_steps=["keep"]))

    with pytest.raises(SyncError) as exc_info:
        ConfigPropagator().apply(template, unit)

    assert exc_info.value.code == ErrorCode.SYNC_FAILED
    assert unit.config.build_steps == ["keep"]
