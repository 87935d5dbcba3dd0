from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

import pytest
import yaml

from multibranch.errors import CreationError, DeletionError, ErrorCode, MultiBranchError
from multibranch.file_manager import FileManager
from multibranch.models import BuildResult, UnitConfig
from multibranch.store import FileBranchUnitStore


class _Owner:
    name = "demo"
    disabled = False


@pytest.fixture()
def store(tmp_path: Path) -> FileBranchUnitStore:
    return FileBranchUnitStore(tmp_path, FileManager())


def test_create_and_load_roundtrip(store: FileBranchUnitStore) -> None:
    owner = _Owner()
    unit = store.create(owner, "feature/login")
    unit.config = UnitConfig(build_steps=["pytest"], quiet_period=3)
    unit.disable()
    store.save(unit)

    directory = store.unit_directories()[0]
    assert directory.name == "feature_PERCENT_2Flogin"

    loaded = store.load(owner, directory)
    assert loaded.name == "feature/login"
    assert loaded.config.build_steps == ["pytest"]
    assert loaded.config.quiet_period == 3
    assert loaded.disabled_intent is True
    assert loaded.is_template is False


def test_builds_are_persisted(store: FileBranchUnitStore) -> None:
    owner = _Owner()
    unit = store.create(owner, "main")
    build = unit.start_build("push", datetime(2024, 3, 1, tzinfo=timezone.utc))
    store.save_build(unit, build)
    store.save_build(unit, unit.complete_build(build.number, BuildResult.UNSTABLE, 12.0))

    loaded = store.load(owner, store.unit_dir(unit))
    assert len(loaded.builds) == 1
    assert loaded.last_completed_build is not None
    assert loaded.last_completed_build.result == BuildResult.UNSTABLE
    assert loaded.next_build_number == 2


def test_create_rejects_empty_name(store: FileBranchUnitStore) -> None:
    with pytest.raises(CreationError):
        store.create(_Owner(), "")


def test_delete_removes_directory(store: FileBranchUnitStore) -> None:
    unit = store.create(_Owner(), "main")
    directory = store.unit_dir(unit)
    assert directory.is_dir()
    store.delete(unit)
    assert not directory.exists()


def test_template_cannot_be_deleted(store: FileBranchUnitStore) -> None:
    template = store.open_template(_Owner())
    with pytest.raises(DeletionError):
        store.delete(template)


def test_open_template_is_disabled_and_persistent(store: FileBranchUnitStore) -> None:
    owner = _Owner()
    template = store.open_template(owner)
    template.config = UnitConfig(description="shared")
    store.save(template)

    reopened = store.open_template(owner)
    assert reopened.is_template
    assert reopened.disabled_intent
    assert reopened.config.description == "shared"
    assert store.unit_directories() == []


def test_load_missing_config_raises(store: FileBranchUnitStore, tmp_path: Path) -> None:
    leftover = store.branches_dir / "leftover"
    leftover.mkdir(parents=True)
    with pytest.raises(MultiBranchError) as exc_info:
        store.load(_Owner(), leftover)
    assert exc_info.value.code == ErrorCode.BRANCH_NOT_FOUND


def test_load_corrupt_config_raises(store: FileBranchUnitStore) -> None:
    directory = store.branches_dir / "broken"
    directory.mkdir(parents=True)
    (directory / "config.yaml").write_text(
        yaml.safe_dump({"config": {"quiet_period": -4}}),
        encoding="utf-8",
    )
    with pytest.raises(MultiBranchError) as exc_info:
        store.load(_Owner(), directory)
    assert exc_info.value.code == ErrorCode.INVALID_INPUT
