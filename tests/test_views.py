from __future__ import annotations

import pytest

from multibranch.errors import ErrorCode, MultiBranchError
from multibranch.models import ViewSettings
from multibranch.views import BranchListView, ViewContainer


def test_default_container_has_all_view() -> None:
    container = ViewContainer()
    assert [view.name for view in container.views] == ["All"]
    assert container.primary_view.name == "All"


def test_unknown_primary_falls_back_to_first_view() -> None:
    container = ViewContainer.from_settings(
        [ViewSettings(name="Releases", include_regex=r"release/.*")],
        "Gone",
    )
    assert container.primary_view.name == "Releases"


def test_add_rename_and_delete_views() -> None:
    container = ViewContainer()
    container.add_view(BranchListView("Features", r"feature/.*"))
    with pytest.raises(MultiBranchError) as exc_info:
        container.add_view(BranchListView("Features"))
    assert exc_info.value.code == ErrorCode.VIEW_EXISTS

    container.rename_view("All", "Everything")
    assert container.primary_view.name == "Everything"

    features = container.get_view("Features")
    assert features is not None and container.can_delete(features)
    container.delete_view("Features")
    assert container.get_view("Features") is None


def test_primary_and_last_view_cannot_be_deleted() -> None:
    container = ViewContainer()
    with pytest.raises(MultiBranchError) as exc_info:
        container.delete_view("All")
    assert exc_info.value.code == ErrorCode.UNSUPPORTED_OPERATION
    with pytest.raises(MultiBranchError) as missing:
        container.delete_view("Nope")
    assert missing.value.code == ErrorCode.VIEW_NOT_FOUND


def test_invalid_regex_rejected() -> None:
    with pytest.raises(MultiBranchError) as exc_info:
        BranchListView("Broken", "feature/(")
    assert exc_info.value.code == ErrorCode.INVALID_INPUT


def test_to_settings_roundtrip() -> None:
    container = ViewContainer()
    container.add_view(BranchListView("Hotfix", r"hotfix-\d+"))
    container.set_primary_view("Hotfix")
    views, primary = container.to_settings()
    restored = ViewContainer.from_settings(views, primary)
    assert restored.primary_view.include_regex == r"hotfix-\d+"
    assert [view.name for view in restored.views] == ["All", "Hotfix"]
