"""Recent-directory repository tests."""

from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from filingdesk.errors import FilingDeskError
from filingdesk.events import DirectoryOpened, DirectoryRemoved, DirectoryRenamed, EventBus
from filingdesk.state import CorruptStateError, RecentDirectoryRepository

TODAY = datetime(2024, 5, 20, 12, 0, tzinfo=timezone.utc)


def _repo(tmp_path: Path, *, at: datetime = TODAY, **kwargs) -> RecentDirectoryRepository:
    """Return a repository with a frozen clock.

    Args:
        tmp_path: Temporary directory provided by pytest.
        at: Time reported by the repository clock.

    Returns:
        RecentDirectoryRepository: Repository writing under ``tmp_path``.
    """
    return RecentDirectoryRepository(tmp_path / "recent.json", clock=lambda: at, **kwargs)


def test_track_open_moves_directory_to_front(tmp_path: Path) -> None:
    repo = _repo(tmp_path)

    repo.track_open("dir-1", "Acme")
    repo.track_open("dir-2", "Blue Harbor")
    repo.track_open("dir-1", "Acme")

    assert [entry.id for entry in repo.list_recent()] == ["dir-1", "dir-2"]


def test_track_open_caps_entries(tmp_path: Path) -> None:
    repo = _repo(tmp_path, max_entries=2)

    for index in range(4):
        repo.track_open(f"dir-{index}", f"Directory {index}")

    data = json.loads((tmp_path / "recent.json").read_text(encoding="utf-8"))
    assert [entry["id"] for entry in data["default"]] == ["dir-3", "dir-2"]


def test_list_recent_prunes_previous_days(tmp_path: Path) -> None:
    _repo(tmp_path, at=TODAY - timedelta(days=2)).track_open("dir-old", "Old")
    repo = _repo(tmp_path)
    repo.track_open("dir-new", "New")

    assert [entry.id for entry in repo.list_recent()] == ["dir-new"]

    data = json.loads((tmp_path / "recent.json").read_text(encoding="utf-8"))
    assert [entry["id"] for entry in data["default"]] == ["dir-new"]


def test_workspaces_are_kept_apart(tmp_path: Path) -> None:
    first = _repo(tmp_path, workspace_id="alpha")
    second = _repo(tmp_path, workspace_id="beta")

    first.track_open("dir-1", "Acme")
    second.track_open("dir-2", "Blue Harbor")
    second.clear()

    assert [entry.id for entry in first.list_recent()] == ["dir-1"]
    assert second.list_recent() == []


def test_bind_follows_directory_events(tmp_path: Path) -> None:
    repo = _repo(tmp_path)
    bus = EventBus()
    unbind = repo.bind(bus)

    bus.publish(DirectoryOpened(directory_id="dir-1", name="Acme"))
    bus.publish(DirectoryOpened(directory_id="dir-2", name="Blue Harbor"))
    bus.publish(DirectoryRenamed(directory_id="dir-1", name="Acme Holdings"))
    bus.publish(DirectoryRemoved(directory_id="dir-2"))

    entries = repo.list_recent()
    assert [(entry.id, entry.name) for entry in entries] == [("dir-1", "Acme Holdings")]

    unbind()
    bus.publish(DirectoryOpened(directory_id="dir-3", name="Ignored"))
    assert [entry.id for entry in repo.list_recent()] == ["dir-1"]


def test_corrupt_file_raises(tmp_path: Path) -> None:
    (tmp_path / "recent.json").write_text("{not json", encoding="utf-8")

    with pytest.raises(CorruptStateError):
        _repo(tmp_path).list_recent()


def test_corrupt_file_error_is_a_filingdesk_error(tmp_path: Path) -> None:
    (tmp_path / "recent.json").write_text("[]", encoding="utf-8")

    with pytest.raises(FilingDeskError, match="mapping of workspaces"):
        _repo(tmp_path).list_recent()
