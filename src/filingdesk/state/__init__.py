"""Local state persistence for FilingDesk.

Only the recent-directory list lives on disk; directories and documents are
always re-read from the remote stores.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable, List

from pydantic import BaseModel, ValidationError

from .errors import CorruptStateError, StateError
from .models import (
    Directory,
    DirectoryAggregate,
    DirectoryDuplicateVerdict,
    DirectorySuggestion,
    Document,
    DuplicateVerdict,
    Report,
    SimilarCandidate,
    Summary,
)

if TYPE_CHECKING:
    from filingdesk.events import DirectoryOpened, DirectoryRemoved, DirectoryRenamed, EventBus

LOGGER = logging.getLogger(__name__)

DEFAULT_RECENT_PATH = Path("~/.filingdesk/recent.json")
DEFAULT_WORKSPACE = "default"
MAX_RECENT = 20


class RecentDirectory(BaseModel):
    """Directory remembered as recently opened.

    Attributes:
        id: Directory identifier.
        name: Name at the time it was last opened or renamed.
        last_accessed: When the directory was last opened.
    """

    id: str
    name: str
    last_accessed: datetime


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RecentDirectoryRepository:
    """Persist per-workspace lists of directories opened today."""

    def __init__(
        self,
        path: Path | None = None,
        *,
        workspace_id: str | None = None,
        max_entries: int = MAX_RECENT,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        """Initialize the repository.

        Args:
            path: JSON file holding every workspace's list.
            workspace_id: Workspace whose list this instance manages.
            max_entries: Maximum number of directories retained.
            clock: Callable returning the current timezone-aware time.
        """
        self._path = (path or DEFAULT_RECENT_PATH).expanduser()
        self._workspace_id = workspace_id or DEFAULT_WORKSPACE
        self._max_entries = max(1, max_entries)
        self._clock = clock

    @property
    def path(self) -> Path:
        return self._path

    @property
    def workspace_id(self) -> str:
        return self._workspace_id

    def track_open(self, directory_id: str, name: str) -> None:
        """Move a directory to the front of the recent list.

        Args:
            directory_id: Directory that was opened.
            name: Current directory name.
        """
        entries = [entry for entry in self._load_entries() if entry.id != directory_id]
        entries.insert(
            0, RecentDirectory(id=directory_id, name=name, last_accessed=self._clock())
        )
        self._save_entries(entries[: self._max_entries])

    def list_recent(self) -> List[RecentDirectory]:
        """Return directories accessed on the current calendar day, newest first.

        Entries from earlier days are pruned from disk as a side effect.

        Returns:
            List[RecentDirectory]: Today's recent directories.
        """
        entries = self._load_entries()
        today = self._clock().astimezone().date()
        current = [
            entry for entry in entries if entry.last_accessed.astimezone().date() == today
        ]
        current.sort(key=lambda entry: entry.last_accessed, reverse=True)
        if len(current) != len(entries):
            self._save_entries(current)
        return current

    def rename(self, directory_id: str, name: str) -> None:
        entries = self._load_entries()
        if not any(entry.id == directory_id for entry in entries):
            return
        self._save_entries(
            [
                entry.model_copy(update={"name": name}) if entry.id == directory_id else entry
                for entry in entries
            ]
        )

    def remove(self, directory_id: str) -> None:
        entries = self._load_entries()
        remaining = [entry for entry in entries if entry.id != directory_id]
        if len(remaining) != len(entries):
            self._save_entries(remaining)

    def clear(self) -> None:
        """Forget every recent directory of this workspace."""
        self._save_entries([])

    def bind(self, bus: "EventBus") -> Callable[[], None]:
        """Keep the list in sync with directory lifecycle events.

        Args:
            bus: Event bus publishing directory events.

        Returns:
            Callable[[], None]: Function removing every subscription.
        """
        from filingdesk.events import DirectoryOpened, DirectoryRemoved, DirectoryRenamed

        def _opened(event: "DirectoryOpened") -> None:
            self.track_open(event.directory_id, event.name)

        def _renamed(event: "DirectoryRenamed") -> None:
            self.rename(event.directory_id, event.name)

        def _removed(event: "DirectoryRemoved") -> None:
            self.remove(event.directory_id)

        unsubscribers = [
            bus.subscribe(DirectoryOpened, _opened),
            bus.subscribe(DirectoryRenamed, _renamed),
            bus.subscribe(DirectoryRemoved, _removed),
        ]

        def _unbind() -> None:
            for unsubscribe in unsubscribers:
                unsubscribe()

        return _unbind

    # Internal helpers -------------------------------------------------

    def _read_all(self) -> dict[str, Any]:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise CorruptStateError(f"Invalid recent directory data: {exc}") from exc
        if not isinstance(data, dict):
            raise CorruptStateError("Recent directory data must be a mapping of workspaces.")
        return data

    def _load_entries(self) -> List[RecentDirectory]:
        raw = self._read_all().get(self._workspace_id, [])
        try:
            return [RecentDirectory.model_validate(item) for item in raw]
        except (TypeError, ValidationError) as exc:
            raise CorruptStateError(f"Invalid recent directory entry: {exc}") from exc

    def _save_entries(self, entries: List[RecentDirectory]) -> None:
        data = self._read_all()
        data[self._workspace_id] = [entry.model_dump(mode="json") for entry in entries]
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_text(json.dumps(data, indent=2), encoding="utf-8")
        LOGGER.debug("Saved %d recent directories for %s", len(entries), self._workspace_id)


__all__ = [
    "RecentDirectoryRepository",
    "RecentDirectory",
    "DEFAULT_RECENT_PATH",
    "StateError",
    "CorruptStateError",
    "Directory",
    "Document",
    "Summary",
    "Report",
    "DirectorySuggestion",
    "DirectoryDuplicateVerdict",
    "DirectoryAggregate",
    "SimilarCandidate",
    "DuplicateVerdict",
]
