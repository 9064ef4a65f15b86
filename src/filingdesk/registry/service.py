"""Document registry for the currently open directory."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, List, Optional, Sequence, Tuple

from filingdesk.catalog.aggregates import reports_for_documents, summaries_for_documents
from filingdesk.events import DirectoryActivity, EventBus
from filingdesk.remote.errors import RemoteError
from filingdesk.remote.stores import DocumentStore, ReportStore, SummaryStore
from filingdesk.state.models import Document, Report, Summary

from .items import UnifiedItem, newest_first, unified_items

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class DirectoryContents:
    """Documents, summaries and reports belonging to one directory.

    Attributes:
        directory_id: Directory the contents were loaded for.
        documents: Documents in server order.
        summaries: Summaries of those documents, newest first.
        reports: Reports of linked pairs in the directory, newest first.
    """

    directory_id: str
    documents: Tuple[Document, ...] = ()
    summaries: Tuple[Summary, ...] = ()
    reports: Tuple[Report, ...] = ()

    @property
    def has_drhp(self) -> bool:
        return any(document.type == "DRHP" for document in self.documents)

    @property
    def has_rhp(self) -> bool:
        return any(document.type == "RHP" for document in self.documents)

    def document(self, document_id: str) -> Optional[Document]:
        for document in self.documents:
            if document.id == document_id:
                return document
        return None

    def items(self) -> List[UnifiedItem]:
        return unified_items(self.documents, self.summaries, self.reports)


class DocumentRegistry:
    """Load and cache the contents of the directory the user has open.

    Opening a directory cancels a still-running open of another one; any
    load whose generation has been overtaken is dropped instead of
    overwriting newer contents.
    """

    def __init__(
        self,
        documents: DocumentStore,
        summaries: SummaryStore,
        reports: ReportStore,
        *,
        bus: EventBus | None = None,
        activity_window_seconds: int = 60,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._documents = documents
        self._summaries = summaries
        self._reports = reports
        self._bus = bus
        self._activity_window = timedelta(seconds=activity_window_seconds)
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._open_directory_id: Optional[str] = None
        self._contents: Optional[DirectoryContents] = None
        self._open_task: Optional[asyncio.Task[DirectoryContents]] = None
        self._generation = 0
        self._applied_generation = 0

    @property
    def open_directory_id(self) -> Optional[str]:
        return self._open_directory_id

    @property
    def contents(self) -> Optional[DirectoryContents]:
        """Contents of the open directory, once loaded."""
        return self._contents

    async def open(self, directory_id: str) -> Optional[DirectoryContents]:
        """Open ``directory_id``, superseding any open still in progress.

        Args:
            directory_id: Directory to open.

        Returns:
            Optional[DirectoryContents]: Loaded contents, or ``None`` when a
            later open replaced this one before it finished.

        Raises:
            RemoteError: If the directory's documents cannot be fetched.
        """
        previous = self._open_task
        if previous is not None and not previous.done():
            previous.cancel()
        if self._open_directory_id != directory_id:
            self._contents = None
        self._open_directory_id = directory_id

        task = asyncio.ensure_future(self._load(directory_id))
        self._open_task = task
        try:
            return await task
        except asyncio.CancelledError:
            if self._open_task is not task:
                LOGGER.debug("Open of directory %s superseded.", directory_id)
                return None
            raise

    async def refresh(self, directory_id: Optional[str] = None) -> Optional[DirectoryContents]:
        """Re-pull a directory, by default the open one.

        Contents are cached only when the directory is still the open one.
        """
        target = directory_id or self._open_directory_id
        if target is None:
            return None
        return await self._load(target)

    def close(self) -> None:
        """Forget the open directory and cancel a pending open."""
        if self._open_task is not None and not self._open_task.done():
            self._open_task.cancel()
        self._open_task = None
        self._open_directory_id = None
        self._contents = None

    async def load_directory(self, directory_id: str) -> DirectoryContents:
        """Fetch a directory's documents, summaries and reports without caching."""
        documents, summaries, reports = await asyncio.gather(
            self._documents.list(directory_id),
            self._degrade(self._summaries.get_all(), "summaries"),
            self._degrade(self._reports.get_all(), "reports"),
        )
        return DirectoryContents(
            directory_id=directory_id,
            documents=tuple(documents),
            summaries=tuple(newest_first(summaries_for_documents(documents, summaries))),
            reports=tuple(newest_first(reports_for_documents(documents, reports))),
        )

    # Internal helpers -------------------------------------------------

    async def _load(self, directory_id: str) -> DirectoryContents:
        self._generation += 1
        generation = self._generation
        contents = await self.load_directory(directory_id)

        if directory_id == self._open_directory_id and generation > self._applied_generation:
            self._applied_generation = generation
            self._contents = contents
        else:
            LOGGER.debug("Not caching contents of %s (generation %d).", directory_id, generation)

        if self._has_recent_activity(contents.summaries, contents.reports) and self._bus:
            self._bus.publish(DirectoryActivity(directory_id=directory_id))
        return contents

    def _has_recent_activity(
        self, summaries: Sequence[Summary], reports: Sequence[Report]
    ) -> bool:
        threshold = self._clock() - self._activity_window
        for item in (*summaries, *reports):
            stamp = item.updated_at or item.created_at
            if stamp is not None and stamp >= threshold:
                return True
        return False

    async def _degrade(self, call: Awaitable[Sequence[Any]], label: str) -> List[Any]:
        try:
            return list(await call)
        except RemoteError as exc:
            LOGGER.warning("Could not load %s for the registry: %s", label, exc)
            return []


__all__ = ["DocumentRegistry", "DirectoryContents"]
