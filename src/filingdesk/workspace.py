"""Workspace facade wiring the engine components together.

Every user action enters through :class:`Workspace`. Component failures are
caught here, turned into :class:`~filingdesk.events.Notice` events, and paired
with the refresh or reset that keeps cached state consistent.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import (
    Any,
    Awaitable,
    Callable,
    Iterable,
    List,
    Literal,
    Mapping,
    Optional,
    Set,
    Tuple,
    TypeVar,
    Union,
)

import httpx

from filingdesk.catalog import CatalogSnapshot, DirectoryCatalog, SortOrder, TimeBucket
from filingdesk.config.models import FilingDeskConfig
from filingdesk.events import (
    DirectoryActivity,
    DirectoryOpened,
    DirectoryRemoved,
    DirectoryRenamed,
    DuplicateDetected,
    EventBus,
    ReadyToCompare,
    UploadCompleted,
    UploadFailed,
    UploadTimedOut,
    ViewCleared,
)
from filingdesk.guard import DuplicateGuard
from filingdesk.jobs import JobOutcome, UploadFile, UploadJobTracker
from filingdesk.linking import AutoLinkResolver, DirectoryCompareOutcome, LinkResult, ManualSelection
from filingdesk.registry import DirectoryContents, DocumentRegistry
from filingdesk.remote import connect
from filingdesk.remote.errors import (
    DuplicateCheckUnavailable,
    FilingDeskError,
    NotFoundError,
    RemoteError,
    UploadInProgressError,
)
from filingdesk.remote.stores import DirectoryStore, DocumentStore, ReportStore, SummaryStore
from filingdesk.state import RecentDirectory, RecentDirectoryRepository
from filingdesk.state.models import (
    Directory,
    DirectoryAggregate,
    DirectorySuggestion,
    Document,
)

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class DirectoryCreation:
    """Result of a create-directory request.

    Attributes:
        kind: ``created``, ``existing`` (exact name match reused) or
            ``similar`` (confirmation needed; retry with ``force``).
        directory: Created or reused directory.
        suggestions: Similar directories when confirmation is needed.
    """

    kind: Literal["created", "existing", "similar"]
    directory: Optional[Directory] = None
    suggestions: Tuple[DirectorySuggestion, ...] = field(default_factory=tuple)


class Workspace:
    """Operation boundary over the catalog, registry, guard, resolver and tracker."""

    def __init__(
        self,
        config: FilingDeskConfig,
        *,
        documents: DocumentStore,
        directories: DirectoryStore,
        summaries: SummaryStore,
        reports: ReportStore,
        bus: EventBus | None = None,
        recent: RecentDirectoryRepository | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        on_close: Callable[[], Awaitable[None]] | None = None,
    ) -> None:
        self.config = config
        self.bus = bus or EventBus()
        self._documents = documents
        self._directories = directories
        self._summaries = summaries
        self._reports = reports

        self.catalog = DirectoryCatalog(directories, documents, summaries, reports, config.catalog)
        self.registry = DocumentRegistry(
            documents,
            summaries,
            reports,
            bus=self.bus,
            activity_window_seconds=config.catalog.recent_activity_window_seconds,
        )
        self.guard = DuplicateGuard(
            documents, directories, duplicates=config.duplicates, uploads=config.uploads
        )
        self.linker = AutoLinkResolver(documents, self.catalog, self.registry, self.bus)
        self.jobs = UploadJobTracker(
            documents,
            self.guard,
            self.catalog,
            self.registry,
            self.bus,
            polling=config.polling,
            default_type=config.uploads.default_type,
            sleep=sleep,
        )
        self.recent = recent
        self._unbind_recent = recent.bind(self.bus) if recent is not None else None
        self._background: Set[asyncio.Task[Any]] = set()
        self._on_close = on_close

        self.bus.subscribe(DirectoryActivity, self._on_activity)
        self.bus.subscribe(UploadCompleted, self._on_upload_completed)
        self.bus.subscribe(UploadFailed, self._on_upload_failed)
        self.bus.subscribe(UploadTimedOut, self._on_upload_timed_out)
        self.bus.subscribe(DuplicateDetected, self._on_duplicate)
        self.bus.subscribe(ReadyToCompare, self._on_ready_to_compare)

    @classmethod
    def from_config(
        cls,
        config: FilingDeskConfig,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        bus: EventBus | None = None,
        recent: RecentDirectoryRepository | None = None,
    ) -> "Workspace":
        """Build a workspace talking to the configured API.

        Args:
            config: Effective configuration.
            transport: Optional HTTP transport override.
            bus: Optional event bus to publish on.
            recent: Optional recent-directory repository to keep in sync.

        Returns:
            Workspace: Workspace owning its HTTP client; close it with ``aclose``.
        """
        remote = connect(config.api, transport=transport)
        return cls(
            config,
            documents=remote.documents,
            directories=remote.directories,
            summaries=remote.summaries,
            reports=remote.reports,
            bus=bus,
            recent=recent,
            on_close=remote.aclose,
        )

    async def __aenter__(self) -> "Workspace":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Stop background refreshes and release the HTTP client."""
        for task in list(self._background):
            task.cancel()
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)
        self.registry.close()
        if self._unbind_recent is not None:
            self._unbind_recent()
            self._unbind_recent = None
        if self._on_close is not None:
            await self._on_close()
            self._on_close = None

    # Directory catalog ---------------------------------------------------

    async def refresh(self) -> Optional[CatalogSnapshot]:
        return await self._boundary("Loading directories", self.catalog.refresh())

    def list_directories(
        self,
        *,
        sort: Optional[SortOrder] = None,
        search: Optional[str] = None,
        bucket: Optional[TimeBucket] = None,
        now: Optional[datetime] = None,
    ) -> List[Directory]:
        return self.catalog.view(sort=sort, search=search, bucket=bucket, now=now)

    def directory_aggregate(self, directory_id: str) -> Optional[DirectoryAggregate]:
        return self.catalog.aggregate_for(directory_id)

    async def search_directories(self, query: str, limit: int = 10) -> List[DirectorySuggestion]:
        found = await self._boundary(
            "Searching directories", self._directories.search(query.strip(), limit)
        )
        return found or []

    async def create_directory(
        self, name: str, *, force: bool = False
    ) -> Optional[DirectoryCreation]:
        """Create a root directory after the advisory duplicate check.

        Args:
            name: Proposed directory name.
            force: Create even when only similar names exist.

        Returns:
            Optional[DirectoryCreation]: Outcome, ``None`` for a blank name or
            a failure already reported as a notice.
        """
        cleaned = name.strip()
        if not cleaned:
            return None
        try:
            verdict = await self.guard.check_directory_name(cleaned)
        except DuplicateCheckUnavailable as exc:
            self.bus.notify("error", str(exc))
            return None

        if verdict.is_duplicate and verdict.exact_match is not None:
            self.bus.notify("info", f'"{verdict.exact_match.name}" already exists. Using it instead.')
            return DirectoryCreation(kind="existing", directory=verdict.exact_match)
        if verdict.similar_directories and not force:
            return DirectoryCreation(kind="similar", suggestions=tuple(verdict.similar_directories))

        created = await self._boundary("Creating directory", self._directories.create(cleaned, None))
        await self._quiet(self.catalog.reconcile())
        if created is None:
            return None
        self.bus.notify("success", f'Directory "{created.name}" created.')
        return DirectoryCreation(kind="created", directory=created)

    async def rename_directory(self, directory_id: str, name: str) -> Optional[Directory]:
        cleaned = name.strip()
        if not cleaned or cleaned == self.catalog.directory_name(directory_id):
            return None
        updated = await self._boundary(
            "Renaming directory",
            self._directories.update(directory_id, {"name": cleaned}),
            directory_id=directory_id,
        )
        if updated is None:
            return None
        self.bus.publish(DirectoryRenamed(directory_id=directory_id, name=cleaned))
        await self._quiet(self.catalog.reconcile())
        return updated

    async def delete_directory(self, directory_id: str) -> bool:
        """Delete a directory; its documents go with it on the server.

        Returns:
            bool: Whether the directory was deleted.
        """

        async def _delete() -> bool:
            await self._directories.delete(directory_id)
            return True

        deleted = await self._boundary("Deleting directory", _delete(), directory_id=directory_id)
        if not deleted:
            return False
        await self._directory_vanished(directory_id)
        self.bus.notify("success", "Directory deleted.")
        return True

    # Open directory ------------------------------------------------------

    async def open_directory(self, directory_id: str) -> Optional[DirectoryContents]:
        """Open a directory and announce it to observers.

        Returns:
            Optional[DirectoryContents]: Loaded contents, ``None`` when the
            open failed or was superseded by a later one.
        """
        try:
            contents = await self.registry.open(directory_id)
        except NotFoundError:
            self.bus.notify("error", "This directory no longer exists.")
            await self._directory_vanished(directory_id)
            return None
        except RemoteError as exc:
            LOGGER.error("Opening directory %s failed: %s", directory_id, exc)
            self.registry.close()
            self.bus.notify("error", "Failed to load documents")
            return None
        if contents is None:
            return None

        name = self.catalog.directory_name(directory_id)
        if name is None:
            directory = await self._quiet(self._directories.get_by_id(directory_id))
            name = directory.name if directory is not None else directory_id
        self.bus.publish(DirectoryOpened(directory_id=directory_id, name=name))
        return contents

    def close_directory(self) -> None:
        self.registry.close()

    def recent_directories(self) -> List[RecentDirectory]:
        return self.recent.list_recent() if self.recent is not None else []

    # Documents -----------------------------------------------------------

    async def rename_document(self, document_id: str, name: str) -> Optional[Document]:
        cleaned = name.strip()
        document = await self._find_document(document_id)
        if document is None or not cleaned or cleaned == document.name:
            return None
        updated = await self._boundary(
            "Renaming document", self._documents.update(document_id, {"name": cleaned})
        )
        await self._after_document_change([document.directory_id])
        return updated

    async def move_document(self, document_id: str, target_directory_id: str) -> Optional[Document]:
        """Move a document into another directory.

        Both directories get a provisional activity bump, then a reconciling
        refresh.
        """
        document = await self._find_document(document_id)
        if document is None or document.directory_id == target_directory_id:
            return None
        moved = await self._boundary(
            "Moving document",
            self._documents.update(document_id, {"directoryId": target_directory_id}),
        )
        affected = [document.directory_id, target_directory_id]
        if moved is not None:
            self.catalog.apply_provisional_activity(d for d in affected if d)
        await self._after_document_change(affected)
        return moved

    async def delete_document(self, document_id: str) -> bool:
        document = await self._find_document(document_id)
        if document is None:
            return False

        async def _delete() -> bool:
            await self._documents.delete(document_id)
            return True

        deleted = await self._boundary("Deleting document", _delete())
        await self._after_document_change([document.directory_id])
        return bool(deleted)

    # Summaries and reports -----------------------------------------------

    async def rename_summary(self, summary_id: str, title: str) -> bool:
        return await self._retitle("summary", summary_id, title)

    async def rename_report(self, report_id: str, title: str) -> bool:
        return await self._retitle("report", report_id, title)

    async def delete_summary(self, summary_id: str) -> bool:
        return await self._remove_annotation("summary", summary_id)

    async def delete_report(self, report_id: str) -> bool:
        return await self._remove_annotation("report", report_id)

    async def record_summary_created(self, document_id: str) -> Optional[str]:
        """Note that a summary was generated for ``document_id``.

        Returns:
            Optional[str]: Directory whose activity was bumped.
        """
        return await self._record_activity(document_id)

    async def record_report_created(self, drhp_id: str) -> Optional[str]:
        return await self._record_activity(drhp_id)

    # Uploads and comparison ------------------------------------------------

    async def upload(
        self,
        file: Union[UploadFile, Path],
        directory_id: Optional[str],
        doc_type: Optional[str] = None,
    ) -> JobOutcome:
        """Upload a file and follow it through processing.

        Raises:
            UploadInProgressError: If another upload is still running.
        """
        loaded = self._read_upload(file)
        if isinstance(loaded, JobOutcome):
            return loaded
        try:
            outcome = await self.jobs.start(loaded, directory_id, doc_type)
        except ValueError as exc:
            self.bus.notify("error", str(exc))
            return JobOutcome(kind="rejected", reason=str(exc))
        return self._announce_outcome(outcome)

    async def upload_rhp_for(self, drhp_id: str, file: Union[UploadFile, Path]) -> JobOutcome:
        """Upload the RHP of an existing DRHP into the DRHP's directory.

        The server links the new RHP to ``drhp_id`` when it accepts the file.

        Raises:
            UploadInProgressError: If another upload is still running.
        """
        loaded = self._read_upload(file)
        if isinstance(loaded, JobOutcome):
            return loaded
        drhp = await self._find_document(drhp_id)
        if drhp is None:
            return JobOutcome(kind="rejected", reason=f"Document {drhp_id} is unavailable.")
        try:
            outcome = await self.jobs.start_rhp_for(drhp, loaded)
        except ValueError as exc:
            self.bus.notify("error", str(exc))
            return JobOutcome(kind="rejected", reason=str(exc))
        return self._announce_outcome(outcome)

    def handle_push_event(self, payload: Mapping[str, Any]) -> bool:
        return self.jobs.handle_push_event(payload)

    async def compare_document(
        self, document_id: str
    ) -> Optional[Union[LinkResult, ManualSelection]]:
        document = await self._find_document(document_id)
        if document is None:
            return None
        return await self.linker.find_and_link(document)

    async def select_for_compare(self, document_id: str, target_id: str) -> Optional[LinkResult]:
        document = await self._find_document(document_id)
        target = await self._find_document(target_id)
        if document is None or target is None:
            return None
        try:
            return await self._boundary(
                "Linking documents", self.linker.select_for_compare(document, target)
            )
        except ValueError as exc:
            self.bus.notify("error", str(exc))
            return None

    async def compare_directory(self, directory_id: str) -> Optional[DirectoryCompareOutcome]:
        return await self._boundary(
            "Comparing directory",
            self.linker.directory_compare(directory_id),
            directory_id=directory_id,
        )

    # Internal helpers -------------------------------------------------

    async def _boundary(
        self,
        action: str,
        operation: Awaitable[T],
        *,
        directory_id: Optional[str] = None,
    ) -> Optional[T]:
        try:
            return await operation
        except UploadInProgressError:
            raise
        except NotFoundError as exc:
            LOGGER.warning("%s failed, target vanished: %s", action, exc)
            self.bus.notify("error", f"{action} failed: it no longer exists.")
            if directory_id is not None:
                await self._directory_vanished(directory_id)
            elif self.registry.open_directory_id is not None:
                await self._quiet(self.registry.refresh())
            return None
        except FilingDeskError as exc:
            LOGGER.error("%s failed: %s", action, exc)
            self.bus.notify("error", f"{action} failed: {exc}")
            return None

    async def _quiet(self, operation: Awaitable[T]) -> Optional[T]:
        try:
            return await operation
        except RemoteError as exc:
            LOGGER.warning("Background refresh failed: %s", exc)
            return None

    async def _directory_vanished(self, directory_id: str) -> None:
        if self.registry.open_directory_id == directory_id:
            self.registry.close()
            self.bus.publish(ViewCleared(directory_id=directory_id))
        self.bus.publish(DirectoryRemoved(directory_id=directory_id))
        await self._quiet(self.catalog.reconcile())

    async def _after_document_change(self, directory_ids: Iterable[Optional[str]]) -> None:
        seen: List[str] = []
        for directory_id in directory_ids:
            if directory_id and directory_id not in seen:
                seen.append(directory_id)
        for directory_id in seen:
            await self._quiet(self.catalog.refresh_directory(directory_id))
        if self.registry.open_directory_id is not None:
            await self._quiet(self.registry.refresh())

    def _read_upload(self, file: Union[UploadFile, Path]) -> Union[UploadFile, JobOutcome]:
        if not isinstance(file, Path):
            return file
        try:
            return UploadFile.from_path(file)
        except OSError as exc:
            self.bus.notify("error", f"Could not read {file}: {exc.strerror or exc}")
            return JobOutcome(kind="rejected", reason=str(exc))

    def _announce_outcome(self, outcome: JobOutcome) -> JobOutcome:
        if outcome.kind == "needs_directory":
            self.bus.notify("warning", "Please select a directory before uploading.")
        elif outcome.kind == "rejected":
            self.bus.notify("error", outcome.reason or "File rejected.")
        return outcome

    async def _find_document(self, document_id: str) -> Optional[Document]:
        contents = self.registry.contents
        if contents is not None:
            cached = contents.document(document_id)
            if cached is not None:
                return cached
        return await self._boundary("Loading document", self._documents.get_by_id(document_id))

    async def _retitle(self, kind: Literal["summary", "report"], item_id: str, title: str) -> bool:
        cleaned = title.strip()
        if not cleaned or cleaned == self._current_title(kind, item_id):
            return False
        store = self._summaries if kind == "summary" else self._reports
        updated = await self._boundary(f"Renaming {kind}", store.update(item_id, {"title": cleaned}))
        await self._after_annotation_change()
        return updated is not None

    async def _remove_annotation(self, kind: Literal["summary", "report"], item_id: str) -> bool:
        store = self._summaries if kind == "summary" else self._reports

        async def _delete() -> bool:
            await store.delete(item_id)
            return True

        deleted = await self._boundary(f"Deleting {kind}", _delete())
        await self._after_annotation_change()
        return bool(deleted)

    def _current_title(self, kind: str, item_id: str) -> Optional[str]:
        contents = self.registry.contents
        if contents is None:
            return None
        items = contents.summaries if kind == "summary" else contents.reports
        for item in items:
            if item.id == item_id:
                return item.title
        return None

    async def _after_annotation_change(self) -> None:
        open_id = self.registry.open_directory_id
        if open_id is None:
            await self._quiet(self.catalog.reconcile())
            return
        await self._quiet(self.registry.refresh(open_id))
        await self._quiet(self.catalog.refresh_directory(open_id))

    async def _record_activity(self, document_id: str) -> Optional[str]:
        document = await self._find_document(document_id)
        if document is None or not document.directory_id:
            return None
        self.bus.publish(DirectoryActivity(directory_id=document.directory_id))
        if self.registry.open_directory_id == document.directory_id:
            await self._quiet(self.registry.refresh(document.directory_id))
        return document.directory_id

    def _on_activity(self, event: DirectoryActivity) -> None:
        self.catalog.apply_provisional_activity([event.directory_id])
        task = asyncio.get_running_loop().create_task(
            self._quiet(self.catalog.refresh_directory(event.directory_id))
        )
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    def _on_upload_completed(self, event: UploadCompleted) -> None:
        self.bus.notify("success", f"{event.job.file.name} uploaded and processed.")

    def _on_upload_failed(self, event: UploadFailed) -> None:
        self.bus.notify("error", event.reason)

    def _on_upload_timed_out(self, event: UploadTimedOut) -> None:
        self.bus.notify(
            "warning",
            f"{event.job.file.name} is still processing. It will appear in the directory once ready.",
        )

    def _on_duplicate(self, event: DuplicateDetected) -> None:
        label = event.document.name or event.document.namespace
        self.bus.notify("warning", f'"{label}" already exists.')

    def _on_ready_to_compare(self, event: ReadyToCompare) -> None:
        self.bus.notify("info", "Both DRHP and RHP are available. You can compare them now.")


__all__ = ["Workspace", "DirectoryCreation"]
