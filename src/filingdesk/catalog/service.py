"""Directory catalog: cached root directories and their aggregates."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Any, Awaitable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from filingdesk.config.models import CatalogOptions
from filingdesk.remote.errors import NotFoundError, RemoteError
from filingdesk.remote.stores import DirectoryStore, DocumentStore, ReportStore, SummaryStore
from filingdesk.state.models import Directory, DirectoryAggregate

from .aggregates import compute_aggregate, compute_aggregates
from .views import SortOrder, TimeBucket, filter_directories, sort_directories

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class CatalogSnapshot:
    """Immutable view of the catalog handed to consumers.

    Attributes:
        directories: Root directories in server order.
        aggregates: Aggregate per directory id.
        generation: Refresh generation that produced the snapshot.
    """

    directories: Tuple[Directory, ...] = ()
    aggregates: Mapping[str, DirectoryAggregate] = field(
        default_factory=lambda: MappingProxyType({})
    )
    generation: int = 0

    def directory(self, directory_id: str) -> Optional[Directory]:
        for directory in self.directories:
            if directory.id == directory_id:
                return directory
        return None


class DirectoryCatalog:
    """Load root directories and keep their derived aggregates current.

    The snapshot is only replaced by this class's refresh operations. Each
    refresh takes a generation number; a result whose generation has been
    overtaken by a later refresh is discarded.
    """

    def __init__(
        self,
        directories: DirectoryStore,
        documents: DocumentStore,
        summaries: SummaryStore,
        reports: ReportStore,
        options: CatalogOptions | None = None,
    ) -> None:
        self._directories = directories
        self._documents = documents
        self._summaries = summaries
        self._reports = reports
        self._options = options or CatalogOptions()
        self._snapshot = CatalogSnapshot()
        self._generation = 0
        self._directory_generations: Dict[str, int] = {}

    @property
    def snapshot(self) -> CatalogSnapshot:
        return self._snapshot

    def aggregate_for(self, directory_id: str) -> Optional[DirectoryAggregate]:
        return self._snapshot.aggregates.get(directory_id)

    def directory_name(self, directory_id: str) -> Optional[str]:
        directory = self._snapshot.directory(directory_id)
        return directory.name if directory else None

    async def list_root_directories(self) -> List[Directory]:
        """Return every root directory, fetching extra pages as needed.

        Returns:
            List[Directory]: Directories across all pages, in server order.

        Raises:
            RemoteError: If any page cannot be fetched.
        """
        page_size = self._options.page_size
        first = await self._directories.list_children("root", page=1, page_size=page_size)
        entries = list(first.items)
        if first.total > page_size:
            total_pages = -(-first.total // page_size)
            for page in range(2, total_pages + 1):
                listing = await self._directories.list_children(
                    "root", page=page, page_size=page_size
                )
                entries.extend(listing.items)
        return [
            Directory.model_validate(entry.item) for entry in entries if entry.kind == "directory"
        ]

    async def refresh(self) -> CatalogSnapshot:
        """Re-pull directories, documents, summaries and reports concurrently.

        Summary and report failures degrade to empty lists. A failed directory
        or document listing propagates and the previous snapshot is kept.

        Returns:
            CatalogSnapshot: The current snapshot after the refresh.

        Raises:
            RemoteError: If directories or documents cannot be listed.
        """
        self._generation += 1
        generation = self._generation
        directories, documents, summaries, reports = await asyncio.gather(
            self.list_root_directories(),
            self._documents.list(),
            self._degrade(self._summaries.get_all(), "summaries"),
            self._degrade(self._reports.get_all(), "reports"),
        )
        if generation != self._generation:
            LOGGER.debug("Discarding catalog refresh %d; %d is newer.", generation, self._generation)
            return self._snapshot

        self._snapshot = CatalogSnapshot(
            directories=tuple(directories),
            aggregates=MappingProxyType(
                compute_aggregates(directories, documents, summaries, reports)
            ),
            generation=generation,
        )
        LOGGER.info("Catalog refreshed with %d directories.", len(directories))
        return self._snapshot

    async def reconcile(self) -> CatalogSnapshot:
        """Corrective full refresh following a provisional patch."""
        return await self.refresh()

    async def refresh_directory(self, directory_id: str) -> Optional[DirectoryAggregate]:
        """Re-derive one directory's record and aggregate.

        A directory that no longer exists is dropped from the snapshot.

        Args:
            directory_id: Directory to refresh.

        Returns:
            Optional[DirectoryAggregate]: New aggregate, ``None`` if the
            directory vanished or the result was superseded.
        """
        token = self._directory_generations.get(directory_id, 0) + 1
        self._directory_generations[directory_id] = token
        try:
            directory, documents, summaries, reports = await asyncio.gather(
                self._directories.get_by_id(directory_id),
                self._documents.list(directory_id),
                self._degrade(self._summaries.get_all(), "summaries"),
                self._degrade(self._reports.get_all(), "reports"),
            )
        except NotFoundError:
            if self._directory_generations.get(directory_id) == token:
                self._drop(directory_id)
            return None

        if self._directory_generations.get(directory_id) != token:
            LOGGER.debug("Discarding stale refresh of directory %s.", directory_id)
            return self._snapshot.aggregates.get(directory_id)

        aggregate = compute_aggregate(directory, documents, summaries, reports)
        self._replace(directory, aggregate)
        return aggregate

    def apply_provisional_activity(
        self, directory_ids: Iterable[str], at: Optional[datetime] = None
    ) -> None:
        """Bump ``last_document_upload`` locally ahead of a reconciling refresh.

        Args:
            directory_ids: Directories that just saw activity.
            at: Activity time; defaults to now.
        """
        moment = at or datetime.now(timezone.utc)
        targets = set(directory_ids)
        if not targets:
            return
        directories = []
        aggregates = dict(self._snapshot.aggregates)
        for directory in self._snapshot.directories:
            if directory.id in targets:
                directory = directory.model_copy(update={"last_document_upload": moment})
                current = aggregates.get(directory.id)
                if current is not None:
                    latest = max(moment, current.most_recent_activity or moment)
                    aggregates[directory.id] = current.model_copy(
                        update={"most_recent_activity": latest}
                    )
            directories.append(directory)
        self._snapshot = CatalogSnapshot(
            directories=tuple(directories),
            aggregates=MappingProxyType(aggregates),
            generation=self._snapshot.generation,
        )

    def view(
        self,
        *,
        sort: Optional[SortOrder] = None,
        search: Optional[str] = None,
        bucket: Optional[TimeBucket] = None,
        now: Optional[datetime] = None,
    ) -> List[Directory]:
        """Return the filtered and sorted directory listing."""
        filtered = filter_directories(
            self._snapshot.directories, search=search, bucket=bucket, now=now
        )
        return sort_directories(filtered, sort or self._options.default_sort)

    # Internal helpers -------------------------------------------------

    async def _degrade(self, call: Awaitable[Sequence[Any]], label: str) -> List[Any]:
        try:
            return list(await call)
        except RemoteError as exc:
            LOGGER.warning("Could not load %s for the catalog: %s", label, exc)
            return []

    def _replace(self, directory: Directory, aggregate: DirectoryAggregate) -> None:
        directories = list(self._snapshot.directories)
        for index, existing in enumerate(directories):
            if existing.id == directory.id:
                directories[index] = directory
                break
        else:
            if directory.parent_id is None:
                directories.append(directory)
        aggregates = dict(self._snapshot.aggregates)
        aggregates[directory.id] = aggregate
        self._snapshot = CatalogSnapshot(
            directories=tuple(directories),
            aggregates=MappingProxyType(aggregates),
            generation=self._snapshot.generation,
        )

    def _drop(self, directory_id: str) -> None:
        aggregates = dict(self._snapshot.aggregates)
        aggregates.pop(directory_id, None)
        self._snapshot = CatalogSnapshot(
            directories=tuple(d for d in self._snapshot.directories if d.id != directory_id),
            aggregates=MappingProxyType(aggregates),
            generation=self._snapshot.generation,
        )


__all__ = ["DirectoryCatalog", "CatalogSnapshot"]
