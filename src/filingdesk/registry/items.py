"""Unified, time-ordered view over a directory's documents, summaries and reports."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, List, Literal, Optional, Sequence, TypeVar, Union

from filingdesk.state.models import Document, Report, Summary

ItemType = Literal["document", "summary", "report"]
Item = Union[Document, Summary, Report]
T = TypeVar("T", Summary, Report)


@dataclass(frozen=True)
class UnifiedItem:
    """One row of the unified directory listing.

    Attributes:
        item_type: Discriminator telling which model ``item`` holds.
        item: The wrapped document, summary, or report.
    """

    item_type: ItemType
    item: Item

    @property
    def id(self) -> str:
        return self.item.id

    @property
    def title(self) -> str:
        if isinstance(self.item, Document):
            return self.item.name
        return self.item.title

    @property
    def timestamp(self) -> Optional[datetime]:
        if isinstance(self.item, Document):
            return self.item.updated_at or self.item.uploaded_at
        return self.item.updated_at or self.item.created_at


def _newest_first(timestamp: Optional[datetime]) -> float:
    return timestamp.timestamp() if timestamp else 0.0


def unified_items(
    documents: Sequence[Document],
    summaries: Sequence[Summary] = (),
    reports: Sequence[Report] = (),
) -> List[UnifiedItem]:
    """Merge and sort every item newest first.

    Ties keep arrival order: documents, then summaries, then reports.
    """
    merged = [UnifiedItem("document", document) for document in documents]
    merged.extend(UnifiedItem("summary", summary) for summary in summaries)
    merged.extend(UnifiedItem("report", report) for report in reports)
    return sorted(merged, key=lambda entry: _newest_first(entry.timestamp), reverse=True)


def newest_first(items: Iterable[T]) -> List[T]:
    return sorted(
        items, key=lambda item: _newest_first(item.updated_at or item.created_at), reverse=True
    )


__all__ = ["ItemType", "UnifiedItem", "unified_items", "newest_first"]
