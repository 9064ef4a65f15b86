"""Document list filters."""

from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import Iterable, List, Literal, Optional

from filingdesk.state.models import Document

DocumentBucket = Literal["today", "last7", "last15", "last30"]
_BUCKET_DAYS = {"today": 0, "last7": 7, "last15": 15, "last30": 30}


def filter_documents(
    documents: Iterable[Document],
    *,
    search: Optional[str] = None,
    start: Optional[date] = None,
    end: Optional[date] = None,
    bucket: Optional[DocumentBucket] = None,
    now: Optional[datetime] = None,
) -> List[Document]:
    """Filter documents by name and upload date.

    Documents with no upload date always pass the date filters.

    Args:
        documents: Documents to filter.
        search: Case-insensitive name substring.
        start: Inclusive first upload day.
        end: Inclusive last upload day.
        bucket: Recency bucket relative to ``now``.
        now: Reference time; defaults to the current local time.

    Returns:
        List[Document]: Matching documents in input order.
    """
    needle = search.strip().casefold() if search else ""
    reference = now or datetime.now().astimezone()
    bucket_start = (
        (reference - timedelta(days=_BUCKET_DAYS[bucket])).date() if bucket else None
    )

    selected: List[Document] = []
    for document in documents:
        if needle and needle not in document.name.casefold():
            continue
        uploaded = document.uploaded_at
        if uploaded is not None:
            day = uploaded.astimezone(reference.tzinfo).date()
            if start is not None and day < start:
                continue
            if end is not None and day > end:
                continue
            if bucket_start is not None and day < bucket_start:
                continue
        selected.append(document)
    return selected


__all__ = ["DocumentBucket", "filter_documents"]
