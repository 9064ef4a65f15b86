"""Sorting and filtering policies for directory listings."""

from __future__ import annotations

import unicodedata
from datetime import date, datetime, timedelta
from typing import Iterable, List, Literal, Optional

from filingdesk.state.models import Directory

SortOrder = Literal["alphabetical", "lastModified"]
TimeBucket = Literal["today", "last7", "last15", "last30", "last60"]

BUCKET_DAYS = {"today": 0, "last7": 7, "last15": 15, "last30": 30, "last60": 60}


def most_recent_activity(directory: Directory) -> Optional[datetime]:
    """Return the latest of upload, update and creation time, if any parsed."""
    candidates = [
        value
        for value in (
            directory.last_document_upload,
            directory.updated_at,
            directory.created_at,
        )
        if value is not None
    ]
    return max(candidates) if candidates else None


def sort_key_alphabetical(name: str) -> str:
    """Case- and accent-insensitive collation key."""
    decomposed = unicodedata.normalize("NFKD", name)
    stripped = "".join(char for char in decomposed if not unicodedata.combining(char))
    return stripped.casefold()


def sort_directories(directories: Iterable[Directory], order: SortOrder) -> List[Directory]:
    """Sort directories; both orders are stable.

    Args:
        directories: Directories to sort.
        order: ``alphabetical`` or ``lastModified`` (newest first, undated last).

    Returns:
        List[Directory]: Sorted copy.
    """
    if order == "alphabetical":
        return sorted(directories, key=lambda directory: sort_key_alphabetical(directory.name))

    def _activity(directory: Directory) -> float:
        activity = most_recent_activity(directory)
        return activity.timestamp() if activity else 0.0

    return sorted(directories, key=_activity, reverse=True)


def bucket_start(bucket: TimeBucket, now: datetime) -> date:
    """Return the first calendar day included in ``bucket``."""
    return (now - timedelta(days=BUCKET_DAYS[bucket])).date()


def filter_directories(
    directories: Iterable[Directory],
    *,
    search: Optional[str] = None,
    bucket: Optional[TimeBucket] = None,
    now: Optional[datetime] = None,
) -> List[Directory]:
    """Apply the name and time-bucket filters.

    Shared directories bypass the time filter. Undated directories are only
    dropped while a time filter is active.

    Args:
        directories: Directories to filter.
        search: Case-insensitive name substring.
        bucket: Optional recency bucket.
        now: Reference time; defaults to the current local time.

    Returns:
        List[Directory]: Matching directories in input order.
    """
    needle = search.strip().casefold() if search else ""
    reference = now or datetime.now().astimezone()
    start = bucket_start(bucket, reference) if bucket else None

    selected: List[Directory] = []
    for directory in directories:
        if needle and needle not in directory.name.casefold():
            continue
        if start is not None and not directory.is_shared:
            activity = most_recent_activity(directory)
            if activity is None:
                continue
            if activity.astimezone(reference.tzinfo).date() < start:
                continue
        selected.append(directory)
    return selected


__all__ = [
    "SortOrder",
    "TimeBucket",
    "BUCKET_DAYS",
    "most_recent_activity",
    "sort_key_alphabetical",
    "sort_directories",
    "bucket_start",
    "filter_directories",
]
