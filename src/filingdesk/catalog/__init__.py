"""Directory catalog: listing, aggregates, and directory views."""

from .aggregates import (
    compute_aggregate,
    compute_aggregates,
    is_linked_pair,
    linked_pairs,
    reports_for_documents,
    summaries_for_documents,
)
from .service import CatalogSnapshot, DirectoryCatalog
from .views import (
    SortOrder,
    TimeBucket,
    filter_directories,
    most_recent_activity,
    sort_directories,
)

__all__ = [
    "DirectoryCatalog",
    "CatalogSnapshot",
    "compute_aggregate",
    "compute_aggregates",
    "is_linked_pair",
    "linked_pairs",
    "reports_for_documents",
    "summaries_for_documents",
    "SortOrder",
    "TimeBucket",
    "filter_directories",
    "most_recent_activity",
    "sort_directories",
]
