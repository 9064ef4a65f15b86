"""Per-directory document registry."""

from .filters import DocumentBucket, filter_documents
from .items import ItemType, UnifiedItem, newest_first, unified_items
from .service import DirectoryContents, DocumentRegistry

__all__ = [
    "DocumentRegistry",
    "DirectoryContents",
    "DocumentBucket",
    "filter_documents",
    "ItemType",
    "UnifiedItem",
    "newest_first",
    "unified_items",
]
