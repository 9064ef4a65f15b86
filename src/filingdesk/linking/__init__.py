"""Auto-linking of DRHP/RHP documents for comparison."""

from .models import DirectoryCompareOutcome, LinkResult, ManualSelection
from .resolver import FALLBACK_DIRECTORY_NAME, AutoLinkResolver

__all__ = [
    "AutoLinkResolver",
    "FALLBACK_DIRECTORY_NAME",
    "LinkResult",
    "ManualSelection",
    "DirectoryCompareOutcome",
]
