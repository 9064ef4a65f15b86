"""Outcomes produced by the auto-link resolver."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal, Optional, Tuple

from filingdesk.state.models import Document, DocumentType


@dataclass(frozen=True)
class LinkResult:
    """A DRHP/RHP pair ready for comparison.

    Attributes:
        drhp_id: DRHP document id, the comparison view's key.
        rhp_id: RHP document id.
        created: Whether this call created the link.
    """

    drhp_id: Optional[str]
    rhp_id: Optional[str]
    created: bool = False

    @property
    def linked(self) -> bool:
        return True


@dataclass(frozen=True)
class ManualSelection:
    """No automatic partner was linked; the user has to pick one.

    Attributes:
        document: Document the comparison was requested for.
        directory_name: Human name used in messaging.
        candidates: Server-provided candidates, possibly stale.
        link_failed: Whether an automatic link attempt failed.
    """

    document: Document
    directory_name: str
    candidates: Tuple[Document, ...] = field(default_factory=tuple)
    link_failed: bool = False

    @property
    def linked(self) -> bool:
        return False


@dataclass(frozen=True)
class DirectoryCompareOutcome:
    """Result of comparing a whole directory.

    ``kind`` is one of:

    * ``navigate``: an existing pair was found, no link call was made.
    * ``linked``: a new link was created.
    * ``manual``: linking failed or the documents are linked elsewhere;
      ``manual`` carries the selection prompt.
    * ``prompt_upload``: only one type is present; ``missing_type`` names the other.
    * ``empty``: the directory has no documents.
    """

    kind: Literal["navigate", "linked", "manual", "prompt_upload", "empty"]
    drhp_id: Optional[str] = None
    rhp_id: Optional[str] = None
    missing_type: Optional[DocumentType] = None
    manual: Optional[ManualSelection] = None


__all__ = ["LinkResult", "ManualSelection", "DirectoryCompareOutcome"]
