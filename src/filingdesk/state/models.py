"""Domain models for directories, documents, and their derived views.

Remote payloads arrive as camelCase JSON; every wire model accepts either
the camelCase alias or the snake_case field name. Models are frozen and
updated through ``model_copy``.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, List, Literal, Optional

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel
from typing_extensions import Annotated

DocumentType = Literal["DRHP", "RHP"]
SUCCESS_STATUSES = frozenset({"completed", "ready"})
FAILURE_STATUSES = frozenset({"failed", "error"})


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse a wire timestamp, returning ``None`` for anything unparseable.

    Accepts datetimes, ISO-8601 strings (including a trailing ``Z``), and
    epoch milliseconds. Naive values are interpreted as UTC.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, (int, float)):
        try:
            parsed = datetime.fromtimestamp(value / 1000, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


Timestamp = Annotated[Optional[datetime], BeforeValidator(parse_timestamp)]


def opposite_type(doc_type: Optional[str]) -> Optional[DocumentType]:
    """Return the complementary filing type, or ``None`` for untyped documents."""
    if doc_type == "DRHP":
        return "RHP"
    if doc_type == "RHP":
        return "DRHP"
    return None


class WireModel(BaseModel):
    """Base for models exchanged with the remote API."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        extra="ignore",
    )

    @model_validator(mode="before")
    @classmethod
    def _accept_mongo_id(cls, data: Any) -> Any:
        if isinstance(data, dict) and "id" not in data and "_id" in data:
            data = {**data, "id": str(data["_id"])}
        return data


class Directory(WireModel):
    """Company directory grouping filings.

    Attributes:
        id: Directory identifier.
        name: Display name, unique among siblings.
        parent_id: Parent directory id, ``None`` for root directories.
        created_at: Creation timestamp.
        updated_at: Last server-side update.
        last_document_upload: Most recent upload into the directory.
        is_shared: Whether the directory was shared with the current user.
    """

    id: str
    name: str = ""
    parent_id: Optional[str] = None
    created_at: Timestamp = None
    updated_at: Timestamp = None
    last_document_upload: Timestamp = None
    is_shared: bool = False


class Document(WireModel):
    """Regulatory filing stored in a directory.

    Attributes:
        id: Document identifier.
        name: Display name.
        namespace: Filename-derived identity used for duplicate detection.
        type: Filing type, ``DRHP`` or ``RHP``.
        directory_id: Owning directory, if any.
        related_drhp_id: Linked DRHP (meaningful on RHP documents).
        related_rhp_id: Linked RHP (meaningful on DRHP documents).
        status: Processing status reported by the server.
        uploaded_at: Upload timestamp.
        updated_at: Last modification timestamp.
    """

    id: str
    name: str = ""
    namespace: str = ""
    type: Optional[DocumentType] = None
    directory_id: Optional[str] = None
    related_drhp_id: Optional[str] = None
    related_rhp_id: Optional[str] = None
    status: str = "processing"
    uploaded_at: Timestamp = None
    updated_at: Timestamp = None

    @property
    def namespace_key(self) -> str:
        """Case-insensitive identity key."""
        return self.namespace.casefold()

    @property
    def has_link(self) -> bool:
        return bool(self.related_drhp_id or self.related_rhp_id)


class Summary(WireModel):
    id: str
    title: str = ""
    document_id: Optional[str] = None
    created_at: Timestamp = None
    updated_at: Timestamp = None


class Report(WireModel):
    """Comparison report produced for a DRHP/RHP pair.

    Older reports are keyed by namespaces, newer ones by document ids, so
    both pairs are optional.
    """

    id: str
    title: str = ""
    drhp_id: Optional[str] = None
    rhp_id: Optional[str] = None
    drhp_namespace: Optional[str] = None
    rhp_namespace: Optional[str] = None
    created_at: Timestamp = None
    updated_at: Timestamp = None


class DirectorySuggestion(WireModel):
    id: str
    name: str = ""
    similarity: Optional[int] = None


class DirectoryDuplicateVerdict(WireModel):
    """Server verdict for a proposed directory name."""

    is_duplicate: bool = False
    exact_match: Optional[Directory] = None
    similar_directories: List[DirectorySuggestion] = Field(default_factory=list)


class DirectoryAggregate(BaseModel):
    """Derived per-directory summary, rebuilt from source lists on every refresh."""

    model_config = ConfigDict(frozen=True)

    has_drhp: bool = False
    has_rhp: bool = False
    is_linked: bool = False
    report_count: int = 0
    summary_count: int = 0
    most_recent_activity: Optional[datetime] = None


class SimilarCandidate(BaseModel):
    model_config = ConfigDict(frozen=True)

    document: Document
    similarity_percent: int


class DuplicateVerdict(BaseModel):
    """Outcome of a duplicate check; computed fresh on every call.

    Attributes:
        is_duplicate: Whether an exact namespace match exists.
        exact_match: The existing document when ``is_duplicate`` is true.
        similar_candidates: Advisory fuzzy-name matches.
    """

    model_config = ConfigDict(frozen=True)

    is_duplicate: bool = False
    exact_match: Optional[Document] = None
    similar_candidates: List[SimilarCandidate] = Field(default_factory=list)

    @classmethod
    def clean(cls) -> "DuplicateVerdict":
        return cls()

    @classmethod
    def of(cls, document: Document) -> "DuplicateVerdict":
        return cls(is_duplicate=True, exact_match=document)


__all__ = [
    "DocumentType",
    "SUCCESS_STATUSES",
    "FAILURE_STATUSES",
    "parse_timestamp",
    "opposite_type",
    "Timestamp",
    "Directory",
    "Document",
    "Summary",
    "Report",
    "DirectorySuggestion",
    "DirectoryDuplicateVerdict",
    "DirectoryAggregate",
    "SimilarCandidate",
    "DuplicateVerdict",
]
