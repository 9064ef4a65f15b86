"""Duplicate detection and document-type classification for uploads."""

from __future__ import annotations

import difflib
import logging
import re
from pathlib import PurePath
from typing import Iterable, List, Optional, Sequence

from filingdesk.config.models import DuplicateOptions, UploadOptions
from filingdesk.remote.errors import DuplicateCheckUnavailable, RemoteError, UnsupportedFileError
from filingdesk.remote.stores import DirectoryStore, DocumentStore
from filingdesk.state.models import (
    DirectoryDuplicateVerdict,
    Document,
    DocumentType,
    DuplicateVerdict,
    SimilarCandidate,
    opposite_type,
)

LOGGER = logging.getLogger(__name__)

_SEPARATORS = re.compile(r"[-_]+")
_WHITESPACE = re.compile(r"\s+")


def namespace_for(filename: str) -> str:
    """Return the namespace of an uploaded file: its full name, extension included."""
    return filename.strip()


def normalize_name(name: str) -> str:
    """Normalize a file name for fuzzy comparison.

    Drops the extension, turns dashes and underscores into spaces, collapses
    whitespace and case-folds.
    """
    stem = PurePath(name.strip()).stem or name
    spaced = _SEPARATORS.sub(" ", stem)
    return _WHITESPACE.sub(" ", spaced).strip().casefold()


def name_similarity(left: str, right: str) -> float:
    return difflib.SequenceMatcher(None, normalize_name(left), normalize_name(right)).ratio()


def classify_upload_type(
    explicit: Optional[str],
    documents: Iterable[Document],
    default: DocumentType = "DRHP",
) -> DocumentType:
    """Decide the type of an upload.

    An explicit choice wins. Otherwise a directory holding only one type gets
    the opposite type; anything else falls back to ``default``.

    Args:
        explicit: Type chosen by the caller, if any.
        documents: Documents already in the target directory.
        default: Fallback type.

    Returns:
        DocumentType: ``DRHP`` or ``RHP``.
    """
    if explicit is not None:
        normalized = explicit.strip().upper()
        if normalized not in ("DRHP", "RHP"):
            raise ValueError(f"Unknown document type: {explicit!r}")
        return "DRHP" if normalized == "DRHP" else "RHP"

    present = {document.type for document in documents if document.type}
    if len(present) == 1:
        inferred = opposite_type(present.pop())
        if inferred is not None:
            return inferred
    return default


class DuplicateGuard:
    """Decide whether an incoming file duplicates an existing document."""

    def __init__(
        self,
        documents: DocumentStore,
        directories: DirectoryStore,
        *,
        duplicates: DuplicateOptions | None = None,
        uploads: UploadOptions | None = None,
    ) -> None:
        self._documents = documents
        self._directories = directories
        self._duplicates = duplicates or DuplicateOptions()
        self._uploads = uploads or UploadOptions()

    def validate_filename(self, filename: str) -> None:
        """Reject files whose suffix is not allowed.

        Raises:
            UnsupportedFileError: If the suffix is not in the allow-list.
        """
        suffix = PurePath(filename).suffix.lower()
        allowed = {value.lower() for value in self._uploads.allowed_suffixes}
        if suffix not in allowed:
            raise UnsupportedFileError(
                f"{filename} is not a supported file type ({', '.join(sorted(allowed))})."
            )

    def precheck(self, filename: str, existing: Sequence[Document]) -> DuplicateVerdict:
        """Check ``filename`` against already-loaded documents without any network call.

        Args:
            filename: Name of the incoming file.
            existing: Documents currently known for the target directory.

        Returns:
            DuplicateVerdict: Exact hit, or advisory similar candidates.
        """
        key = namespace_for(filename).casefold()
        for document in existing:
            if document.namespace_key == key:
                return DuplicateVerdict.of(document)

        threshold = self._duplicates.similarity_threshold
        candidates: List[SimilarCandidate] = []
        for document in existing:
            ratio = name_similarity(filename, document.namespace or document.name)
            if ratio >= threshold:
                candidates.append(
                    SimilarCandidate(document=document, similarity_percent=round(ratio * 100))
                )
        candidates.sort(key=lambda candidate: candidate.similarity_percent, reverse=True)
        return DuplicateVerdict(similar_candidates=candidates)

    async def remote_check(self, filename: str) -> DuplicateVerdict:
        """Ask the server whether the namespace is already taken.

        An unreachable check counts as "not a duplicate" unless
        ``duplicates.fail_open`` is disabled.

        Raises:
            DuplicateCheckUnavailable: In strict mode when the check fails.
        """
        namespace = namespace_for(filename)
        try:
            existing = await self._documents.check_existing(namespace)
        except RemoteError as exc:
            if not self._duplicates.fail_open:
                raise DuplicateCheckUnavailable(
                    f"Could not verify whether {namespace} already exists: {exc}"
                ) from exc
            LOGGER.warning("Duplicate check for %s failed, continuing upload: %s", namespace, exc)
            return DuplicateVerdict.clean()
        if existing is not None:
            return DuplicateVerdict.of(existing)
        return DuplicateVerdict.clean()

    async def check_directory_name(self, name: str) -> DirectoryDuplicateVerdict:
        """Advisory pre-check of a proposed directory name.

        The server keeps the final say when the directory is created.
        """
        try:
            return await self._directories.check_duplicate(name.strip())
        except RemoteError as exc:
            if not self._duplicates.fail_open:
                raise DuplicateCheckUnavailable(
                    f"Could not verify directory name {name!r}: {exc}"
                ) from exc
            LOGGER.warning("Directory name check for %r failed: %s", name, exc)
            return DirectoryDuplicateVerdict()


__all__ = [
    "DuplicateGuard",
    "classify_upload_type",
    "namespace_for",
    "normalize_name",
    "name_similarity",
]
