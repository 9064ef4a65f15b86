"""Collaborator stores wrapping the document, directory, summary and report APIs."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field

from filingdesk.state.models import (
    Directory,
    DirectoryDuplicateVerdict,
    DirectorySuggestion,
    Document,
    Report,
    Summary,
)

from .client import ApiClient
from .errors import NotFoundError

LOGGER = logging.getLogger(__name__)


def _as_list(payload: Any, *keys: str) -> List[Any]:
    """Return the list inside ``payload``, unwrapping the first matching key."""
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict):
        for key in keys:
            value = payload.get(key)
            if isinstance(value, list):
                return value
    return []


def _accepted_document(payload: Any, **defaults: Any) -> Document:
    """Build the accepted document from an upload response, falling back to what was sent."""
    body = payload if isinstance(payload, dict) else {}
    if isinstance(body.get("document"), dict):
        body = body["document"]
    merged: Dict[str, Any] = {**defaults, **body}
    if "id" not in merged and "_id" not in merged and "documentId" in merged:
        merged["id"] = merged["documentId"]
    return Document.model_validate(merged)


class ChildEntry(BaseModel):
    model_config = ConfigDict(extra="ignore")

    kind: str
    item: Dict[str, Any] = Field(default_factory=dict)


class ChildListing(BaseModel):
    """One page of a directory's children."""

    model_config = ConfigDict(extra="ignore")

    items: List[ChildEntry] = Field(default_factory=list)
    total: int = 0


class DocumentStore:
    """Document endpoints."""

    def __init__(self, client: ApiClient) -> None:
        self._client = client

    async def list(self, directory_id: Optional[str] = None) -> List[Document]:
        """Return documents, optionally scoped to one directory.

        Args:
            directory_id: Directory to filter by; ``None`` lists every document.

        Returns:
            List[Document]: Documents visible to the current user.
        """
        payload = await self._client.get("/documents", params={"directoryId": directory_id})
        return [Document.model_validate(item) for item in _as_list(payload, "documents")]

    async def get_by_id(self, document_id: str) -> Document:
        payload = await self._client.get(f"/documents/{document_id}")
        return Document.model_validate(payload)

    async def check_existing(self, namespace: str) -> Optional[Document]:
        """Ask the server whether a document with ``namespace`` already exists.

        Returns:
            Optional[Document]: The existing document, or ``None``.
        """
        payload = await self._client.get(
            "/documents/check-existing", params={"namespace": namespace}
        )
        if not isinstance(payload, dict) or not payload.get("exists"):
            return None
        document = payload.get("document")
        return Document.model_validate(document) if isinstance(document, dict) else None

    async def create(
        self,
        *,
        filename: str,
        content: bytes,
        namespace: str,
        doc_type: str,
        directory_id: str,
    ) -> Document:
        """Upload a file as a new document.

        Args:
            filename: Original file name.
            content: Raw file bytes.
            namespace: Identity key for duplicate detection.
            doc_type: ``DRHP`` or ``RHP``.
            directory_id: Target directory.

        Returns:
            Document: The accepted document, usually still processing.

        Raises:
            ConflictError: If the server already holds the namespace.
        """
        payload = await self._client.post(
            "/documents/upload",
            data={"namespace": namespace, "type": doc_type, "directoryId": directory_id},
            files={"file": (filename, content, "application/pdf")},
        )
        return _accepted_document(
            payload,
            name=filename,
            namespace=namespace,
            type=doc_type,
            directoryId=directory_id,
        )

    async def upload_rhp(
        self,
        *,
        filename: str,
        content: bytes,
        namespace: str,
        drhp_id: str,
        directory_id: str,
    ) -> Document:
        """Upload an RHP that the server links to ``drhp_id`` on acceptance.

        Raises:
            ConflictError: If the server already holds the namespace.
        """
        payload = await self._client.post(
            "/documents/upload-rhp",
            data={"drhpId": drhp_id, "namespace": namespace, "directoryId": directory_id},
            files={"file": (filename, content, "application/pdf")},
        )
        return _accepted_document(
            payload,
            name=filename,
            namespace=namespace,
            type="RHP",
            directoryId=directory_id,
            relatedDrhpId=drhp_id,
        )

    async def update(self, document_id: str, patch: Mapping[str, Any]) -> Document:
        payload = await self._client.put(f"/documents/{document_id}", json=dict(patch))
        return Document.model_validate(payload)

    async def delete(self, document_id: str) -> None:
        await self._client.delete(f"/documents/{document_id}")

    async def link_for_compare(self, drhp_id: str, rhp_id: str) -> None:
        """Link a DRHP with an RHP. The DRHP id always comes first."""
        await self._client.post(
            "/documents/link-for-compare", json={"drhpId": drhp_id, "rhpId": rhp_id}
        )

    async def get_available_for_compare(self, document_id: str) -> List[Document]:
        payload = await self._client.get(f"/documents/{document_id}/available-for-compare")
        return [
            Document.model_validate(item)
            for item in _as_list(payload, "availableDocuments", "documents")
        ]


class DirectoryStore:
    """Directory endpoints."""

    def __init__(self, client: ApiClient) -> None:
        self._client = client

    async def list_children(
        self, parent_id: str = "root", *, page: int = 1, page_size: int = 500
    ) -> ChildListing:
        payload = await self._client.get(
            f"/directories/{parent_id}/children",
            params={"page": page, "pageSize": page_size},
        )
        return ChildListing.model_validate(payload or {})

    async def get_by_id(self, directory_id: str) -> Directory:
        payload = await self._client.get(f"/directories/{directory_id}")
        return Directory.model_validate(payload)

    async def create(self, name: str, parent_id: Optional[str] = None) -> Directory:
        payload = await self._client.post(
            "/directories", json={"name": name, "parentId": parent_id}
        )
        return Directory.model_validate(payload)

    async def update(self, directory_id: str, patch: Mapping[str, Any]) -> Directory:
        payload = await self._client.put(f"/directories/{directory_id}", json=dict(patch))
        return Directory.model_validate(payload)

    async def delete(self, directory_id: str) -> None:
        await self._client.delete(f"/directories/{directory_id}")

    async def check_duplicate(self, name: str) -> DirectoryDuplicateVerdict:
        payload = await self._client.get("/directories/check-duplicate", params={"name": name})
        return DirectoryDuplicateVerdict.model_validate(payload or {})

    async def search(self, query: str, limit: int = 10) -> List[DirectorySuggestion]:
        payload = await self._client.get(
            "/directories/search", params={"q": query, "limit": limit}
        )
        return [
            DirectorySuggestion.model_validate(item)
            for item in _as_list(payload, "results", "directories")
        ]


class SummaryStore:
    def __init__(self, client: ApiClient) -> None:
        self._client = client

    async def get_all(self) -> List[Summary]:
        payload = await self._client.get("/summaries")
        return [Summary.model_validate(item) for item in _as_list(payload, "summaries")]

    async def update(self, summary_id: str, patch: Mapping[str, Any]) -> Summary:
        payload = await self._client.put(f"/summaries/{summary_id}", json=dict(patch))
        return Summary.model_validate(payload)

    async def delete(self, summary_id: str) -> None:
        await self._client.delete(f"/summaries/{summary_id}")


class ReportStore:
    def __init__(self, client: ApiClient) -> None:
        self._client = client

    async def get_all(self) -> List[Report]:
        payload = await self._client.get("/reports")
        return [Report.model_validate(item) for item in _as_list(payload, "reports")]

    async def update(self, report_id: str, patch: Mapping[str, Any]) -> Report:
        payload = await self._client.put(f"/reports/{report_id}", json=dict(patch))
        return Report.model_validate(payload)

    async def delete(self, report_id: str) -> None:
        """Delete a report; one that is already gone counts as deleted."""
        try:
            await self._client.delete(f"/reports/{report_id}")
        except NotFoundError:
            LOGGER.debug("Report %s was already deleted.", report_id)


__all__ = [
    "ChildEntry",
    "ChildListing",
    "DocumentStore",
    "DirectoryStore",
    "SummaryStore",
    "ReportStore",
]
