"""Remote collaborators for FilingDesk."""

from __future__ import annotations

from dataclasses import dataclass

import httpx

from filingdesk.config.models import ApiSettings

from .client import ApiClient, error_for_response
from .errors import (
    ConflictError,
    DuplicateCheckUnavailable,
    FilingDeskError,
    NotFoundError,
    RemoteError,
    TransientRemoteError,
    UnsupportedFileError,
    UploadInProgressError,
)
from .stores import ChildEntry, ChildListing, DirectoryStore, DocumentStore, ReportStore, SummaryStore


@dataclass
class RemoteStores:
    """Bundle of stores sharing one :class:`ApiClient`."""

    client: ApiClient
    documents: DocumentStore
    directories: DirectoryStore
    summaries: SummaryStore
    reports: ReportStore

    async def aclose(self) -> None:
        await self.client.aclose()


def connect(
    settings: ApiSettings, *, transport: httpx.AsyncBaseTransport | None = None
) -> RemoteStores:
    """Create every store on top of a single HTTP client.

    Args:
        settings: API section of the configuration.
        transport: Optional transport override.

    Returns:
        RemoteStores: Ready-to-use store bundle; close it with ``aclose``.
    """
    client = ApiClient(settings, transport=transport)
    return RemoteStores(
        client=client,
        documents=DocumentStore(client),
        directories=DirectoryStore(client),
        summaries=SummaryStore(client),
        reports=ReportStore(client),
    )


__all__ = [
    "ApiClient",
    "RemoteStores",
    "connect",
    "error_for_response",
    "ChildEntry",
    "ChildListing",
    "DocumentStore",
    "DirectoryStore",
    "SummaryStore",
    "ReportStore",
    "FilingDeskError",
    "RemoteError",
    "TransientRemoteError",
    "NotFoundError",
    "ConflictError",
    "UploadInProgressError",
    "DuplicateCheckUnavailable",
    "UnsupportedFileError",
]
