"""Shared fixtures: in-memory stand-ins for the remote stores."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional

import pytest

from filingdesk.config import FilingDeskConfig
from filingdesk.events import EventBus
from filingdesk.remote.errors import NotFoundError
from filingdesk.remote.stores import ChildEntry, ChildListing
from filingdesk.state.models import (
    Directory,
    DirectoryDuplicateVerdict,
    DirectorySuggestion,
    Document,
    Report,
    Summary,
)

NOW = datetime(2024, 5, 20, 12, 0, tzinfo=timezone.utc)


class _Recording:
    """Record calls and raise configured failures per method name."""

    def __init__(self) -> None:
        self.calls: List[tuple[str, tuple[Any, ...]]] = []
        self.failures: Dict[str, Exception] = {}

    def _enter(self, name: str, *args: Any) -> None:
        self.calls.append((name, args))
        failure = self.failures.get(name)
        if failure is not None:
            raise failure

    def called(self, name: str) -> List[tuple[Any, ...]]:
        return [args for call, args in self.calls if call == name]


class FakeDocumentStore(_Recording):
    def __init__(self, documents: Iterable[Document] = ()) -> None:
        super().__init__()
        self.documents: Dict[str, Document] = {document.id: document for document in documents}
        self.candidates: List[Document] = []
        self.next_statuses: List[str] = []
        self._counter = 0

    def add(self, document: Document) -> Document:
        self.documents[document.id] = document
        return document

    async def list(self, directory_id: Optional[str] = None) -> List[Document]:
        self._enter("list", directory_id)
        return [
            document
            for document in self.documents.values()
            if directory_id is None or document.directory_id == directory_id
        ]

    async def get_by_id(self, document_id: str) -> Document:
        self._enter("get_by_id", document_id)
        document = self.documents.get(document_id)
        if document is None:
            raise NotFoundError(404, "Document not found")
        if document.status == "processing" and self.next_statuses:
            document = document.model_copy(update={"status": self.next_statuses.pop(0)})
            self.documents[document_id] = document
        return document

    async def check_existing(self, namespace: str) -> Optional[Document]:
        self._enter("check_existing", namespace)
        for document in self.documents.values():
            if document.namespace == namespace:
                return document
        return None

    async def create(
        self,
        *,
        filename: str,
        content: bytes,
        namespace: str,
        doc_type: str,
        directory_id: str,
    ) -> Document:
        self._enter("create", filename, namespace, doc_type, directory_id)
        self._counter += 1
        return self.add(
            Document(
                id=f"new-{self._counter}",
                name=filename,
                namespace=namespace,
                type=doc_type,
                directory_id=directory_id,
                status="processing",
                uploaded_at=NOW,
            )
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
        self._enter("upload_rhp", filename, namespace, drhp_id, directory_id)
        self._counter += 1
        rhp = self.add(
            Document(
                id=f"new-{self._counter}",
                name=filename,
                namespace=namespace,
                type="RHP",
                directory_id=directory_id,
                status="processing",
                uploaded_at=NOW,
                related_drhp_id=drhp_id,
            )
        )
        drhp = self.documents.get(drhp_id)
        if drhp is not None:
            self.add(drhp.model_copy(update={"related_rhp_id": rhp.id}))
        return rhp

    async def update(self, document_id: str, patch: Mapping[str, Any]) -> Document:
        self._enter("update", document_id, dict(patch))
        if document_id not in self.documents:
            raise NotFoundError(404, "Document not found")
        current = self.documents[document_id].model_dump(by_alias=True)
        return self.add(Document.model_validate({**current, **patch}))

    async def delete(self, document_id: str) -> None:
        self._enter("delete", document_id)
        if self.documents.pop(document_id, None) is None:
            raise NotFoundError(404, "Document not found")

    async def link_for_compare(self, drhp_id: str, rhp_id: str) -> None:
        self._enter("link_for_compare", drhp_id, rhp_id)
        drhp = self.documents[drhp_id]
        rhp = self.documents[rhp_id]
        self.add(drhp.model_copy(update={"related_rhp_id": rhp_id}))
        self.add(rhp.model_copy(update={"related_drhp_id": drhp_id}))

    async def get_available_for_compare(self, document_id: str) -> List[Document]:
        self._enter("get_available_for_compare", document_id)
        return list(self.candidates)


class FakeDirectoryStore(_Recording):
    def __init__(self, directories: Iterable[Directory] = ()) -> None:
        super().__init__()
        self.directories: Dict[str, Directory] = {
            directory.id: directory for directory in directories
        }
        self.similar: List[DirectorySuggestion] = []
        self._counter = 0

    async def list_children(
        self, parent_id: str = "root", *, page: int = 1, page_size: int = 500
    ) -> ChildListing:
        self._enter("list_children", parent_id, page, page_size)
        roots = [d for d in self.directories.values() if d.parent_id is None]
        chunk = roots[(page - 1) * page_size : page * page_size]
        return ChildListing(
            items=[
                ChildEntry(kind="directory", item=d.model_dump(mode="json", by_alias=True))
                for d in chunk
            ],
            total=len(roots),
        )

    async def get_by_id(self, directory_id: str) -> Directory:
        self._enter("get_by_id", directory_id)
        directory = self.directories.get(directory_id)
        if directory is None:
            raise NotFoundError(404, "Directory not found")
        return directory

    async def create(self, name: str, parent_id: Optional[str] = None) -> Directory:
        self._enter("create", name, parent_id)
        self._counter += 1
        directory = Directory(id=f"dir-new-{self._counter}", name=name, created_at=NOW)
        self.directories[directory.id] = directory
        return directory

    async def update(self, directory_id: str, patch: Mapping[str, Any]) -> Directory:
        self._enter("update", directory_id, dict(patch))
        if directory_id not in self.directories:
            raise NotFoundError(404, "Directory not found")
        current = self.directories[directory_id].model_dump(by_alias=True)
        updated = Directory.model_validate({**current, **patch})
        self.directories[directory_id] = updated
        return updated

    async def delete(self, directory_id: str) -> None:
        self._enter("delete", directory_id)
        if self.directories.pop(directory_id, None) is None:
            raise NotFoundError(404, "Directory not found")

    async def check_duplicate(self, name: str) -> DirectoryDuplicateVerdict:
        self._enter("check_duplicate", name)
        for directory in self.directories.values():
            if directory.name.casefold() == name.casefold():
                return DirectoryDuplicateVerdict(is_duplicate=True, exact_match=directory)
        return DirectoryDuplicateVerdict(similar_directories=list(self.similar))

    async def search(self, query: str, limit: int = 10) -> List[DirectorySuggestion]:
        self._enter("search", query, limit)
        return [
            DirectorySuggestion(id=d.id, name=d.name)
            for d in self.directories.values()
            if query.casefold() in d.name.casefold()
        ][:limit]


class _FakeAnnotationStore(_Recording):
    model: Any = None

    def __init__(self, items: Iterable[Any] = ()) -> None:
        super().__init__()
        self.items: Dict[str, Any] = {item.id: item for item in items}

    async def get_all(self) -> List[Any]:
        self._enter("get_all")
        return list(self.items.values())

    async def update(self, item_id: str, patch: Mapping[str, Any]) -> Any:
        self._enter("update", item_id, dict(patch))
        if item_id not in self.items:
            raise NotFoundError(404, "Not found")
        current = self.items[item_id].model_dump(by_alias=True)
        self.items[item_id] = self.model.model_validate({**current, **patch})
        return self.items[item_id]

    async def delete(self, item_id: str) -> None:
        self._enter("delete", item_id)
        self.items.pop(item_id, None)


class FakeSummaryStore(_FakeAnnotationStore):
    model = Summary


class FakeReportStore(_FakeAnnotationStore):
    model = Report


class FakeSleep:
    """Sleep replacement that returns immediately and records each delay."""

    def __init__(self) -> None:
        self.delays: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


def make_document(
    document_id: str,
    doc_type: Optional[str] = "DRHP",
    *,
    directory_id: Optional[str] = "dir-1",
    name: Optional[str] = None,
    **extra: Any,
) -> Document:
    filename = name or f"{document_id}.pdf"
    fields = {"namespace": filename, "status": "completed", **extra}
    return Document(
        id=document_id, name=filename, type=doc_type, directory_id=directory_id, **fields
    )


@pytest.fixture
def config() -> FilingDeskConfig:
    return FilingDeskConfig.model_validate(
        {"polling": {"interval_seconds": 5, "max_attempts": 120}}
    )


@pytest.fixture
def bus() -> EventBus:
    return EventBus()


@pytest.fixture
def fake_sleep() -> FakeSleep:
    return FakeSleep()


@pytest.fixture
def directories() -> FakeDirectoryStore:
    return FakeDirectoryStore(
        [
            Directory(id="dir-1", name="Acme Industries", created_at=NOW),
            Directory(id="dir-2", name="Blue Harbor", created_at=NOW),
        ]
    )


@pytest.fixture
def documents() -> FakeDocumentStore:
    return FakeDocumentStore()


@pytest.fixture
def summaries() -> FakeSummaryStore:
    return FakeSummaryStore()


@pytest.fixture
def reports() -> FakeReportStore:
    return FakeReportStore()
