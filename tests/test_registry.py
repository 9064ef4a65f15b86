"""Document registry tests."""

from __future__ import annotations

import asyncio
from datetime import date, timedelta
from typing import List, Optional

import pytest

from filingdesk.events import DirectoryActivity, EventBus
from filingdesk.registry import DocumentRegistry, filter_documents, unified_items
from filingdesk.remote.errors import TransientRemoteError
from filingdesk.state.models import Document, Report, Summary

from .conftest import NOW, FakeDocumentStore, FakeReportStore, FakeSummaryStore, make_document


def _registry(
    documents: FakeDocumentStore,
    summaries: FakeSummaryStore,
    reports: FakeReportStore,
    bus: Optional[EventBus] = None,
) -> DocumentRegistry:
    return DocumentRegistry(documents, summaries, reports, bus=bus, clock=lambda: NOW)


@pytest.mark.asyncio
async def test_open_associates_summaries_and_reports(
    documents: FakeDocumentStore, summaries: FakeSummaryStore, reports: FakeReportStore
) -> None:
    documents.add(make_document("d1", "DRHP", related_rhp_id="r1"))
    documents.add(make_document("r1", "RHP", related_drhp_id="d1"))
    documents.add(make_document("x1", "DRHP", directory_id="dir-2"))
    summaries.items.update(
        {
            "s-old": Summary(id="s-old", document_id="d1", created_at=NOW - timedelta(days=2)),
            "s-new": Summary(id="s-new", document_id="r1", created_at=NOW - timedelta(days=1)),
            "s-x": Summary(id="s-x", document_id="x1", created_at=NOW),
        }
    )
    reports.items["rep"] = Report(id="rep", drhp_id="d1", rhp_id="r1", created_at=NOW)
    registry = _registry(documents, summaries, reports)

    contents = await registry.open("dir-1")

    assert contents is not None
    assert registry.open_directory_id == "dir-1"
    assert registry.contents is contents
    assert [d.id for d in contents.documents] == ["d1", "r1"]
    assert [s.id for s in contents.summaries] == ["s-new", "s-old"]
    assert [r.id for r in contents.reports] == ["rep"]
    assert contents.has_drhp and contents.has_rhp


@pytest.mark.asyncio
async def test_open_supersedes_pending_open(
    documents: FakeDocumentStore, summaries: FakeSummaryStore, reports: FakeReportStore
) -> None:
    documents.add(make_document("d1", "DRHP", directory_id="dir-1"))
    documents.add(make_document("d2", "RHP", directory_id="dir-2"))
    gate = asyncio.Event()
    original = documents.list

    async def _gated(directory_id: Optional[str] = None) -> List[Document]:
        if directory_id == "dir-1":
            await gate.wait()
        return await original(directory_id)

    documents.list = _gated  # type: ignore[method-assign]
    registry = _registry(documents, summaries, reports)

    first = asyncio.ensure_future(registry.open("dir-1"))
    await asyncio.sleep(0)
    second = await registry.open("dir-2")

    assert await first is None
    assert second is not None and [d.id for d in second.documents] == ["d2"]
    assert registry.open_directory_id == "dir-2"
    assert registry.contents is second


@pytest.mark.asyncio
async def test_refresh_of_other_directory_does_not_replace_contents(
    documents: FakeDocumentStore, summaries: FakeSummaryStore, reports: FakeReportStore
) -> None:
    documents.add(make_document("d1", "DRHP", directory_id="dir-1"))
    documents.add(make_document("d2", "RHP", directory_id="dir-2"))
    registry = _registry(documents, summaries, reports)
    opened = await registry.open("dir-1")

    other = await registry.refresh("dir-2")

    assert other is not None and [d.id for d in other.documents] == ["d2"]
    assert registry.contents is opened


@pytest.mark.asyncio
async def test_refresh_defaults_to_open_directory_and_close_forgets_it(
    documents: FakeDocumentStore, summaries: FakeSummaryStore, reports: FakeReportStore
) -> None:
    registry = _registry(documents, summaries, reports)
    assert await registry.refresh() is None

    await registry.open("dir-1")
    documents.add(make_document("d1", "DRHP"))
    refreshed = await registry.refresh()

    assert refreshed is not None and registry.contents is refreshed
    assert [d.id for d in refreshed.documents] == ["d1"]

    registry.close()
    assert registry.open_directory_id is None
    assert registry.contents is None


@pytest.mark.asyncio
async def test_document_failure_propagates_but_annotations_degrade(
    documents: FakeDocumentStore, summaries: FakeSummaryStore, reports: FakeReportStore
) -> None:
    documents.add(make_document("d1", "DRHP"))
    summaries.failures["get_all"] = TransientRemoteError(503, "down")
    registry = _registry(documents, summaries, reports)

    contents = await registry.open("dir-1")
    assert contents is not None and contents.summaries == ()

    documents.failures["list"] = TransientRemoteError(503, "down")
    with pytest.raises(TransientRemoteError):
        await registry.refresh()


@pytest.mark.asyncio
async def test_fresh_annotation_publishes_directory_activity(
    documents: FakeDocumentStore,
    summaries: FakeSummaryStore,
    reports: FakeReportStore,
    bus: EventBus,
) -> None:
    seen: List[DirectoryActivity] = []
    bus.subscribe(DirectoryActivity, seen.append)
    documents.add(make_document("d1", "DRHP"))
    summaries.items["s1"] = Summary(id="s1", document_id="d1", created_at=NOW - timedelta(days=1))
    registry = _registry(documents, summaries, reports, bus)

    await registry.open("dir-1")
    assert seen == []

    summaries.items["s2"] = Summary(
        id="s2", document_id="d1", created_at=NOW - timedelta(seconds=10)
    )
    await registry.refresh()
    assert seen == [DirectoryActivity(directory_id="dir-1")]


def test_unified_items_are_newest_first_with_stable_ties() -> None:
    document = make_document("d1", "DRHP", uploaded_at=NOW - timedelta(days=1))
    summary = Summary(id="s1", title="Summary", created_at=NOW)
    report = Report(id="rep", title="Report", created_at=NOW - timedelta(days=1))
    undated = make_document("d2", "RHP")

    items = unified_items([document, undated], [summary], [report])

    assert [(item.item_type, item.id) for item in items] == [
        ("summary", "s1"),
        ("document", "d1"),
        ("report", "rep"),
        ("document", "d2"),
    ]
    assert items[0].title == "Summary"
    assert items[1].title == "d1.pdf"


def test_filter_documents_by_name_range_and_bucket() -> None:
    recent = make_document("a", name="Acme DRHP.pdf", uploaded_at=NOW - timedelta(days=2))
    older = make_document("b", name="Acme RHP.pdf", uploaded_at=NOW - timedelta(days=20))
    undated = make_document("c", name="Undated.pdf")
    docs = [recent, older, undated]

    assert [d.id for d in filter_documents(docs, search="acme")] == ["a", "b"]
    assert [d.id for d in filter_documents(docs, bucket="last7", now=NOW)] == ["a", "c"]
    assert [
        d.id for d in filter_documents(docs, start=date(2024, 4, 25), end=date(2024, 5, 1), now=NOW)
    ] == ["b", "c"]
