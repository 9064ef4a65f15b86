"""Directory catalog tests."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from filingdesk.catalog import (
    DirectoryCatalog,
    compute_aggregate,
    filter_directories,
    is_linked_pair,
    most_recent_activity,
    reports_for_documents,
    sort_directories,
)
from filingdesk.config.models import CatalogOptions
from filingdesk.remote.errors import TransientRemoteError
from filingdesk.state.models import Directory, Report, Summary

from .conftest import (
    NOW,
    FakeDirectoryStore,
    FakeDocumentStore,
    FakeReportStore,
    FakeSummaryStore,
    make_document,
)


def _catalog(
    directories: FakeDirectoryStore,
    documents: FakeDocumentStore,
    summaries: FakeSummaryStore,
    reports: FakeReportStore,
    **options,
) -> DirectoryCatalog:
    return DirectoryCatalog(directories, documents, summaries, reports, CatalogOptions(**options))


def test_most_recent_activity_takes_latest_source() -> None:
    directory = Directory(
        id="d",
        name="D",
        created_at="2024-01-01T00:00:00Z",
        updated_at="2024-03-01T00:00:00Z",
        last_document_upload="2024-02-01T00:00:00Z",
    )
    assert most_recent_activity(directory) == datetime(2024, 3, 1, tzinfo=timezone.utc)
    assert most_recent_activity(Directory(id="e", created_at="garbage")) is None


def test_sort_last_modified_is_stable_and_puts_undated_last() -> None:
    older = Directory(id="a", name="Older", created_at="2024-01-01T00:00:00Z")
    newer = Directory(id="b", name="Newer", created_at="2024-02-01T00:00:00Z")
    undated_first = Directory(id="c", name="Undated one")
    undated_second = Directory(id="d", name="Undated two")
    twin = Directory(id="e", name="Twin", created_at="2024-01-01T00:00:00Z")

    ordered = sort_directories([undated_first, older, newer, undated_second, twin], "lastModified")

    assert [d.id for d in ordered] == ["b", "a", "e", "c", "d"]


def test_sort_alphabetical_ignores_case_and_accents() -> None:
    names = ["zeta", "Émile", "alpha", "Beta"]
    ordered = sort_directories([Directory(id=n, name=n) for n in names], "alphabetical")
    assert [d.name for d in ordered] == ["alpha", "Beta", "Émile", "zeta"]


def test_filter_by_bucket_keeps_shared_and_drops_undated() -> None:
    now = datetime(2024, 5, 20, 12, 0, tzinfo=timezone.utc)
    recent = Directory(id="r", name="Recent", created_at=now - timedelta(days=3))
    stale = Directory(id="s", name="Stale", created_at=now - timedelta(days=40))
    shared = Directory(id="x", name="Shared", created_at=now - timedelta(days=90), is_shared=True)
    undated = Directory(id="u", name="Undated")

    directories = [recent, stale, shared, undated]

    assert [d.id for d in filter_directories(directories, bucket="last7", now=now)] == ["r", "x"]
    assert [d.id for d in filter_directories(directories, now=now)] == ["r", "s", "x", "u"]
    assert [d.id for d in filter_directories(directories, search="STA", now=now)] == ["s"]


def test_aggregate_reflects_types_links_and_counts() -> None:
    drhp = make_document("d1", "DRHP", related_rhp_id="r1")
    rhp = make_document("r1", "RHP", related_drhp_id="d1")
    summaries = [Summary(id="s1", document_id="d1"), Summary(id="s2", document_id="other")]
    reports = [
        Report(id="rep-ns", drhp_namespace="d1.pdf", rhp_namespace="r1.pdf"),
        Report(id="rep-id", drhp_id="d1", rhp_id="r1"),
        Report(id="rep-other", drhp_id="d9", rhp_id="r9"),
    ]

    aggregate = compute_aggregate(
        Directory(id="dir-1", created_at=NOW), [drhp, rhp], summaries, reports
    )

    assert aggregate.has_drhp and aggregate.has_rhp
    assert aggregate.is_linked
    assert aggregate.summary_count == 1
    assert aggregate.report_count == 2
    assert aggregate.most_recent_activity == NOW


def test_one_sided_link_is_not_linked() -> None:
    drhp = make_document("d1", "DRHP", related_rhp_id="r1")
    rhp = make_document("r1", "RHP")

    assert not is_linked_pair(drhp, rhp)
    assert not compute_aggregate(None, [drhp, rhp]).is_linked
    assert reports_for_documents([rhp], [Report(id="x", drhp_id="d1", rhp_id="r1")]) == []


@pytest.mark.asyncio
async def test_refresh_paginates_and_builds_aggregates(
    directories: FakeDirectoryStore,
    documents: FakeDocumentStore,
    summaries: FakeSummaryStore,
    reports: FakeReportStore,
) -> None:
    for index in range(3, 6):
        directory_id = f"dir-{index}"
        directories.directories[directory_id] = Directory(id=directory_id, name=f"Extra {index}")
    documents.add(make_document("d1", "DRHP", directory_id="dir-1"))
    catalog = _catalog(directories, documents, summaries, reports, page_size=2)

    snapshot = await catalog.refresh()

    assert len(snapshot.directories) == 5
    assert [args[1] for args in directories.called("list_children")] == [1, 2, 3]
    aggregate = catalog.aggregate_for("dir-1")
    assert aggregate is not None and aggregate.has_drhp and not aggregate.has_rhp
    assert catalog.aggregate_for("dir-2") == compute_aggregate(directories.directories["dir-2"], [])


@pytest.mark.asyncio
async def test_refresh_degrades_when_reports_fail(
    directories: FakeDirectoryStore,
    documents: FakeDocumentStore,
    summaries: FakeSummaryStore,
    reports: FakeReportStore,
) -> None:
    reports.failures["get_all"] = TransientRemoteError(503, "down")
    catalog = _catalog(directories, documents, summaries, reports)

    snapshot = await catalog.refresh()

    assert {d.id for d in snapshot.directories} == {"dir-1", "dir-2"}
    assert all(a.report_count == 0 for a in snapshot.aggregates.values())


@pytest.mark.asyncio
async def test_document_listing_failure_keeps_previous_aggregates(
    directories: FakeDirectoryStore,
    documents: FakeDocumentStore,
    summaries: FakeSummaryStore,
    reports: FakeReportStore,
) -> None:
    documents.add(make_document("d1", "DRHP"))
    documents.add(make_document("r1", "RHP"))
    catalog = _catalog(directories, documents, summaries, reports)
    await catalog.refresh()

    documents.failures["list"] = TransientRemoteError(503, "down")
    with pytest.raises(TransientRemoteError):
        await catalog.refresh()

    aggregate = catalog.aggregate_for("dir-1")
    assert aggregate is not None and aggregate.has_drhp and aggregate.has_rhp


@pytest.mark.asyncio
async def test_directory_listing_failure_propagates(
    directories: FakeDirectoryStore,
    documents: FakeDocumentStore,
    summaries: FakeSummaryStore,
    reports: FakeReportStore,
) -> None:
    directories.failures["list_children"] = TransientRemoteError(503, "down")
    catalog = _catalog(directories, documents, summaries, reports)

    with pytest.raises(TransientRemoteError):
        await catalog.refresh()


@pytest.mark.asyncio
async def test_stale_refresh_is_discarded(
    directories: FakeDirectoryStore,
    documents: FakeDocumentStore,
    summaries: FakeSummaryStore,
    reports: FakeReportStore,
) -> None:
    catalog = _catalog(directories, documents, summaries, reports)
    release = asyncio.Event()
    original = directories.list_children

    async def _slow_first(*args, **kwargs):
        if not release.is_set():
            release.set()
            listing = await original(*args, **kwargs)
            await asyncio.sleep(0.01)
            return listing
        return await original(*args, **kwargs)

    directories.list_children = _slow_first  # type: ignore[method-assign]

    first = asyncio.ensure_future(catalog.refresh())
    await release.wait()
    directories.directories["dir-3"] = Directory(id="dir-3", name="Late")
    second = await catalog.refresh()
    await first

    assert second.generation == 2
    assert catalog.snapshot.generation == 2
    assert catalog.snapshot.directory("dir-3") is not None


@pytest.mark.asyncio
async def test_refresh_directory_updates_and_drops(
    directories: FakeDirectoryStore,
    documents: FakeDocumentStore,
    summaries: FakeSummaryStore,
    reports: FakeReportStore,
) -> None:
    catalog = _catalog(directories, documents, summaries, reports)
    await catalog.refresh()

    documents.add(make_document("r1", "RHP", directory_id="dir-2"))
    aggregate = await catalog.refresh_directory("dir-2")
    assert aggregate is not None and aggregate.has_rhp
    assert catalog.aggregate_for("dir-2") == aggregate

    del directories.directories["dir-2"]
    assert await catalog.refresh_directory("dir-2") is None
    assert catalog.snapshot.directory("dir-2") is None
    assert catalog.aggregate_for("dir-2") is None


@pytest.mark.asyncio
async def test_provisional_activity_then_reconcile(
    directories: FakeDirectoryStore,
    documents: FakeDocumentStore,
    summaries: FakeSummaryStore,
    reports: FakeReportStore,
) -> None:
    catalog = _catalog(directories, documents, summaries, reports)
    await catalog.refresh()
    bumped_at = NOW + timedelta(hours=1)

    catalog.apply_provisional_activity(["dir-2"], at=bumped_at)

    assert catalog.view(sort="lastModified")[0].id == "dir-2"
    assert catalog.snapshot.directory("dir-2").last_document_upload == bumped_at
    assert catalog.aggregate_for("dir-2").most_recent_activity == bumped_at

    await catalog.reconcile()

    assert catalog.snapshot.directory("dir-2").last_document_upload is None


@pytest.mark.asyncio
async def test_view_uses_default_sort(
    directories: FakeDirectoryStore,
    documents: FakeDocumentStore,
    summaries: FakeSummaryStore,
    reports: FakeReportStore,
) -> None:
    directories.directories["dir-1"] = Directory(id="dir-1", name="Zulu", created_at=NOW)
    directories.directories["dir-2"] = Directory(
        id="dir-2", name="Alpha", created_at=NOW - timedelta(days=1)
    )
    catalog = _catalog(directories, documents, summaries, reports, default_sort="alphabetical")
    await catalog.refresh()

    assert [d.name for d in catalog.view()] == ["Alpha", "Zulu"]
    assert [d.name for d in catalog.view(sort="lastModified")] == ["Zulu", "Alpha"]
