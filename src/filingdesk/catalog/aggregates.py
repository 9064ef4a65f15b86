"""Derive per-directory aggregates from raw document, summary and report lists."""

from __future__ import annotations

from collections import defaultdict
from typing import Dict, Iterable, List, Sequence, Tuple

from filingdesk.state.models import (
    Directory,
    DirectoryAggregate,
    Document,
    Report,
    Summary,
)

from .views import most_recent_activity


def is_linked_pair(drhp: Document, rhp: Document) -> bool:
    """Return whether ``drhp`` and ``rhp`` point at each other."""
    return drhp.related_rhp_id == rhp.id and rhp.related_drhp_id == drhp.id


def linked_pairs(documents: Sequence[Document]) -> List[Tuple[Document, Document]]:
    """Return DRHP/RHP pairs whose DRHP references an RHP in the same list.

    Args:
        documents: Documents of a single directory.

    Returns:
        List[Tuple[Document, Document]]: ``(drhp, rhp)`` pairs in DRHP order.
    """
    by_id = {document.id: document for document in documents}
    pairs: List[Tuple[Document, Document]] = []
    for document in documents:
        if document.type != "DRHP" or not document.related_rhp_id:
            continue
        rhp = by_id.get(document.related_rhp_id)
        if rhp is not None and rhp.type == "RHP":
            pairs.append((document, rhp))
    return pairs


def reports_for_documents(
    documents: Sequence[Document], reports: Iterable[Report]
) -> List[Report]:
    """Select the reports generated for linked pairs among ``documents``.

    Reports are matched either by namespace pair or by id pair; older reports
    only carry namespaces.
    """
    pairs = linked_pairs(documents)
    if not pairs:
        return []
    matched: List[Report] = []
    for report in reports:
        for drhp, rhp in pairs:
            by_namespace = (
                report.drhp_namespace is not None
                and report.drhp_namespace == drhp.namespace
                and report.rhp_namespace == rhp.namespace
            )
            by_id = (
                report.drhp_id is not None
                and report.drhp_id == drhp.id
                and report.rhp_id == rhp.id
            )
            if by_namespace or by_id:
                matched.append(report)
                break
    return matched


def summaries_for_documents(
    documents: Sequence[Document], summaries: Iterable[Summary]
) -> List[Summary]:
    document_ids = {document.id for document in documents}
    return [summary for summary in summaries if summary.document_id in document_ids]


def compute_aggregate(
    directory: Directory | None,
    documents: Sequence[Document],
    summaries: Iterable[Summary] = (),
    reports: Iterable[Report] = (),
) -> DirectoryAggregate:
    """Rebuild one directory's aggregate from its source lists.

    Args:
        directory: Directory record, used for the activity timestamp.
        documents: Documents currently in the directory.
        summaries: Global summary list.
        reports: Global report list.

    Returns:
        DirectoryAggregate: Freshly computed aggregate.
    """
    has_drhp = any(document.type == "DRHP" for document in documents)
    has_rhp = any(document.type == "RHP" for document in documents)
    return DirectoryAggregate(
        has_drhp=has_drhp,
        has_rhp=has_rhp,
        is_linked=any(is_linked_pair(drhp, rhp) for drhp, rhp in linked_pairs(documents)),
        report_count=len(reports_for_documents(documents, reports)),
        summary_count=len(summaries_for_documents(documents, summaries)),
        most_recent_activity=most_recent_activity(directory) if directory else None,
    )


def group_by_directory(documents: Iterable[Document]) -> Dict[str, List[Document]]:
    grouped: Dict[str, List[Document]] = defaultdict(list)
    for document in documents:
        if document.directory_id:
            grouped[document.directory_id].append(document)
    return grouped


def compute_aggregates(
    directories: Sequence[Directory],
    documents: Iterable[Document],
    summaries: Sequence[Summary] = (),
    reports: Sequence[Report] = (),
) -> Dict[str, DirectoryAggregate]:
    """Compute aggregates for every directory from the global document list."""
    grouped = group_by_directory(documents)
    return {
        directory.id: compute_aggregate(
            directory, grouped.get(directory.id, []), summaries, reports
        )
        for directory in directories
    }


__all__ = [
    "is_linked_pair",
    "linked_pairs",
    "reports_for_documents",
    "summaries_for_documents",
    "compute_aggregate",
    "compute_aggregates",
    "group_by_directory",
]
