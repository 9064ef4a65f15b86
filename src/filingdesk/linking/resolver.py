"""Find and link complementary DRHP/RHP documents for comparison."""

from __future__ import annotations

import logging
from typing import Iterable, List, Optional, Sequence, Union

from filingdesk.catalog.aggregates import is_linked_pair
from filingdesk.catalog.service import DirectoryCatalog
from filingdesk.events import EventBus, NavigateToComparison
from filingdesk.registry.service import DocumentRegistry
from filingdesk.remote.errors import RemoteError
from filingdesk.remote.stores import DocumentStore
from filingdesk.state.models import Document, opposite_type

from .models import DirectoryCompareOutcome, LinkResult, ManualSelection

LOGGER = logging.getLogger(__name__)

FALLBACK_DIRECTORY_NAME = "this directory"


def _first_unlinked(documents: Iterable[Document]) -> Optional[Document]:
    for document in documents:
        if not document.has_link:
            return document
    return None


def _half_linked(drhp: Document, rhp: Document) -> bool:
    """Return whether one side points at the other and neither points elsewhere."""
    if is_linked_pair(drhp, rhp):
        return False
    points_at_rhp = drhp.related_rhp_id == rhp.id
    points_at_drhp = rhp.related_drhp_id == drhp.id
    if not (points_at_rhp or points_at_drhp):
        return False
    return drhp.related_rhp_id in (None, rhp.id) and rhp.related_drhp_id in (None, drhp.id)


class AutoLinkResolver:
    """Link documents with their opposite-type partner, or ask the user to pick one."""

    def __init__(
        self,
        documents: DocumentStore,
        catalog: DirectoryCatalog,
        registry: DocumentRegistry,
        bus: EventBus,
    ) -> None:
        self._documents = documents
        self._catalog = catalog
        self._registry = registry
        self._bus = bus

    async def find_and_link(self, document: Document) -> Union[LinkResult, ManualSelection]:
        """Link ``document`` with a partner in its own directory when possible.

        Steps, stopping at the first success: reuse an existing link; search
        the document's directory for an unlinked document of the opposite
        type and link it; otherwise offer manual selection.

        Args:
            document: Document the user wants to compare.

        Returns:
            Union[LinkResult, ManualSelection]: The linked pair or a
            selection prompt.
        """
        if document.related_rhp_id or document.related_drhp_id:
            if document.type == "DRHP":
                result = LinkResult(drhp_id=document.id, rhp_id=document.related_rhp_id)
            else:
                result = LinkResult(drhp_id=document.related_drhp_id, rhp_id=document.id)
            if result.drhp_id:
                self._bus.publish(NavigateToComparison(drhp_id=result.drhp_id))
            return result

        wanted = opposite_type(document.type)
        if not document.directory_id or wanted is None:
            return await self._manual(document)

        siblings = await self._directory_documents(document.directory_id)
        partner = next(
            (
                candidate
                for candidate in siblings
                if candidate.directory_id == document.directory_id
                and candidate.type == wanted
                and candidate.id != document.id
                and not candidate.has_link
            ),
            None,
        )
        if partner is None:
            name = self._directory_name(document.directory_id)
            self._bus.notify(
                "info", f'No {wanted} document found in "{name}". Please select from other directories.'
            )
            return await self._manual(document)

        drhp, rhp = (document, partner) if document.type == "DRHP" else (partner, document)
        try:
            return await self._link(drhp, rhp)
        except RemoteError as exc:
            LOGGER.warning("Linking %s with %s failed: %s", drhp.id, rhp.id, exc)
            self._bus.notify("error", "Failed to link documents. Opening selection...")
            return await self._manual(document, link_failed=True)

    async def select_for_compare(self, document: Document, target: Document) -> LinkResult:
        """Link a manually chosen pair; the link call decides success.

        Raises:
            ValueError: If both documents have the same type.
            RemoteError: If the server refuses the link.
        """
        if opposite_type(document.type) != target.type:
            raise ValueError("A comparison needs one DRHP and one RHP document.")
        drhp, rhp = (document, target) if document.type == "DRHP" else (target, document)
        return await self._link(drhp, rhp)

    async def directory_compare(self, directory_id: str) -> DirectoryCompareOutcome:
        """Compare the DRHP and RHP documents of a whole directory.

        Raises:
            RemoteError: If the directory's documents cannot be listed.
        """
        documents = [
            document
            for document in await self._documents.list(directory_id)
            if document.directory_id in (None, directory_id)
        ]
        drhps = [document for document in documents if document.type == "DRHP"]
        rhps = [document for document in documents if document.type == "RHP"]

        if not drhps and not rhps:
            self._bus.notify(
                "info", "This directory has no documents. Please upload DRHP or RHP first."
            )
            return DirectoryCompareOutcome(kind="empty")
        if not rhps:
            self._bus.notify("info", "Please upload RHP document to compare with DRHP")
            return DirectoryCompareOutcome(
                kind="prompt_upload", missing_type="RHP", drhp_id=drhps[0].id
            )
        if not drhps:
            self._bus.notify("info", "Please upload DRHP document to compare with RHP")
            return DirectoryCompareOutcome(kind="prompt_upload", missing_type="DRHP")

        for drhp in drhps:
            for rhp in rhps:
                if is_linked_pair(drhp, rhp):
                    self._bus.publish(NavigateToComparison(drhp_id=drhp.id))
                    return DirectoryCompareOutcome(kind="navigate", drhp_id=drhp.id, rhp_id=rhp.id)

        pair = next(
            ((drhp, rhp) for drhp in drhps for rhp in rhps if _half_linked(drhp, rhp)), None
        )
        if pair is None:
            free_drhp, free_rhp = _first_unlinked(drhps), _first_unlinked(rhps)
            if free_drhp is None or free_rhp is None:
                name = self._directory_name(directory_id)
                self._bus.notify(
                    "info",
                    f'Documents in "{name}" are already linked elsewhere. Please select manually.',
                )
                manual = await self._manual(free_drhp or drhps[0])
                return DirectoryCompareOutcome(kind="manual", manual=manual)
            pair = (free_drhp, free_rhp)

        drhp, rhp = pair
        try:
            result = await self._link(drhp, rhp)
        except RemoteError as exc:
            LOGGER.warning("Linking %s with %s failed: %s", drhp.id, rhp.id, exc)
            self._bus.notify("error", "Failed to link documents for comparison")
            manual = await self._manual(drhp, link_failed=True)
            return DirectoryCompareOutcome(kind="manual", manual=manual)
        return DirectoryCompareOutcome(kind="linked", drhp_id=result.drhp_id, rhp_id=result.rhp_id)

    # Internal helpers -------------------------------------------------

    async def _directory_documents(self, directory_id: str) -> Sequence[Document]:
        contents = self._registry.contents
        if self._registry.open_directory_id == directory_id and contents is not None:
            return contents.documents
        try:
            return await self._documents.list(directory_id)
        except RemoteError as exc:
            LOGGER.warning("Could not list documents of %s: %s", directory_id, exc)
            return []

    async def _link(self, drhp: Document, rhp: Document) -> LinkResult:
        await self._documents.link_for_compare(drhp.id, rhp.id)
        LOGGER.info("Linked DRHP %s with RHP %s.", drhp.id, rhp.id)

        directory_ids: List[str] = []
        for directory_id in (drhp.directory_id, rhp.directory_id):
            if directory_id and directory_id not in directory_ids:
                directory_ids.append(directory_id)
        for directory_id in directory_ids:
            try:
                await self._catalog.refresh_directory(directory_id)
                if self._registry.open_directory_id == directory_id:
                    await self._registry.refresh(directory_id)
            except RemoteError as exc:
                LOGGER.warning("Refresh after linking failed for %s: %s", directory_id, exc)

        self._bus.notify("success", "Documents linked successfully! Opening comparison...")
        self._bus.publish(NavigateToComparison(drhp_id=drhp.id))
        return LinkResult(drhp_id=drhp.id, rhp_id=rhp.id, created=True)

    async def _manual(self, document: Document, *, link_failed: bool = False) -> ManualSelection:
        try:
            candidates = tuple(await self._documents.get_available_for_compare(document.id))
        except RemoteError as exc:
            LOGGER.warning("Could not load comparison candidates for %s: %s", document.id, exc)
            self._bus.notify("error", "Failed to load documents for comparison")
            candidates = ()
        return ManualSelection(
            document=document,
            directory_name=self._directory_name(document.directory_id),
            candidates=candidates,
            link_failed=link_failed,
        )

    def _directory_name(self, directory_id: Optional[str]) -> str:
        if not directory_id:
            return FALLBACK_DIRECTORY_NAME
        return self._catalog.directory_name(directory_id) or FALLBACK_DIRECTORY_NAME


__all__ = ["AutoLinkResolver", "FALLBACK_DIRECTORY_NAME"]
