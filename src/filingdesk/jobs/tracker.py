"""Drive an upload from duplicate checks through server-side processing."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Literal, Mapping, Optional, Sequence, Tuple

from filingdesk.catalog.service import DirectoryCatalog
from filingdesk.config.models import PollingOptions
from filingdesk.events import (
    DuplicateDetected,
    EventBus,
    ReadyToCompare,
    UploadCompleted,
    UploadFailed,
    UploadProgress,
    UploadTimedOut,
)
from filingdesk.guard import DuplicateGuard, classify_upload_type, namespace_for
from filingdesk.registry.service import DocumentRegistry
from filingdesk.remote.errors import (
    ConflictError,
    DuplicateCheckUnavailable,
    RemoteError,
    UnsupportedFileError,
    UploadInProgressError,
)
from filingdesk.remote.stores import DocumentStore
from filingdesk.state.models import (
    FAILURE_STATUSES,
    SUCCESS_STATUSES,
    Document,
    DocumentType,
)

from .models import JobOutcome, UploadFile, UploadJob

LOGGER = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


class UploadJobTracker:
    """Run one upload at a time through checking, uploading and processing.

    Completion is detected by polling the document status at a fixed interval
    for a bounded number of attempts. The whole processing phase also has a
    deadline of ``interval_seconds * max_attempts``; a status request still
    pending at the deadline is abandoned. A push notification only wakes the
    loop early. Terminal side effects always target the directory captured when
    the job started.
    """

    def __init__(
        self,
        documents: DocumentStore,
        guard: DuplicateGuard,
        catalog: DirectoryCatalog,
        registry: DocumentRegistry,
        bus: EventBus,
        *,
        polling: PollingOptions | None = None,
        default_type: DocumentType = "DRHP",
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._documents = documents
        self._guard = guard
        self._catalog = catalog
        self._registry = registry
        self._bus = bus
        self._polling = polling or PollingOptions()
        self._default_type = default_type
        self._sleep = sleep
        self._busy = False
        self._job: Optional[UploadJob] = None
        self._wakeup = asyncio.Event()
        self._pushed: Optional[Tuple[str, Optional[str]]] = None

    @property
    def is_uploading(self) -> bool:
        return self._busy

    @property
    def current_job(self) -> Optional[UploadJob]:
        return self._job

    async def start(
        self,
        file: UploadFile,
        directory_id: Optional[str],
        doc_type: Optional[str] = None,
    ) -> JobOutcome:
        """Upload ``file`` into ``directory_id`` and wait for processing to finish.

        Args:
            file: File to upload.
            directory_id: Target directory; required.
            doc_type: Explicit ``DRHP``/``RHP`` choice, inferred when omitted.

        Returns:
            JobOutcome: Terminal outcome of the attempt.

        Raises:
            UploadInProgressError: If another upload is still running.
        """
        return await self._guarded(file, directory_id, doc_type)

    async def start_rhp_for(self, drhp: Document, file: UploadFile) -> JobOutcome:
        """Upload ``file`` as the RHP of ``drhp``; the server links the pair.

        Duplicate checks and processing follow :meth:`start`, with the
        target directory taken from the DRHP.

        Raises:
            UploadInProgressError: If another upload is still running.
            ValueError: If ``drhp`` is not a DRHP or already has an RHP.
        """
        if drhp.type != "DRHP":
            raise ValueError(f"Document {drhp.id} is not a DRHP.")
        if drhp.related_rhp_id:
            raise ValueError(f"DRHP {drhp.id} is already linked to RHP {drhp.related_rhp_id}.")
        return await self._guarded(file, drhp.directory_id, "RHP", drhp_id=drhp.id)

    async def _guarded(
        self,
        file: UploadFile,
        directory_id: Optional[str],
        doc_type: Optional[str],
        *,
        drhp_id: Optional[str] = None,
    ) -> JobOutcome:
        if self._busy:
            raise UploadInProgressError("An upload is already in progress.")
        if not directory_id:
            return JobOutcome(kind="needs_directory", reason="Select a directory before uploading.")
        try:
            self._guard.validate_filename(file.name)
        except UnsupportedFileError as exc:
            return JobOutcome(kind="rejected", reason=str(exc))

        self._busy = True
        self._pushed = None
        self._wakeup.clear()
        try:
            return await self._run(file, directory_id, doc_type, drhp_id)
        finally:
            self._busy = False
            self._job = None

    def handle_push_event(self, payload: Mapping[str, Any]) -> bool:
        """Feed an ``upload_status`` push message into the running job.

        Args:
            payload: Message with ``jobId``, ``status`` and optional ``error``.

        Returns:
            bool: Whether the message applied to the running job.
        """
        job = self._job
        if job is None or job.is_terminal:
            return False
        reference = payload.get("jobId") or payload.get("job_id")
        known = {job.job_id, namespace_for(job.file.name)}
        if job.server_document_id:
            known.add(job.server_document_id)
        if reference not in known:
            LOGGER.debug("Ignoring push event for unknown job %r.", reference)
            return False

        status = str(payload.get("status") or "").lower()
        if status not in SUCCESS_STATUSES and status not in FAILURE_STATUSES:
            return False
        error = payload.get("error")
        self._pushed = (status, str(error) if error else None)
        self._wakeup.set()
        return True

    # Internal helpers -------------------------------------------------

    async def _run(
        self,
        file: UploadFile,
        directory_id: str,
        doc_type: Optional[str],
        drhp_id: Optional[str],
    ) -> JobOutcome:
        existing = await self._existing_documents(directory_id)
        job = self._update(
            UploadJob(
                file=file,
                directory_id=directory_id,
                type=classify_upload_type(doc_type, existing, self._default_type),
                drhp_id=drhp_id,
                phase="checking",
            )
        )

        verdict = self._guard.precheck(file.name, existing)
        if verdict.is_duplicate and verdict.exact_match is not None:
            return self._duplicate(job, verdict.exact_match, "local")
        try:
            verdict = await self._guard.remote_check(file.name)
        except DuplicateCheckUnavailable as exc:
            return await self._fail(job, str(exc), refresh=False)
        if verdict.is_duplicate and verdict.exact_match is not None:
            return self._duplicate(job, verdict.exact_match, "remote")

        job = self._update(job.model_copy(update={"phase": "uploading"}))
        try:
            if drhp_id is not None:
                created = await self._documents.upload_rhp(
                    filename=file.name,
                    content=file.content,
                    namespace=namespace_for(file.name),
                    drhp_id=drhp_id,
                    directory_id=directory_id,
                )
            else:
                created = await self._documents.create(
                    filename=file.name,
                    content=file.content,
                    namespace=namespace_for(file.name),
                    doc_type=job.type,
                    directory_id=directory_id,
                )
        except ConflictError as exc:
            conflicting = exc.existing_document or await self._lookup(file.name)
            if conflicting is not None:
                return self._duplicate(job, conflicting, "conflict")
            return await self._fail(job, exc.message, refresh=False)
        except RemoteError as exc:
            return await self._fail(job, f"Upload failed: {exc.message}", refresh=False)

        job = self._update(
            job.model_copy(update={"phase": "processing", "server_document_id": created.id})
        )
        return await self._poll(job)

    async def _poll(self, job: UploadJob) -> JobOutcome:
        assert job.server_document_id is not None
        loop = asyncio.get_running_loop()
        interval = self._polling.interval_seconds
        deadline = loop.time() + interval * self._polling.max_attempts
        for attempt in range(1, self._polling.max_attempts + 1):
            remaining = deadline - loop.time()
            if remaining <= 0:
                break
            await self._wait(min(interval, remaining))
            job = self._update(job.model_copy(update={"poll_count": attempt}))

            pushed = self._take_pushed()
            if pushed is not None:
                status, error = pushed
                if status in SUCCESS_STATUSES:
                    return await self._complete(job, await self._fetch_quietly(job))
                return await self._fail(job, error or "Processing failed", refresh=True)

            remaining = deadline - loop.time()
            if remaining <= 0:
                break
            try:
                document = await asyncio.wait_for(
                    self._documents.get_by_id(job.server_document_id), remaining
                )
            except asyncio.TimeoutError:
                LOGGER.debug("Status check %d for %s hit the deadline.", attempt, job.file.name)
                continue
            except RemoteError as exc:
                LOGGER.debug("Status check %d for %s failed: %s", attempt, job.file.name, exc)
                continue

            status = document.status.lower()
            if status in SUCCESS_STATUSES:
                return await self._complete(job, document)
            if status in FAILURE_STATUSES:
                return await self._fail(job, f"Processing failed for {job.file.name}", refresh=True)
        return await self._timeout(job)

    async def _wait(self, seconds: float) -> None:
        if self._wakeup.is_set():
            return
        sleeper = asyncio.ensure_future(self._sleep(seconds))
        waker = asyncio.ensure_future(self._wakeup.wait())
        try:
            await asyncio.wait({sleeper, waker}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for pending in (sleeper, waker):
                if not pending.done():
                    pending.cancel()

    def _take_pushed(self) -> Optional[Tuple[str, Optional[str]]]:
        pushed, self._pushed = self._pushed, None
        self._wakeup.clear()
        return pushed

    async def _complete(self, job: UploadJob, document: Optional[Document]) -> JobOutcome:
        job = self._update(job.model_copy(update={"phase": "completed"}))
        LOGGER.info("Processing of %s completed.", job.file.name)
        self._catalog.apply_provisional_activity([job.directory_id])
        await self._refresh(job.directory_id)
        self._bus.publish(UploadCompleted(job=job, document=document))

        aggregate = self._catalog.aggregate_for(job.directory_id)
        if aggregate is not None and aggregate.has_drhp and aggregate.has_rhp:
            self._bus.publish(ReadyToCompare(directory_id=job.directory_id))
        return JobOutcome(kind="completed", job=job, document=document)

    async def _fail(self, job: UploadJob, reason: str, *, refresh: bool) -> JobOutcome:
        job = self._update(job.model_copy(update={"phase": "failed", "error": reason}))
        LOGGER.error("Upload of %s failed: %s", job.file.name, reason)
        if refresh:
            await self._refresh(job.directory_id)
        self._bus.publish(UploadFailed(job=job, reason=reason))
        return JobOutcome(kind="failed", job=job, reason=reason)

    async def _timeout(self, job: UploadJob) -> JobOutcome:
        job = self._update(job.model_copy(update={"phase": "timeout"}))
        LOGGER.warning(
            "Processing of %s still unfinished after %d checks.", job.file.name, job.poll_count
        )
        await self._refresh(job.directory_id)
        self._bus.publish(UploadTimedOut(job=job))
        return JobOutcome(kind="timeout", job=job)

    def _duplicate(
        self,
        job: UploadJob,
        document: Document,
        source: Literal["local", "remote", "conflict"],
    ) -> JobOutcome:
        job = self._update(job.model_copy(update={"phase": "idle"}))
        LOGGER.info("%s duplicates existing document %s (%s).", job.file.name, document.id, source)
        self._bus.publish(DuplicateDetected(document=document, source=source))
        return JobOutcome(kind="duplicate", job=job, document=document)

    async def _refresh(self, directory_id: str) -> None:
        try:
            await self._catalog.refresh_directory(directory_id)
        except RemoteError as exc:
            LOGGER.warning("Catalog refresh of %s failed: %s", directory_id, exc)
        try:
            await self._registry.refresh(directory_id)
        except RemoteError as exc:
            LOGGER.warning("Registry refresh of %s failed: %s", directory_id, exc)

    async def _existing_documents(self, directory_id: str) -> Sequence[Document]:
        contents = self._registry.contents
        if self._registry.open_directory_id == directory_id and contents is not None:
            return contents.documents
        try:
            return await self._documents.list(directory_id)
        except RemoteError as exc:
            LOGGER.warning("Could not list documents of %s before upload: %s", directory_id, exc)
            return []

    async def _lookup(self, filename: str) -> Optional[Document]:
        try:
            return await self._documents.check_existing(namespace_for(filename))
        except RemoteError as exc:
            LOGGER.warning("Lookup of conflicting document %s failed: %s", filename, exc)
            return None

    async def _fetch_quietly(self, job: UploadJob) -> Optional[Document]:
        if job.server_document_id is None:
            return None
        try:
            return await self._documents.get_by_id(job.server_document_id)
        except RemoteError as exc:
            LOGGER.debug("Could not fetch %s after push completion: %s", job.server_document_id, exc)
            return None

    def _update(self, job: UploadJob) -> UploadJob:
        self._job = job
        self._bus.publish(UploadProgress(job=job))
        return job


__all__ = ["UploadJobTracker"]
