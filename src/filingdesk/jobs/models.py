"""Upload job models."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Literal, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

from filingdesk.state.models import Document, DocumentType

JobPhase = Literal[
    "idle",
    "selecting",
    "checking",
    "uploading",
    "processing",
    "completed",
    "failed",
    "timeout",
]
TERMINAL_PHASES = frozenset({"completed", "failed", "timeout"})


class UploadFile(BaseModel):
    """File selected for upload.

    Attributes:
        name: File name, which also becomes the document namespace.
        content: Raw file bytes.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    content: bytes = b""

    @classmethod
    def from_path(cls, path: Path) -> "UploadFile":
        return cls(name=path.name, content=path.read_bytes())


class UploadJob(BaseModel):
    """Transient state of one upload-through-processing attempt.

    Attributes:
        job_id: Local identifier of the attempt.
        file: File being uploaded.
        directory_id: Directory captured when the job started.
        type: Document type sent with the upload.
        drhp_id: DRHP the uploaded RHP is bound to, for paired RHP uploads.
        phase: Current state machine phase.
        server_document_id: Id assigned by the server once accepted.
        poll_count: Number of processing checks made so far.
        started_at: When the job was created.
        error: Failure description for failed jobs.
    """

    model_config = ConfigDict(frozen=True)

    job_id: str = Field(default_factory=lambda: uuid4().hex)
    file: UploadFile
    directory_id: str
    type: DocumentType
    drhp_id: Optional[str] = None
    phase: JobPhase = "selecting"
    server_document_id: Optional[str] = None
    poll_count: int = 0
    started_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    error: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.phase in TERMINAL_PHASES


class JobOutcome(BaseModel):
    """How an upload request ended.

    ``kind`` is ``completed``, ``failed`` or ``timeout`` for jobs that reached
    processing; ``duplicate`` when an existing document was found;
    ``needs_directory`` when no target directory was given; ``rejected`` when
    the file was refused before any check.
    """

    model_config = ConfigDict(frozen=True)

    kind: Literal["completed", "failed", "timeout", "duplicate", "needs_directory", "rejected"]
    job: Optional[UploadJob] = None
    document: Optional[Document] = None
    reason: Optional[str] = None


__all__ = ["JobPhase", "TERMINAL_PHASES", "UploadFile", "UploadJob", "JobOutcome"]
