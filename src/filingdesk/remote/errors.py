"""Exception hierarchy shared by the remote layer and the engine."""

from __future__ import annotations

from typing import Any, Optional

from filingdesk.errors import FilingDeskError
from filingdesk.state.models import Document


class RemoteError(FilingDeskError):
    """Raised when the remote API answers with a non-success response.

    Attributes:
        status_code: HTTP status, ``None`` for transport failures.
        message: Human readable description.
        payload: Decoded response body, when there was one.
    """

    def __init__(
        self, status_code: Optional[int], message: str, payload: Any = None
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.message = message
        self.payload = payload


class TransientRemoteError(RemoteError):
    """Transport failure, rate limiting, or a 5xx response."""


class NotFoundError(RemoteError):
    """The requested directory or document no longer exists."""


class ConflictError(RemoteError):
    """A create call collided with an existing resource (HTTP 409).

    Attributes:
        existing_document: Document the server reported as already present.
    """

    def __init__(
        self,
        status_code: Optional[int],
        message: str,
        payload: Any = None,
        *,
        existing_document: Optional[Document] = None,
    ) -> None:
        super().__init__(status_code, message, payload)
        self.existing_document = existing_document


class UploadInProgressError(FilingDeskError):
    """Raised when an upload is started while another one is still in flight."""


class DuplicateCheckUnavailable(FilingDeskError):
    """Raised in strict mode when the remote duplicate check cannot be reached."""


class UnsupportedFileError(FilingDeskError):
    """Raised when a file type is not accepted for upload."""


__all__ = [
    "FilingDeskError",
    "RemoteError",
    "TransientRemoteError",
    "NotFoundError",
    "ConflictError",
    "UploadInProgressError",
    "DuplicateCheckUnavailable",
    "UnsupportedFileError",
]
