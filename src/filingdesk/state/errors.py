"""State management errors."""

from filingdesk.errors import FilingDeskError


class StateError(FilingDeskError):
    """Base exception for locally persisted state."""


class CorruptStateError(StateError):
    """Raised when a persisted state file cannot be parsed."""
