"""Typed publish/subscribe bus connecting the engine to its observers.

Components announce outcomes (uploads finishing, directories opening or
disappearing, duplicate hits) as small event objects. Views, sidebars, and
the recent-directory tracker subscribe to the event types they care about
instead of reaching into each other's state.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, Literal, Optional, TypeVar

if TYPE_CHECKING:
    from filingdesk.jobs.models import UploadJob
    from filingdesk.state.models import Document

LOGGER = logging.getLogger(__name__)

EventT = TypeVar("EventT")
Handler = Callable[[Any], None]


@dataclass(frozen=True)
class Notice:
    """User-facing message produced at an operation boundary."""

    level: Literal["info", "success", "warning", "error"]
    message: str


@dataclass(frozen=True)
class DuplicateDetected:
    """An upload matched an existing document and was not sent.

    Attributes:
        document: Existing document to highlight.
        source: Which check caught it (``local``, ``remote``, or ``conflict``).
    """

    document: "Document"
    source: Literal["local", "remote", "conflict"]


@dataclass(frozen=True)
class UploadProgress:
    job: "UploadJob"


@dataclass(frozen=True)
class UploadCompleted:
    job: "UploadJob"
    document: Optional["Document"] = None


@dataclass(frozen=True)
class UploadFailed:
    job: "UploadJob"
    reason: str


@dataclass(frozen=True)
class UploadTimedOut:
    job: "UploadJob"


@dataclass(frozen=True)
class ReadyToCompare:
    """A directory now holds both a DRHP and an RHP document."""

    directory_id: str


@dataclass(frozen=True)
class NavigateToComparison:
    drhp_id: str


@dataclass(frozen=True)
class DirectoryActivity:
    """Something inside a directory changed; its recency should be bumped."""

    directory_id: str


@dataclass(frozen=True)
class DirectoryOpened:
    directory_id: str
    name: str


@dataclass(frozen=True)
class DirectoryRenamed:
    directory_id: str
    name: str


@dataclass(frozen=True)
class DirectoryRemoved:
    directory_id: str


@dataclass(frozen=True)
class ViewCleared:
    """The open directory view was dropped because its directory vanished."""

    directory_id: str


class EventBus:
    """Synchronous in-process dispatcher keyed by event type."""

    def __init__(self) -> None:
        self._handlers: dict[type, list[Handler]] = defaultdict(list)

    def subscribe(
        self, event_type: type[EventT], handler: Callable[[EventT], None]
    ) -> Callable[[], None]:
        """Register ``handler`` for events of exactly ``event_type``.

        Args:
            event_type: Event class to listen for.
            handler: Callable invoked with each published event.

        Returns:
            Callable[[], None]: Function that removes the subscription.
        """
        self._handlers[event_type].append(handler)

        def _unsubscribe() -> None:
            handlers = self._handlers.get(event_type, [])
            if handler in handlers:
                handlers.remove(handler)

        return _unsubscribe

    def publish(self, event: object) -> None:
        """Deliver ``event`` to its subscribers in registration order."""
        for handler in list(self._handlers.get(type(event), ())):
            try:
                handler(event)
            except Exception:
                LOGGER.exception("Event handler %r failed for %s", handler, type(event).__name__)

    def notify(self, level: Literal["info", "success", "warning", "error"], message: str) -> None:
        """Shortcut for publishing a :class:`Notice`."""
        self.publish(Notice(level=level, message=message))


__all__ = [
    "EventBus",
    "Notice",
    "DuplicateDetected",
    "UploadProgress",
    "UploadCompleted",
    "UploadFailed",
    "UploadTimedOut",
    "ReadyToCompare",
    "NavigateToComparison",
    "DirectoryActivity",
    "DirectoryOpened",
    "DirectoryRenamed",
    "DirectoryRemoved",
    "ViewCleared",
]
