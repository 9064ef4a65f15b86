"""HTTP transport shared by the remote stores."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Mapping, Optional

import httpx
from pydantic import ValidationError

from filingdesk.config.models import ApiSettings
from filingdesk.state.models import Document

from .errors import ConflictError, NotFoundError, RemoteError, TransientRemoteError

LOGGER = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]
_TRANSIENT_STATUSES = frozenset({429, 500, 502, 503, 504})


def error_for_response(response: httpx.Response) -> RemoteError:
    """Translate a failed response into the matching :class:`RemoteError`.

    Args:
        response: Response whose status code is 400 or above.

    Returns:
        RemoteError: Exception instance ready to be raised.
    """
    try:
        payload: Any = response.json()
    except ValueError:
        payload = None

    message = response.reason_phrase or f"HTTP {response.status_code}"
    if isinstance(payload, dict):
        message = str(payload.get("error") or payload.get("message") or message)

    status = response.status_code
    if status == 404:
        return NotFoundError(status, message, payload)
    if status == 409:
        existing = None
        if isinstance(payload, dict) and isinstance(payload.get("existingDocument"), dict):
            try:
                existing = Document.model_validate(payload["existingDocument"])
            except ValidationError:
                LOGGER.warning("Conflict response carried an unreadable existing document.")
        return ConflictError(status, message, payload, existing_document=existing)
    if status in _TRANSIENT_STATUSES or status >= 500:
        return TransientRemoteError(status, message, payload)
    return RemoteError(status, message, payload)


class ApiClient:
    """Thin wrapper around :class:`httpx.AsyncClient` for the FilingDesk API.

    Reads are retried on transient failures with exponential backoff; writes
    are sent exactly once.
    """

    def __init__(
        self,
        settings: ApiSettings,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        """Initialize the client.

        Args:
            settings: API section of the configuration.
            transport: Optional transport override, used by tests.
            sleep: Coroutine used to wait between retries.
        """
        headers = {"Accept": "application/json"}
        if settings.token:
            headers["Authorization"] = f"Bearer {settings.token}"
        self._client = httpx.AsyncClient(
            base_url=settings.base_url,
            headers=headers,
            timeout=settings.timeout_seconds,
            transport=transport,
        )
        self._domain = settings.domain
        self._max_retries = max(0, settings.max_retries)
        self._backoff = max(0.0, settings.retry_backoff_seconds)
        self._sleep = sleep

    async def __aenter__(self) -> "ApiClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def get(self, path: str, *, params: Mapping[str, Any] | None = None) -> Any:
        return await self.request("GET", path, params=params)

    async def post(self, path: str, **kwargs: Any) -> Any:
        return await self.request("POST", path, **kwargs)

    async def put(self, path: str, **kwargs: Any) -> Any:
        return await self.request("PUT", path, **kwargs)

    async def delete(self, path: str, **kwargs: Any) -> Any:
        return await self.request("DELETE", path, **kwargs)

    async def request(
        self,
        method: str,
        path: str,
        *,
        params: Mapping[str, Any] | None = None,
        json: Any = None,
        data: Mapping[str, Any] | None = None,
        files: Mapping[str, Any] | None = None,
    ) -> Any:
        """Send a request and return the decoded JSON body.

        Args:
            method: HTTP method.
            path: Path relative to the configured base URL.
            params: Query parameters; ``None`` values are dropped.
            json: JSON request body.
            data: Form fields for multipart requests.
            files: Files for multipart requests.

        Returns:
            Any: Decoded JSON payload, or ``None`` for empty bodies.

        Raises:
            RemoteError: If the server rejects the request or cannot be reached.
        """
        query = {key: value for key, value in (params or {}).items() if value is not None}
        if self._domain:
            query.setdefault("domain", self._domain)

        attempts = self._max_retries + 1 if method.upper() == "GET" else 1
        delay = self._backoff
        for attempt in range(1, attempts + 1):
            try:
                return await self._send(
                    method, path, params=query, json=json, data=data, files=files
                )
            except TransientRemoteError as exc:
                if attempt >= attempts:
                    raise
                LOGGER.debug(
                    "Retrying %s %s after transient failure (%s), attempt %d/%d",
                    method,
                    path,
                    exc.message,
                    attempt,
                    attempts,
                )
                await self._sleep(delay)
                delay *= 2
        raise AssertionError("unreachable")

    # Internal helpers -------------------------------------------------

    async def _send(self, method: str, path: str, **kwargs: Any) -> Any:
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.TimeoutException as exc:
            raise TransientRemoteError(None, f"Request to {path} timed out") from exc
        except httpx.TransportError as exc:
            raise TransientRemoteError(None, f"Could not reach API: {exc}") from exc

        if response.status_code >= 400:
            raise error_for_response(response)
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise RemoteError(
                response.status_code, f"Invalid JSON returned by {path}"
            ) from exc


__all__ = ["ApiClient", "error_for_response"]
