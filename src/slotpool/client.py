"""HTTP client for per-user availability records.

Fetches ``GET {base_url}/api/availability/{username}`` and validates the
payload into an ``AvailabilityRecord``.  Failures are raised as
``AvailabilityTransportError`` subclasses and are never retried here: the
orchestrator treats any failure as terminal for the whole query.
"""

from __future__ import annotations

import logging
from datetime import datetime
from types import TracebackType
from typing import Any
from urllib.parse import quote

import httpx
from pydantic import ValidationError

from slotpool.config import DEFAULT_TIMEOUT_S
from slotpool.models import AvailabilityRecord

logger = logging.getLogger(__name__)

AVAILABILITY_PATH = "/api/availability"
MAX_ERROR_MESSAGE_CHARS = 200


class AvailabilityTransportError(RuntimeError):
    """Base error raised when a user's availability cannot be fetched."""


class AvailabilityRequestError(AvailabilityTransportError):
    """Raised when the availability endpoint answers with a non-2xx status."""

    def __init__(self, *, username: str, status_code: int, message: str) -> None:
        self.username = username
        self.status_code = status_code
        self.message = message
        super().__init__(
            f"Availability request for {username!r} failed ({status_code}): {message}"
        )


class AvailabilityPayloadError(AvailabilityTransportError):
    """Raised when the availability endpoint returns malformed data."""


def _safe_error_message(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        payload = None

    if isinstance(payload, dict):
        for key in ("message", "error", "detail"):
            value = payload.get(key)
            if isinstance(value, dict):
                value = value.get("message")
            if isinstance(value, str) and value.strip():
                return " ".join(value.split())[:MAX_ERROR_MESSAGE_CHARS]

    raw_text = response.text.strip()
    if raw_text:
        return " ".join(raw_text.split())[:MAX_ERROR_MESSAGE_CHARS]
    return "Request failed without an error payload"


class AvailabilityClient:
    """Async availability fetcher over an injectable ``httpx.AsyncClient``."""

    def __init__(
        self,
        base_url: str,
        *,
        timeout_s: float = DEFAULT_TIMEOUT_S,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._owns_http_client = http_client is None
        self._http_client = http_client or httpx.AsyncClient(timeout=timeout_s)

    async def __aenter__(self) -> AvailabilityClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_http_client:
            await self._http_client.aclose()

    def availability_url(self, username: str) -> str:
        return f"{self._base_url}{AVAILABILITY_PATH}/{quote(username, safe='')}"

    async def fetch_availability(
        self,
        username: str,
        *,
        date_from: datetime,
        date_to: datetime,
        event_type_id: int,
    ) -> AvailabilityRecord:
        """Fetch and validate one user's busy intervals and working hours."""
        params: dict[str, Any] = {
            "dateFrom": date_from.isoformat(),
            "dateTo": date_to.isoformat(),
            "eventTypeId": event_type_id,
        }
        try:
            response = await self._http_client.get(self.availability_url(username), params=params)
        except httpx.HTTPError as exc:
            raise AvailabilityTransportError(
                f"Availability request for {username!r} failed: {exc}"
            ) from exc

        if response.status_code < 200 or response.status_code >= 300:
            raise AvailabilityRequestError(
                username=username,
                status_code=response.status_code,
                message=_safe_error_message(response),
            )

        try:
            payload = response.json()
        except ValueError as exc:
            raise AvailabilityPayloadError(
                f"Availability response for {username!r} is not valid JSON"
            ) from exc

        if not isinstance(payload, dict):
            raise AvailabilityPayloadError(
                f"Availability response for {username!r} must be a JSON object"
            )

        try:
            record = AvailabilityRecord.model_validate(payload)
        except ValidationError as exc:
            raise AvailabilityPayloadError(
                f"Availability response for {username!r} has an invalid shape: "
                f"{exc.error_count()} validation error(s)"
            ) from exc

        logger.debug(
            "Fetched availability (user=%s, busy=%d, working_hours=%d)",
            username,
            len(record.busy),
            len(record.working_hours),
        )
        return record
