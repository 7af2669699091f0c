"""Tests for the availability HTTP client."""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime

import httpx
import pytest

from slotpool.client import (
    MAX_ERROR_MESSAGE_CHARS,
    AvailabilityClient,
    AvailabilityPayloadError,
    AvailabilityRequestError,
    AvailabilityTransportError,
)

pytestmark = pytest.mark.unit

BASE_URL = "https://cal.example.com"
DATE_FROM = datetime(2024, 3, 5, 0, 0, tzinfo=UTC)
DATE_TO = datetime(2024, 3, 5, 23, 59, 59, 999999, tzinfo=UTC)

AVAILABILITY_PAYLOAD = {
    "busy": [{"start": "2024-03-05T10:00:00Z", "end": "2024-03-05T10:30:00Z"}],
    "timeZone": "UTC",
    "workingHours": [{"days": [2], "startTime": 540, "endTime": 1020}],
}


def _make_client(handler: Callable[[httpx.Request], httpx.Response]) -> AvailabilityClient:
    transport = httpx.MockTransport(handler)
    return AvailabilityClient(BASE_URL, http_client=httpx.AsyncClient(transport=transport))


async def _fetch(client: AvailabilityClient, username: str = "alice"):
    return await client.fetch_availability(
        username, date_from=DATE_FROM, date_to=DATE_TO, event_type_id=7
    )


class TestFetchAvailability:
    async def test_sends_query_parameters_and_parses_record(self):
        requests: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, json=AVAILABILITY_PAYLOAD)

        client = _make_client(handler)
        record = await _fetch(client)

        assert len(requests) == 1
        request = requests[0]
        assert request.method == "GET"
        assert request.url.path == "/api/availability/alice"
        assert request.url.params["dateFrom"] == DATE_FROM.isoformat()
        assert request.url.params["dateTo"] == DATE_TO.isoformat()
        assert request.url.params["eventTypeId"] == "7"

        assert len(record.busy) == 1
        assert record.busy[0].start == datetime(2024, 3, 5, 10, 0, tzinfo=UTC)
        assert record.working_hours[0].start_time == 540

    async def test_username_is_path_quoted(self):
        seen: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request.url.raw_path.decode())
            return httpx.Response(200, json={})

        await _fetch(_make_client(handler), username="team/alice smith")
        assert seen[0].startswith("/api/availability/team%2Falice%20smith")

    async def test_trailing_slash_on_base_url_is_ignored(self):
        client = AvailabilityClient(f"{BASE_URL}/", http_client=httpx.AsyncClient())
        assert client.availability_url("bob") == f"{BASE_URL}/api/availability/bob"
        await client._http_client.aclose()


class TestErrors:
    async def test_non_2xx_raises_request_error_with_message(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(404, json={"message": "User not found"})

        with pytest.raises(AvailabilityRequestError) as exc_info:
            await _fetch(_make_client(handler))

        error = exc_info.value
        assert error.status_code == 404
        assert error.username == "alice"
        assert error.message == "User not found"
        assert "failed (404)" in str(error)

    async def test_nested_error_message_is_extracted(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(500, json={"error": {"message": "calendar backend down"}})

        with pytest.raises(AvailabilityRequestError) as exc_info:
            await _fetch(_make_client(handler))
        assert exc_info.value.message == "calendar backend down"

    async def test_plain_text_error_is_truncated(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(502, text="x" * 500)

        with pytest.raises(AvailabilityRequestError) as exc_info:
            await _fetch(_make_client(handler))
        assert len(exc_info.value.message) == MAX_ERROR_MESSAGE_CHARS

    async def test_empty_error_body_gets_placeholder(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(503)

        with pytest.raises(AvailabilityRequestError) as exc_info:
            await _fetch(_make_client(handler))
        assert exc_info.value.message == "Request failed without an error payload"

    async def test_network_failure_raises_transport_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(AvailabilityTransportError, match="connection refused"):
            await _fetch(_make_client(handler))

    async def test_invalid_json_raises_payload_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, text="<html>not json</html>")

        with pytest.raises(AvailabilityPayloadError, match="not valid JSON"):
            await _fetch(_make_client(handler))

    async def test_non_object_payload_raises_payload_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json=[1, 2, 3])

        with pytest.raises(AvailabilityPayloadError, match="must be a JSON object"):
            await _fetch(_make_client(handler))

    async def test_invalid_shape_raises_payload_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"busy": [{"start": "not-a-date"}]})

        with pytest.raises(AvailabilityPayloadError, match="invalid shape"):
            await _fetch(_make_client(handler))

    async def test_all_errors_share_transport_base(self):
        assert issubclass(AvailabilityRequestError, AvailabilityTransportError)
        assert issubclass(AvailabilityPayloadError, AvailabilityTransportError)


class TestLifecycle:
    async def test_injected_client_is_not_closed(self):
        transport = httpx.MockTransport(lambda r: httpx.Response(200))
        http_client = httpx.AsyncClient(transport=transport)
        async with AvailabilityClient(BASE_URL, http_client=http_client):
            pass
        assert not http_client.is_closed
        await http_client.aclose()

    async def test_owned_client_is_closed(self):
        client = AvailabilityClient(BASE_URL, timeout_s=5.0)
        async with client:
            pass
        assert client._http_client.is_closed
