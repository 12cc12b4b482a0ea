"""Unit tests for outbound event delivery"""

import httpx
import pytest
from unittest.mock import AsyncMock, patch
from lending_engine.infrastructure.clients.events import EVENT_ID_HEADER, EventClient

URL = "http://events.test/hook"


def _response(status_code: int) -> httpx.Response:
    return httpx.Response(status_code, json={}, request=httpx.Request("POST", URL))


@pytest.fixture
def event_client() -> EventClient:
    client = EventClient(webhook_url=URL)
    client.backoff_base = 0
    client.max_retries = 3
    return client


@patch("httpx.AsyncClient.post", new_callable=AsyncMock)
async def test_event_is_stamped_for_dedupe(mock_post: AsyncMock, event_client: EventClient):
    mock_post.return_value = _response(200)

    delivered = await event_client.publish([{"event": "PAYMENT_COMPLETED", "payment_id": "p-1"}])

    assert delivered == 1
    body = mock_post.call_args.kwargs["json"]
    assert body["event"] == "PAYMENT_COMPLETED"
    assert body["payment_id"] == "p-1"
    assert body["occurred_at"]
    assert mock_post.call_args.kwargs["headers"][EVENT_ID_HEADER] == body["event_id"]


@patch("httpx.AsyncClient.post", new_callable=AsyncMock)
async def test_server_error_is_redelivered_with_same_event_id(mock_post: AsyncMock, event_client: EventClient):
    mock_post.side_effect = [_response(503), _response(200)]

    delivered = await event_client.publish([{"event": "LOAN_DEFAULTED"}])

    assert delivered == 1
    assert mock_post.call_count == 2
    first, second = (call.kwargs["json"]["event_id"] for call in mock_post.call_args_list)
    assert first == second


@patch("httpx.AsyncClient.post", new_callable=AsyncMock)
async def test_refused_event_is_not_redelivered(mock_post: AsyncMock, event_client: EventClient):
    mock_post.return_value = _response(422)

    delivered = await event_client.publish([{"event": "PAYMENT_FAILED"}])

    assert delivered == 0
    assert mock_post.call_count == 1


@patch("httpx.AsyncClient.post", new_callable=AsyncMock)
async def test_gives_up_after_max_retries(mock_post: AsyncMock, event_client: EventClient):
    mock_post.return_value = _response(500)

    delivered = await event_client.publish([{"event": "PAYMENT_FAILED"}])

    assert delivered == 0
    assert mock_post.call_count == 3


@patch("httpx.AsyncClient.post", new_callable=AsyncMock)
async def test_publish_continues_after_failed_delivery(mock_post: AsyncMock, event_client: EventClient):
    mock_post.side_effect = [httpx.ConnectError("refused")] * 3 + [_response(200)]

    delivered = await event_client.publish([{"event": "PAYMENT_FAILED"}, {"event": "LOAN_DEFAULTED"}])

    assert delivered == 1
    assert mock_post.call_count == 4
    assert mock_post.call_args.kwargs["json"]["event"] == "LOAN_DEFAULTED"
