"""Unit tests for the transfer provider client"""

import httpx
import pytest
from unittest.mock import AsyncMock, patch
from lending_engine.domain.exceptions import TransferAPIError, WebhookVerificationError
from lending_engine.domain.models import SettlementCredentials
from lending_engine.infrastructure.clients.transfer import (
    TransferClient,
    generate_signature,
    verify_webhook_signature,
)

CREDENTIALS = SettlementCredentials(access_token="access-1", account_id="acct-1", legal_name="Jane Doe", email="jane@example.com")


def _response(status_code: int, body: dict) -> httpx.Response:
    return httpx.Response(status_code, json=body, request=httpx.Request("POST", "http://transfer.test"))


@patch("httpx.AsyncClient.post", new_callable=AsyncMock)
async def test_initiate_transfer_success(mock_post: AsyncMock):
    mock_post.side_effect = [
        _response(200, {"authorization": {"id": "auth-1", "decision": "approved"}}),
        _response(200, {"transfer": {"id": "tr-1", "status": "pending"}}),
    ]
    client = TransferClient(base_url="http://transfer.test", client_id="id", secret="secret")

    result = await client.initiate_transfer(CREDENTIALS, 12_345, "Loan Pmt 12 of 24")

    assert result.success is True
    assert result.transfer_id == "tr-1"
    create_body = mock_post.call_args_list[1].kwargs["json"]
    assert create_body["amount"] == "123.45"
    assert create_body["description"] == "Loan Pmt 12 of "
    assert create_body["authorization_id"] == "auth-1"
    assert create_body["client_id"] == "id"


@patch("httpx.AsyncClient.post", new_callable=AsyncMock)
async def test_declined_authorization_returns_failure(mock_post: AsyncMock):
    mock_post.return_value = _response(
        200,
        {"authorization": {"id": "auth-1", "decision": "declined", "decision_rationale": {"code": "NSF", "description": "Insufficient funds"}}},
    )
    client = TransferClient(base_url="http://transfer.test")

    result = await client.initiate_transfer(CREDENTIALS, 10_000, "Loan Pmt 1")

    assert result.success is False
    assert result.error_code == "NSF"
    assert mock_post.call_count == 1


@patch("httpx.AsyncClient.post", new_callable=AsyncMock)
async def test_provider_rejection_returns_failure(mock_post: AsyncMock):
    mock_post.return_value = _response(400, {"error_code": "INVALID_ACCOUNT_NUMBER", "error_message": "bad account"})
    client = TransferClient(base_url="http://transfer.test")

    result = await client.initiate_transfer(CREDENTIALS, 10_000, "Loan Pmt 1")

    assert result.success is False
    assert result.error_code == "INVALID_ACCOUNT_NUMBER"
    assert result.error == "bad account"


@patch("httpx.AsyncClient.post", new_callable=AsyncMock)
async def test_server_error_raises(mock_post: AsyncMock):
    mock_post.return_value = _response(503, {})
    client = TransferClient(base_url="http://transfer.test")

    with pytest.raises(TransferAPIError):
        await client.initiate_transfer(CREDENTIALS, 10_000, "Loan Pmt 1")


@patch("httpx.AsyncClient.post", new_callable=AsyncMock)
async def test_timeout_raises(mock_post: AsyncMock):
    mock_post.side_effect = httpx.ReadTimeout("timed out")
    client = TransferClient(base_url="http://transfer.test")

    with pytest.raises(TransferAPIError):
        await client.get_transfer("tr-1")


@patch("httpx.AsyncClient.post", new_callable=AsyncMock)
async def test_get_transfer_parses_failure(mock_post: AsyncMock):
    mock_post.return_value = _response(
        200,
        {"transfer": {"id": "tr-1", "status": "returned", "failure_reason": {"ach_return_code": "R01", "description": "Insufficient funds"}}},
    )
    client = TransferClient(base_url="http://transfer.test")

    status = await client.get_transfer("tr-1")

    assert status.status == "returned"
    assert status.failure.return_code == "R01"


def test_signature_verification():
    body = b'{"webhook_type": "TRANSFER_EVENTS_UPDATE"}'
    signature = generate_signature(body, "secret")

    verify_webhook_signature(body, signature, "secret")

    with pytest.raises(WebhookVerificationError):
        verify_webhook_signature(body, signature, "other-secret")
    with pytest.raises(WebhookVerificationError):
        verify_webhook_signature(body, None, "secret")
