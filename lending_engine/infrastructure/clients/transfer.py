"""Transfer provider HTTP client for ACH debits"""

import hashlib
import hmac
import httpx
from typing import Any, Dict, Optional
from lending_engine.domain.models import SettlementCredentials, TransferFailure, TransferResult, TransferStatus
from lending_engine.domain.exceptions import TransferAPIError, WebhookVerificationError
from lending_engine.config import settings
from lending_engine.infrastructure.observability.metrics import transfer_api_latency_histogram, transfer_api_failures_counter

ACH_DESCRIPTION_MAX_LENGTH = 15


def _format_amount(amount_cents: int) -> str:
    return f"{amount_cents // 100}.{amount_cents % 100:02d}"


class TransferClient:
    """Client for the external money-movement API (authorize, create, get transfer)"""

    def __init__(
        self,
        base_url: str | None = None,
        client_id: str | None = None,
        secret: str | None = None,
        timeout: float | None = None,
    ):
        self.base_url = base_url or settings.transfer_api_base
        self.client_id = client_id if client_id is not None else settings.transfer_client_id
        self.secret = secret if secret is not None else settings.transfer_secret
        self.timeout = timeout or settings.http_timeout_seconds

    async def _post(self, client: httpx.AsyncClient, operation: str, path: str, body: Dict[str, Any]) -> httpx.Response:
        """
        POST with credentials attached.

        Raises:
            TransferAPIError: On timeout, network failure or 5xx response
        """
        payload = {"client_id": self.client_id, "secret": self.secret, **body}
        try:
            with transfer_api_latency_histogram.labels(operation=operation).time():
                response = await client.post(f"{self.base_url}{path}", json=payload)
        except httpx.TimeoutException as e:
            transfer_api_failures_counter.labels(operation=operation).inc()
            raise TransferAPIError(f"Transfer API timeout after {self.timeout}s") from e
        except httpx.RequestError as e:
            transfer_api_failures_counter.labels(operation=operation).inc()
            raise TransferAPIError(f"Transfer API unreachable: {e}") from e

        if response.status_code >= 500:
            transfer_api_failures_counter.labels(operation=operation).inc()
            raise TransferAPIError(f"Transfer API error: {response.status_code}")
        return response

    @staticmethod
    def _provider_error(response: httpx.Response) -> TransferResult:
        """Provider-classified rejection (4xx with an error body)"""
        try:
            data = response.json()
        except ValueError:
            data = {}
        return TransferResult(
            success=False,
            error=data.get("error_message") or f"Transfer rejected: {response.status_code}",
            error_code=data.get("error_code"),
        )

    async def initiate_transfer(
        self,
        credentials: SettlementCredentials,
        amount_cents: int,
        description: str,
        metadata: Optional[Dict[str, str]] = None,
    ) -> TransferResult:
        """
        Authorize and create an ACH debit from the borrower's linked account.

        Declined authorizations and provider rejections come back as
        TransferResult(success=False) carrying the provider's code.

        Raises:
            TransferAPIError: Provider unavailable or returned malformed data
        """
        amount = _format_amount(amount_cents)
        account = {"access_token": credentials.access_token, "account_id": credentials.account_id}

        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await self._post(
                client,
                "authorize",
                "/transfer/authorization/create",
                {
                    **account,
                    "type": "debit",
                    "network": "ach",
                    "ach_class": "web",
                    "amount": amount,
                    "user": {"legal_name": credentials.legal_name, "email_address": credentials.email},
                },
            )
            if response.status_code >= 400:
                return self._provider_error(response)

            try:
                authorization = response.json()["authorization"]
                authorization_id = authorization["id"]
                decision = authorization["decision"]
            except (KeyError, ValueError, TypeError) as e:
                raise TransferAPIError(f"Invalid authorization data from provider: {e}") from e

            if decision != "approved":
                rationale = authorization.get("decision_rationale") or {}
                return TransferResult(
                    success=False,
                    error=rationale.get("description") or "Authorization declined",
                    error_code=rationale.get("code"),
                )

            response = await self._post(
                client,
                "create",
                "/transfer/create",
                {
                    **account,
                    "authorization_id": authorization_id,
                    "type": "debit",
                    "network": "ach",
                    "ach_class": "web",
                    "amount": amount,
                    "description": description[:ACH_DESCRIPTION_MAX_LENGTH],
                    "metadata": metadata or {},
                },
            )
            if response.status_code >= 400:
                return self._provider_error(response)

            try:
                transfer = response.json()["transfer"]
                return TransferResult(success=True, transfer_id=transfer["id"], status=transfer["status"])
            except (KeyError, ValueError, TypeError) as e:
                raise TransferAPIError(f"Invalid transfer data from provider: {e}") from e

    async def get_transfer(self, transfer_id: str) -> TransferStatus:
        """
        Fetch the provider's current view of a transfer.

        Raises:
            TransferAPIError: On provider errors or invalid response
        """
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await self._post(client, "get", "/transfer/get", {"transfer_id": transfer_id})
            if response.status_code >= 400:
                raise TransferAPIError(f"Transfer lookup failed: {response.status_code}")

            try:
                transfer = response.json()["transfer"]
                failure = transfer.get("failure_reason")
                return TransferStatus(
                    transfer_id=transfer["id"],
                    status=transfer["status"],
                    failure=TransferFailure(
                        return_code=failure.get("ach_return_code"),
                        description=failure.get("description"),
                    )
                    if failure
                    else None,
                )
            except (KeyError, ValueError, TypeError, AttributeError) as e:
                raise TransferAPIError(f"Invalid transfer data from provider: {e}") from e


def generate_signature(body: bytes, secret: str) -> str:
    """HMAC-SHA256 hex digest of a raw webhook body"""
    return hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()


def verify_webhook_signature(body: bytes, signature: Optional[str], secret: str) -> None:
    """
    Check a provider webhook signature against the raw request body.

    Raises:
        WebhookVerificationError: Signature missing or not matching
    """
    if not signature:
        raise WebhookVerificationError("Missing webhook signature")
    if not hmac.compare_digest(signature, generate_signature(body, secret)):
        raise WebhookVerificationError("Invalid webhook signature")
