"""Dependency injection for FastAPI endpoints"""

import hmac
import uuid
import logging
from fastapi import HTTPException, Request
from lending_engine.config import settings
from lending_engine.domain.exceptions import WebhookVerificationError
from lending_engine.infrastructure.clients.events import EventClient
from lending_engine.infrastructure.clients.transfer import TransferClient, verify_webhook_signature

logger = logging.getLogger(__name__)

WEBHOOK_SIGNATURE_HEADER = "X-Webhook-Signature"


def get_request_id(request: Request) -> str:
    """Extract request ID from request state"""
    return getattr(request.state, "request_id", "unknown")


def get_transfer_client() -> TransferClient:
    """Provide transfer provider client instance"""
    return TransferClient()


def get_event_client() -> EventClient:
    """Provide outbound event client instance"""
    return EventClient()


def _require_bearer(request: Request, secret: str, name: str) -> None:
    """Shared-secret bearer check; an unset secret is only tolerated in development"""
    if not secret:
        if settings.is_development:
            return
        logger.error(f"{name} not configured; rejecting request")
        raise HTTPException(status_code=401, detail="Unauthorized")

    header = request.headers.get("Authorization", "")
    if not hmac.compare_digest(header.encode(), f"Bearer {secret}".encode()):
        raise HTTPException(status_code=401, detail="Unauthorized")


def require_cron_token(request: Request) -> None:
    _require_bearer(request, settings.cron_secret, "CRON_SECRET")


def require_admin_token(request: Request) -> str:
    """Returns the actor name recorded in audit entries"""
    _require_bearer(request, settings.admin_api_token, "ADMIN_API_TOKEN")
    return "admin"


async def verified_webhook_body(request: Request) -> bytes:
    """Raw webhook body, only returned once its signature checks out"""
    body = await request.body()
    secret = settings.transfer_webhook_secret
    if not secret:
        if settings.is_development:
            logger.warning("TRANSFER_WEBHOOK_SECRET not configured; accepting unsigned webhook")
            return body
        raise HTTPException(status_code=401, detail="Webhook verification unavailable")

    try:
        verify_webhook_signature(body, request.headers.get(WEBHOOK_SIGNATURE_HEADER), secret)
    except WebhookVerificationError as e:
        logger.warning(f"Rejected transfer webhook: {e}")
        raise HTTPException(status_code=401, detail=str(e))
    return body


def parse_uuid(value: str, entity: str) -> uuid.UUID:
    """Path id -> UUID, 400 on malformed ids"""
    try:
        return uuid.UUID(value)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid {entity} ID format")
