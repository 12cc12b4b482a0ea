"""POST /v1/webhooks/transfers - transfer provider status events"""

import logging
from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request
from pydantic import ValidationError
from sqlalchemy.orm import Session

from lending_engine.api.v1.schemas import TransferFailureReasonSchema, TransferWebhookPayload, WebhookAck
from lending_engine.api.dependencies import get_event_client, get_request_id, verified_webhook_body
from lending_engine.infrastructure.database.session import get_db
from lending_engine.infrastructure.database.repositories import AuditLogRepository
from lending_engine.infrastructure.clients.events import EventClient
from lending_engine.domain.models import TransferFailure
from lending_engine.services.reconciler import TransferReconciler

router = APIRouter()

TRANSFER_EVENTS_UPDATE = "TRANSFER_EVENTS_UPDATE"


def _failure(reason: TransferFailureReasonSchema | None) -> TransferFailure | None:
    if reason is None:
        return None
    return TransferFailure(return_code=reason.ach_return_code, description=reason.description)


@router.post("/webhooks/transfers", response_model=WebhookAck)
def transfer_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    body: bytes = Depends(verified_webhook_body),
    db: Session = Depends(get_db),
    event_client: EventClient = Depends(get_event_client),
):
    """
    Apply provider transfer events.

    - Signature is verified before the body is parsed (401 otherwise)
    - Malformed bodies are rejected with 400
    - Processing errors still return 200 so the provider does not retry
      in a storm; the error is written to the audit log instead
    """
    request_id = get_request_id(request)

    try:
        payload = TransferWebhookPayload.model_validate_json(body)
    except ValidationError as e:
        logging.warning(f"Malformed transfer webhook: {e.error_count()} errors", extra={"request_id": request_id})
        raise HTTPException(status_code=400, detail="Malformed webhook payload")

    if payload.webhook_type != TRANSFER_EVENTS_UPDATE:
        return WebhookAck(received=True)

    reconciler = TransferReconciler(db)
    events = []
    processed = 0

    try:
        for event in payload.transfer_events:
            outcome = reconciler.apply_transfer_update(
                event.transfer_id,
                event.event_type,
                failure=_failure(event.failure_reason),
                event_id=event.event_id,
            )
            events.extend(outcome.events)
            processed += 1

        if payload.transfer_id and payload.transfer_status:
            outcome = reconciler.apply_transfer_update(
                payload.transfer_id,
                payload.transfer_status,
                failure=_failure(payload.failure_reason),
            )
            events.extend(outcome.events)

    except Exception as e:
        db.rollback()
        logging.error(f"Transfer webhook processing error: {e}", extra={"request_id": request_id})
        AuditLogRepository(db).record(
            "webhook",
            payload.transfer_id or "unknown",
            "transfer_provider",
            "webhook_error",
            {"error": str(e), "webhook_type": payload.webhook_type, "webhook_code": payload.webhook_code},
        )
        db.commit()
        return WebhookAck(received=True, processed=processed, error=str(e))

    finally:
        if events:
            background_tasks.add_task(event_client.publish, events)

    return WebhookAck(received=True, processed=processed)
