"""Scheduled trigger for the payment collection run"""

import logging
from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from lending_engine.api.v1.schemas import ProcessingSummaryResponse, QueueStatusResponse
from lending_engine.api.dependencies import get_event_client, get_request_id, get_transfer_client, require_cron_token
from lending_engine.infrastructure.database.session import get_db
from lending_engine.infrastructure.clients.events import EventClient
from lending_engine.infrastructure.clients.transfer import TransferClient
from lending_engine.domain.exceptions import JobAlreadyRunningError
from lending_engine.services.payment_processor import PaymentProcessor

router = APIRouter(dependencies=[Depends(require_cron_token)])


@router.post("/cron/process-payments", response_model=ProcessingSummaryResponse)
async def process_payments(
    request: Request,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    transfer_client: TransferClient = Depends(get_transfer_client),
    event_client: EventClient = Depends(get_event_client),
):
    """
    Run one collection cycle.

    Flow:
    1. Sync in-flight transfers from the provider
    2. Debit due payments one at a time
    3. Mark overdue payments and escalate defaults
    4. Publish payment/loan events asynchronously
    """
    request_id = get_request_id(request)

    try:
        summary = await PaymentProcessor(db, transfer_client).run()
    except JobAlreadyRunningError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except Exception as e:
        db.rollback()
        logging.error(f"Payment run failed: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=500, detail="Payment processing failed")

    if summary.events:
        background_tasks.add_task(event_client.publish, summary.events)

    return ProcessingSummaryResponse(**summary.to_dict())


@router.get("/cron/process-payments", response_model=QueueStatusResponse)
def queue_status(db: Session = Depends(get_db), transfer_client: TransferClient = Depends(get_transfer_client)):
    """Current queue depth for monitoring"""
    return QueueStatusResponse(**PaymentProcessor(db, transfer_client).queue_status())
