"""Operator payment actions (bearer ADMIN_API_TOKEN)"""

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException
from sqlalchemy.orm import Session

from lending_engine.api.v1.schemas import MarkPaidRequest, PaymentSchema
from lending_engine.api.v1.loans import payment_schema
from lending_engine.api.dependencies import get_event_client, parse_uuid, require_admin_token
from lending_engine.infrastructure.database.session import get_db
from lending_engine.infrastructure.clients.events import EventClient
from lending_engine.domain.exceptions import InvalidStateError, PaymentNotFoundError
from lending_engine.services.servicing import ServicingService

router = APIRouter()


@router.post("/admin/payments/{payment_id}/retry", response_model=PaymentSchema)
def retry_payment(payment_id: str, db: Session = Depends(get_db), actor: str = Depends(require_admin_token)):
    """Reschedule a failed/overdue payment for the next collection run"""
    try:
        payment = ServicingService(db).retry_payment(parse_uuid(payment_id, "payment"), actor)
    except PaymentNotFoundError:
        raise HTTPException(status_code=404, detail="Payment not found")
    except InvalidStateError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return payment_schema(payment)


@router.post("/admin/payments/{payment_id}/mark-paid", response_model=PaymentSchema)
def mark_paid(
    payment_id: str,
    background_tasks: BackgroundTasks,
    request_body: MarkPaidRequest | None = None,
    db: Session = Depends(get_db),
    actor: str = Depends(require_admin_token),
    event_client: EventClient = Depends(get_event_client),
):
    """Record a payment collected outside ACH and settle the loan accordingly"""
    note = request_body.note if request_body else None
    try:
        payment, events = ServicingService(db).mark_paid(parse_uuid(payment_id, "payment"), actor, note=note)
    except PaymentNotFoundError:
        raise HTTPException(status_code=404, detail="Payment not found")
    except InvalidStateError as e:
        raise HTTPException(status_code=400, detail=str(e))

    background_tasks.add_task(event_client.publish, events)
    return payment_schema(payment)
