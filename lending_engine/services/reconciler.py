"""Applies provider transfer events to payment and loan state"""

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from lending_engine.config import settings
from lending_engine.domain.exceptions import IllegalTransitionError, TransferAPIError
from lending_engine.domain.models import PaymentStatus, TransferEventType, TransferFailure
from lending_engine.domain.retry_policy import RetryPolicy
from lending_engine.domain.state_machine import transition
from lending_engine.infrastructure.database.models import Payment
from lending_engine.infrastructure.database.repositories import (
    AuditLogRepository,
    PaymentRepository,
    TransferEventRepository,
)
from lending_engine.infrastructure.observability.logging import log_transfer_event
from lending_engine.infrastructure.observability.metrics import transfer_event_counter
from lending_engine.services.delinquency import DelinquencyTracker
from lending_engine.services.loan_state import apply_payment_completion, payment_event
from lending_engine.utils.date_utils import utcnow

logger = logging.getLogger(__name__)

# Provider transfer state -> local payment status
STATUS_FOR_EVENT = {
    TransferEventType.PENDING: PaymentStatus.PROCESSING,
    TransferEventType.POSTED: PaymentStatus.PROCESSING,
    TransferEventType.SETTLED: PaymentStatus.COMPLETED,
    TransferEventType.CANCELLED: PaymentStatus.CANCELLED,
    TransferEventType.FAILED: PaymentStatus.FAILED,
    TransferEventType.RETURNED: PaymentStatus.FAILED,
}


class ReconcileResult:
    APPLIED = "applied"
    DUPLICATE = "duplicate"
    UNKNOWN = "unknown"
    IGNORED = "ignored"
    REJECTED = "rejected"


@dataclass
class ReconcileOutcome:
    result: str
    payment_id: Optional[str] = None
    previous_status: Optional[str] = None
    new_status: Optional[str] = None
    events: List[Dict[str, Any]] = field(default_factory=list)


@dataclass
class SyncSummary:
    checked: int = 0
    updated: int = 0
    errors: List[str] = field(default_factory=list)
    events: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"checked": self.checked, "updated": self.updated, "errors": list(self.errors)}


class TransferReconciler:
    """
    Idempotent handler for provider transfer events.

    An event is applied only when it changes the payment's status or records
    a new failure fact. Completed and cancelled payments are terminal, so a
    late or out-of-order event never regresses them. Events for transfer ids
    this system does not track are logged and dropped.
    """

    def __init__(self, db: Session, retry_policy: Optional[RetryPolicy] = None, actor: str = "transfer_webhook"):
        self.db = db
        self.retry_policy = retry_policy or RetryPolicy.from_settings(settings)
        self.actor = actor
        self.payments = PaymentRepository(db)
        self.transfer_events = TransferEventRepository(db)
        self.audit = AuditLogRepository(db)
        self.delinquency = DelinquencyTracker(db)

    def apply_transfer_update(
        self,
        transfer_id: str,
        event_type: str,
        failure: Optional[TransferFailure] = None,
        event_id: Optional[str] = None,
        today: Optional[date] = None,
    ) -> ReconcileOutcome:
        """Apply one provider event and commit; returns what happened plus events to publish"""
        today = today or utcnow().date()
        event_type = (event_type or "").lower()

        if event_id and self.transfer_events.exists(event_id):
            return self._finish(transfer_id, event_type, ReconcileOutcome(ReconcileResult.DUPLICATE))

        target = STATUS_FOR_EVENT.get(event_type)
        if target is None:
            logger.warning(f"Unsupported transfer event type '{event_type}' for transfer {transfer_id}")
            return self._finish(transfer_id, event_type, ReconcileOutcome(ReconcileResult.IGNORED))

        payment = self.payments.get_by_transfer_id(transfer_id)
        if payment is None:
            logger.warning(f"Transfer event for unknown transfer {transfer_id}")
            return self._finish(transfer_id, event_type, ReconcileOutcome(ReconcileResult.UNKNOWN))

        outcome = ReconcileOutcome(
            ReconcileResult.IGNORED,
            payment_id=str(payment.id),
            previous_status=payment.status,
            new_status=payment.status,
        )

        if payment.status in PaymentStatus.TERMINAL:
            logger.info(f"Payment {payment.id} is {payment.status}; ignoring '{event_type}' event")
        elif payment.status == target and not self._is_new_failure(payment, failure):
            pass
        else:
            try:
                outcome = self._apply(payment, target, event_type, failure, today)
            except IllegalTransitionError as e:
                logger.warning(f"Rejected '{event_type}' event for payment {payment.id}: {e}")
                outcome.result = ReconcileResult.REJECTED

        if event_id:
            self.transfer_events.record(event_id, transfer_id, event_type, payment.id)
        self.db.commit()
        return self._finish(transfer_id, event_type, outcome)

    @staticmethod
    def _is_new_failure(payment: Payment, failure: Optional[TransferFailure]) -> bool:
        return (
            payment.status == PaymentStatus.FAILED
            and failure is not None
            and failure.return_code is not None
            and failure.return_code != payment.failure_code
        )

    def _apply(
        self,
        payment: Payment,
        target: str,
        event_type: str,
        failure: Optional[TransferFailure],
        today: date,
    ) -> ReconcileOutcome:
        previous = payment.status
        if previous != target:
            transition(payment, target)
        events: List[Dict[str, Any]] = []
        audit_payload: Dict[str, Any] = {
            "transfer_id": payment.transfer_id,
            "previous_status": previous,
            "new_status": target,
        }

        if target == PaymentStatus.COMPLETED:
            payment.completed_at = utcnow()
            payment.requires_action = False
            events.extend(apply_payment_completion(self.db, payment, today, actor=self.actor))

        elif target == PaymentStatus.FAILED:
            payment.failure_code = failure.return_code if failure else None
            payment.failure_reason = (failure.description if failure else None) or f"Transfer {event_type}"
            payment.requires_action = not self.retry_policy.is_retryable(payment.failure_code)
            audit_payload["failure_code"] = payment.failure_code
            audit_payload["failure_reason"] = payment.failure_reason
            events.append(
                payment_event(
                    "PAYMENT_FAILED",
                    payment,
                    failure_code=payment.failure_code,
                    failure_reason=payment.failure_reason,
                )
            )

            if not payment.requires_action:
                rescheduled = self.retry_policy.schedule_retry(payment, today)
                audit_payload["retry_scheduled"] = rescheduled
                if rescheduled:
                    audit_payload["next_retry_date"] = payment.next_retry_date.isoformat()

            loan = payment.loan
            if self.delinquency.update_loan_delinquency(loan, today):
                events.append({"event": "LOAN_DEFAULTED", "loan_id": str(loan.id), "days_overdue": loan.days_overdue})

        self.audit.record("payment", payment.id, self.actor, f"transfer_{event_type}", audit_payload)
        return ReconcileOutcome(
            ReconcileResult.APPLIED,
            payment_id=str(payment.id),
            previous_status=previous,
            new_status=payment.status,
            events=events,
        )

    def _finish(self, transfer_id: str, event_type: str, outcome: ReconcileOutcome) -> ReconcileOutcome:
        transfer_event_counter.labels(event_type=event_type or "unknown", result=outcome.result).inc()
        log_transfer_event(
            transfer_id=transfer_id,
            event_type=event_type,
            outcome=outcome.result,
            payment_id=outcome.payment_id,
            new_status=outcome.new_status,
        )
        return outcome

    async def sync_in_flight(self, transfer_client, today: Optional[date] = None) -> SyncSummary:
        """
        Pull the provider's current status for every in-flight payment.

        Runs before new debits go out so stale local state never causes a
        second transfer for the same payment.
        """
        summary = SyncSummary()
        for payment in self.payments.get_in_flight():
            summary.checked += 1
            payment_id, transfer_id = payment.id, payment.transfer_id
            try:
                status = await transfer_client.get_transfer(transfer_id)
                outcome = self.apply_transfer_update(transfer_id, status.status, failure=status.failure, today=today)
            except TransferAPIError as e:
                summary.errors.append(f"{payment_id}: {e}")
                logger.error(f"Transfer sync failed for payment {payment_id}: {e}")
                continue
            except Exception as e:
                self.db.rollback()
                summary.errors.append(f"{payment_id}: {e}")
                logger.exception(f"Unexpected error syncing payment {payment_id}")
                continue

            if outcome.result == ReconcileResult.APPLIED:
                summary.updated += 1
                summary.events.extend(outcome.events)
        return summary
