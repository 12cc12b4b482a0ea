"""Operator actions on individual loan payments"""

import logging
import uuid
from datetime import date
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from lending_engine.domain.exceptions import InvalidStateError, PaymentNotFoundError
from lending_engine.domain.models import LoanStatus, PaymentStatus
from lending_engine.domain.state_machine import can_transition, transition
from lending_engine.infrastructure.database.models import Payment
from lending_engine.infrastructure.database.repositories import AuditLogRepository, PaymentRepository
from lending_engine.services.delinquency import DelinquencyTracker
from lending_engine.services.loan_state import apply_payment_completion
from lending_engine.utils.date_utils import utcnow

logger = logging.getLogger(__name__)


class ServicingService:
    """Manual retry and out-of-band settlement, both audited under the operator's name"""

    def __init__(self, db: Session):
        self.db = db
        self.payments = PaymentRepository(db)
        self.audit = AuditLogRepository(db)

    def _get_payment(self, payment_id: uuid.UUID) -> Payment:
        payment = self.payments.get_by_id(payment_id)
        if payment is None:
            raise PaymentNotFoundError(f"Payment {payment_id} not found")
        return payment

    def retry_payment(self, payment_id: uuid.UUID, actor: str, today: Optional[date] = None) -> Payment:
        """
        Put a failed or overdue payment back on the schedule for the next run.

        Does not consume the automatic retry budget.

        Raises:
            PaymentNotFoundError: Unknown payment
            InvalidStateError: Payment not failed/overdue, or loan paid off/defaulted
        """
        payment = self._get_payment(payment_id)
        if payment.status not in PaymentStatus.UNRESOLVED:
            raise InvalidStateError(f"Payment is {payment.status}; only failed or overdue payments can be retried")
        if payment.loan.status not in LoanStatus.ACTIVE:
            raise InvalidStateError(f"Cannot retry payment for a {payment.loan.status} loan")

        today = today or utcnow().date()
        previous = payment.status
        transition(payment, PaymentStatus.SCHEDULED)
        payment.next_retry_date = today
        payment.transfer_id = None
        payment.failure_reason = None
        payment.failure_code = None
        payment.requires_action = False

        # No longer unresolved, so it stops aging the loan
        DelinquencyTracker(self.db).update_loan_delinquency(payment.loan, today)
        self.audit.record("payment", payment.id, actor, "manual_retry", {"previous_status": previous})
        self.db.commit()
        logger.info(f"Payment {payment.id} rescheduled by {actor}")
        return payment

    def mark_paid(
        self,
        payment_id: uuid.UUID,
        actor: str,
        note: Optional[str] = None,
        today: Optional[date] = None,
    ) -> Tuple[Payment, List[Dict[str, Any]]]:
        """
        Record a payment collected outside the ACH rail (check, cash, card).

        Runs the same completion side effects as a settled transfer and
        returns the events to publish.

        Raises:
            PaymentNotFoundError: Unknown payment
            InvalidStateError: Payment already settled or currently in flight
        """
        payment = self._get_payment(payment_id)
        if payment.status in PaymentStatus.IN_FLIGHT or not can_transition(payment.status, PaymentStatus.COMPLETED):
            raise InvalidStateError(f"Payment is {payment.status}; cannot mark as paid")

        previous = payment.status
        transition(payment, PaymentStatus.COMPLETED)
        payment.completed_at = utcnow()
        payment.requires_action = False
        payment.failure_reason = None
        payment.failure_code = None

        events = apply_payment_completion(self.db, payment, today or utcnow().date(), actor=actor)
        self.audit.record("payment", payment.id, actor, "manual_mark_paid", {"previous_status": previous, "note": note})
        self.db.commit()
        logger.info(f"Payment {payment.id} marked paid by {actor}")
        return payment, events
