"""Loan status changes driven by payment outcomes"""

import logging
from datetime import date
from typing import Any, Dict, List

from sqlalchemy.orm import Session

from lending_engine.domain.models import LoanStatus, PaymentStatus
from lending_engine.domain.state_machine import transition
from lending_engine.infrastructure.database.models import Payment
from lending_engine.infrastructure.database.repositories import AuditLogRepository, PaymentRepository
from lending_engine.services.delinquency import DelinquencyTracker
from lending_engine.utils.date_utils import utcnow

logger = logging.getLogger(__name__)


def payment_event(event: str, payment: Payment, **extra: Any) -> Dict[str, Any]:
    return {
        "event": event,
        "payment_id": str(payment.id),
        "loan_id": str(payment.loan_id),
        "payment_number": payment.payment_number,
        "amount_cents": payment.amount_cents,
        **extra,
    }


def apply_payment_completion(db: Session, payment: Payment, today: date, actor: str = "system") -> List[Dict[str, Any]]:
    """
    Side effects of a payment reaching completed.

    - A settled payoff payment cancels the installments still outstanding
    - Loan -> paid_off once every payment is completed or cancelled
    - Loan funded -> repaying on its first completed payment
    - days_overdue re-derived (0 when nothing is unresolved)

    Returns the outbound events to publish. The caller owns the commit.
    """
    loan = payment.loan
    payments = PaymentRepository(db)
    audit = AuditLogRepository(db)
    events = [payment_event("PAYMENT_COMPLETED", payment)]

    if payment.is_payoff:
        for other in payments.get_for_loan(loan.id):
            if other.id != payment.id and other.status in PaymentStatus.OUTSTANDING:
                transition(other, PaymentStatus.CANCELLED)
        db.flush()

    all_payments = payments.get_for_loan(loan.id)
    settled = all(p.status in PaymentStatus.TERMINAL for p in all_payments)
    previous = loan.status

    if settled and loan.status != LoanStatus.PAID_OFF:
        loan.status = LoanStatus.PAID_OFF
        loan.paid_off_at = utcnow()
        loan.days_overdue = 0
        events.append({"event": "LOAN_PAID_OFF", "loan_id": str(loan.id)})
    else:
        if loan.status == LoanStatus.FUNDED:
            loan.status = LoanStatus.REPAYING
        DelinquencyTracker(db).update_loan_delinquency(loan, today)

    if loan.status != previous:
        audit.record("loan", loan.id, actor, f"loan_{loan.status}", {"previous_status": previous, "payment_id": str(payment.id)})
        logger.info(f"Loan {loan.id} moved {previous} -> {loan.status}")

    return events
