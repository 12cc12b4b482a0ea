"""Overdue sweep and default escalation"""

import logging
from datetime import date
from typing import List, Optional

from sqlalchemy.orm import Session

from lending_engine.config import settings
from lending_engine.domain.models import LoanStatus, PaymentStatus
from lending_engine.domain.state_machine import transition
from lending_engine.infrastructure.database.models import Loan
from lending_engine.infrastructure.database.repositories import AuditLogRepository, LoanRepository, PaymentRepository
from lending_engine.infrastructure.observability.metrics import loan_default_counter
from lending_engine.utils.date_utils import days_between, utcnow

logger = logging.getLogger(__name__)


class DelinquencyTracker:
    """
    Ages unpaid payments and derives loan delinquency from them.

    The sweep only changes payment state. A loan's days_overdue is the age
    of its oldest overdue/failed payment, and the loan defaults once that
    age reaches `default_after_days` (60).
    """

    def __init__(self, db: Session, default_after_days: Optional[int] = None):
        self.db = db
        self.default_after_days = default_after_days or settings.default_after_days
        self.payments = PaymentRepository(db)
        self.loans = LoanRepository(db)
        self.audit = AuditLogRepository(db)

    def mark_overdue(self, today: date) -> int:
        """Move scheduled payments due before today to overdue; returns the count"""
        candidates = self.payments.get_overdue_candidates(today)
        for payment in candidates:
            transition(payment, PaymentStatus.OVERDUE)

        if candidates:
            self.db.commit()
            logger.info(f"Marked {len(candidates)} payments as overdue")
        return len(candidates)

    def update_loan_delinquency(self, loan: Loan, today: date) -> bool:
        """
        Recompute days_overdue from the oldest unresolved payment.

        Returns True when this call moved the loan to defaulted. The caller
        owns the commit.
        """
        self.db.flush()  # Sessions run with autoflush off
        oldest_due = self.payments.oldest_unresolved_due_date(loan.id)
        days_overdue = days_between(oldest_due, today) if oldest_due else 0

        if loan.status == LoanStatus.DEFAULTED:
            # Defaulted loans keep their escalation; only the age moves forward
            loan.days_overdue = max(days_overdue, loan.days_overdue or 0)
            return False

        loan.days_overdue = days_overdue

        if days_overdue >= self.default_after_days and loan.status in LoanStatus.ACTIVE:
            previous = loan.status
            loan.status = LoanStatus.DEFAULTED
            loan.defaulted_at = utcnow()
            self.audit.record(
                "loan",
                loan.id,
                "system",
                "loan_defaulted",
                {"previous_status": previous, "days_overdue": days_overdue},
            )
            loan_default_counter.inc()
            logger.warning(f"Loan {loan.id} defaulted at {days_overdue} days overdue")
            return True

        return False

    def refresh_delinquency(self, today: date) -> List[Loan]:
        """Re-age every active loan holding unresolved payments; returns the loans that defaulted"""
        defaulted = [loan for loan in self.loans.get_active_with_unresolved() if self.update_loan_delinquency(loan, today)]
        self.db.commit()
        return defaulted
