"""Early payoff quotes and execution"""

import logging
import uuid
from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy.orm import Session

from lending_engine.config import settings
from lending_engine.domain.exceptions import InvalidStateError, LoanNotFoundError, QuoteExpiredError, TransferAPIError
from lending_engine.domain.models import LoanStatus, LoanTerms, PaymentSnapshot, PaymentStatus, PayoffQuote
from lending_engine.domain.payoff import calculate_payoff_quote
from lending_engine.domain.state_machine import transition
from lending_engine.infrastructure.database.models import Loan, Payment
from lending_engine.infrastructure.database.repositories import (
    ApplicationRepository,
    AuditLogRepository,
    LoanRepository,
    PaymentRepository,
)
from lending_engine.utils.date_utils import utcnow

logger = logging.getLogger(__name__)


def loan_terms(loan: Loan) -> LoanTerms:
    installments = [p for p in loan.payments if not p.is_payoff]
    return LoanTerms(
        loan_id=str(loan.id),
        funded_amount_cents=loan.funded_amount_cents,
        apr=loan.apr,
        funding_date=loan.funding_date,
        total_scheduled_cents=sum(p.amount_cents for p in installments),
    )


def payment_snapshots(payments: List[Payment]) -> List[PaymentSnapshot]:
    return [
        PaymentSnapshot(
            status=p.status,
            amount_cents=p.amount_cents,
            principal_cents=p.principal_cents or 0,
            interest_cents=p.interest_cents or 0,
            completed_at=p.completed_at,
        )
        for p in payments
        if not p.is_payoff
    ]


class PayoffService:
    """Quotes and executes early payoff for active loans"""

    def __init__(self, db: Session, transfer_client=None):
        self.db = db
        self.transfer_client = transfer_client
        self.loans = LoanRepository(db)
        self.payments = PaymentRepository(db)
        self.applications = ApplicationRepository(db)
        self.audit = AuditLogRepository(db)

    def quote(self, loan_id: uuid.UUID, now: Optional[datetime] = None) -> Optional[PayoffQuote]:
        """Current payoff quote, or None when the loan does not exist"""
        loan = self.loans.get_by_id(loan_id)
        if loan is None:
            return None
        return calculate_payoff_quote(
            loan_terms(loan),
            payment_snapshots(loan.payments),
            now or utcnow(),
            valid_days=settings.payoff_quote_valid_days,
        )

    async def execute(
        self,
        loan_id: uuid.UUID,
        quote_valid_until: datetime,
        now: Optional[datetime] = None,
    ) -> Tuple[Payment, PayoffQuote]:
        """
        Debit the payoff amount and retire the remaining schedule.

        The borrower confirms a quote; an expired quote is refused. A fresh
        quote is computed at execution time. When the transfer is accepted
        the remaining installments are cancelled; the loan itself becomes
        paid_off when the payoff transfer settles. If initiation errors out the
        payoff payment is left failed and flagged for action.

        Returns the payoff payment and the quote it was created from.

        Raises:
            LoanNotFoundError: Unknown loan
            QuoteExpiredError: quote_valid_until is in the past
            InvalidStateError: Loan not active, payoff already in progress, no
                linked account, or the provider rejected the debit
            TransferAPIError: Provider unavailable; the payoff payment is flagged for action
        """
        now = now or utcnow()
        loan = self.loans.get_by_id(loan_id)
        if loan is None:
            raise LoanNotFoundError(f"Loan {loan_id} not found")

        valid_until = quote_valid_until
        if valid_until.tzinfo is None:
            valid_until = valid_until.replace(tzinfo=now.tzinfo)
        if valid_until < now:
            raise QuoteExpiredError("Payoff quote has expired; request a new quote")

        if loan.status not in LoanStatus.ACTIVE:
            raise InvalidStateError(f"Loan is {loan.status}; payoff not available")
        if any(p.is_payoff and p.status not in PaymentStatus.TERMINAL for p in loan.payments):
            raise InvalidStateError("A payoff payment is already in progress")

        credentials = self.applications.settlement_credentials(loan.application)
        if credentials is None:
            raise InvalidStateError("No bank account linked for payoff")

        quote = calculate_payoff_quote(
            loan_terms(loan),
            payment_snapshots(loan.payments),
            now,
            valid_days=settings.payoff_quote_valid_days,
        )
        if quote.total_payoff_cents <= 0:
            raise InvalidStateError("Nothing left to pay off")

        payoff_payment = self.payments.create_payoff_payment(
            loan.id,
            amount_cents=quote.total_payoff_cents,
            principal_cents=quote.remaining_principal_cents,
            interest_cents=quote.accrued_interest_cents,
            due_date=now.date(),
        )
        payoff_payment.processed_at = now
        self.audit.record("loan", loan.id, "borrower", "payoff_requested", {"total_payoff_cents": quote.total_payoff_cents})
        self.db.commit()

        try:
            result = await self.transfer_client.initiate_transfer(
                credentials,
                payoff_payment.amount_cents,
                description="Loan Payoff",
                metadata={"payment_id": str(payoff_payment.id), "loan_id": str(loan.id), "payoff": "true"},
            )
        except TransferAPIError as e:
            self._flag_unsent_payoff(payoff_payment.id, f"Transfer provider error: {e}")
            raise
        except Exception as e:
            self._flag_unsent_payoff(payoff_payment.id, f"Initiation interrupted: {e}")
            raise

        if not result.success:
            # Nothing moved; the schedule stays as it was
            transition(payoff_payment, PaymentStatus.CANCELLED)
            payoff_payment.failure_reason = result.error or "Transfer initiation failed"
            payoff_payment.failure_code = result.error_code
            self.audit.record(
                "payment",
                payoff_payment.id,
                "borrower",
                "payoff_transfer_rejected",
                {"failure_code": result.error_code, "failure_reason": payoff_payment.failure_reason},
            )
            self.db.commit()
            raise InvalidStateError(f"Payoff transfer rejected: {payoff_payment.failure_reason}")

        payoff_payment.transfer_id = result.transfer_id
        transition(payoff_payment, PaymentStatus.PROCESSING)

        cancelled = 0
        for payment in loan.payments:
            if not payment.is_payoff and payment.status in PaymentStatus.OUTSTANDING:
                transition(payment, PaymentStatus.CANCELLED)
                cancelled += 1

        self.audit.record(
            "payment",
            payoff_payment.id,
            "borrower",
            "payoff_initiated",
            {"transfer_id": result.transfer_id, "installments_cancelled": cancelled},
        )
        self.db.commit()
        logger.info(f"Payoff initiated for loan {loan.id}: {quote.total_payoff_cents} cents, {cancelled} installments cancelled")

        return payoff_payment, quote

    def _flag_unsent_payoff(self, payment_id: uuid.UUID, reason: str) -> None:
        """
        Leave a payoff whose transfer outcome is unknown as failed and needing action.

        It keeps blocking new payoff requests until an operator marks it paid
        or reschedules it, so the borrower is never debited twice.
        """
        self.db.rollback()
        payment = self.payments.get_by_id(payment_id)
        if payment is None or payment.status != PaymentStatus.PENDING or payment.transfer_id:
            return

        transition(payment, PaymentStatus.FAILED)
        payment.failure_reason = reason
        payment.requires_action = True
        self.audit.record("payment", payment.id, "borrower", "payoff_initiation_error", {"error": reason})
        self.db.commit()
        logger.error(f"Payoff payment {payment.id}: {reason}, flagged for action")
