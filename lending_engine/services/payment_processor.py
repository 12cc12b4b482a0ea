"""Batch collection of due loan payments"""

import logging
import time
import uuid
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from lending_engine.config import settings
from lending_engine.domain.exceptions import JobAlreadyRunningError, TransferAPIError
from lending_engine.domain.models import PaymentStatus
from lending_engine.domain.retry_policy import RetryPolicy
from lending_engine.domain.state_machine import transition
from lending_engine.infrastructure.database.models import Payment
from lending_engine.infrastructure.database.repositories import (
    ApplicationRepository,
    AuditLogRepository,
    JobLockRepository,
    PaymentRepository,
)
from lending_engine.infrastructure.observability.logging import log_payment_run
from lending_engine.infrastructure.observability.metrics import record_payment_run
from lending_engine.services.delinquency import DelinquencyTracker
from lending_engine.services.loan_state import payment_event
from lending_engine.services.reconciler import SyncSummary, TransferReconciler
from lending_engine.utils.date_utils import utcnow

logger = logging.getLogger(__name__)

JOB_NAME = "process-payments"
NO_BANK_ACCOUNT_REASON = "No bank account linked"


@dataclass
class ProcessingSummary:
    processed: int = 0
    successful: int = 0
    failed: int = 0
    skipped: int = 0
    retry_scheduled: int = 0
    overdue_marked: int = 0
    loans_defaulted: int = 0
    errors: List[str] = field(default_factory=list)
    sync: SyncSummary = field(default_factory=SyncSummary)
    duration_ms: float = 0.0
    events: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "processed": self.processed,
            "successful": self.successful,
            "failed": self.failed,
            "skipped": self.skipped,
            "retry_scheduled": self.retry_scheduled,
            "overdue_marked": self.overdue_marked,
            "loans_defaulted": self.loans_defaulted,
            "errors": list(self.errors),
            "sync": self.sync.to_dict(),
            "duration_ms": self.duration_ms,
        }


class PaymentProcessor:
    """
    Runs one collection cycle.

    Order of work:
    1. Take the job lock (one active worker)
    2. Sync in-flight transfers from the provider
    3. Debit every due payment, one at a time, claiming each (pending)
       and committing before the provider is called
    4. Overdue sweep, then delinquency/default refresh

    Each payment commits on its own; an error on one is recorded in the
    summary and the batch moves on.
    """

    def __init__(self, db: Session, transfer_client, retry_policy: Optional[RetryPolicy] = None):
        self.db = db
        self.transfer_client = transfer_client
        self.retry_policy = retry_policy or RetryPolicy.from_settings(settings)
        self.payments = PaymentRepository(db)
        self.applications = ApplicationRepository(db)
        self.audit = AuditLogRepository(db)
        self.locks = JobLockRepository(db)
        self.delinquency = DelinquencyTracker(db)
        self.reconciler = TransferReconciler(db, retry_policy=self.retry_policy, actor="payment_processor")

    async def run(self, today: Optional[date] = None) -> ProcessingSummary:
        """
        Process all payments due as of `today`.

        Raises:
            JobAlreadyRunningError: Another run holds the lock
        """
        today = today or utcnow().date()
        owner = str(uuid.uuid4())
        if not self.locks.acquire(JOB_NAME, owner, settings.job_lock_ttl_seconds):
            raise JobAlreadyRunningError(f"{JOB_NAME} is already running")

        start_time = time.perf_counter()
        summary = ProcessingSummary()
        try:
            summary.sync = await self.reconciler.sync_in_flight(self.transfer_client, today)
            summary.events.extend(summary.sync.events)

            for payment in self.payments.get_due(today):
                summary.processed += 1
                payment_id = payment.id
                try:
                    await self._process_payment(payment, today, summary)
                except Exception as e:
                    self.db.rollback()
                    summary.failed += 1
                    summary.errors.append(f"Payment {payment_id}: {e}")
                    logger.exception(f"Unexpected error processing payment {payment_id}")
                    self._flag_unsent_claim(payment_id, e)

            summary.overdue_marked = self.delinquency.mark_overdue(today)
            for loan in self.delinquency.refresh_delinquency(today):
                summary.loans_defaulted += 1
                summary.events.append({"event": "LOAN_DEFAULTED", "loan_id": str(loan.id), "days_overdue": loan.days_overdue})

            summary.duration_ms = round((time.perf_counter() - start_time) * 1000, 2)
            self.audit.record("job", JOB_NAME, "system", "payment_processing_complete", summary.to_dict())
            self.db.commit()
        finally:
            self.locks.release(JOB_NAME, owner)

        log_payment_run(summary.to_dict())
        record_payment_run(summary)
        return summary

    async def _process_payment(self, payment: Payment, today: date, summary: ProcessingSummary) -> None:
        credentials = self.applications.settlement_credentials(payment.loan.application)
        if credentials is None:
            logger.warning(f"Payment {payment.id}: no linked bank account, flagging for action")
            transition(payment, PaymentStatus.FAILED)
            payment.failure_reason = NO_BANK_ACCOUNT_REASON
            payment.requires_action = True
            payment.processed_at = utcnow()
            self.audit.record("payment", payment.id, "payment_processor", "payment_skipped", {"reason": NO_BANK_ACCOUNT_REASON})
            self.db.commit()
            summary.skipped += 1
            return

        # Claim before calling out so a sync or webhook never re-initiates it
        transition(payment, PaymentStatus.PENDING)
        payment.processed_at = utcnow()
        self.db.commit()

        try:
            result = await self.transfer_client.initiate_transfer(
                credentials,
                payment.amount_cents,
                description=f"Loan Pmt {payment.payment_number}",
                metadata={"payment_id": str(payment.id), "loan_id": str(payment.loan_id)},
            )
        except TransferAPIError as e:
            # Outcome unknown at the provider; never re-debit automatically
            transition(payment, PaymentStatus.FAILED)
            payment.failure_reason = f"Transfer provider error: {e}"
            payment.requires_action = True
            self.audit.record("payment", payment.id, "payment_processor", "transfer_error", {"error": str(e)})
            self.db.commit()
            summary.failed += 1
            summary.errors.append(f"Payment {payment.id}: {e}")
            logger.error(f"Payment {payment.id}: transfer provider error - {e}")
            return

        if result.success:
            payment.transfer_id = result.transfer_id
            transition(payment, PaymentStatus.PROCESSING)
            self.audit.record(
                "payment",
                payment.id,
                "payment_processor",
                "transfer_initiated",
                {"transfer_id": result.transfer_id, "amount_cents": payment.amount_cents},
            )
            self.db.commit()
            summary.successful += 1
            logger.info(f"Payment {payment.id}: ACH initiated, transfer {result.transfer_id}")
            return

        transition(payment, PaymentStatus.FAILED)
        payment.failure_reason = result.error or "Transfer initiation failed"
        payment.failure_code = result.error_code
        summary.failed += 1
        summary.events.append(
            payment_event("PAYMENT_FAILED", payment, failure_code=payment.failure_code, failure_reason=payment.failure_reason)
        )
        audit_payload = {"failure_code": payment.failure_code, "failure_reason": payment.failure_reason}

        if self.retry_policy.schedule_retry(payment, today):
            summary.retry_scheduled += 1
            audit_payload["next_retry_date"] = payment.next_retry_date.isoformat()

        self.audit.record("payment", payment.id, "payment_processor", "transfer_rejected", audit_payload)
        self.db.commit()
        logger.error(f"Payment {payment.id}: initiation failed - {audit_payload['failure_reason']}")

    def _flag_unsent_claim(self, payment_id: uuid.UUID, error: Exception) -> None:
        """
        Hand a claimed payment with no recorded transfer to an operator.

        A pending payment without a transfer_id is invisible to sync and to
        the overdue sweep; whether the provider saw the debit is unknown, so
        it is never re-initiated automatically.
        """
        payment = self.payments.get_by_id(payment_id)
        if payment is None or payment.status != PaymentStatus.PENDING or payment.transfer_id:
            return

        transition(payment, PaymentStatus.FAILED)
        payment.failure_reason = f"Initiation interrupted: {error}"
        payment.requires_action = True
        self.audit.record("payment", payment.id, "payment_processor", "initiation_interrupted", {"error": str(error)})
        self.db.commit()
        logger.error(f"Payment {payment.id}: claim left without a transfer, flagged for action")

    def queue_status(self, today: Optional[date] = None) -> Dict[str, int]:
        """Queue depth for monitoring"""
        return self.payments.queue_counts(today or utcnow().date())
