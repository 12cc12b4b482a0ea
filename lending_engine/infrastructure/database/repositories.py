"""Data access layer for lending entities"""

import uuid
from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import and_, func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from lending_engine.domain.models import (
    DecisionResult,
    Installment,
    LoanStatus,
    OfferTerms,
    PaymentStatus,
    SettlementCredentials,
)
from lending_engine.infrastructure.database.models import (
    Application,
    AuditLog,
    Decision,
    JobLock,
    Loan,
    Offer,
    Payment,
    TransferEvent,
)
from lending_engine.utils.date_utils import as_date, utcnow


class ApplicationRepository:
    """Repository for financing applications"""

    def __init__(self, db: Session):
        self.db = db

    def create_application(self, job_reference: str, customer_reference: str) -> Application:
        db_application = Application(job_reference=job_reference, customer_reference=customer_reference)
        self.db.add(db_application)
        self.db.flush()
        return db_application

    def get_by_id(self, application_id: uuid.UUID) -> Optional[Application]:
        return self.db.get(Application, application_id)

    def settlement_credentials(self, application: Application) -> Optional[SettlementCredentials]:
        """Provider handles for debiting the borrower, or None when no account is linked"""
        bank_data = application.bank_data or {}
        access_token = bank_data.get("access_token")
        account_id = bank_data.get("account_id")
        if not access_token or not account_id:
            return None

        customer = application.customer_info or {}
        legal_name = f"{customer.get('first_name', '')} {customer.get('last_name', '')}".strip()
        return SettlementCredentials(
            access_token=access_token,
            account_id=account_id,
            legal_name=legal_name,
            email=customer.get("email"),
        )


class DecisionRepository:
    """Repository for underwriting decisions"""

    def __init__(self, db: Session):
        self.db = db

    def create_decision(
        self,
        application_id: uuid.UUID,
        result: DecisionResult,
        decision_status: str,
        evaluator_version: str,
        decision_reason: str | None = None,
    ) -> Decision:
        """Persist decisioning outcome"""
        db_decision = Decision(
            application_id=application_id,
            score=result.score,
            decision_status=decision_status,
            decision_reason=decision_reason or result.decision_reason,
            risk_factors=list(result.risk_factors),
            positive_factors=list(result.positive_factors),
            data_used={
                "has_balance": result.data_used.has_balance,
                "has_asset_report": result.data_used.has_asset_report,
                "has_ach_numbers": result.data_used.has_ach_numbers,
                "account_age_days": result.data_used.account_age_days,
                "avg_balance_cents": result.data_used.avg_balance_cents,
                "income_detected_cents": result.data_used.income_detected_cents,
            },
            max_loan_amount_cents=result.max_loan_amount_cents,
            evaluator_version=evaluator_version,
        )
        self.db.add(db_decision)
        self.db.flush()  # Get ID without committing
        return db_decision

    def get_by_application(self, application_id: uuid.UUID) -> Optional[Decision]:
        return self.db.query(Decision).filter(Decision.application_id == application_id).first()


class OfferRepository:
    """Repository for installment offers"""

    def __init__(self, db: Session):
        self.db = db

    def create_offers(self, decision_id: uuid.UUID, offers: List[OfferTerms]) -> List[Offer]:
        db_offers = [
            Offer(
                decision_id=decision_id,
                term_months=offer.term_months,
                apr=offer.apr,
                monthly_payment_cents=offer.monthly_payment_cents,
                down_payment_cents=offer.down_payment_cents,
                origination_fee_cents=offer.origination_fee_cents,
                total_amount_cents=offer.total_amount_cents,
            )
            for offer in offers
        ]
        self.db.add_all(db_offers)
        self.db.flush()
        return db_offers

    def get_by_id(self, offer_id: uuid.UUID) -> Optional[Offer]:
        return self.db.get(Offer, offer_id)

    def get_selected(self, decision_id: uuid.UUID) -> Optional[Offer]:
        return (
            self.db.query(Offer)
            .filter(Offer.decision_id == decision_id, Offer.selected.is_(True))
            .first()
        )


class LoanRepository:
    """Repository for funded loans"""

    def __init__(self, db: Session):
        self.db = db

    def create_loan(self, application_id: uuid.UUID, offer: Offer, funded_amount_cents: int, funding_date: date) -> Loan:
        db_loan = Loan(
            application_id=application_id,
            offer_id=offer.id,
            funded_amount_cents=funded_amount_cents,
            apr=offer.apr,
            term_months=offer.term_months,
            monthly_payment_cents=offer.monthly_payment_cents,
            funding_date=funding_date,
            status=LoanStatus.FUNDED,
        )
        self.db.add(db_loan)
        self.db.flush()
        return db_loan

    def get_by_id(self, loan_id: uuid.UUID) -> Optional[Loan]:
        return self.db.get(Loan, loan_id)

    def get_active_with_unresolved(self) -> List[Loan]:
        """Active loans holding at least one overdue or failed payment"""
        return (
            self.db.query(Loan)
            .join(Payment, Payment.loan_id == Loan.id)
            .filter(
                Loan.status.in_(LoanStatus.ACTIVE),
                Payment.status.in_(PaymentStatus.UNRESOLVED),
            )
            .distinct()
            .all()
        )


class PaymentRepository:
    """Repository for loan payments"""

    def __init__(self, db: Session):
        self.db = db

    def create_schedule(self, loan_id: uuid.UUID, installments: List[Installment]) -> List[Payment]:
        """Create one scheduled payment per installment"""
        db_payments = [
            Payment(
                loan_id=loan_id,
                payment_number=inst.payment_number,
                amount_cents=inst.amount_cents,
                principal_cents=inst.principal_cents,
                interest_cents=inst.interest_cents,
                due_date=inst.due_date,
                status=PaymentStatus.SCHEDULED,
            )
            for inst in installments
        ]
        self.db.add_all(db_payments)
        self.db.flush()
        return db_payments

    def create_payoff_payment(
        self,
        loan_id: uuid.UUID,
        amount_cents: int,
        principal_cents: int,
        interest_cents: int,
        due_date: date,
    ) -> Payment:
        db_payment = Payment(
            loan_id=loan_id,
            payment_number=self.next_payment_number(loan_id),
            amount_cents=amount_cents,
            principal_cents=principal_cents,
            interest_cents=interest_cents,
            due_date=due_date,
            status=PaymentStatus.PENDING,
            is_payoff=True,
        )
        self.db.add(db_payment)
        self.db.flush()
        return db_payment

    def next_payment_number(self, loan_id: uuid.UUID) -> int:
        current = self.db.query(func.max(Payment.payment_number)).filter(Payment.loan_id == loan_id).scalar()
        return (current or 0) + 1

    def get_by_id(self, payment_id: uuid.UUID) -> Optional[Payment]:
        return self.db.get(Payment, payment_id)

    def get_by_transfer_id(self, transfer_id: str) -> Optional[Payment]:
        return self.db.query(Payment).filter(Payment.transfer_id == transfer_id).first()

    def get_for_loan(self, loan_id: uuid.UUID) -> List[Payment]:
        return (
            self.db.query(Payment)
            .filter(Payment.loan_id == loan_id)
            .order_by(Payment.payment_number.asc())
            .all()
        )

    def get_due(self, today: date) -> List[Payment]:
        """
        Scheduled payments to collect today, oldest obligations first.

        First attempts go out on the due date; retries wait for next_retry_date.
        """
        return (
            self.db.query(Payment)
            .join(Loan, Payment.loan_id == Loan.id)
            .filter(
                Payment.status == PaymentStatus.SCHEDULED,
                Loan.status.in_(LoanStatus.ACTIVE),
                or_(
                    and_(Payment.retry_count == 0, Payment.due_date <= today),
                    and_(Payment.retry_count > 0, Payment.next_retry_date <= today),
                ),
            )
            .order_by(Payment.due_date.asc(), Payment.payment_number.asc())
            .all()
        )

    def get_in_flight(self) -> List[Payment]:
        """Payments this system believes the provider is still moving"""
        return (
            self.db.query(Payment)
            .filter(
                Payment.status.in_(PaymentStatus.IN_FLIGHT),
                Payment.transfer_id.isnot(None),
            )
            .order_by(Payment.due_date.asc())
            .all()
        )

    def get_overdue_candidates(self, today: date) -> List[Payment]:
        """Scheduled payments due before today that are not waiting on a retry"""
        return (
            self.db.query(Payment)
            .join(Loan, Payment.loan_id == Loan.id)
            .filter(
                Payment.status == PaymentStatus.SCHEDULED,
                Payment.due_date < today,
                Loan.status.in_(LoanStatus.ACTIVE),
                or_(Payment.next_retry_date.is_(None), Payment.next_retry_date <= today),
            )
            .all()
        )

    def oldest_unresolved_due_date(self, loan_id: uuid.UUID) -> Optional[date]:
        value = (
            self.db.query(func.min(Payment.due_date))
            .filter(Payment.loan_id == loan_id, Payment.status.in_(PaymentStatus.UNRESOLVED))
            .scalar()
        )
        return as_date(value) if value is not None else None

    def queue_counts(self, today: date) -> Dict[str, int]:
        """Queue depth for monitoring"""
        start_of_day = datetime.combine(today, datetime.min.time())

        def count(*criteria) -> int:
            return self.db.query(func.count(Payment.id)).filter(*criteria).scalar() or 0

        return {
            "due_today": count(Payment.status == PaymentStatus.SCHEDULED, Payment.due_date <= today),
            "processing": count(Payment.status == PaymentStatus.PROCESSING),
            "overdue": count(Payment.status == PaymentStatus.OVERDUE),
            "failed_needing_action": count(Payment.status == PaymentStatus.FAILED, Payment.requires_action.is_(True)),
            "completed_today": count(Payment.status == PaymentStatus.COMPLETED, Payment.completed_at >= start_of_day),
        }


class TransferEventRepository:
    """Repository for applied provider events"""

    def __init__(self, db: Session):
        self.db = db

    def exists(self, event_id: str) -> bool:
        return self.db.query(TransferEvent.id).filter(TransferEvent.event_id == event_id).first() is not None

    def record(self, event_id: str, transfer_id: str, event_type: str, payment_id: uuid.UUID | None) -> TransferEvent:
        db_event = TransferEvent(
            event_id=event_id,
            transfer_id=transfer_id,
            event_type=event_type,
            payment_id=payment_id,
        )
        self.db.add(db_event)
        return db_event


class AuditLogRepository:
    """Repository for audit entries"""

    def __init__(self, db: Session):
        self.db = db

    def record(self, entity_type: str, entity_id: Any, actor: str, action: str, payload: Dict[str, Any] | None = None) -> AuditLog:
        entry = AuditLog(
            entity_type=entity_type,
            entity_id=str(entity_id),
            actor=actor,
            action=action,
            payload=payload,
        )
        self.db.add(entry)
        return entry

    def get_for_entity(self, entity_type: str, entity_id: Any) -> List[AuditLog]:
        return (
            self.db.query(AuditLog)
            .filter(AuditLog.entity_type == entity_type, AuditLog.entity_id == str(entity_id))
            .order_by(AuditLog.created_at.asc())
            .all()
        )


class JobLockRepository:
    """Row-based lock so only one batch job runs at a time"""

    def __init__(self, db: Session):
        self.db = db

    def acquire(self, name: str, owner: str, ttl_seconds: int) -> bool:
        """Take the lock, replacing it if the previous holder exceeded its TTL"""
        now = utcnow()
        existing = self.db.get(JobLock, name)
        if existing is not None:
            acquired_at = existing.acquired_at
            if acquired_at.tzinfo is None:
                acquired_at = acquired_at.replace(tzinfo=now.tzinfo)
            if now - acquired_at < timedelta(seconds=ttl_seconds):
                return False
            self.db.delete(existing)
            self.db.flush()

        self.db.add(JobLock(name=name, owner=owner, acquired_at=now))
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            return False
        return True

    def release(self, name: str, owner: str) -> None:
        self.db.query(JobLock).filter(JobLock.name == name, JobLock.owner == owner).delete()
        self.db.commit()
