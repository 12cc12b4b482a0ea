"""Integration tests for the overdue sweep and default escalation"""

from datetime import date
from sqlalchemy.orm import Session
from lending_engine.domain.models import LoanStatus, PaymentStatus
from lending_engine.infrastructure.database.repositories import AuditLogRepository
from lending_engine.services.delinquency import DelinquencyTracker


def test_sweep_marks_past_due_scheduled_payments(db: Session, make_loan):
    loan = make_loan()

    marked = DelinquencyTracker(db).mark_overdue(date(2024, 3, 1))

    assert marked == 1
    assert loan.payments[0].status == PaymentStatus.OVERDUE
    assert loan.payments[1].status == PaymentStatus.SCHEDULED


def test_sweep_leaves_due_today_alone(db: Session, make_loan):
    make_loan()

    assert DelinquencyTracker(db).mark_overdue(date(2024, 2, 15)) == 0


def test_sweep_skips_payments_waiting_on_retry(db: Session, make_loan):
    loan = make_loan()
    payment = loan.payments[0]
    payment.retry_count = 1
    payment.next_retry_date = date(2024, 3, 5)
    db.commit()

    assert DelinquencyTracker(db).mark_overdue(date(2024, 3, 1)) == 0
    assert payment.status == PaymentStatus.SCHEDULED


def test_refresh_ages_loan_from_oldest_unpaid(db: Session, make_loan):
    loan = make_loan()
    tracker = DelinquencyTracker(db)
    tracker.mark_overdue(date(2024, 3, 20))

    defaulted = tracker.refresh_delinquency(date(2024, 3, 20))

    db.refresh(loan)
    assert defaulted == []
    assert loan.status == LoanStatus.REPAYING
    assert loan.days_overdue == 34


def test_refresh_defaults_at_sixty_days(db: Session, make_loan):
    loan = make_loan()
    tracker = DelinquencyTracker(db)
    tracker.mark_overdue(date(2024, 4, 15))

    defaulted = tracker.refresh_delinquency(date(2024, 4, 15))

    db.refresh(loan)
    assert [d.id for d in defaulted] == [loan.id]
    assert loan.status == LoanStatus.DEFAULTED
    assert loan.days_overdue == 60
    actions = [entry.action for entry in AuditLogRepository(db).get_for_entity("loan", loan.id)]
    assert actions == ["loan_defaulted"]


def test_fifty_nine_days_is_not_default(db: Session, make_loan):
    loan = make_loan()
    tracker = DelinquencyTracker(db)
    tracker.mark_overdue(date(2024, 4, 14))

    assert tracker.refresh_delinquency(date(2024, 4, 14)) == []
    db.refresh(loan)
    assert loan.status == LoanStatus.REPAYING
    assert loan.days_overdue == 59


def test_defaulted_loan_age_never_decreases(db: Session, make_loan):
    loan = make_loan(status=LoanStatus.DEFAULTED)
    loan.days_overdue = 90
    loan.payments[0].status = PaymentStatus.OVERDUE
    db.commit()

    moved = DelinquencyTracker(db).update_loan_delinquency(loan, date(2024, 3, 1))

    assert moved is False
    assert loan.status == LoanStatus.DEFAULTED
    assert loan.days_overdue == 90


def test_resolved_payments_clear_days_overdue(db: Session, make_loan):
    loan = make_loan()
    loan.days_overdue = 20
    db.commit()

    DelinquencyTracker(db).update_loan_delinquency(loan, date(2024, 3, 6))

    assert loan.days_overdue == 0
