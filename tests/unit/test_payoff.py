"""Unit tests for early payoff quotes"""

from datetime import date, datetime, timedelta, timezone
from lending_engine.domain.installments import generate_payment_schedule
from lending_engine.domain.models import LoanTerms, PaymentSnapshot, PaymentStatus
from lending_engine.domain.offers import calculate_monthly_payment
from lending_engine.domain.payoff import calculate_payoff_quote, remaining_principal

FUNDING_DATE = date(2024, 1, 15)
NOW = datetime(2024, 7, 20, 12, 0, tzinfo=timezone.utc)


def _loan(financed_cents: int, apr: float, term_months: int, completed: int, completed_at: datetime = NOW):
    monthly = calculate_monthly_payment(financed_cents, term_months, apr)
    schedule = generate_payment_schedule(financed_cents, apr, term_months, FUNDING_DATE, monthly_payment_cents=monthly)
    payments = [
        PaymentSnapshot(
            status=PaymentStatus.COMPLETED if inst.payment_number <= completed else PaymentStatus.SCHEDULED,
            amount_cents=inst.amount_cents,
            principal_cents=inst.principal_cents,
            interest_cents=inst.interest_cents,
            completed_at=completed_at if inst.payment_number <= completed else None,
        )
        for inst in schedule
    ]
    terms = LoanTerms(
        loan_id="loan-1",
        funded_amount_cents=financed_cents,
        apr=apr,
        funding_date=FUNDING_DATE,
        total_scheduled_cents=sum(inst.amount_cents for inst in schedule),
    )
    return terms, payments, schedule


def test_zero_apr_six_of_twenty_four():
    """$2,400 at 0% with 6 of 24 paid -> $1,800.00 remaining, no interest"""
    terms, payments, _ = _loan(240_000, 0.0, 24, completed=6)

    quote = calculate_payoff_quote(terms, payments, NOW)

    assert quote.breakdown.payments_completed == 6
    assert quote.breakdown.payments_remaining == 18
    assert quote.remaining_principal_cents == 180_000
    assert quote.accrued_interest_cents == 0
    assert quote.fees_cents == 0
    assert quote.total_payoff_cents == 180_000
    assert quote.breakdown.principal_paid_cents == 60_000
    assert quote.breakdown.interest_paid_cents == 0


def test_amortized_six_of_twenty_four():
    """At 12% the payoff is the amortized balance, below the remaining scheduled total"""
    terms, payments, schedule = _loan(500_000, 12.0, 24, completed=6)

    quote = calculate_payoff_quote(terms, payments, NOW)

    remaining_scheduled = sum(inst.amount_cents for inst in schedule[6:])
    amortized_balance = sum(inst.principal_cents for inst in schedule[6:])

    assert quote.breakdown.payments_remaining == 18
    assert abs(quote.remaining_principal_cents - amortized_balance) <= 25
    assert quote.accrued_interest_cents == 0
    assert quote.total_payoff_cents < remaining_scheduled
    assert quote.breakdown.principal_paid_cents == sum(inst.principal_cents for inst in schedule[:6])
    assert quote.breakdown.interest_paid_cents == sum(inst.interest_cents for inst in schedule[:6])


def test_total_identity_with_accrued_interest():
    """total = remaining principal + accrued interest + fees"""
    terms, payments, _ = _loan(500_000, 12.0, 24, completed=3, completed_at=NOW - timedelta(days=30))

    quote = calculate_payoff_quote(terms, payments, NOW)

    daily_rate = 12.0 / 100 / 365
    expected_accrued = round(remaining_principal(payments[3].amount_cents, 21, 12.0) * daily_rate * 30)
    assert quote.accrued_interest_cents == expected_accrued
    assert quote.total_payoff_cents == quote.remaining_principal_cents + quote.accrued_interest_cents + quote.fees_cents


def test_interest_accrues_from_funding_date_without_payments():
    """With nothing collected the anchor is the funding date"""
    terms, payments, _ = _loan(500_000, 12.0, 24, completed=0)
    now = datetime(2024, 2, 14, tzinfo=timezone.utc)

    quote = calculate_payoff_quote(terms, payments, now)

    assert abs(quote.accrued_interest_cents - round(quote.remaining_principal_cents * 0.12 / 365 * 30)) <= 1


def test_remaining_principal_strictly_decreases():
    """Each completed payment lowers the remaining principal"""
    remaining = []
    for completed in range(0, 8):
        terms, payments, _ = _loan(500_000, 9.9, 24, completed=completed)
        remaining.append(calculate_payoff_quote(terms, payments, NOW).remaining_principal_cents)

    assert all(later < earlier for earlier, later in zip(remaining, remaining[1:]))


def test_valid_until_ten_days_out():
    terms, payments, _ = _loan(240_000, 0.0, 24, completed=0)

    quote = calculate_payoff_quote(terms, payments, NOW)

    assert quote.valid_until == NOW + timedelta(days=10)


def test_in_flight_payment_counted_in_neither_bucket():
    """A processing payment is neither completed nor remaining"""
    terms, payments, _ = _loan(240_000, 0.0, 24, completed=6)
    payments[6].status = PaymentStatus.PROCESSING

    quote = calculate_payoff_quote(terms, payments, NOW)

    assert quote.breakdown.payments_completed == 6
    assert quote.breakdown.payments_remaining == 17
    assert quote.remaining_principal_cents == 170_000


def test_breakdown_falls_back_to_interest_ratio():
    """Payments without a recorded split are apportioned by the total interest ratio"""
    terms, payments, _ = _loan(240_000, 0.0, 24, completed=0)
    terms.total_scheduled_cents = 300_000
    for p in payments[:4]:
        p.status = PaymentStatus.COMPLETED
        p.completed_at = NOW
        p.principal_cents = 0
        p.interest_cents = 0

    quote = calculate_payoff_quote(terms, payments, NOW)

    # 20% of everything scheduled is interest
    assert quote.breakdown.interest_paid_cents == 8_000
    assert quote.breakdown.principal_paid_cents == 32_000


def test_fully_paid_loan_quotes_zero():
    terms, payments, _ = _loan(240_000, 0.0, 24, completed=24)

    quote = calculate_payoff_quote(terms, payments, NOW)

    assert quote.total_payoff_cents == 0
    assert quote.breakdown.payments_remaining == 0
