"""Early payoff calculation"""

from datetime import datetime, timedelta
from typing import List

from lending_engine.domain.models import (
    LoanTerms,
    PaymentSnapshot,
    PaymentStatus,
    PayoffBreakdown,
    PayoffQuote,
)
from lending_engine.utils.date_utils import days_between

QUOTE_VALID_DAYS = 10


def remaining_principal(payment_cents: int, remaining_count: int, apr: float) -> float:
    """
    Present value of the outstanding annuity.

    PV = PMT * (1 - (1 + r)^-n) / r for r > 0, else PMT * n
    """
    if remaining_count <= 0:
        return 0.0
    monthly_rate = apr / 100 / 12
    if monthly_rate == 0:
        return float(payment_cents * remaining_count)
    return payment_cents * (1 - (1 + monthly_rate) ** -remaining_count) / monthly_rate


def calculate_payoff_quote(
    terms: LoanTerms,
    payments: List[PaymentSnapshot],
    now: datetime,
    valid_days: int = QUOTE_VALID_DAYS,
) -> PayoffQuote:
    """
    Amount required to retire the loan as of `now`.

    - remaining principal: PV of the not-yet-collected installments
    - accrued interest: remaining * apr/100/365 * days since the last completed
      payment (or the funding date when nothing has been collected)
    - fees: always zero today, kept as its own field

    In-flight transfers (processing) are counted as neither completed nor
    remaining. Paid principal/interest come from the split recorded at funding;
    payments without a split are apportioned by the loan's overall interest ratio.
    """
    completed = [p for p in payments if p.status == PaymentStatus.COMPLETED]
    outstanding = [p for p in payments if p.status in PaymentStatus.OUTSTANDING]

    if not outstanding:
        principal = 0.0
    elif terms.apr == 0:
        principal = float(sum(p.amount_cents for p in outstanding))
    else:
        principal = remaining_principal(outstanding[0].amount_cents, len(outstanding), terms.apr)

    completion_dates = [p.completed_at for p in completed if p.completed_at is not None]
    anchor = max(completion_dates) if completion_dates else terms.funding_date
    days_since_anchor = days_between(anchor, now)

    daily_rate = terms.apr / 100 / 365
    accrued_interest = principal * daily_rate * days_since_anchor
    fees = 0

    principal_paid = 0
    interest_paid = 0
    unsplit_paid = 0
    for p in completed:
        if p.principal_cents or p.interest_cents:
            principal_paid += p.principal_cents
            interest_paid += p.interest_cents
        else:
            unsplit_paid += p.amount_cents

    if unsplit_paid:
        total_scheduled = terms.total_scheduled_cents or terms.funded_amount_cents
        interest_ratio = (total_scheduled - terms.funded_amount_cents) / total_scheduled if total_scheduled else 0.0
        interest_share = round(unsplit_paid * interest_ratio)
        interest_paid += interest_share
        principal_paid += unsplit_paid - interest_share

    remaining_cents = round(principal)
    accrued_cents = round(accrued_interest)

    return PayoffQuote(
        loan_id=terms.loan_id,
        remaining_principal_cents=remaining_cents,
        accrued_interest_cents=accrued_cents,
        fees_cents=fees,
        total_payoff_cents=remaining_cents + accrued_cents + fees,
        valid_until=now + timedelta(days=valid_days),
        breakdown=PayoffBreakdown(
            original_principal_cents=terms.funded_amount_cents,
            principal_paid_cents=principal_paid,
            interest_paid_cents=interest_paid,
            payments_completed=len(completed),
            payments_remaining=len(outstanding),
        ),
    )
