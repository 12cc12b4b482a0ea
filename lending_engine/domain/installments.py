"""Payment schedule generation for funded installment loans"""

from datetime import date
from typing import List

from lending_engine.domain.models import Installment
from lending_engine.domain.offers import calculate_monthly_payment
from lending_engine.utils.date_utils import add_months


def generate_payment_schedule(
    financed_cents: int,
    apr: float,
    term_months: int,
    funding_date: date,
    monthly_payment_cents: int | None = None,
) -> List[Installment]:
    """
    Generate the monthly amortization schedule for a funded loan.

    Requirements:
    - One installment per month, due on the funding date's monthly anniversary
    - Each installment split into interest (balance * monthly rate) and principal
    - Last installment absorbs rounding remainder so principal sums to the financed amount

    Args:
        financed_cents: Amount financed (loan amount minus down payment)
        apr: Annual percentage rate, e.g. 8.9
        term_months: Number of monthly installments
        funding_date: Date the loan was funded
        monthly_payment_cents: Payment from the selected offer (computed when omitted)

    Returns:
        List of Installment objects numbered 1..term_months

    Example:
        $1,200.00 at 0% over 12 months -> 12 x $100.00, all principal
    """
    if financed_cents <= 0 or term_months <= 0:
        return []

    if monthly_payment_cents is None:
        monthly_payment_cents = calculate_monthly_payment(financed_cents, term_months, apr)

    monthly_rate = apr / 100 / 12
    balance = financed_cents

    installments = []
    for number in range(1, term_months + 1):
        interest = round(balance * monthly_rate)

        if number == term_months:
            principal = balance
        else:
            principal = min(monthly_payment_cents - interest, balance)

        balance -= principal

        installments.append(
            Installment(
                payment_number=number,
                due_date=add_months(funding_date, number),
                amount_cents=principal + interest,
                principal_cents=principal,
                interest_cents=interest,
            )
        )

    return installments
