"""Offer generation - amortized installment offers for approved decisions"""

from typing import List

from lending_engine.domain.models import OfferTerms

# term_months -> (base APR %, origination fee rate)
STANDARD_TERMS = (
    (24, 8.9, 0.01),
    (48, 11.9, 0.005),
    (60, 13.9, 0.0),
)

DOWN_PAYMENT_TERM_MONTHS = 60
DOWN_PAYMENT_MIN_SCORE = 700
DOWN_PAYMENT_RATE = 0.10


def apr_for_score(base_apr: float, score: int) -> float:
    """
    Adjust a term's base APR by score tier.

    Tiers:
    - 800+:    base - 2
    - 750-799: base - 1
    - 700-749: base
    - 650-699: base + 2
    - < 650:   base + 4
    """
    if score >= 800:
        adjustment = -2
    elif score >= 750:
        adjustment = -1
    elif score >= 700:
        adjustment = 0
    elif score >= 650:
        adjustment = 2
    else:
        adjustment = 4
    return round(base_apr + adjustment, 2)


def calculate_monthly_payment(principal_cents: int, term_months: int, apr: float) -> int:
    """
    Standard amortizing-loan payment, rounded to the cent.

    M = P * r * (1 + r)^n / ((1 + r)^n - 1), with r = apr / 100 / 12.
    Zero-rate loans divide principal evenly.
    """
    if principal_cents <= 0 or term_months <= 0:
        return 0

    monthly_rate = apr / 100 / 12
    if monthly_rate == 0:
        return round(principal_cents / term_months)

    growth = (1 + monthly_rate) ** term_months
    return round(principal_cents * monthly_rate * growth / (growth - 1))


def generate_offers(loan_amount_cents: int, score: int, approved: bool) -> List[OfferTerms]:
    """
    Build the 24/48/60-month offer set for an approved decision.

    Origination fee is disclosed but not financed. The 60-month offer
    requires a 10% down payment below a 700 score.

    Example ($5,000 at score 700):
        fees -> [$50, $25, $0]
    """
    if not approved or loan_amount_cents <= 0:
        return []

    offers = []
    for term_months, base_apr, fee_rate in STANDARD_TERMS:
        apr = apr_for_score(base_apr, score)

        down_payment = 0
        if term_months == DOWN_PAYMENT_TERM_MONTHS and score < DOWN_PAYMENT_MIN_SCORE:
            down_payment = round(loan_amount_cents * DOWN_PAYMENT_RATE)

        monthly_payment = calculate_monthly_payment(loan_amount_cents - down_payment, term_months, apr)

        offers.append(
            OfferTerms(
                term_months=term_months,
                apr=apr,
                monthly_payment_cents=monthly_payment,
                down_payment_cents=down_payment,
                origination_fee_cents=round(loan_amount_cents * fee_rate),
                total_amount_cents=monthly_payment * term_months + down_payment,
            )
        )

    return offers
