"""Decisioning engine - scores an application from linked bank account signals"""

from dataclasses import dataclass, field
from statistics import pstdev
from typing import List

from lending_engine.domain.models import BankSignals, CustomerInfo, DataUsed, DecisionResult

EVALUATOR_VERSION = "bank-signals-v2"

BASE_SCORE = 650
MIN_SCORE = 300
MAX_SCORE = 850
APPROVAL_MIN_SCORE = 620

MANUAL_ENTRY_PENALTY = 50
MANUAL_ENTRY_CEILING_CENTS = 500_000  # $5,000

MAJOR_BANKS = ("chase", "bank of america", "wells fargo", "citibank", "us bank", "pnc", "capital one")

THIN_FILE_FACTOR = "No balance data available (thin file)"


@dataclass
class _Scorecard:
    """Running score with the factors that explain it"""

    score: int = BASE_SCORE
    risk_factors: List[str] = field(default_factory=list)
    positive_factors: List[str] = field(default_factory=list)

    def reward(self, points: int, reason: str) -> None:
        self.score += points
        self.positive_factors.append(reason)

    def penalize(self, points: int, reason: str) -> None:
        self.score -= points
        self.risk_factors.append(reason)


def _score_balance(card: _Scorecard, loan_amount_cents: int, balance_cents: int) -> None:
    """
    Reserve and absolute-balance adjustments.

    Reserves ratio = usable balance / requested amount:
    - >= 50%: strong (+30)
    - 10-50%: moderate (+15)
    - < 10%: low (-20)
    """
    if balance_cents >= loan_amount_cents * 0.5:
        card.reward(30, "Strong cash reserves (50%+ of loan amount)")
    elif balance_cents >= loan_amount_cents * 0.1:
        card.reward(15, "Moderate cash reserves")
    else:
        card.penalize(20, "Low cash reserves relative to loan amount")

    if balance_cents >= 1_000_000:
        card.reward(20, "Healthy account balance (>$10k)")
    elif balance_cents >= 500_000:
        card.reward(10, "Adequate account balance (>$5k)")
    elif balance_cents < 100_000:
        card.penalize(15, "Low account balance (<$1k)")


def _score_asset_report(card: _Scorecard, loan_amount_cents: int, signals: BankSignals) -> tuple[int, int, int]:
    """
    Historical balance, income and account age signals from a ready asset report.

    Returns: (avg_balance_cents, income_detected_cents, account_age_days)
    """
    report = signals.asset_report
    avg_balance = 0
    income_detected = 0
    account_age = 0

    if report is None or not report.is_ready:
        return avg_balance, income_detected, account_age

    balances = report.historical_balances_cents
    if balances:
        avg_balance = sum(balances) // len(balances)
        if avg_balance >= loan_amount_cents * 0.3:
            card.reward(25, "Consistent historical balance")
        # Coefficient of variation under 30%
        if pstdev(balances) < avg_balance * 0.3:
            card.reward(10, "Stable account balance over time")

    large_deposits = [abs(d) for d in report.deposits_cents if abs(d) >= 100_000]
    if len(large_deposits) >= 2:
        income_detected = large_deposits[0]
        card.reward(20, "Regular income deposits detected")

        monthly_payment_estimate = loan_amount_cents / 48  # Rough 4-year estimate
        if monthly_payment_estimate < income_detected * 0.3:
            card.reward(15, "Good debt-to-income ratio")

    if report.days_available:
        account_age = report.days_available
        if account_age >= 365:
            card.reward(15, "Established account (1+ years)")
        elif account_age >= 180:
            card.reward(5, "Account age 6+ months")
        elif account_age < 90:
            card.penalize(10, "New account (<90 days)")

    return avg_balance, income_detected, account_age


def _is_major_institution(institution_name: str) -> bool:
    name = institution_name.lower()
    return any(bank in name for bank in MAJOR_BANKS)


def _decision_reason(approved: bool, score: int, risk_factors: List[str]) -> str:
    if approved:
        if score >= 750:
            return "Excellent financial profile with strong cash reserves and stable income"
        if score >= 700:
            return "Good financial profile with adequate reserves"
        return "Approved with standard terms based on account analysis"

    if risk_factors:
        return f"Declined: {', '.join(risk_factors[:2])}"
    return "Declined: score below approval threshold"


def decide(loan_amount_cents: int, signals: BankSignals, customer: CustomerInfo | None = None) -> DecisionResult:
    """
    Main entry point: score the application and make the approve/decline call.

    Deterministic and free of I/O. Customer info is accepted for future bureau
    checks but does not currently move the score.

    Rules, applied in order:
    - Manual bank entry: -50, plus a hard decline above the $5,000 ceiling
    - Balance reserves and absolute balance (neutral when no balance is linked)
    - Combined balances across linked accounts
    - Asset report history (average balance, income deposits, account age)
    - Major institution and verified ACH numbers
    - Repayment capacity check
    - Clamp to [300, 850]; approve at >= 620
    """
    card = _Scorecard()
    manual_entry = signals.manual_entry

    if manual_entry:
        card.penalize(MANUAL_ENTRY_PENALTY, "Bank account not verified (manual entry)")
        if loan_amount_cents > MANUAL_ENTRY_CEILING_CENTS:
            card.risk_factors.append("Loan amount exceeds $5,000 threshold for manual bank entry")

    balance_cents = signals.balance.usable_cents if signals.has_balance else None
    thin_file = balance_cents is None

    if thin_file:
        card.risk_factors.append(THIN_FILE_FACTOR)
    else:
        _score_balance(card, loan_amount_cents, balance_cents)

    if signals.all_accounts and len(signals.all_accounts) > 1:
        combined = sum(acc.balance.usable_cents or 0 for acc in signals.all_accounts)
        if combined >= loan_amount_cents:
            card.reward(15, "Combined account balances cover loan amount")

    avg_balance, income_detected, account_age = _score_asset_report(card, loan_amount_cents, signals)

    if _is_major_institution(signals.institution_name):
        card.reward(5, "Account at major financial institution")

    if signals.ach_numbers is not None:
        if manual_entry:
            card.positive_factors.append("ACH details provided for disbursement")
        else:
            card.reward(10, "ACH account verified")

    # Capacity: 25% of detected monthly income, else 10% of balance, over a 48-month term
    if income_detected > 0 or not thin_file:
        monthly_capacity = income_detected * 0.25 if income_detected > 0 else (balance_cents or 0) * 0.1
        if loan_amount_cents > monthly_capacity * 48 * 1.5:
            card.penalize(30, "Loan amount may exceed repayment capacity")

    score = max(MIN_SCORE, min(MAX_SCORE, card.score))

    # Manual entry ceiling is a business rule, not a score threshold
    if manual_entry and loan_amount_cents > MANUAL_ENTRY_CEILING_CENTS:
        approved = False
        decision_reason = (
            "Declined: Loan amount exceeds $5,000 limit for manual bank entry. "
            "Please link your bank account for larger amounts."
        )
    else:
        approved = score >= APPROVAL_MIN_SCORE
        decision_reason = _decision_reason(approved, score, card.risk_factors)

    max_loan_amount = min(loan_amount_cents, MANUAL_ENTRY_CEILING_CENTS) if manual_entry else loan_amount_cents

    return DecisionResult(
        approved=approved,
        score=score,
        max_loan_amount_cents=max_loan_amount,
        decision_reason=decision_reason,
        risk_factors=card.risk_factors,
        positive_factors=card.positive_factors,
        data_used=DataUsed(
            has_balance=not thin_file,
            has_asset_report=signals.asset_report is not None and signals.asset_report.is_ready,
            has_ach_numbers=signals.ach_numbers is not None,
            account_age_days=account_age,
            avg_balance_cents=avg_balance,
            income_detected_cents=income_detected,
        ),
        thin_file=thin_file,
    )
