"""Domain models - pure Python dataclasses representing business entities"""

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import List, Optional


class ApplicationStatus:
    INITIATED = "initiated"
    SUBMITTED = "submitted"
    APPROVED = "approved"
    DECLINED = "declined"
    FUNDED = "funded"


class DecisionStatus:
    PENDING = "pending"
    APPROVED = "approved"
    DECLINED = "declined"


class LoanStatus:
    FUNDED = "funded"
    REPAYING = "repaying"
    PAID_OFF = "paid_off"
    DEFAULTED = "defaulted"

    ACTIVE = (FUNDED, REPAYING)


class PaymentStatus:
    SCHEDULED = "scheduled"
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    OVERDUE = "overdue"
    CANCELLED = "cancelled"

    TERMINAL = (COMPLETED, CANCELLED)
    IN_FLIGHT = (PENDING, PROCESSING)
    UNRESOLVED = (OVERDUE, FAILED)
    # Still owed by the borrower: includes pending claims with no transfer yet, excludes processing
    OUTSTANDING = (SCHEDULED, PENDING, OVERDUE, FAILED)


class TransferEventType:
    PENDING = "pending"
    POSTED = "posted"
    SETTLED = "settled"
    CANCELLED = "cancelled"
    FAILED = "failed"
    RETURNED = "returned"


# --- Linked bank data ---


@dataclass
class BankBalance:
    """Point-in-time balance of the linked settlement account"""

    current_cents: Optional[int] = None
    available_cents: Optional[int] = None

    @property
    def usable_cents(self) -> Optional[int]:
        if self.available_cents is not None:
            return self.available_cents
        return self.current_cents


@dataclass
class LinkedAccount:
    account_id: str
    name: str
    balance: BankBalance


@dataclass
class AchNumbers:
    account_number: str
    routing_number: str


@dataclass
class AssetReport:
    """Historical account data, only scored when status is 'ready'"""

    status: str
    historical_balances_cents: List[int] = field(default_factory=list)
    deposits_cents: List[int] = field(default_factory=list)
    days_available: Optional[int] = None

    @property
    def is_ready(self) -> bool:
        return self.status == "ready"


@dataclass
class BankSignals:
    """Typed view of the linked-bank payload stored on an application"""

    institution_name: str
    account_mask: str = ""
    account_type: str = "checking"
    balance: Optional[BankBalance] = None
    all_accounts: Optional[List[LinkedAccount]] = None
    ach_numbers: Optional[AchNumbers] = None
    asset_report: Optional[AssetReport] = None
    manual_entry: bool = False
    access_token: Optional[str] = None
    account_id: Optional[str] = None

    @property
    def has_balance(self) -> bool:
        return self.balance is not None and self.balance.usable_cents is not None


@dataclass
class CustomerInfo:
    first_name: str
    last_name: str
    email: str
    date_of_birth: Optional[date] = None
    phone: Optional[str] = None

    @property
    def legal_name(self) -> str:
        return f"{self.first_name} {self.last_name}"


@dataclass
class SettlementCredentials:
    """Provider handles needed to debit the borrower's linked account"""

    access_token: str
    account_id: str
    legal_name: str = ""
    email: Optional[str] = None


# --- Decisioning ---


@dataclass
class DataUsed:
    """Signal categories available to the evaluator, kept for compliance replay"""

    has_balance: bool
    has_asset_report: bool
    has_ach_numbers: bool
    account_age_days: int = 0
    avg_balance_cents: int = 0
    income_detected_cents: int = 0


@dataclass
class DecisionResult:
    """Output of the decisioning engine"""

    approved: bool
    score: int
    max_loan_amount_cents: int
    decision_reason: str
    risk_factors: List[str]
    positive_factors: List[str]
    data_used: DataUsed
    thin_file: bool = False


@dataclass
class OfferTerms:
    """Single amortized installment offer"""

    term_months: int
    apr: float
    monthly_payment_cents: int
    down_payment_cents: int
    origination_fee_cents: int
    total_amount_cents: int


@dataclass
class Installment:
    """Single payment in a repayment schedule"""

    payment_number: int
    due_date: date
    amount_cents: int
    principal_cents: int
    interest_cents: int


# --- Servicing ---


@dataclass
class TransferResult:
    """Outcome of a transfer initiation request"""

    success: bool
    transfer_id: Optional[str] = None
    status: Optional[str] = None
    error: Optional[str] = None
    error_code: Optional[str] = None


@dataclass
class TransferFailure:
    """Return details attached to failed/returned transfer events"""

    return_code: Optional[str] = None
    description: Optional[str] = None


@dataclass
class TransferStatus:
    transfer_id: str
    status: str
    failure: Optional[TransferFailure] = None


@dataclass
class PaymentSnapshot:
    """Payment fields the payoff calculator needs"""

    status: str
    amount_cents: int
    principal_cents: int = 0
    interest_cents: int = 0
    completed_at: Optional[datetime] = None


@dataclass
class LoanTerms:
    """Original terms of a funded loan"""

    loan_id: str
    funded_amount_cents: int
    apr: float
    funding_date: date
    total_scheduled_cents: int


@dataclass
class PayoffBreakdown:
    original_principal_cents: int
    principal_paid_cents: int
    interest_paid_cents: int
    payments_completed: int
    payments_remaining: int


@dataclass
class PayoffQuote:
    loan_id: str
    remaining_principal_cents: int
    accrued_interest_cents: int
    fees_cents: int
    total_payoff_cents: int
    valid_until: datetime
    breakdown: PayoffBreakdown
