"""Pydantic schemas for API request/response validation"""

from pydantic import BaseModel, Field
from datetime import date, datetime
from typing import List, Optional


# --- Origination ---


class ApplicationCreateRequest(BaseModel):
    """Request body for POST /v1/applications"""

    job_reference: str = Field(..., min_length=1, description="Job being financed")
    customer_reference: str = Field(..., min_length=1, description="Customer identifier")


class ApplicationResponse(BaseModel):
    application_id: str
    status: str
    job_reference: str
    customer_reference: str
    requested_cents: Optional[int] = None


class BankBalanceSchema(BaseModel):
    current_cents: Optional[int] = None
    available_cents: Optional[int] = None


class LinkedAccountSchema(BaseModel):
    account_id: str
    name: str = ""
    balance: BankBalanceSchema = Field(default_factory=BankBalanceSchema)


class AchNumbersSchema(BaseModel):
    account_number: str
    routing_number: str


class AssetReportSchema(BaseModel):
    status: str
    historical_balances_cents: List[int] = Field(default_factory=list)
    deposits_cents: List[int] = Field(default_factory=list)
    days_available: Optional[int] = None


class BankDataSchema(BaseModel):
    """Linked (or manually entered) bank account signals"""

    institution_name: str
    account_mask: str = ""
    account_type: str = "checking"
    balance: Optional[BankBalanceSchema] = None
    all_accounts: Optional[List[LinkedAccountSchema]] = None
    ach_numbers: Optional[AchNumbersSchema] = None
    asset_report: Optional[AssetReportSchema] = None
    manual_entry: bool = False
    access_token: Optional[str] = None
    account_id: Optional[str] = None


class CustomerInfoSchema(BaseModel):
    first_name: str
    last_name: str
    email: str
    date_of_birth: Optional[date] = None
    phone: Optional[str] = None


class SubmitApplicationRequest(BaseModel):
    """Request body for POST /v1/applications/{id}/submit"""

    loan_amount_cents: int = Field(..., gt=0, description="Requested financing in cents")
    bank_data: BankDataSchema
    customer_info: Optional[CustomerInfoSchema] = None


class OfferSchema(BaseModel):
    offer_id: str
    term_months: int
    apr: float
    monthly_payment_cents: int
    down_payment_cents: int
    origination_fee_cents: int
    total_amount_cents: int
    selected: bool = False


class DecisionResponse(BaseModel):
    """Response for submit and GET /v1/applications/{id}/decision"""

    application_id: str
    decision_status: str
    approved: bool
    score: int
    decision_reason: Optional[str] = None
    risk_factors: List[str]
    positive_factors: List[str]
    max_loan_amount_cents: int
    evaluator_version: str
    offers: List[OfferSchema]


class FundLoanRequest(BaseModel):
    funding_date: Optional[date] = None


# --- Servicing ---


class PaymentSchema(BaseModel):
    payment_id: str
    payment_number: int
    due_date: date
    amount_cents: int
    principal_cents: int
    interest_cents: int
    status: str
    is_payoff: bool = False
    retry_count: int = 0
    next_retry_date: Optional[date] = None
    requires_action: bool = False
    failure_reason: Optional[str] = None
    failure_code: Optional[str] = None
    completed_at: Optional[datetime] = None


class LoanResponse(BaseModel):
    """Response for GET /v1/loans/{loan_id}"""

    loan_id: str
    application_id: str
    status: str
    funded_amount_cents: int
    apr: float
    term_months: int
    monthly_payment_cents: int
    funding_date: date
    days_overdue: int
    defaulted_at: Optional[datetime] = None
    paid_off_at: Optional[datetime] = None
    payments: List[PaymentSchema]


class PayoffBreakdownSchema(BaseModel):
    original_principal_cents: int
    principal_paid_cents: int
    interest_paid_cents: int
    payments_completed: int
    payments_remaining: int


class PayoffQuoteResponse(BaseModel):
    """Response for GET /v1/loans/{loan_id}/payoff-quote"""

    loan_id: str
    remaining_principal_cents: int
    accrued_interest_cents: int
    fees_cents: int
    total_payoff_cents: int
    valid_until: datetime
    breakdown: PayoffBreakdownSchema


class PayoffRequest(BaseModel):
    """Borrower confirmation of a payoff quote"""

    quote_valid_until: datetime


class PayoffResponse(BaseModel):
    loan_id: str
    payment_id: str
    transfer_id: Optional[str] = None
    amount_cents: int
    status: str


class MarkPaidRequest(BaseModel):
    note: Optional[str] = Field(None, max_length=500)


# --- Jobs ---


class SyncSummarySchema(BaseModel):
    checked: int
    updated: int
    errors: List[str]


class ProcessingSummaryResponse(BaseModel):
    """Response for POST /v1/cron/process-payments"""

    processed: int
    successful: int
    failed: int
    skipped: int
    retry_scheduled: int
    overdue_marked: int
    loans_defaulted: int
    errors: List[str]
    sync: SyncSummarySchema
    duration_ms: float


class QueueStatusResponse(BaseModel):
    """Response for GET /v1/cron/process-payments"""

    due_today: int
    processing: int
    overdue: int
    failed_needing_action: int
    completed_today: int


# --- Provider webhooks ---


class TransferFailureReasonSchema(BaseModel):
    ach_return_code: Optional[str] = None
    description: Optional[str] = None


class TransferEventSchema(BaseModel):
    event_id: str
    transfer_id: str
    event_type: str
    timestamp: Optional[datetime] = None
    failure_reason: Optional[TransferFailureReasonSchema] = None


class TransferWebhookPayload(BaseModel):
    """Envelope posted by the transfer provider"""

    webhook_type: str
    webhook_code: Optional[str] = None
    transfer_id: Optional[str] = None
    transfer_status: Optional[str] = None
    failure_reason: Optional[TransferFailureReasonSchema] = None
    transfer_events: List[TransferEventSchema] = Field(default_factory=list)


class WebhookAck(BaseModel):
    received: bool = True
    processed: int = 0
    error: Optional[str] = None
