"""Application intake, decisioning, offer selection and loan funding"""

import logging
import uuid
from datetime import date
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from lending_engine.domain.bank_data import parse_bank_signals
from lending_engine.domain.exceptions import ApplicationNotFoundError, InvalidStateError, OfferNotFoundError
from lending_engine.domain.installments import generate_payment_schedule
from lending_engine.domain.models import (
    ApplicationStatus,
    CustomerInfo,
    DataUsed,
    DecisionResult,
    DecisionStatus,
)
from lending_engine.domain.offers import generate_offers
from lending_engine.domain.scoring import BASE_SCORE, EVALUATOR_VERSION, decide
from lending_engine.infrastructure.database.models import Application, Decision, Loan, Offer
from lending_engine.infrastructure.database.repositories import (
    ApplicationRepository,
    AuditLogRepository,
    DecisionRepository,
    LoanRepository,
    OfferRepository,
    PaymentRepository,
)
from lending_engine.infrastructure.observability.metrics import offers_generated_counter
from lending_engine.utils.date_utils import utcnow

logger = logging.getLogger(__name__)

MANUAL_REVIEW_ENGINE_ERROR = "Manual review required: automated decisioning unavailable"
MANUAL_REVIEW_THIN_FILE = "Manual review required: no balance data available"


def _manual_review_result(reason: str) -> DecisionResult:
    return DecisionResult(
        approved=False,
        score=BASE_SCORE,
        max_loan_amount_cents=0,
        decision_reason=reason,
        risk_factors=[reason],
        positive_factors=[],
        data_used=DataUsed(has_balance=False, has_asset_report=False, has_ach_numbers=False),
    )


def _customer_info(data: Optional[Dict[str, Any]]) -> Optional[CustomerInfo]:
    if not data:
        return None
    return CustomerInfo(
        first_name=data.get("first_name", ""),
        last_name=data.get("last_name", ""),
        email=data.get("email", ""),
        date_of_birth=data.get("date_of_birth"),
        phone=data.get("phone"),
    )


class OriginationService:
    """
    Takes an application from intake to a funded loan.

    initiated -> submitted (decision pending) | approved | declined -> funded
    """

    def __init__(self, db: Session):
        self.db = db
        self.applications = ApplicationRepository(db)
        self.decisions = DecisionRepository(db)
        self.offers = OfferRepository(db)
        self.loans = LoanRepository(db)
        self.payments = PaymentRepository(db)
        self.audit = AuditLogRepository(db)

    def _get_application(self, application_id: uuid.UUID) -> Application:
        application = self.applications.get_by_id(application_id)
        if application is None:
            raise ApplicationNotFoundError(f"Application {application_id} not found")
        return application

    def create_application(self, job_reference: str, customer_reference: str) -> Application:
        application = self.applications.create_application(job_reference, customer_reference)
        self.audit.record("application", application.id, "system", "application_created", {"job_reference": job_reference})
        self.db.commit()
        return application

    def submit_application(
        self,
        application_id: uuid.UUID,
        loan_amount_cents: int,
        bank_data: Dict[str, Any],
        customer_info: Optional[Dict[str, Any]] = None,
    ) -> Decision:
        """
        Score the application and persist the decision with its offers.

        Thin-file approvals and decisioning failures are never auto-approved;
        they land in manual review (decision status pending, no offers).

        Raises:
            ApplicationNotFoundError: Unknown application
            InvalidStateError: Application was already submitted
        """
        application = self._get_application(application_id)
        if application.status != ApplicationStatus.INITIATED or application.decision is not None:
            raise InvalidStateError(f"Application is already {application.status}")

        application.requested_cents = loan_amount_cents
        application.bank_data = bank_data
        application.customer_info = customer_info
        application.submitted_at = utcnow()

        offer_terms = []
        try:
            signals = parse_bank_signals(bank_data)
            result = decide(loan_amount_cents, signals, _customer_info(customer_info))
            if result.approved and result.thin_file:
                decision_status = DecisionStatus.PENDING
                decision_reason = MANUAL_REVIEW_THIN_FILE
            elif result.approved:
                decision_status = DecisionStatus.APPROVED
                decision_reason = None
                offer_terms = generate_offers(loan_amount_cents, result.score, approved=True)
            else:
                decision_status = DecisionStatus.DECLINED
                decision_reason = None
        except Exception:
            logger.exception(f"Decisioning failed for application {application.id}; routing to manual review")
            result = _manual_review_result(MANUAL_REVIEW_ENGINE_ERROR)
            decision_status = DecisionStatus.PENDING
            decision_reason = None
            offer_terms = []

        decision = self.decisions.create_decision(
            application_id=application.id,
            result=result,
            decision_status=decision_status,
            evaluator_version=EVALUATOR_VERSION,
            decision_reason=decision_reason,
        )
        if offer_terms:
            self.offers.create_offers(decision.id, offer_terms)
            for terms in offer_terms:
                offers_generated_counter.labels(term_months=str(terms.term_months)).inc()

        application.status = {
            DecisionStatus.APPROVED: ApplicationStatus.APPROVED,
            DecisionStatus.DECLINED: ApplicationStatus.DECLINED,
        }.get(decision_status, ApplicationStatus.SUBMITTED)

        self.audit.record(
            "application",
            application.id,
            "decisioning",
            "decision_made",
            {"decision_status": decision_status, "score": result.score, "evaluator_version": EVALUATOR_VERSION},
        )
        self.db.commit()
        self.db.refresh(decision)
        return decision

    def get_decision(self, application_id: uuid.UUID) -> Optional[Decision]:
        self._get_application(application_id)
        return self.decisions.get_by_application(application_id)

    def select_offer(self, offer_id: uuid.UUID) -> Offer:
        """
        Mark one offer as chosen; any previously selected offer on the same
        decision is cleared.

        Raises:
            OfferNotFoundError: Unknown offer
            InvalidStateError: Decision not approved or the loan is already funded
        """
        offer = self.offers.get_by_id(offer_id)
        if offer is None:
            raise OfferNotFoundError(f"Offer {offer_id} not found")

        decision = offer.decision
        if decision.decision_status != DecisionStatus.APPROVED:
            raise InvalidStateError(f"Decision is {decision.decision_status}; offers cannot be selected")
        if decision.application.status != ApplicationStatus.APPROVED:
            raise InvalidStateError(f"Application is {decision.application.status}")

        for other in decision.offers:
            other.selected = other.id == offer.id
        offer.selected_at = utcnow()

        self.audit.record(
            "application",
            decision.application_id,
            "borrower",
            "offer_selected",
            {"offer_id": str(offer.id), "term_months": offer.term_months},
        )
        self.db.commit()
        return offer

    def fund_loan(self, application_id: uuid.UUID, funding_date: Optional[date] = None) -> Loan:
        """
        Create the loan and its payment schedule from the selected offer.

        Financed amount is the requested amount less the offer's down payment.

        Raises:
            ApplicationNotFoundError: Unknown application
            InvalidStateError: Application not approved or no offer selected
        """
        application = self._get_application(application_id)
        if application.status != ApplicationStatus.APPROVED:
            raise InvalidStateError(f"Application is {application.status}; only approved applications can be funded")

        offer = self.offers.get_selected(application.decision.id)
        if offer is None:
            raise InvalidStateError("No offer selected")

        funding_date = funding_date or utcnow().date()
        financed_cents = application.requested_cents - offer.down_payment_cents

        loan = self.loans.create_loan(application.id, offer, financed_cents, funding_date)
        installments = generate_payment_schedule(
            financed_cents,
            offer.apr,
            offer.term_months,
            funding_date,
            monthly_payment_cents=offer.monthly_payment_cents,
        )
        self.payments.create_schedule(loan.id, installments)
        application.status = ApplicationStatus.FUNDED

        self.audit.record(
            "loan",
            loan.id,
            "system",
            "loan_funded",
            {"application_id": str(application.id), "funded_amount_cents": financed_cents, "term_months": offer.term_months},
        )
        self.db.commit()
        logger.info(f"Funded loan {loan.id}: {financed_cents} cents over {offer.term_months} months")
        return loan
