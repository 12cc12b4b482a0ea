"""Origination endpoints: applications, decisions, offer selection and funding"""

import time
import logging
from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from lending_engine.api.v1.schemas import (
    ApplicationCreateRequest,
    ApplicationResponse,
    DecisionResponse,
    FundLoanRequest,
    LoanResponse,
    OfferSchema,
    SubmitApplicationRequest,
)
from lending_engine.api.v1.loans import loan_response
from lending_engine.api.dependencies import get_request_id, parse_uuid
from lending_engine.infrastructure.database.session import get_db
from lending_engine.infrastructure.database.models import Application, Decision, Offer
from lending_engine.domain.models import DecisionStatus
from lending_engine.domain.exceptions import ApplicationNotFoundError, InvalidStateError, OfferNotFoundError
from lending_engine.infrastructure.observability.metrics import record_decision
from lending_engine.infrastructure.observability.logging import log_decision
from lending_engine.services.origination import OriginationService

router = APIRouter()


def application_response(application: Application) -> ApplicationResponse:
    return ApplicationResponse(
        application_id=str(application.id),
        status=application.status,
        job_reference=application.job_reference,
        customer_reference=application.customer_reference,
        requested_cents=application.requested_cents,
    )


def offer_schema(offer: Offer) -> OfferSchema:
    return OfferSchema(
        offer_id=str(offer.id),
        term_months=offer.term_months,
        apr=offer.apr,
        monthly_payment_cents=offer.monthly_payment_cents,
        down_payment_cents=offer.down_payment_cents,
        origination_fee_cents=offer.origination_fee_cents,
        total_amount_cents=offer.total_amount_cents,
        selected=offer.selected,
    )


def decision_response(decision: Decision) -> DecisionResponse:
    return DecisionResponse(
        application_id=str(decision.application_id),
        decision_status=decision.decision_status,
        approved=decision.decision_status == DecisionStatus.APPROVED,
        score=decision.score,
        decision_reason=decision.decision_reason,
        risk_factors=decision.risk_factors or [],
        positive_factors=decision.positive_factors or [],
        max_loan_amount_cents=decision.max_loan_amount_cents,
        evaluator_version=decision.evaluator_version,
        offers=[offer_schema(o) for o in decision.offers],
    )


@router.post("/applications", response_model=ApplicationResponse, status_code=201)
def create_application(request_body: ApplicationCreateRequest, db: Session = Depends(get_db)):
    application = OriginationService(db).create_application(request_body.job_reference, request_body.customer_reference)
    return application_response(application)


@router.post("/applications/{application_id}/submit", response_model=DecisionResponse)
def submit_application(
    application_id: str,
    request_body: SubmitApplicationRequest,
    request: Request,
    db: Session = Depends(get_db),
):
    """
    Submit bank data and get an underwriting decision.

    Flow:
    1. Store the linked-bank payload and customer info on the application
    2. Score it and decide (approve at 620+, manual-entry cap at $5,000)
    3. Generate 24/48/60-month offers when approved
    4. Thin files and scoring errors go to manual review (pending)
    """
    start_time = time.time()
    request_id = get_request_id(request)
    app_uuid = parse_uuid(application_id, "application")

    try:
        decision = OriginationService(db).submit_application(
            app_uuid,
            request_body.loan_amount_cents,
            request_body.bank_data.model_dump(mode="json"),
            request_body.customer_info.model_dump(mode="json") if request_body.customer_info else None,
        )
    except ApplicationNotFoundError:
        raise HTTPException(status_code=404, detail="Application not found")
    except InvalidStateError as e:
        raise HTTPException(status_code=409, detail=str(e))

    duration_ms = (time.time() - start_time) * 1000
    record_decision(decision.decision_status, decision.score)
    log_decision(
        request_id,
        str(app_uuid),
        decision.decision_status == DecisionStatus.APPROVED,
        decision.score,
        decision.decision_status,
        duration_ms,
    )
    return decision_response(decision)


@router.get("/applications/{application_id}/decision", response_model=DecisionResponse)
def get_decision(application_id: str, db: Session = Depends(get_db)):
    try:
        decision = OriginationService(db).get_decision(parse_uuid(application_id, "application"))
    except ApplicationNotFoundError:
        raise HTTPException(status_code=404, detail="Application not found")
    if decision is None:
        raise HTTPException(status_code=404, detail="No decision for this application")
    return decision_response(decision)


@router.post("/offers/{offer_id}/select", response_model=OfferSchema)
def select_offer(offer_id: str, db: Session = Depends(get_db)):
    try:
        offer = OriginationService(db).select_offer(parse_uuid(offer_id, "offer"))
    except OfferNotFoundError:
        raise HTTPException(status_code=404, detail="Offer not found")
    except InvalidStateError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return offer_schema(offer)


@router.post("/applications/{application_id}/fund", response_model=LoanResponse, status_code=201)
def fund_loan(
    application_id: str,
    request: Request,
    request_body: FundLoanRequest | None = None,
    db: Session = Depends(get_db),
):
    """Fund the selected offer and create the payment schedule"""
    request_id = get_request_id(request)
    funding_date = request_body.funding_date if request_body else None

    try:
        loan = OriginationService(db).fund_loan(parse_uuid(application_id, "application"), funding_date)
    except ApplicationNotFoundError:
        raise HTTPException(status_code=404, detail="Application not found")
    except InvalidStateError as e:
        raise HTTPException(status_code=409, detail=str(e))

    logging.info(f"Loan funded: {loan.id}", extra={"request_id": request_id, "application_id": application_id})
    return loan_response(loan)
