"""Loan servicing endpoints: loan detail, payoff quote and payoff execution"""

import logging
from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from lending_engine.api.v1.schemas import (
    LoanResponse,
    PaymentSchema,
    PayoffBreakdownSchema,
    PayoffQuoteResponse,
    PayoffRequest,
    PayoffResponse,
)
from lending_engine.api.dependencies import get_event_client, get_request_id, get_transfer_client, parse_uuid
from lending_engine.infrastructure.database.session import get_db
from lending_engine.infrastructure.database.repositories import LoanRepository
from lending_engine.infrastructure.database.models import Loan, Payment
from lending_engine.infrastructure.clients.events import EventClient
from lending_engine.infrastructure.clients.transfer import TransferClient
from lending_engine.domain.models import PayoffQuote
from lending_engine.domain.exceptions import InvalidStateError, LoanNotFoundError, QuoteExpiredError, TransferAPIError
from lending_engine.services.payoff import PayoffService

router = APIRouter()


def payment_schema(payment: Payment) -> PaymentSchema:
    return PaymentSchema(
        payment_id=str(payment.id),
        payment_number=payment.payment_number,
        due_date=payment.due_date,
        amount_cents=payment.amount_cents,
        principal_cents=payment.principal_cents,
        interest_cents=payment.interest_cents,
        status=payment.status,
        is_payoff=payment.is_payoff,
        retry_count=payment.retry_count,
        next_retry_date=payment.next_retry_date,
        requires_action=payment.requires_action,
        failure_reason=payment.failure_reason,
        failure_code=payment.failure_code,
        completed_at=payment.completed_at,
    )


def loan_response(loan: Loan) -> LoanResponse:
    return LoanResponse(
        loan_id=str(loan.id),
        application_id=str(loan.application_id),
        status=loan.status,
        funded_amount_cents=loan.funded_amount_cents,
        apr=loan.apr,
        term_months=loan.term_months,
        monthly_payment_cents=loan.monthly_payment_cents,
        funding_date=loan.funding_date,
        days_overdue=loan.days_overdue,
        defaulted_at=loan.defaulted_at,
        paid_off_at=loan.paid_off_at,
        payments=[payment_schema(p) for p in loan.payments],
    )


def quote_response(quote: PayoffQuote) -> PayoffQuoteResponse:
    breakdown = quote.breakdown
    return PayoffQuoteResponse(
        loan_id=quote.loan_id,
        remaining_principal_cents=quote.remaining_principal_cents,
        accrued_interest_cents=quote.accrued_interest_cents,
        fees_cents=quote.fees_cents,
        total_payoff_cents=quote.total_payoff_cents,
        valid_until=quote.valid_until,
        breakdown=PayoffBreakdownSchema(
            original_principal_cents=breakdown.original_principal_cents,
            principal_paid_cents=breakdown.principal_paid_cents,
            interest_paid_cents=breakdown.interest_paid_cents,
            payments_completed=breakdown.payments_completed,
            payments_remaining=breakdown.payments_remaining,
        ),
    )


@router.get("/loans/{loan_id}", response_model=LoanResponse)
def get_loan(loan_id: str, db: Session = Depends(get_db)):
    """Loan with its full payment schedule"""
    loan = LoanRepository(db).get_by_id(parse_uuid(loan_id, "loan"))
    if not loan:
        raise HTTPException(status_code=404, detail="Loan not found")
    return loan_response(loan)


@router.get("/loans/{loan_id}/payoff-quote", response_model=PayoffQuoteResponse)
def get_payoff_quote(loan_id: str, db: Session = Depends(get_db)):
    """
    Amount needed to retire the loan today.

    Quote is valid for 10 days; the payoff request must echo `valid_until`.
    """
    quote = PayoffService(db).quote(parse_uuid(loan_id, "loan"))
    if quote is None:
        raise HTTPException(status_code=404, detail="Loan not found")
    return quote_response(quote)


@router.post("/loans/{loan_id}/payoff", response_model=PayoffResponse)
async def execute_payoff(
    loan_id: str,
    request_body: PayoffRequest,
    request: Request,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    transfer_client: TransferClient = Depends(get_transfer_client),
    event_client: EventClient = Depends(get_event_client),
):
    """
    Execute a confirmed payoff.

    Flow:
    1. Reject expired quotes and loans that are not funded/repaying
    2. Create the payoff payment and debit it through the transfer provider
    3. Cancel the installments that are still outstanding
    4. Loan moves to paid_off when the transfer settles (webhook)
    """
    request_id = get_request_id(request)
    loan_uuid = parse_uuid(loan_id, "loan")

    try:
        payment, quote = await PayoffService(db, transfer_client).execute(loan_uuid, request_body.quote_valid_until)
    except LoanNotFoundError:
        raise HTTPException(status_code=404, detail="Loan not found")
    except QuoteExpiredError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except InvalidStateError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except TransferAPIError as e:
        logging.error(f"Transfer API error during payoff: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=503, detail="Transfer service unavailable")

    background_tasks.add_task(
        event_client.publish,
        [
            {
                "event": "PAYOFF_INITIATED",
                "loan_id": quote.loan_id,
                "payment_id": str(payment.id),
                "amount_cents": payment.amount_cents,
            }
        ],
    )

    return PayoffResponse(
        loan_id=str(loan_uuid),
        payment_id=str(payment.id),
        transfer_id=payment.transfer_id,
        amount_cents=payment.amount_cents,
        status=payment.status,
    )
