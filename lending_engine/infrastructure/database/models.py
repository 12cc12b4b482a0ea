"""SQLAlchemy ORM models for applications, decisions, loans and payments"""

import uuid
from sqlalchemy import (
    Column,
    String,
    BigInteger,
    Boolean,
    Float,
    DateTime,
    Date,
    Integer,
    ForeignKey,
    Text,
    JSON,
    Uuid,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func

Base = declarative_base()


class Application(Base):
    """Financing request for a single job"""

    __tablename__ = "application"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    job_reference = Column(Text, nullable=False)
    customer_reference = Column(Text, nullable=False, index=True)
    status = Column(Text, nullable=False, default="initiated")
    requested_cents = Column(BigInteger, nullable=True)
    bank_data = Column(JSON, nullable=True)
    customer_info = Column(JSON, nullable=True)
    token = Column(Text, nullable=True, unique=True)
    token_expires_at = Column(DateTime(timezone=True), nullable=True)
    submitted_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    decision = relationship("Decision", back_populates="application", uselist=False, cascade="all, delete-orphan")
    loan = relationship("Loan", back_populates="application", uselist=False)


class Decision(Base):
    """Underwriting outcome, one per application"""

    __tablename__ = "decision"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    application_id = Column(Uuid(as_uuid=True), ForeignKey("application.id", ondelete="CASCADE"), nullable=False, unique=True)
    score = Column(Integer, nullable=False)
    decision_status = Column(Text, nullable=False)
    decision_reason = Column(Text, nullable=True)
    risk_factors = Column(JSON, nullable=False, default=list)
    positive_factors = Column(JSON, nullable=False, default=list)
    data_used = Column(JSON, nullable=True)
    max_loan_amount_cents = Column(BigInteger, nullable=False, default=0)
    evaluator_version = Column(Text, nullable=False)
    decided_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    application = relationship("Application", back_populates="decision")
    offers = relationship("Offer", back_populates="decision", cascade="all, delete-orphan", order_by="Offer.term_months")


class Offer(Base):
    """Amortized installment offer attached to a decision"""

    __tablename__ = "offer"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    decision_id = Column(Uuid(as_uuid=True), ForeignKey("decision.id", ondelete="CASCADE"), nullable=False, index=True)
    term_months = Column(Integer, nullable=False)
    apr = Column(Float, nullable=False)
    monthly_payment_cents = Column(BigInteger, nullable=False)
    down_payment_cents = Column(BigInteger, nullable=False, default=0)
    origination_fee_cents = Column(BigInteger, nullable=False, default=0)
    total_amount_cents = Column(BigInteger, nullable=False)
    selected = Column(Boolean, nullable=False, default=False)
    selected_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    decision = relationship("Decision", back_populates="offers")


class Loan(Base):
    """Funded loan being serviced"""

    __tablename__ = "loan"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    application_id = Column(Uuid(as_uuid=True), ForeignKey("application.id"), nullable=False, unique=True)
    offer_id = Column(Uuid(as_uuid=True), ForeignKey("offer.id"), nullable=False)
    funded_amount_cents = Column(BigInteger, nullable=False)
    apr = Column(Float, nullable=False)
    term_months = Column(Integer, nullable=False)
    monthly_payment_cents = Column(BigInteger, nullable=False)
    funding_date = Column(Date, nullable=False)
    status = Column(Text, nullable=False, default="funded", index=True)
    days_overdue = Column(Integer, nullable=False, default=0)
    defaulted_at = Column(DateTime(timezone=True), nullable=True)
    paid_off_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    application = relationship("Application", back_populates="loan")
    offer = relationship("Offer")
    payments = relationship("Payment", back_populates="loan", cascade="all, delete-orphan", order_by="Payment.payment_number")


class Payment(Base):
    """Single installment (or payoff) debit on a loan"""

    __tablename__ = "payment"
    __table_args__ = (UniqueConstraint("loan_id", "payment_number", name="uq_payment_loan_number"),)

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    loan_id = Column(Uuid(as_uuid=True), ForeignKey("loan.id", ondelete="CASCADE"), nullable=False, index=True)
    payment_number = Column(Integer, nullable=False)
    amount_cents = Column(BigInteger, nullable=False)
    principal_cents = Column(BigInteger, nullable=False, default=0)
    interest_cents = Column(BigInteger, nullable=False, default=0)
    due_date = Column(Date, nullable=False, index=True)
    status = Column(Text, nullable=False, default="scheduled", index=True)
    is_payoff = Column(Boolean, nullable=False, default=False)
    processed_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    failure_reason = Column(Text, nullable=True)
    failure_code = Column(Text, nullable=True)
    requires_action = Column(Boolean, nullable=False, default=False)
    retry_count = Column(Integer, nullable=False, default=0)
    next_retry_date = Column(Date, nullable=True)
    transfer_id = Column(Text, nullable=True, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    loan = relationship("Loan", back_populates="payments")


class TransferEvent(Base):
    """Provider transfer events already applied, keyed by provider event id"""

    __tablename__ = "transfer_event"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    event_id = Column(Text, nullable=False, unique=True)
    transfer_id = Column(Text, nullable=False, index=True)
    event_type = Column(Text, nullable=False)
    payment_id = Column(Uuid(as_uuid=True), ForeignKey("payment.id", ondelete="SET NULL"), nullable=True)
    received_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class AuditLog(Base):
    """Append-only record of state changes and operator actions"""

    __tablename__ = "audit_log"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    entity_type = Column(Text, nullable=False)
    entity_id = Column(Text, nullable=False, index=True)
    actor = Column(Text, nullable=False)
    action = Column(Text, nullable=False)
    payload = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class JobLock(Base):
    """Single-active-worker lock for scheduled jobs"""

    __tablename__ = "job_lock"

    name = Column(String(64), primary_key=True)
    owner = Column(Text, nullable=False)
    acquired_at = Column(DateTime(timezone=True), nullable=False)
