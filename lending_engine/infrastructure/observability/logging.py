"""Structured JSON logging for production observability"""

import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from pythonjsonlogger import jsonlogger

from lending_engine.config import settings


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """Custom JSON formatter with timestamp and service metadata"""

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = datetime.now(timezone.utc).isoformat()
        log_record["level"] = record.levelname
        log_record["service"] = settings.service_name


def setup_logging(level: str = "INFO") -> None:
    """Configure structured JSON logging"""
    logger = logging.getLogger()
    logger.setLevel(level)

    # Remove existing handlers
    logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    formatter = CustomJsonFormatter(
        "%(timestamp)s %(level)s %(name)s %(message)s"
    )
    handler.setFormatter(formatter)
    logger.addHandler(handler)


def log_decision(
    request_id: str,
    application_id: str,
    approved: bool,
    score: int,
    decision_status: str,
    duration_ms: float,
) -> None:
    """Log structured decision outcome for analysis"""
    logging.info(
        "Decision completed",
        extra={
            "request_id": request_id,
            "application_id": application_id,
            "step": "decision_complete",
            "approval_outcome": "approved" if approved else "declined",
            "decision_status": decision_status,
            "score": score,
            "duration_ms": duration_ms,
        },
    )


def log_payment_run(summary: Dict[str, Any]) -> None:
    """Log the batch payment run summary"""
    logging.info(
        "Payment processing complete",
        extra={"step": "payment_run_complete", **summary},
    )


def log_transfer_event(
    transfer_id: str,
    event_type: str,
    outcome: str,
    payment_id: Optional[str] = None,
    new_status: Optional[str] = None,
) -> None:
    """Log how a provider transfer event was applied"""
    logging.info(
        "Transfer event handled",
        extra={
            "step": "transfer_event",
            "transfer_id": transfer_id,
            "event_type": event_type,
            "outcome": outcome,
            "payment_id": payment_id,
            "new_status": new_status,
        },
    )
