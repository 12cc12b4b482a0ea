"""Unit tests for the retry/backoff policy"""

import pytest
from datetime import date
from types import SimpleNamespace
from lending_engine.config import settings
from lending_engine.domain.models import PaymentStatus
from lending_engine.domain.retry_policy import RetryPolicy

TODAY = date(2024, 6, 1)


@pytest.fixture
def policy() -> RetryPolicy:
    return RetryPolicy.from_settings(settings)


def _failed_payment(failure_code=None, retry_count=0):
    return SimpleNamespace(
        status=PaymentStatus.FAILED,
        failure_code=failure_code,
        failure_reason="Insufficient funds",
        retry_count=retry_count,
        next_retry_date=None,
        transfer_id="tr-1",
        requires_action=False,
    )


def test_default_schedule(policy: RetryPolicy):
    """Three retries spaced 3, 5 and 7 days after each failure"""
    assert policy.max_retries == 3
    assert policy.next_retry_date(0, TODAY) == date(2024, 6, 4)
    assert policy.next_retry_date(1, TODAY) == date(2024, 6, 6)
    assert policy.next_retry_date(2, TODAY) == date(2024, 6, 8)
    assert policy.next_retry_date(3, TODAY) is None


@pytest.mark.parametrize("code", ["R02", "R03", "R04", "R05", "R07", "R08", "R10", "R16", "R20", "R29", "ACCOUNT_CLOSED", "r02"])
def test_terminal_codes(policy: RetryPolicy, code):
    assert policy.is_retryable(code) is False


@pytest.mark.parametrize("code", [None, "", "R01", "R09", "NSF", "SOMETHING_NEW"])
def test_transient_and_unknown_codes(policy: RetryPolicy, code):
    """Insufficient funds, uncollected funds and unrecognised codes are retried"""
    assert policy.is_retryable(code) is True


def test_schedule_retry_reschedules(policy: RetryPolicy):
    payment = _failed_payment("R01")

    assert policy.schedule_retry(payment, TODAY) is True
    assert payment.status == PaymentStatus.SCHEDULED
    assert payment.retry_count == 1
    assert payment.next_retry_date == date(2024, 6, 4)
    assert payment.transfer_id is None
    assert payment.failure_code is None
    assert payment.failure_reason is None
    assert payment.requires_action is False


def test_schedule_retry_terminal_code_flags(policy: RetryPolicy):
    payment = _failed_payment("R02")

    assert policy.schedule_retry(payment, TODAY) is False
    assert payment.status == PaymentStatus.FAILED
    assert payment.requires_action is True
    assert payment.retry_count == 0


def test_schedule_retry_budget_exhausted(policy: RetryPolicy):
    payment = _failed_payment("R01", retry_count=3)

    assert policy.schedule_retry(payment, TODAY) is False
    assert payment.requires_action is True
    assert payment.status == PaymentStatus.FAILED


def test_custom_intervals():
    policy = RetryPolicy([1, 2], ["X"])

    assert policy.max_retries == 2
    assert policy.next_retry_date(1, TODAY) == date(2024, 6, 3)
    assert policy.is_retryable("x") is False
