"""Retry/backoff policy for failed ACH debits"""

from datetime import date, timedelta
from typing import Iterable, Optional, Sequence

from lending_engine.domain.models import PaymentStatus
from lending_engine.domain.state_machine import transition


class RetryPolicy:
    """
    Classifies provider return codes and schedules the next collection attempt.

    Retry schedule (default): 3, 5 and 7 days after each failure, so a payment
    gets at most three automatic retries. Codes in `non_retryable_codes`
    (closed/frozen/invalid accounts, unauthorized debits) are never retried;
    missing or unrecognised codes are treated as transient.
    """

    def __init__(self, intervals_days: Sequence[int], non_retryable_codes: Iterable[str]):
        self.intervals_days = list(intervals_days)
        self.non_retryable_codes = frozenset(code.upper() for code in non_retryable_codes)

    @classmethod
    def from_settings(cls, settings) -> "RetryPolicy":
        return cls(settings.retry_intervals_days, settings.non_retryable_return_codes)

    @property
    def max_retries(self) -> int:
        return len(self.intervals_days)

    def is_retryable(self, failure_code: Optional[str]) -> bool:
        if not failure_code:
            return True
        return failure_code.upper() not in self.non_retryable_codes

    def next_retry_date(self, retry_count: int, today: date) -> Optional[date]:
        """Date of the next attempt, or None once retries are exhausted"""
        if retry_count >= self.max_retries:
            return None
        return today + timedelta(days=self.intervals_days[retry_count])

    def schedule_retry(self, payment, today: date) -> bool:
        """
        Put a failed payment back on the schedule.

        Returns False (and flags the payment for manual action) when the
        failure is terminal or the retry budget is spent.
        """
        if not self.is_retryable(payment.failure_code):
            payment.requires_action = True
            return False

        next_date = self.next_retry_date(payment.retry_count or 0, today)
        if next_date is None:
            payment.requires_action = True
            return False

        transition(payment, PaymentStatus.SCHEDULED)
        payment.retry_count = (payment.retry_count or 0) + 1
        payment.next_retry_date = next_date
        payment.transfer_id = None
        payment.failure_reason = None
        payment.failure_code = None
        payment.requires_action = False
        return True
