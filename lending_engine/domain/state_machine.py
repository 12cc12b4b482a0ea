"""Payment status state machine"""

from typing import Dict, FrozenSet

from lending_engine.domain.exceptions import IllegalTransitionError
from lending_engine.domain.models import PaymentStatus as S

# Completed and cancelled are terminal. failed -> scheduled happens only through
# retry scheduling (automatic or operator-requested).
ALLOWED_TRANSITIONS: Dict[str, FrozenSet[str]] = {
    S.SCHEDULED: frozenset({S.PENDING, S.OVERDUE, S.FAILED, S.CANCELLED, S.COMPLETED}),
    S.PENDING: frozenset({S.PROCESSING, S.COMPLETED, S.FAILED, S.CANCELLED}),
    S.PROCESSING: frozenset({S.COMPLETED, S.FAILED, S.CANCELLED}),
    S.FAILED: frozenset({S.SCHEDULED, S.COMPLETED, S.CANCELLED}),
    S.OVERDUE: frozenset({S.SCHEDULED, S.COMPLETED, S.CANCELLED}),
    S.COMPLETED: frozenset(),
    S.CANCELLED: frozenset(),
}


def can_transition(current: str, target: str) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, frozenset())


def transition(payment, target: str) -> None:
    """Move a payment record to `target`, raising IllegalTransitionError if not allowed"""
    if not can_transition(payment.status, target):
        raise IllegalTransitionError(payment.status, target)
    payment.status = target
