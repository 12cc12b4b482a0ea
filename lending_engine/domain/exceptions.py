"""Domain-specific exceptions"""


class DomainException(Exception):
    """Base exception for domain layer"""

    pass


class TransferAPIError(DomainException):
    """Transfer provider returned an error or is unavailable"""

    pass


class IllegalTransitionError(DomainException):
    """Payment status change not allowed by the payment state machine"""

    def __init__(self, current: str, target: str):
        super().__init__(f"Illegal payment transition: {current} -> {target}")
        self.current = current
        self.target = target


class ApplicationNotFoundError(DomainException):
    pass


class OfferNotFoundError(DomainException):
    pass


class LoanNotFoundError(DomainException):
    pass


class PaymentNotFoundError(DomainException):
    pass


class InvalidStateError(DomainException):
    """Operation not permitted for the record's current lifecycle state"""

    pass


class QuoteExpiredError(DomainException):
    """Payoff requested against a quote past its validity window"""

    pass


class JobAlreadyRunningError(DomainException):
    """Another worker holds the batch job lock"""

    pass


class WebhookVerificationError(DomainException):
    """Webhook signature missing or does not match the payload"""

    pass
