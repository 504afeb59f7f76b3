"""
Domain exception hierarchy shared by services and the HTTP layer.

Every error carries a human-readable message plus structured context
that is logged as key/value pairs and echoed in error responses.
"""

from typing import Any


class AtelierError(Exception):
    """Base exception for order engine errors."""

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context = context


class NotFoundError(AtelierError):
    """Raised when a referenced order, revision, profile or item is absent."""

    pass


class InvalidInputError(AtelierError):
    """Raised when caller-supplied values violate a business rule."""

    pass


class AgreementRequiredError(InvalidInputError):
    """Raised when an order is submitted without accepting both agreements."""

    pass


class IllegalTransitionError(AtelierError):
    """Raised when a status change is not permitted from the current state."""

    pass


class UpstreamUnavailableError(AtelierError):
    """Raised when content storage cannot be reached after all retries."""

    pass
