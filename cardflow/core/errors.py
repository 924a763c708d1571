"""Error taxonomy shared by the lifecycle, entropy and notification services.

Every error names the precondition that failed; the HTTP layer maps each
class to a status code (see ``cardflow.api.errors``).
"""

from __future__ import annotations


class CardflowError(Exception):
    status_code: int = 400
    code: str = "error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(CardflowError):
    """Malformed input."""

    status_code = 422
    code = "validation_error"


class InvalidTransition(CardflowError):
    """Action not legal from the card's current effective state."""

    status_code = 409
    code = "invalid_transition"


class NotFound(CardflowError):
    """Entity missing, or owned by another tenant."""

    status_code = 404
    code = "not_found"


class InvalidReference(CardflowError):
    """Referenced entity exists but may not be used here."""

    status_code = 422
    code = "invalid_reference"


class AuthorizationError(CardflowError):
    status_code = 403
    code = "forbidden"


class ConcurrencyConflict(CardflowError):
    """A guarded write lost against a concurrent change."""

    status_code = 409
    code = "concurrency_conflict"
