from typing import Any

from fastapi import status


class LedgerError(Exception):
    """Base class for every error the ledger surfaces to its callers.

    Each subclass fixes the HTTP status and error type used when the error is
    rendered by the API, and whether the caller may retry the operation.
    """

    status_code: int = status.HTTP_400_BAD_REQUEST
    error_type: str = "ledger_error"
    retryable: bool = False

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class NotFound(LedgerError):
    status_code = status.HTTP_404_NOT_FOUND
    error_type = "not_found"


class Unauthorized(LedgerError):
    status_code = status.HTTP_403_FORBIDDEN
    error_type = "unauthorized"


class InsufficientBalance(LedgerError):
    error_type = "insufficient_balance"


class InsufficientClaimedBalance(LedgerError):
    error_type = "insufficient_claimed_balance"


class PolicyViolation(LedgerError):
    error_type = "policy_violation"


class InvalidDirection(PolicyViolation):
    error_type = "invalid_direction"


class ClaimedAtSameLevel(PolicyViolation):
    error_type = "claimed_at_same_level"


class NoPartnership(PolicyViolation):
    error_type = "no_partnership"


class ClaimWindowClosed(PolicyViolation):
    error_type = "claim_window_closed"


class TransferNotPending(PolicyViolation):
    error_type = "transfer_not_pending"


class Conflict(LedgerError):
    """Lock timeout, serialization failure or deadlock. Safe to retry."""

    status_code = status.HTTP_409_CONFLICT
    error_type = "conflict"
    retryable = True


class InvariantViolation(LedgerError):
    """A conservation invariant failed to hold. Never retried."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    error_type = "invariant_violation"
