"""Domain-specific exceptions.

All exceptions in the accessgate system inherit from AccessGateError,
making it easy to catch all system errors while still being able
to handle specific error types.

Every exception carries a stable ``kind`` so callers (the HTTP layer in
particular) can branch on the kind of failure rather than on message text.
"""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    """Stable failure kinds exposed to callers."""

    VALIDATION = "validation_failure"
    DUPLICATE_IDENTITY = "duplicate_identity"
    NOT_FOUND = "not_found"
    INVALID_CREDENTIALS = "invalid_credentials"
    INVALID_TOKEN = "invalid_token"
    ACCOUNT_DISABLED = "account_disabled"
    STORE_UNAVAILABLE = "store_unavailable"
    HASHING_FAILURE = "hashing_failure"


class AccessGateError(Exception):
    """Base exception for all accessgate errors.

    All custom exceptions in the system should inherit from this class
    to enable catching all accessgate-specific errors with a single except clause.
    """

    kind: ErrorKind = ErrorKind.VALIDATION
    default_message = "Request failed"

    def __init__(self, message: str | None = None) -> None:
        """Initialize the error.

        Args:
            message: Error description. Falls back to the class default.
        """
        super().__init__(message or self.default_message)
        self.message = message or self.default_message


class ValidationFailure(AccessGateError):
    """Malformed input.

    The caller's fault. Raised before any side effect takes place.
    """

    kind = ErrorKind.VALIDATION
    default_message = "Invalid input"


class DuplicateIdentity(AccessGateError):
    """A uniqueness constraint would be violated.

    Raised both by explicit existence checks and when the store reports a
    unique-key violation on insert, so a lost race looks the same to the
    caller as an up-front conflict.
    """

    kind = ErrorKind.DUPLICATE_IDENTITY
    default_message = "Already exists"


class NotFound(AccessGateError):
    """A referenced entity does not exist."""

    kind = ErrorKind.NOT_FOUND
    default_message = "Not found"


class InvalidCredentials(AccessGateError):
    """Authentication with username and password failed.

    The message is deliberately identical for every cause (unknown user,
    wrong password, unusable hash).
    """

    kind = ErrorKind.INVALID_CREDENTIALS
    default_message = "Invalid credentials"


class InvalidToken(AccessGateError):
    """A token failed signature, structure, or expiry validation."""

    kind = ErrorKind.INVALID_TOKEN
    default_message = "Invalid token"


class AccountDisabled(AccessGateError):
    """The principal exists but is not active."""

    kind = ErrorKind.ACCOUNT_DISABLED
    default_message = "Account is disabled"


# Refresh reports an inactive principal with the same kind as login does.
PrincipalDisabled = AccountDisabled


class StoreUnavailable(AccessGateError):
    """The persistent store failed.

    Not a logic error. Never retried internally; the transport layer
    decides on retry and backoff.
    """

    kind = ErrorKind.STORE_UNAVAILABLE
    default_message = "Store unavailable"


class HashingFailure(AccessGateError):
    """Password hashing failed or a stored digest is malformed."""

    kind = ErrorKind.HASHING_FAILURE
    default_message = "Password hashing failed"
