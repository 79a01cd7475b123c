"""Core domain - identity, tokens, and access resolution."""

from .exceptions import (
    AccessGateError,
    AccountDisabled,
    DuplicateIdentity,
    ErrorKind,
    HashingFailure,
    InvalidCredentials,
    InvalidToken,
    NotFound,
    PrincipalDisabled,
    StoreUnavailable,
    ValidationFailure,
)

__all__ = [
    "AccessGateError",
    "AccountDisabled",
    "DuplicateIdentity",
    "ErrorKind",
    "HashingFailure",
    "InvalidCredentials",
    "InvalidToken",
    "NotFound",
    "PrincipalDisabled",
    "StoreUnavailable",
    "ValidationFailure",
]
