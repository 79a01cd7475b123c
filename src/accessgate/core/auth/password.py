"""Password hashing utilities using bcrypt."""

from dataclasses import dataclass

import bcrypt

from accessgate.core.exceptions import HashingFailure, ValidationFailure

DEFAULT_ROUNDS = 12
MIN_ROUNDS = 4
MAX_ROUNDS = 31

# bcrypt only looks at the first 72 bytes of input.
MAX_PASSWORD_BYTES = 72


def _clamp_rounds(rounds: int) -> int:
    return max(MIN_ROUNDS, min(MAX_ROUNDS, rounds))


def hash_password(password: str, rounds: int = DEFAULT_ROUNDS) -> str:
    """Hash a password using bcrypt.

    Args:
        password: Plain text password
        rounds: bcrypt cost factor, clamped to bcrypt's valid range

    Returns:
        Bcrypt hash string

    Raises:
        HashingFailure: If salt generation or hashing fails
    """
    try:
        salt = bcrypt.gensalt(rounds=_clamp_rounds(rounds))
        hashed = bcrypt.hashpw(password.encode("utf-8"), salt)
    except (ValueError, TypeError) as e:
        raise HashingFailure(f"Failed to hash password: {e}") from None
    return hashed.decode("utf-8")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against a hash.

    Args:
        plain_password: Plain text password to check
        hashed_password: Bcrypt hash to check against

    Returns:
        True if password matches hash

    Raises:
        HashingFailure: If the stored hash is malformed
    """
    if not plain_password:
        return False
    encoded = plain_password.encode("utf-8")
    if len(encoded) > MAX_PASSWORD_BYTES:
        return False
    try:
        return bcrypt.checkpw(encoded, hashed_password.encode("utf-8"))
    except ValueError:
        raise HashingFailure("Stored password hash is malformed") from None


@dataclass(frozen=True)
class PasswordPolicy:
    """Rules a new local password must satisfy.

    The defaults accept any non-empty password bcrypt can hash in full.
    """

    min_length: int = 1
    require_complexity: bool = False

    def check(self, password: str) -> None:
        """Validate a candidate password.

        Args:
            password: Plain text password.

        Raises:
            ValidationFailure: If the password breaks the policy.
        """
        if not password or len(password) < max(self.min_length, 1):
            raise ValidationFailure(
                f"Password must be at least {max(self.min_length, 1)} characters"
            )
        if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
            raise ValidationFailure(f"Password must be at most {MAX_PASSWORD_BYTES} bytes")
        if self.require_complexity and not _is_complex(password):
            raise ValidationFailure(
                "Password must contain uppercase, lowercase, number, and special character"
            )


def _is_complex(password: str) -> bool:
    has_upper = any(c.isupper() for c in password)
    has_lower = any(c.islower() for c in password)
    has_digit = any(c.isdigit() for c in password)
    has_special = any(not c.isalnum() and not c.isspace() for c in password)
    return has_upper and has_lower and has_digit and has_special
