"""API middleware."""

from accessgate.entrypoints.api.middleware.jwt_auth import (
    bearer_scheme,
    require_permission,
    verify_jwt,
)

__all__ = ["bearer_scheme", "require_permission", "verify_jwt"]
