"""Auth adapters."""

from accessgate.adapters.auth.memory import InMemoryAuthStore
from accessgate.adapters.auth.postgres import PostgresAuthStore

__all__ = ["InMemoryAuthStore", "PostgresAuthStore"]
