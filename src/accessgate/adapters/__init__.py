"""Adapters - Infrastructure implementations of core interfaces.

Adapters are organized by type:
- auth/: Stores implementing the auth and RBAC repository protocols
- db/: asyncpg connection pool
"""
