"""User directory (read-only access to the user service's records)."""

from .models import USERS_TABLES_CQL, User
from .service import CassandraUserDirectory, InMemoryUserDirectory, UserDirectory


__all__ = [
    "USERS_TABLES_CQL",
    "CassandraUserDirectory",
    "InMemoryUserDirectory",
    "User",
    "UserDirectory",
]
