"""Database layer - session management and base models."""

from wakegate.core.database.base import Base, TimestampMixin
from wakegate.core.database.session import (
    create_engine,
    create_session_factory,
    create_tables,
    get_db,
)


__all__ = [
    "Base",
    "TimestampMixin",
    "create_engine",
    "create_session_factory",
    "create_tables",
    "get_db",
]
