"""
Database module for the edge gateway.

Provides the async engine, session factory and declarative base.
"""

from edge_gateway.database.base import (
    Base,
    UTCDateTime,
    close_db,
    create_engine,
    create_session_factory,
    init_db,
    is_memory_url,
)

__all__ = [
    "Base",
    "UTCDateTime",
    "close_db",
    "create_engine",
    "create_session_factory",
    "init_db",
    "is_memory_url",
]
