"""
Database Infrastructure Package for TaskiSpace Billing

Exports database utilities.
"""

from app.infrastructure.db.database import (
    DatabaseManager,
    get_db_manager,
    get_session_context,
    init_db,
    close_db,
    resolve_database_url,
)


__all__ = [
    "DatabaseManager",
    "get_db_manager",
    "get_session_context",
    "init_db",
    "close_db",
    "resolve_database_url",
]
