"""
Database module for the Claim Lifecycle Engine.

Exports database connection utilities and scoped transactions.
"""

from claimflow.db.connection import (
    check_db_connection,
    close_db_connection,
    create_session_maker,
    get_engine,
    get_session_maker,
    transaction,
)

__all__ = [
    "get_engine",
    "get_session_maker",
    "create_session_maker",
    "transaction",
    "close_db_connection",
    "check_db_connection",
]
