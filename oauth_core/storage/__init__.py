# oauth_core/storage/__init__.py

"""Storage module initialization.

Provides the SQLite connection handling and schema initialization shared
by the OAuth stores.
"""

from .sqlite_base import (
    open_sqlite_db_connection,
    get_sqlite_db_connection,
    init_sqlite_db,
    close_sqlite_db_connection
)

__all__ = [
    "open_sqlite_db_connection",
    "get_sqlite_db_connection",
    "init_sqlite_db",
    "close_sqlite_db_connection"
]
