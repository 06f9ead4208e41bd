# oauth_core/storage/sqlite_base.py
import sqlite3
import logging
from pathlib import Path
from typing import Optional

from ..settings import settings

logger = logging.getLogger(__name__)

MEMORY_DB_PATH = ":memory:"

# Global connection instance to ensure single connection per application lifecycle
_db_connection: Optional[sqlite3.Connection] = None


def open_sqlite_db_connection(db_path: str) -> sqlite3.Connection:
    """
    Open a SQLite connection configured the way every store expects it.

    Creates the parent directory for file databases. Rows are returned as
    sqlite3.Row so columns can be addressed by name.
    """
    if db_path == MEMORY_DB_PATH:
        target = MEMORY_DB_PATH
    else:
        resolved = Path(db_path).resolve()
        resolved.parent.mkdir(parents=True, exist_ok=True)
        target = str(resolved)

    logger.info(f"Attempting to connect to SQLite DB at: {target}")
    # The event loop thread and worker threads may both touch the connection
    conn = sqlite3.connect(target, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    logger.info(f"Successfully connected to SQLite DB: {target}")
    return conn


async def get_sqlite_db_connection() -> sqlite3.Connection:
    """
    Get or create the application-wide SQLite connection.

    The schema is initialized on first connection.

    Raises:
        sqlite3.Error: If database connection fails
    """
    global _db_connection
    if _db_connection is None:
        try:
            _db_connection = open_sqlite_db_connection(settings.sqlite_db_path)
            await init_sqlite_db(_db_connection)
        except sqlite3.Error as e:
            logger.error(
                f"Error connecting to SQLite database at {settings.sqlite_db_path}: {e}",
                exc_info=True
            )
            raise
    return _db_connection


async def init_sqlite_db(conn: Optional[sqlite3.Connection] = None):
    """
    Initialize the SQLite schema for clients, codes, tokens and user grants.

    Uses IF NOT EXISTS so repeated calls are safe. All timestamps are stored
    as UTC ISO-8601 strings with microsecond precision, which keeps string
    comparison equivalent to time comparison.
    """
    db_conn = conn or await get_sqlite_db_connection()
    cursor = db_conn.cursor()

    cursor.execute('''
    CREATE TABLE IF NOT EXISTS oauth_clients (
        id TEXT PRIMARY KEY,
        client_id TEXT NOT NULL UNIQUE,
        client_secret_digest TEXT NOT NULL,
        name TEXT NOT NULL,
        description TEXT,
        redirect_uris TEXT NOT NULL,
        scopes TEXT NOT NULL,
        is_confidential INTEGER NOT NULL DEFAULT 1,
        rotate_refresh_tokens INTEGER NOT NULL DEFAULT 1,
        revoked INTEGER NOT NULL DEFAULT 0,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    ''')
    logger.info("Ensured 'oauth_clients' table exists.")

    # Only the SHA-256 digest of a code is ever stored
    cursor.execute('''
    CREATE TABLE IF NOT EXISTS oauth_authorization_codes (
        code_hash TEXT PRIMARY KEY,
        user_id TEXT NOT NULL,
        client_id TEXT NOT NULL,
        scopes TEXT NOT NULL,
        redirect_uri TEXT NOT NULL,
        code_challenge TEXT,
        code_challenge_method TEXT,
        expires_at TEXT NOT NULL,
        consumed INTEGER NOT NULL DEFAULT 0,
        used_at TEXT,
        created_at TEXT NOT NULL
    )
    ''')
    logger.info("Ensured 'oauth_authorization_codes' table exists.")

    cursor.execute('''
    CREATE TABLE IF NOT EXISTS oauth_access_tokens (
        id TEXT PRIMARY KEY,
        token_hash TEXT NOT NULL UNIQUE,
        user_id TEXT NOT NULL,
        client_id TEXT NOT NULL,
        scopes TEXT NOT NULL,
        family_id TEXT,
        expires_at TEXT NOT NULL,
        revoked_at TEXT,
        created_at TEXT NOT NULL
    )
    ''')
    logger.info("Ensured 'oauth_access_tokens' table exists.")

    cursor.execute('''
    CREATE TABLE IF NOT EXISTS oauth_refresh_tokens (
        id TEXT PRIMARY KEY,
        token_hash TEXT NOT NULL UNIQUE,
        user_id TEXT NOT NULL,
        client_id TEXT NOT NULL,
        scopes TEXT NOT NULL,
        family_id TEXT NOT NULL,
        expires_at TEXT NOT NULL,
        revoked_at TEXT,
        created_at TEXT NOT NULL
    )
    ''')
    logger.info("Ensured 'oauth_refresh_tokens' table exists.")

    cursor.execute('''
    CREATE TABLE IF NOT EXISTS oauth_user_grants (
        id TEXT PRIMARY KEY,
        user_id TEXT NOT NULL,
        client_id TEXT NOT NULL,
        scopes TEXT NOT NULL,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        revoked_at TEXT,
        UNIQUE (user_id, client_id)
    )
    ''')
    logger.info("Ensured 'oauth_user_grants' table exists.")

    cursor.execute(
        "CREATE INDEX IF NOT EXISTS idx_oauth_refresh_tokens_family ON oauth_refresh_tokens (family_id)"
    )
    cursor.execute(
        "CREATE INDEX IF NOT EXISTS idx_oauth_access_tokens_family ON oauth_access_tokens (family_id)"
    )
    cursor.execute(
        "CREATE INDEX IF NOT EXISTS idx_oauth_access_tokens_user_client "
        "ON oauth_access_tokens (user_id, client_id)"
    )
    cursor.execute(
        "CREATE INDEX IF NOT EXISTS idx_oauth_refresh_tokens_user_client "
        "ON oauth_refresh_tokens (user_id, client_id)"
    )

    db_conn.commit()
    logger.info("SQLite database schema initialized/verified.")


async def close_sqlite_db_connection():
    """Close the global SQLite database connection on application shutdown."""
    global _db_connection
    if _db_connection is not None:
        logger.info("Closing SQLite DB connection.")
        _db_connection.close()
        _db_connection = None
        logger.info("SQLite DB connection closed.")
