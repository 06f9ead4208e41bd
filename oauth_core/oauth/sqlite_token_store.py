# oauth_core/oauth/sqlite_token_store.py
import json
import sqlite3
import logging
from contextlib import contextmanager
from datetime import datetime, timezone, timedelta
from typing import Iterator, List, Optional

from .exceptions import StorageError
from .models import (
    OAuthClient,
    UpdateOAuthClient,
    AuthCodeData,
    AccessTokenData,
    RefreshTokenData,
    UserGrantData,
    UserGrantWithClient,
    new_record_id
)
from .scopes import merge_scopes
from .storage_interfaces import AbstractTokenStore
from ..storage.sqlite_base import (
    open_sqlite_db_connection,
    get_sqlite_db_connection,
    init_sqlite_db
)

logger = logging.getLogger(__name__)

# Consumed codes and revoked tokens are kept this long before cleanup,
# so replays are still recognized for a while after the fact.
CONSUMED_CODE_RETENTION = timedelta(hours=1)
REVOKED_TOKEN_RETENTION = timedelta(days=7)


def _to_iso(dt: Optional[datetime]) -> Optional[str]:
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _from_iso(value: Optional[str]) -> Optional[datetime]:
    if value is None:
        return None
    return datetime.fromisoformat(value)


def _now_iso() -> str:
    return _to_iso(datetime.now(timezone.utc))


class SQLiteTokenStore(AbstractTokenStore):
    """
    SQLite implementation of the token store.

    With no db_path the application-wide connection is shared. With a
    db_path the store opens and owns its own connection, which is what
    tests and standalone tools use.
    """

    def __init__(self, db_path: Optional[str] = None):
        self.db_path = db_path
        self._conn: Optional[sqlite3.Connection] = None

    async def initialize(self) -> None:
        if self._conn is not None:
            return
        if self.db_path is not None:
            self._conn = open_sqlite_db_connection(self.db_path)
            await init_sqlite_db(self._conn)
        else:
            self._conn = await get_sqlite_db_connection()
        logger.info("SQLiteTokenStore initialized.")

    async def teardown(self) -> None:
        if self.db_path is not None and self._conn is not None:
            self._conn.close()
        self._conn = None
        logger.info("SQLiteTokenStore teardown.")

    async def _get_connection(self) -> sqlite3.Connection:
        if self._conn is None:
            await self.initialize()
        return self._conn

    @contextmanager
    def _transaction(self, conn: sqlite3.Connection) -> Iterator[sqlite3.Connection]:
        """Commit on success, roll back and raise StorageError on any SQLite failure."""
        try:
            with conn:
                yield conn
        except sqlite3.Error as e:
            logger.error(f"SQLite transaction failed: {e}", exc_info=True)
            raise StorageError() from e

    async def _execute_query(self, query: str, params: tuple = ()) -> sqlite3.Cursor:
        """Execute a single write query with automatic commit/rollback handling."""
        conn = await self._get_connection()
        with self._transaction(conn):
            return conn.execute(query, params)

    async def _fetchone(self, query: str, params: tuple = ()) -> Optional[sqlite3.Row]:
        conn = await self._get_connection()
        try:
            return conn.execute(query, params).fetchone()
        except sqlite3.Error as e:
            logger.error(f"SQLite error: {e}", exc_info=True)
            raise StorageError() from e

    async def _fetchall(self, query: str, params: tuple = ()) -> List[sqlite3.Row]:
        conn = await self._get_connection()
        try:
            return conn.execute(query, params).fetchall()
        except sqlite3.Error as e:
            logger.error(f"SQLite error: {e}", exc_info=True)
            raise StorageError() from e

    # --- Row conversion ---

    def _row_to_client(self, row: Optional[sqlite3.Row]) -> Optional[OAuthClient]:
        if not row:
            return None
        return OAuthClient(
            id=row["id"],
            client_id=row["client_id"],
            client_secret_digest=row["client_secret_digest"],
            name=row["name"],
            description=row["description"],
            redirect_uris=json.loads(row["redirect_uris"]),
            scopes=json.loads(row["scopes"]),
            is_confidential=bool(row["is_confidential"]),
            rotate_refresh_tokens=bool(row["rotate_refresh_tokens"]),
            revoked=bool(row["revoked"]),
            created_at=_from_iso(row["created_at"]),
            updated_at=_from_iso(row["updated_at"]),
        )

    def _row_to_auth_code(self, row: Optional[sqlite3.Row]) -> Optional[AuthCodeData]:
        if not row:
            return None
        return AuthCodeData(
            code_hash=row["code_hash"],
            user_id=row["user_id"],
            client_id=row["client_id"],
            scopes=json.loads(row["scopes"]),
            redirect_uri=row["redirect_uri"],
            code_challenge=row["code_challenge"],
            code_challenge_method=row["code_challenge_method"],
            expires_at=_from_iso(row["expires_at"]),
            consumed=bool(row["consumed"]),
            created_at=_from_iso(row["created_at"]),
        )

    def _row_to_access_token(self, row: Optional[sqlite3.Row]) -> Optional[AccessTokenData]:
        if not row:
            return None
        return AccessTokenData(
            id=row["id"],
            token_hash=row["token_hash"],
            user_id=row["user_id"],
            client_id=row["client_id"],
            scopes=json.loads(row["scopes"]),
            family_id=row["family_id"],
            expires_at=_from_iso(row["expires_at"]),
            revoked_at=_from_iso(row["revoked_at"]),
            created_at=_from_iso(row["created_at"]),
        )

    def _row_to_refresh_token(self, row: Optional[sqlite3.Row]) -> Optional[RefreshTokenData]:
        if not row:
            return None
        return RefreshTokenData(
            id=row["id"],
            token_hash=row["token_hash"],
            user_id=row["user_id"],
            client_id=row["client_id"],
            scopes=json.loads(row["scopes"]),
            family_id=row["family_id"],
            expires_at=_from_iso(row["expires_at"]),
            revoked_at=_from_iso(row["revoked_at"]),
            created_at=_from_iso(row["created_at"]),
        )

    def _row_to_user_grant(self, row: Optional[sqlite3.Row]) -> Optional[UserGrantData]:
        if not row:
            return None
        return UserGrantData(
            id=row["id"],
            user_id=row["user_id"],
            client_id=row["client_id"],
            scopes=json.loads(row["scopes"]),
            created_at=_from_iso(row["created_at"]),
            updated_at=_from_iso(row["updated_at"]),
            revoked_at=_from_iso(row["revoked_at"]),
        )

    # --- Clients ---

    async def create_client(self, client: OAuthClient) -> OAuthClient:
        query = '''
            INSERT INTO oauth_clients (
                id, client_id, client_secret_digest, name, description, redirect_uris,
                scopes, is_confidential, rotate_refresh_tokens, revoked, created_at, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        '''
        params = (
            client.id,
            client.client_id,
            client.client_secret_digest,
            client.name,
            client.description,
            json.dumps(client.redirect_uris),
            json.dumps(client.scopes),
            int(client.is_confidential),
            int(client.rotate_refresh_tokens),
            int(client.revoked),
            _to_iso(client.created_at),
            _to_iso(client.updated_at),
        )
        await self._execute_query(query, params)
        logger.info(f"Stored OAuth client '{client.client_id}' (id={client.id}).")
        return client

    async def find_client_by_id(self, id: str) -> Optional[OAuthClient]:
        row = await self._fetchone("SELECT * FROM oauth_clients WHERE id = ?", (id,))
        return self._row_to_client(row)

    async def find_active_client_by_client_id(self, client_id: str) -> Optional[OAuthClient]:
        row = await self._fetchone(
            "SELECT * FROM oauth_clients WHERE client_id = ? AND revoked = 0",
            (client_id,)
        )
        return self._row_to_client(row)

    async def list_clients(self) -> List[OAuthClient]:
        rows = await self._fetchall("SELECT * FROM oauth_clients ORDER BY created_at DESC")
        return [self._row_to_client(row) for row in rows]

    async def update_client(self, id: str, patch: UpdateOAuthClient) -> Optional[OAuthClient]:
        fields = patch.model_dump(exclude_none=True)
        if not fields:
            client = await self.find_client_by_id(id)
            return client if client and not client.revoked else None

        assignments = []
        params: list = []
        for column, value in fields.items():
            if column in ("redirect_uris", "scopes"):
                value = json.dumps(value)
            elif column == "rotate_refresh_tokens":
                value = int(value)
            assignments.append(f"{column} = ?")
            params.append(value)
        assignments.append("updated_at = ?")
        params.extend([_now_iso(), id])

        cursor = await self._execute_query(
            f"UPDATE oauth_clients SET {', '.join(assignments)} WHERE id = ? AND revoked = 0",
            tuple(params)
        )
        if cursor.rowcount == 0:
            return None
        return await self.find_client_by_id(id)

    async def update_client_secret(self, id: str, client_secret_digest: str) -> bool:
        cursor = await self._execute_query(
            "UPDATE oauth_clients SET client_secret_digest = ?, updated_at = ? WHERE id = ? AND revoked = 0",
            (client_secret_digest, _now_iso(), id)
        )
        return cursor.rowcount == 1

    async def revoke_client(self, id: str) -> bool:
        conn = await self._get_connection()
        now_iso = _now_iso()
        with self._transaction(conn):
            cursor = conn.execute(
                "UPDATE oauth_clients SET revoked = 1, updated_at = ? WHERE id = ? AND revoked = 0",
                (now_iso, id)
            )
            if cursor.rowcount == 0:
                return False
            row = conn.execute("SELECT client_id FROM oauth_clients WHERE id = ?", (id,)).fetchone()
            access = conn.execute(
                "UPDATE oauth_access_tokens SET revoked_at = ? WHERE client_id = ? AND revoked_at IS NULL",
                (now_iso, row["client_id"])
            )
            refresh = conn.execute(
                "UPDATE oauth_refresh_tokens SET revoked_at = ? WHERE client_id = ? AND revoked_at IS NULL",
                (now_iso, row["client_id"])
            )
        logger.info(
            f"Revoked OAuth client '{row['client_id']}' with "
            f"{access.rowcount} access and {refresh.rowcount} refresh tokens."
        )
        return True

    # --- Authorization codes ---

    def _insert_authorization_code(self, conn: sqlite3.Connection, auth_code: AuthCodeData) -> None:
        query = '''
            INSERT INTO oauth_authorization_codes (
                code_hash, user_id, client_id, scopes, redirect_uri, code_challenge,
                code_challenge_method, expires_at, consumed, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        '''
        conn.execute(query, (
            auth_code.code_hash,
            auth_code.user_id,
            auth_code.client_id,
            json.dumps(auth_code.scopes),
            auth_code.redirect_uri,
            auth_code.code_challenge,
            auth_code.code_challenge_method,
            _to_iso(auth_code.expires_at),
            int(auth_code.consumed),
            _to_iso(auth_code.created_at),
        ))

    async def create_authorization_code(self, auth_code: AuthCodeData) -> None:
        conn = await self._get_connection()
        with self._transaction(conn):
            self._insert_authorization_code(conn, auth_code)

    async def create_authorization_code_with_grant(self, auth_code: AuthCodeData) -> UserGrantData:
        """Store the code and the user's standing consent together, or neither."""
        conn = await self._get_connection()
        with self._transaction(conn):
            self._insert_authorization_code(conn, auth_code)
            row = self._upsert_user_grant(
                conn, auth_code.user_id, auth_code.client_id, auth_code.scopes
            )
        return self._row_to_user_grant(row)

    async def find_and_consume_authorization_code(self, code_hash: str) -> Optional[AuthCodeData]:
        conn = await self._get_connection()
        now_iso = _now_iso()
        with self._transaction(conn):
            # The conditional UPDATE is the compare-and-swap: only one caller sees rowcount 1
            cursor = conn.execute(
                '''
                UPDATE oauth_authorization_codes SET consumed = 1, used_at = ?
                WHERE code_hash = ? AND consumed = 0 AND expires_at > ?
                ''',
                (now_iso, code_hash, now_iso)
            )
            if cursor.rowcount != 1:
                return None
            row = conn.execute(
                "SELECT * FROM oauth_authorization_codes WHERE code_hash = ?",
                (code_hash,)
            ).fetchone()
        return self._row_to_auth_code(row)

    # --- Access tokens ---

    def _insert_access_token(self, conn: sqlite3.Connection, token: AccessTokenData) -> None:
        conn.execute(
            '''
            INSERT INTO oauth_access_tokens (
                id, token_hash, user_id, client_id, scopes, family_id, expires_at, revoked_at, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            ''',
            (
                token.id,
                token.token_hash,
                token.user_id,
                token.client_id,
                json.dumps(token.scopes),
                token.family_id,
                _to_iso(token.expires_at),
                _to_iso(token.revoked_at),
                _to_iso(token.created_at),
            )
        )

    async def create_access_token(self, token: AccessTokenData) -> None:
        conn = await self._get_connection()
        with self._transaction(conn):
            self._insert_access_token(conn, token)

    async def find_access_token_by_hash(self, token_hash: str) -> Optional[AccessTokenData]:
        row = await self._fetchone(
            "SELECT * FROM oauth_access_tokens WHERE token_hash = ?",
            (token_hash,)
        )
        return self._row_to_access_token(row)

    async def revoke_access_token_by_hash(self, token_hash: str) -> bool:
        cursor = await self._execute_query(
            "UPDATE oauth_access_tokens SET revoked_at = ? WHERE token_hash = ? AND revoked_at IS NULL",
            (_now_iso(), token_hash)
        )
        return cursor.rowcount == 1

    # --- Refresh tokens ---

    def _insert_refresh_token(self, conn: sqlite3.Connection, token: RefreshTokenData) -> None:
        conn.execute(
            '''
            INSERT INTO oauth_refresh_tokens (
                id, token_hash, user_id, client_id, scopes, family_id, expires_at, revoked_at, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            ''',
            (
                token.id,
                token.token_hash,
                token.user_id,
                token.client_id,
                json.dumps(token.scopes),
                token.family_id,
                _to_iso(token.expires_at),
                _to_iso(token.revoked_at),
                _to_iso(token.created_at),
            )
        )

    async def create_refresh_token(self, token: RefreshTokenData) -> None:
        conn = await self._get_connection()
        with self._transaction(conn):
            self._insert_refresh_token(conn, token)

    async def create_token_pair(
        self,
        access_token: AccessTokenData,
        refresh_token: Optional[RefreshTokenData]
    ) -> None:
        conn = await self._get_connection()
        with self._transaction(conn):
            self._insert_access_token(conn, access_token)
            if refresh_token is not None:
                self._insert_refresh_token(conn, refresh_token)

    async def find_refresh_token_by_hash(self, token_hash: str) -> Optional[RefreshTokenData]:
        row = await self._fetchone(
            "SELECT * FROM oauth_refresh_tokens WHERE token_hash = ?",
            (token_hash,)
        )
        return self._row_to_refresh_token(row)

    async def revoke_refresh_token(self, id: str) -> bool:
        cursor = await self._execute_query(
            "UPDATE oauth_refresh_tokens SET revoked_at = ? WHERE id = ? AND revoked_at IS NULL",
            (_now_iso(), id)
        )
        return cursor.rowcount == 1

    async def rotate_refresh_token(
        self,
        presented_id: str,
        access_token: AccessTokenData,
        refresh_token: RefreshTokenData
    ) -> bool:
        conn = await self._get_connection()
        with self._transaction(conn):
            cursor = conn.execute(
                "UPDATE oauth_refresh_tokens SET revoked_at = ? WHERE id = ? AND revoked_at IS NULL",
                (_now_iso(), presented_id)
            )
            if cursor.rowcount != 1:
                return False
            self._insert_access_token(conn, access_token)
            self._insert_refresh_token(conn, refresh_token)
        return True

    async def revoke_refresh_token_by_hash(self, token_hash: str) -> bool:
        cursor = await self._execute_query(
            "UPDATE oauth_refresh_tokens SET revoked_at = ? WHERE token_hash = ? AND revoked_at IS NULL",
            (_now_iso(), token_hash)
        )
        return cursor.rowcount == 1

    async def revoke_token_family(self, family_id: str) -> int:
        conn = await self._get_connection()
        now_iso = _now_iso()
        with self._transaction(conn):
            refresh = conn.execute(
                "UPDATE oauth_refresh_tokens SET revoked_at = ? WHERE family_id = ? AND revoked_at IS NULL",
                (now_iso, family_id)
            )
            access = conn.execute(
                "UPDATE oauth_access_tokens SET revoked_at = ? WHERE family_id = ? AND revoked_at IS NULL",
                (now_iso, family_id)
            )
        return refresh.rowcount + access.rowcount

    # --- User grants ---

    def _upsert_user_grant(
        self, conn: sqlite3.Connection, user_id: str, client_id: str, scopes: List[str]
    ) -> sqlite3.Row:
        now_iso = _now_iso()
        existing = conn.execute(
            "SELECT * FROM oauth_user_grants WHERE user_id = ? AND client_id = ?",
            (user_id, client_id)
        ).fetchone()
        if existing is None:
            conn.execute(
                '''
                INSERT INTO oauth_user_grants (id, user_id, client_id, scopes, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?)
                ''',
                (new_record_id(), user_id, client_id, json.dumps(scopes), now_iso, now_iso)
            )
        else:
            if existing["revoked_at"] is None:
                granted = merge_scopes(json.loads(existing["scopes"]), scopes)
            else:
                granted = list(scopes)
            conn.execute(
                '''
                UPDATE oauth_user_grants SET scopes = ?, updated_at = ?, revoked_at = NULL
                WHERE id = ?
                ''',
                (json.dumps(granted), now_iso, existing["id"])
            )
        return conn.execute(
            "SELECT * FROM oauth_user_grants WHERE user_id = ? AND client_id = ?",
            (user_id, client_id)
        ).fetchone()

    async def upsert_user_grant(self, user_id: str, client_id: str, scopes: List[str]) -> UserGrantData:
        conn = await self._get_connection()
        with self._transaction(conn):
            row = self._upsert_user_grant(conn, user_id, client_id, scopes)
        return self._row_to_user_grant(row)

    async def list_user_grants(self, user_id: str) -> List[UserGrantWithClient]:
        query = '''
            SELECT g.id, g.client_id, c.name AS client_name, c.description AS client_description,
                   g.scopes, g.created_at
            FROM oauth_user_grants g
            JOIN oauth_clients c ON c.client_id = g.client_id
            WHERE g.user_id = ? AND g.revoked_at IS NULL AND c.revoked = 0
            ORDER BY g.created_at DESC
        '''
        rows = await self._fetchall(query, (user_id,))
        return [
            UserGrantWithClient(
                id=row["id"],
                client_id=row["client_id"],
                client_name=row["client_name"],
                client_description=row["client_description"],
                scopes=json.loads(row["scopes"]),
                granted_at=_from_iso(row["created_at"]),
            )
            for row in rows
        ]

    async def revoke_user_grant(self, user_id: str, client_id: str) -> bool:
        conn = await self._get_connection()
        now_iso = _now_iso()
        with self._transaction(conn):
            cursor = conn.execute(
                '''
                UPDATE oauth_user_grants SET revoked_at = ?, updated_at = ?
                WHERE user_id = ? AND client_id = ? AND revoked_at IS NULL
                ''',
                (now_iso, now_iso, user_id, client_id)
            )
            if cursor.rowcount == 0:
                return False
            for table in ("oauth_access_tokens", "oauth_refresh_tokens"):
                conn.execute(
                    f"UPDATE {table} SET revoked_at = ? "
                    "WHERE user_id = ? AND client_id = ? AND revoked_at IS NULL",
                    (now_iso, user_id, client_id)
                )
        return True

    # --- Maintenance ---

    async def cleanup_expired(self) -> int:
        conn = await self._get_connection()
        now = datetime.now(timezone.utc)
        now_iso = _to_iso(now)
        used_cutoff = _to_iso(now - CONSUMED_CODE_RETENTION)
        revoked_cutoff = _to_iso(now - REVOKED_TOKEN_RETENTION)

        with self._transaction(conn):
            codes = conn.execute(
                "DELETE FROM oauth_authorization_codes WHERE expires_at < ? OR (consumed = 1 AND used_at < ?)",
                (now_iso, used_cutoff)
            ).rowcount
            access = conn.execute(
                "DELETE FROM oauth_access_tokens "
                "WHERE expires_at < ? OR (revoked_at IS NOT NULL AND revoked_at < ?)",
                (now_iso, revoked_cutoff)
            ).rowcount
            refresh = conn.execute(
                "DELETE FROM oauth_refresh_tokens "
                "WHERE expires_at < ? OR (revoked_at IS NOT NULL AND revoked_at < ?)",
                (now_iso, revoked_cutoff)
            ).rowcount

        logger.info(
            f"Cleanup removed {codes} authorization codes, {access} access tokens "
            f"and {refresh} refresh tokens."
        )
        return codes + access + refresh


# Global singleton instance backed by the application-wide connection
_sqlite_token_store_instance: Optional[SQLiteTokenStore] = None


async def get_sqlite_token_store() -> SQLiteTokenStore:
    """Get or create the singleton SQLite token store instance."""
    global _sqlite_token_store_instance
    if _sqlite_token_store_instance is None:
        _sqlite_token_store_instance = SQLiteTokenStore()
        await _sqlite_token_store_instance.initialize()
    return _sqlite_token_store_instance


def reset_sqlite_token_store() -> None:
    """Forget the singleton so the next call rebinds to a fresh connection."""
    global _sqlite_token_store_instance
    _sqlite_token_store_instance = None
