"""Constants and small utilities shared by the test modules."""

from datetime import datetime, timedelta, timezone
from urllib.parse import parse_qs, urlsplit

from oauth_core.oauth.sqlite_token_store import SQLiteTokenStore

REDIRECT_URI = "https://app.example.com/callback"
MOBILE_REDIRECT_URI = "com.acme.mobile://callback"
USER_ID = "user-123"


async def execute_sql(store: SQLiteTokenStore, query: str, params: tuple = ()) -> None:
    """Direct SQL for tests that need to move timestamps around."""
    conn = await store._get_connection()
    with conn:
        conn.execute(query, params)


def past_iso(**delta) -> str:
    moment = datetime.now(timezone.utc) - timedelta(**delta)
    return moment.isoformat(timespec="microseconds")


def query_params(url: str) -> dict:
    """Single-valued query parameters of a redirect URL."""
    return {k: v[0] for k, v in parse_qs(urlsplit(url).query).items()}
