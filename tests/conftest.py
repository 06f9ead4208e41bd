"""
Shared pytest fixtures.

Every test gets its own SQLite database file under tmp_path and a bcrypt
hasher with the minimum cost factor so the suite stays fast.
"""

import pytest
import pytest_asyncio

from oauth_core.oauth.hashing import BcryptSecretHasher
from oauth_core.oauth.models import RegisterClientRequest
from oauth_core.oauth.pkce import generate_pkce_code_challenge, generate_pkce_code_verifier
from oauth_core.oauth.service import OAuthConfig, OAuthService
from oauth_core.oauth.sqlite_token_store import SQLiteTokenStore

from helpers import MOBILE_REDIRECT_URI, REDIRECT_URI


@pytest.fixture
def hasher():
    return BcryptSecretHasher(rounds=4)


@pytest_asyncio.fixture
async def store(tmp_path):
    token_store = SQLiteTokenStore(db_path=str(tmp_path / "oauth_test.sqlite3"))
    await token_store.initialize()
    yield token_store
    await token_store.teardown()


@pytest.fixture
def service(store, hasher):
    return OAuthService(store, hasher, OAuthConfig())


@pytest_asyncio.fixture
async def confidential_client(service):
    return await service.register_client(RegisterClientRequest(
        name="Acme Dashboard",
        description="Server-side dashboard",
        redirect_uris=[REDIRECT_URI],
        scopes=["profile", "email"],
        is_confidential=True,
        rotate_refresh_tokens=True,
    ))


@pytest_asyncio.fixture
async def public_client(service):
    return await service.register_client(RegisterClientRequest(
        name="Acme Mobile",
        redirect_uris=[MOBILE_REDIRECT_URI],
        scopes=["profile"],
        is_confidential=False,
    ))


@pytest.fixture
def pkce_pair():
    verifier = generate_pkce_code_verifier()
    return verifier, generate_pkce_code_challenge(verifier)
