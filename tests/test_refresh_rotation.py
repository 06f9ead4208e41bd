# tests/test_refresh_rotation.py
import asyncio
import logging

import pytest
import pytest_asyncio

from oauth_core.oauth.exceptions import InvalidClient, InvalidGrant, TokenExpired, TokenReuseDetected
from oauth_core.oauth.hashing import hash_token
from oauth_core.oauth.models import UpdateOAuthClient

from helpers import REDIRECT_URI, USER_ID, execute_sql, past_iso


@pytest_asyncio.fixture
async def initial_tokens(service, confidential_client):
    code = await service.create_authorization_code(
        user_id=USER_ID,
        client_id=confidential_client.client_id,
        redirect_uri=REDIRECT_URI,
        scopes=["profile", "email"],
    )
    return await service.exchange_code_for_tokens(code=code, redirect_uri=REDIRECT_URI)


@pytest.mark.asyncio
async def test_refresh_rotates_within_family(service, store, confidential_client, initial_tokens):
    rotated = await service.refresh_tokens(initial_tokens.refresh_token, confidential_client.client_id)

    assert rotated.refresh_token and rotated.refresh_token != initial_tokens.refresh_token
    assert rotated.access_token != initial_tokens.access_token
    assert rotated.scope == "profile email"

    original = await store.find_refresh_token_by_hash(hash_token(initial_tokens.refresh_token))
    successor = await store.find_refresh_token_by_hash(hash_token(rotated.refresh_token))
    assert original.revoked_at is not None
    assert successor.revoked_at is None
    assert successor.family_id == original.family_id


@pytest.mark.asyncio
async def test_reuse_revokes_whole_family(service, store, confidential_client, initial_tokens, caplog):
    rotated = await service.refresh_tokens(initial_tokens.refresh_token, confidential_client.client_id)

    with caplog.at_level(logging.CRITICAL, logger="oauth_core.security"):
        with pytest.raises(TokenReuseDetected) as exc_info:
            await service.refresh_tokens(initial_tokens.refresh_token, confidential_client.client_id)

    assert exc_info.value.client_id == confidential_client.client_id
    assert exc_info.value.user_id == USER_ID
    assert any(record.name == "oauth_core.security" for record in caplog.records)
    # Neither token value ends up in the log
    assert initial_tokens.refresh_token not in caplog.text
    assert rotated.refresh_token not in caplog.text

    # The successor minted before the replay is dead as well
    with pytest.raises(TokenReuseDetected):
        await service.refresh_tokens(rotated.refresh_token, confidential_client.client_id)

    access = await store.find_access_token_by_hash(hash_token(rotated.access_token))
    assert access.revoked_at is not None
    introspection = await service.introspect_token(rotated.access_token)
    assert introspection.active is False


@pytest.mark.asyncio
async def test_concurrent_refresh_is_treated_as_reuse(service, confidential_client, initial_tokens):
    results = await asyncio.gather(
        service.refresh_tokens(initial_tokens.refresh_token, confidential_client.client_id),
        service.refresh_tokens(initial_tokens.refresh_token, confidential_client.client_id),
        return_exceptions=True,
    )
    failures = [result for result in results if isinstance(result, Exception)]
    assert failures
    assert all(isinstance(failure, TokenReuseDetected) for failure in failures)

    # Whatever the winner received was revoked with the family
    for result in results:
        if not isinstance(result, Exception):
            introspection = await service.introspect_token(result.refresh_token)
            assert introspection.active is False


@pytest.mark.asyncio
async def test_refresh_by_other_client_rejected(service, public_client, initial_tokens):
    with pytest.raises(InvalidClient):
        await service.refresh_tokens(initial_tokens.refresh_token, public_client.client_id)


@pytest.mark.asyncio
async def test_unknown_refresh_token(service, confidential_client):
    with pytest.raises(InvalidGrant):
        await service.refresh_tokens("not-a-real-token", confidential_client.client_id)


@pytest.mark.asyncio
async def test_expired_refresh_token(service, store, confidential_client, initial_tokens):
    await execute_sql(
        store,
        "UPDATE oauth_refresh_tokens SET expires_at = ? WHERE token_hash = ?",
        (past_iso(seconds=5), hash_token(initial_tokens.refresh_token)),
    )
    with pytest.raises(TokenExpired):
        await service.refresh_tokens(initial_tokens.refresh_token, confidential_client.client_id)


@pytest.mark.asyncio
async def test_refresh_after_client_revoked(service, confidential_client, initial_tokens):
    await service.revoke_client(confidential_client.client.id)
    # Client revocation revoked the token too, so presenting it counts as reuse
    with pytest.raises(TokenReuseDetected):
        await service.refresh_tokens(initial_tokens.refresh_token, confidential_client.client_id)


@pytest.mark.asyncio
async def test_non_rotating_client_starts_new_family(service, store, confidential_client, initial_tokens):
    await service.update_client(confidential_client.client.id, UpdateOAuthClient(rotate_refresh_tokens=False))

    rotated = await service.refresh_tokens(initial_tokens.refresh_token, confidential_client.client_id)

    original = await store.find_refresh_token_by_hash(hash_token(initial_tokens.refresh_token))
    successor = await store.find_refresh_token_by_hash(hash_token(rotated.refresh_token))
    assert original.revoked_at is not None
    assert successor.family_id != original.family_id
