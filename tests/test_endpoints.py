# tests/test_endpoints.py
"""
HTTP surface tests.

The application is driven through FastAPI's TestClient with the OAuth
service dependency pointed at a per-test SQLite file. The lifespan is not
entered, so the application-wide connection is never opened.
"""
import asyncio
import base64

import pytest
from fastapi.testclient import TestClient

from oauth_core.dependencies import get_oauth_service
from oauth_core.main import app
from oauth_core.oauth.exceptions import StorageError
from oauth_core.oauth.hashing import BcryptSecretHasher
from oauth_core.oauth.pkce import generate_pkce_code_challenge, generate_pkce_code_verifier
from oauth_core.oauth.service import OAuthConfig, OAuthService
from oauth_core.oauth.sqlite_token_store import SQLiteTokenStore
from oauth_core.settings import settings

from helpers import MOBILE_REDIRECT_URI, REDIRECT_URI, USER_ID, query_params

ADMIN_API_KEY = "test-admin-key"
ADMIN_HEADERS = {"X-Admin-API-Key": ADMIN_API_KEY}
USER_HEADERS = {"X-Authenticated-User": USER_ID}


@pytest.fixture
def api(tmp_path, monkeypatch):
    monkeypatch.setattr(settings, "admin_api_key", ADMIN_API_KEY)
    monkeypatch.setattr(settings, "issuer_url", None)
    monkeypatch.setattr(settings, "authenticated_user_header", "X-Authenticated-User")

    store = SQLiteTokenStore(db_path=str(tmp_path / "oauth_api.sqlite3"))
    service = OAuthService(store, BcryptSecretHasher(rounds=4), OAuthConfig())
    app.dependency_overrides[get_oauth_service] = lambda: service

    yield TestClient(app, follow_redirects=False)

    app.dependency_overrides.clear()
    asyncio.run(store.teardown())


def _register(api, **overrides):
    body = {
        "name": "Acme Dashboard",
        "redirect_uris": [REDIRECT_URI],
        "scopes": ["profile", "email"],
        "is_confidential": True,
    }
    body.update(overrides)
    response = api.post("/admin/oauth/clients", json=body, headers=ADMIN_HEADERS)
    assert response.status_code == 201, response.text
    return response.json()


def _basic_auth(client_id, client_secret):
    credentials = base64.b64encode(f"{client_id}:{client_secret}".encode()).decode()
    return {"Authorization": f"Basic {credentials}"}


def _approve(api, client_id, redirect_uri, scope, state="af0ifjsldkj", **extra):
    form = {
        "consent": "approve",
        "response_type": "code",
        "client_id": client_id,
        "redirect_uri": redirect_uri,
        "scope": scope,
        "state": state,
        **extra,
    }
    response = api.post("/oauth/authorize", data=form, headers=USER_HEADERS)
    assert response.status_code == 302, response.text
    return query_params(response.headers["location"])


# --- Discovery ---

def test_discovery_metadata(api):
    response = api.get("/.well-known/oauth-authorization-server")
    assert response.status_code == 200
    metadata = response.json()
    assert metadata["issuer"] == "http://testserver"
    assert metadata["authorization_endpoint"] == "http://testserver/oauth/authorize"
    assert metadata["token_endpoint"] == "http://testserver/oauth/token"
    assert metadata["introspection_endpoint"] == "http://testserver/oauth/introspect"
    assert metadata["revocation_endpoint"] == "http://testserver/oauth/revoke"
    assert metadata["code_challenge_methods_supported"] == ["S256"]
    assert set(metadata["grant_types_supported"]) == {"authorization_code", "refresh_token"}


# --- Authorization endpoint ---

def test_authorize_requires_authenticated_user(api):
    client = _register(api)
    response = api.get("/oauth/authorize", params={
        "response_type": "code",
        "client_id": client["client_id"],
        "redirect_uri": REDIRECT_URI,
    })
    assert response.status_code == 401


def test_authorize_get_returns_consent_data(api):
    client = _register(api)
    response = api.get("/oauth/authorize", headers=USER_HEADERS, params={
        "response_type": "code",
        "client_id": client["client_id"],
        "redirect_uri": REDIRECT_URI,
        "scope": "profile email",
        "state": "xyz",
    })
    assert response.status_code == 200
    consent = response.json()
    assert consent["client_name"] == "Acme Dashboard"
    assert [scope["name"] for scope in consent["scopes"]] == ["profile", "email"]
    assert consent["state"] == "xyz"


def test_authorize_rejects_wrong_response_type(api):
    client = _register(api)
    response = api.get("/oauth/authorize", headers=USER_HEADERS, params={
        "response_type": "token",
        "client_id": client["client_id"],
        "redirect_uri": REDIRECT_URI,
    })
    assert response.status_code == 400
    assert response.json()["error"] == "invalid_request"


def test_public_client_without_pkce_is_rejected(api):
    client = _register(api, redirect_uris=[MOBILE_REDIRECT_URI], scopes=["profile"], is_confidential=False)
    response = api.get("/oauth/authorize", headers=USER_HEADERS, params={
        "response_type": "code",
        "client_id": client["client_id"],
        "redirect_uri": MOBILE_REDIRECT_URI,
    })
    assert response.status_code == 400
    assert response.json() == {
        "error": "invalid_request",
        "error_description": "PKCE required for public clients.",
    }


def test_unregistered_redirect_uri_is_never_redirected(api):
    client = _register(api)
    response = api.post("/oauth/authorize", headers=USER_HEADERS, data={
        "consent": "approve",
        "response_type": "code",
        "client_id": client["client_id"],
        "redirect_uri": "https://evil.example.com/callback",
    })
    assert response.status_code == 400
    assert "location" not in response.headers
    assert response.json()["error"] == "invalid_request"


def test_denied_consent_redirects_with_access_denied(api):
    client = _register(api)
    response = api.post("/oauth/authorize", headers=USER_HEADERS, data={
        "consent": "deny",
        "response_type": "code",
        "client_id": client["client_id"],
        "redirect_uri": REDIRECT_URI,
        "state": "s1",
    })
    assert response.status_code == 302
    assert response.headers["location"].startswith(REDIRECT_URI + "?")
    params = query_params(response.headers["location"])
    assert params["error"] == "access_denied"
    assert params["state"] == "s1"
    assert "code" not in params


# --- Token endpoint ---

def test_public_client_flow(api):
    client = _register(api, redirect_uris=[MOBILE_REDIRECT_URI], scopes=["profile"], is_confidential=False)
    verifier = generate_pkce_code_verifier()
    challenge = generate_pkce_code_challenge(verifier)

    params = _approve(
        api, client["client_id"], MOBILE_REDIRECT_URI, "profile",
        code_challenge=challenge, code_challenge_method="S256",
    )
    assert params["state"] == "af0ifjsldkj"

    response = api.post("/oauth/token", data={
        "grant_type": "authorization_code",
        "code": params["code"],
        "redirect_uri": MOBILE_REDIRECT_URI,
        "client_id": client["client_id"],
        "code_verifier": verifier,
    })
    assert response.status_code == 200, response.text
    assert response.headers["cache-control"] == "no-store"
    assert response.headers["pragma"] == "no-cache"
    tokens = response.json()
    assert tokens["token_type"] == "Bearer"
    assert tokens["scope"] == "profile"
    assert "refresh_token" not in tokens


def test_confidential_client_flow_with_refresh_and_reuse(api):
    client = _register(api)
    params = _approve(api, client["client_id"], REDIRECT_URI, "profile email")

    response = api.post(
        "/oauth/token",
        data={"grant_type": "authorization_code", "code": params["code"], "redirect_uri": REDIRECT_URI},
        headers=_basic_auth(client["client_id"], client["client_secret"]),
    )
    assert response.status_code == 200, response.text
    first = response.json()
    assert first["refresh_token"]

    refresh_form = {
        "grant_type": "refresh_token",
        "refresh_token": first["refresh_token"],
        "client_id": client["client_id"],
        "client_secret": client["client_secret"],
    }
    response = api.post("/oauth/token", data=refresh_form)
    assert response.status_code == 200, response.text
    second = response.json()
    assert second["refresh_token"] != first["refresh_token"]

    # Replaying the rotated-out token kills the family
    response = api.post("/oauth/token", data=refresh_form)
    assert response.status_code == 400
    assert response.json()["error"] == "invalid_grant"

    response = api.post("/oauth/token", data={**refresh_form, "refresh_token": second["refresh_token"]})
    assert response.status_code == 400
    assert response.json()["error"] == "invalid_grant"


def test_code_replay_over_http(api):
    client = _register(api)
    params = _approve(api, client["client_id"], REDIRECT_URI, "profile")
    form = {"grant_type": "authorization_code", "code": params["code"], "redirect_uri": REDIRECT_URI}
    auth = _basic_auth(client["client_id"], client["client_secret"])

    assert api.post("/oauth/token", data=form, headers=auth).status_code == 200
    replay = api.post("/oauth/token", data=form, headers=auth)
    assert replay.status_code == 400
    assert replay.json()["error"] == "invalid_grant"


def test_token_endpoint_client_authentication(api):
    client = _register(api)
    params = _approve(api, client["client_id"], REDIRECT_URI, "profile")
    form = {"grant_type": "authorization_code", "code": params["code"], "redirect_uri": REDIRECT_URI}

    wrong_secret = api.post("/oauth/token", data=form, headers=_basic_auth(client["client_id"], "nope"))
    assert wrong_secret.status_code == 401
    assert wrong_secret.json()["error"] == "invalid_client"
    assert wrong_secret.headers["www-authenticate"].startswith("Basic")

    # A confidential client cannot fall back to public-client identification
    no_secret = api.post("/oauth/token", data={**form, "client_id": client["client_id"]})
    assert no_secret.status_code == 401

    # The code was not touched by the failed attempts
    ok = api.post("/oauth/token", data=form, headers=_basic_auth(client["client_id"], client["client_secret"]))
    assert ok.status_code == 200


def test_token_endpoint_request_errors(api):
    client = _register(api)
    auth = _basic_auth(client["client_id"], client["client_secret"])

    missing_grant = api.post("/oauth/token", data={"code": "abc"}, headers=auth)
    assert missing_grant.status_code == 400
    assert missing_grant.json()["error"] == "invalid_request"

    unsupported = api.post("/oauth/token", data={"grant_type": "password"}, headers=auth)
    assert unsupported.status_code == 400
    assert unsupported.json()["error"] == "unsupported_grant_type"

    both_methods = api.post(
        "/oauth/token",
        data={"grant_type": "authorization_code", "client_secret": client["client_secret"]},
        headers=auth,
    )
    assert both_methods.status_code == 400
    assert both_methods.json()["error"] == "invalid_request"


# --- Introspection & revocation ---

def test_introspect_and_revoke(api):
    client = _register(api)
    auth = _basic_auth(client["client_id"], client["client_secret"])
    params = _approve(api, client["client_id"], REDIRECT_URI, "profile")
    tokens = api.post(
        "/oauth/token",
        data={"grant_type": "authorization_code", "code": params["code"], "redirect_uri": REDIRECT_URI},
        headers=auth,
    ).json()

    active = api.post("/oauth/introspect", data={"token": tokens["access_token"]}, headers=auth)
    assert active.status_code == 200
    body = active.json()
    assert body["active"] is True
    assert body["sub"] == USER_ID
    assert body["client_id"] == client["client_id"]
    assert body["token_type"] == "Bearer"

    revoked = api.post("/oauth/revoke", data={"token": tokens["access_token"]})
    assert revoked.status_code == 200

    inactive = api.post("/oauth/introspect", data={"token": tokens["access_token"]}, headers=auth)
    assert inactive.json() == {"active": False}

    # Unknown tokens revoke fine
    assert api.post("/oauth/revoke", data={"token": "never-issued"}).status_code == 200
    assert api.post("/oauth/revoke", data={}).status_code == 400


def test_introspect_requires_client_authentication(api):
    response = api.post("/oauth/introspect", data={"token": "anything"})
    assert response.status_code == 401
    assert response.json()["error"] == "invalid_client"


# --- User grants ---

def test_list_and_revoke_grants(api):
    client = _register(api)
    auth = _basic_auth(client["client_id"], client["client_secret"])
    params = _approve(api, client["client_id"], REDIRECT_URI, "email")
    tokens = api.post(
        "/oauth/token",
        data={"grant_type": "authorization_code", "code": params["code"], "redirect_uri": REDIRECT_URI},
        headers=auth,
    ).json()

    grants = api.get("/oauth/grants", headers=USER_HEADERS).json()
    assert [grant["client_id"] for grant in grants] == [client["client_id"]]
    assert grants[0]["scopes"] == ["email"]

    response = api.delete(f"/oauth/grants/{client['client_id']}", headers=USER_HEADERS)
    assert response.status_code == 204
    assert api.get("/oauth/grants", headers=USER_HEADERS).json() == []
    assert api.delete(f"/oauth/grants/{client['client_id']}", headers=USER_HEADERS).status_code == 404

    introspection = api.post("/oauth/introspect", data={"token": tokens["refresh_token"]}, headers=auth)
    assert introspection.json() == {"active": False}


def test_grant_routes_report_storage_failure_as_server_error(api, monkeypatch):
    service = app.dependency_overrides[get_oauth_service]()

    async def broken(*args, **kwargs):
        raise StorageError()

    monkeypatch.setattr(service.store, "list_user_grants", broken)
    monkeypatch.setattr(service.store, "revoke_user_grant", broken)

    for response in (
        api.get("/oauth/grants", headers=USER_HEADERS),
        api.delete("/oauth/grants/some-client", headers=USER_HEADERS),
    ):
        assert response.status_code == 500
        assert response.json()["error"] == "server_error"
        assert response.headers["cache-control"] == "no-store"


# --- Admin ---

def test_admin_requires_api_key(api):
    assert api.get("/admin/oauth/clients").status_code == 401
    assert api.get("/admin/oauth/clients", headers={"X-Admin-API-Key": "wrong"}).status_code == 403


def test_admin_rejects_unknown_scope(api):
    response = api.post("/admin/oauth/clients", headers=ADMIN_HEADERS, json={
        "name": "Bad",
        "redirect_uris": [REDIRECT_URI],
        "scopes": ["superuser"],
    })
    assert response.status_code == 400


def test_admin_client_lifecycle(api):
    client = _register(api)
    client_pk = client["client"]["id"]
    assert "client_secret_digest" not in client["client"]

    listed = api.get("/admin/oauth/clients", headers=ADMIN_HEADERS).json()
    assert [item["client_id"] for item in listed] == [client["client_id"]]

    patched = api.patch(
        f"/admin/oauth/clients/{client_pk}",
        json={"name": "Renamed", "rotate_refresh_tokens": False},
        headers=ADMIN_HEADERS,
    )
    assert patched.status_code == 200
    assert patched.json()["name"] == "Renamed"
    assert patched.json()["rotate_refresh_tokens"] is False

    regenerated = api.post(f"/admin/oauth/clients/{client_pk}/regenerate-secret", headers=ADMIN_HEADERS)
    assert regenerated.status_code == 200
    new_secret = regenerated.json()["client_secret"]
    assert new_secret != client["client_secret"]

    old_auth = api.post(
        "/oauth/introspect", data={"token": "x"},
        headers=_basic_auth(client["client_id"], client["client_secret"]),
    )
    assert old_auth.status_code == 401
    new_auth = api.post("/oauth/introspect", data={"token": "x"}, headers=_basic_auth(client["client_id"], new_secret))
    assert new_auth.status_code == 200

    assert api.delete(f"/admin/oauth/clients/{client_pk}", headers=ADMIN_HEADERS).status_code == 204
    assert api.delete(f"/admin/oauth/clients/{client_pk}", headers=ADMIN_HEADERS).status_code == 404
    renamed_after_revoke = api.patch(
        f"/admin/oauth/clients/{client_pk}", json={"name": "Revived"}, headers=ADMIN_HEADERS
    )
    assert renamed_after_revoke.status_code == 404
    revoked = api.get(f"/admin/oauth/clients/{client_pk}", headers=ADMIN_HEADERS).json()
    assert revoked["revoked"] is True
    assert revoked["name"] == "Renamed"
    assert api.get("/admin/oauth/clients/missing", headers=ADMIN_HEADERS).status_code == 404


def test_admin_cleanup(api):
    response = api.post("/admin/oauth/cleanup", headers=ADMIN_HEADERS)
    assert response.status_code == 200
    assert response.json() == {"deleted": 0}
