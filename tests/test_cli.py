# tests/test_cli.py
import json

import pytest
from typer.testing import CliRunner

from oauth_core.cli import config, utils_cli
from oauth_core.cli.main_cli import app

runner = CliRunner()


class FakeResponse:
    def __init__(self, status_code, payload=None):
        self.status_code = status_code
        self._payload = payload
        self.text = json.dumps(payload) if payload is not None else ""
        self.content = self.text.encode()

    def json(self):
        if self._payload is None:
            raise ValueError("No JSON body")
        return self._payload


@pytest.fixture
def recorded(monkeypatch):
    """Replace the HTTP call with a queue of canned responses and record what was sent."""
    calls = []
    responses = []

    def fake_request(method, url, json=None, params=None, headers=None, timeout=None):
        calls.append({"method": method, "url": url, "json": json, "headers": headers})
        return responses.pop(0)

    monkeypatch.setattr(utils_cli.requests, "request", fake_request)
    monkeypatch.setattr(config, "OAUTH_CORE_CLI_API_BASE_URL", "http://oauth.test")
    monkeypatch.setattr(config, "OAUTH_CORE_CLI_ADMIN_API_KEY", "cli-admin-key")
    return calls, responses


def test_create_client_shows_secret_once_and_masks_log(recorded):
    calls, responses = recorded
    responses.append(FakeResponse(201, {
        "client_id": "abc123",
        "client_secret": "super-secret-value",
        "client": {"id": "1", "client_id": "abc123", "name": "Acme"},
    }))

    result = runner.invoke(app, [
        "admin", "client", "create",
        "--name", "Acme",
        "--redirect-uris", "https://app.example.com/callback",
        "--scopes", "profile, email",
        "--public",
    ])

    assert result.exit_code == 0, result.output
    assert calls[0]["method"] == "POST"
    assert calls[0]["url"] == "http://oauth.test/admin/oauth/clients"
    assert calls[0]["headers"]["X-Admin-API-Key"] == "cli-admin-key"
    assert calls[0]["json"]["scopes"] == ["profile", "email"]
    assert calls[0]["json"]["is_confidential"] is False
    # Printed exactly once, in the dedicated notice; the JSON dump is masked
    assert result.output.count("super-secret-value") == 1
    assert "********" in result.output


def test_update_with_nothing_to_change(recorded):
    calls, _ = recorded
    result = runner.invoke(app, ["admin", "client", "update", "some-id"])
    assert result.exit_code == 0
    assert "Nothing to update." in result.output
    assert calls == []


def test_revoke_requires_confirmation(recorded):
    calls, responses = recorded
    result = runner.invoke(app, ["admin", "client", "revoke", "some-id"], input="n\n")
    assert result.exit_code != 0
    assert calls == []

    responses.append(FakeResponse(204))
    result = runner.invoke(app, ["admin", "client", "revoke", "some-id", "--force"])
    assert result.exit_code == 0, result.output
    assert calls[0]["method"] == "DELETE"


def test_api_error_exits_nonzero(recorded):
    _, responses = recorded
    responses.append(FakeResponse(404, {"detail": "OAuth client 'x' not found."}))
    result = runner.invoke(app, ["admin", "client", "get", "x"])
    assert result.exit_code == 1
    assert "not found" in result.output


def test_cleanup_command(recorded):
    calls, responses = recorded
    responses.append(FakeResponse(200, {"deleted": 3}))
    result = runner.invoke(app, ["admin", "cleanup"])
    assert result.exit_code == 0
    assert calls[0]["url"] == "http://oauth.test/admin/oauth/cleanup"
    assert "Removed 3 rows." in result.output


def test_base_url_option_overrides_env(recorded):
    calls, responses = recorded
    responses.append(FakeResponse(200, {"status": "healthy", "details": {}}))
    result = runner.invoke(app, ["--base-url", "http://other.test/", "health"])
    assert result.exit_code == 0, result.output
    assert calls[0]["url"] == "http://other.test/health"
    assert "Server status: healthy" in result.output
