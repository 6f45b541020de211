"""Tests for client configuration, credential storage and error parsing."""

from __future__ import annotations

import httpx
import pytest

from taskhub_client.api import can
from taskhub_client.config import ClientConfig, load_config
from taskhub_client.credentials import CredentialStore
from taskhub_client.errors import error_from_response, parse_error_message
from taskhub_shared.schemas.common import AccessStatus, Action, OrgRole


# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------

class TestConfig:
    def test_load_yaml(self, tmp_path):
        path = tmp_path / "client.yaml"
        path.write_text(
            "base_url: https://taskhub.example.com/\n"
            "email: alice@example.com\n"
            "logging:\n"
            "  level: debug\n"
            "  format: text\n"
        )
        config = load_config(path)
        assert config.base_url == "https://taskhub.example.com"
        assert config.email == "alice@example.com"
        assert config.logging.format == "text"
        assert config.refresh_path == "/auth/login/access-token"

    def test_empty_file_uses_defaults(self, tmp_path):
        path = tmp_path / "client.yaml"
        path.write_text("")
        assert load_config(path) == ClientConfig()

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "absent.yaml")

    def test_password_from_env(self, monkeypatch):
        monkeypatch.setenv("MY_TASKHUB_PASSWORD", "s3cret")
        config = ClientConfig(password_env="MY_TASKHUB_PASSWORD")
        assert config.password == "s3cret"


# ---------------------------------------------------------------------------
# Credentials
# ---------------------------------------------------------------------------

class TestCredentialStore:
    def test_empty(self):
        store = CredentialStore(httpx.Cookies())
        assert not store.has_any()
        assert store.get() == (None, None)

    def test_set_partial_keeps_other(self):
        store = CredentialStore(httpx.Cookies())
        store.set(access_token="a1", refresh_token="r1")
        store.set(access_token="a2")
        assert store.get() == ("a2", "r1")

    def test_overwrite_replaces_server_cookie(self):
        cookies = httpx.Cookies()
        cookies.set("refreshToken", "from-server", domain="taskhub.test")
        store = CredentialStore(cookies)
        store.set(refresh_token="r2")
        assert [c.value for c in cookies.jar if c.name == "refreshToken"] == ["r2"]

    def test_clear(self):
        store = CredentialStore(httpx.Cookies())
        store.set(access_token="a1", refresh_token="r1")
        store.clear()
        assert not store.has_any()


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------

class TestParseErrorMessage:
    def test_envelope(self):
        payload = {"error": {"code": "banned", "message": "You are banned", "status": 403}}
        assert parse_error_message(payload) == "You are banned"

    def test_bare_message(self):
        assert parse_error_message({"message": "jwt expired"}) == "jwt expired"

    def test_fastapi_detail_list(self):
        assert parse_error_message({"detail": [{"msg": "field required"}]}) == "field required"

    def test_unknown(self):
        assert parse_error_message({}) == "Unknown error"

    def test_error_from_response(self):
        response = httpx.Response(
            403, json={"error": {"code": "insufficient_role", "message": "Requires admin", "status": 403}}
        )
        error = error_from_response(response)
        assert (error.status_code, error.code, error.message) == (403, "insufficient_role", "Requires admin")

    def test_error_from_plain_text(self):
        error = error_from_response(httpx.Response(502, text="Bad Gateway"))
        assert error.code == "http_error"
        assert error.message == "Bad Gateway"


class TestCan:
    def test_banned_can_do_nothing(self):
        assert not can(OrgRole.OWNER, AccessStatus.BANNED, Action.VIEW_RESOURCES)

    def test_role_gates_action(self):
        assert can(OrgRole.ADMIN, AccessStatus.ACTIVE, Action.MANAGE_USERS)
        assert not can(OrgRole.MEMBER, AccessStatus.ACTIVE, Action.MANAGE_USERS)
