"""Tests for settings resolution."""

from pathlib import Path
from unittest.mock import patch

import pytest

from mcp_quickbooks.config import DEFAULT_REDIRECT_URI, Settings

QBO_VARS = (
    "QBO_CLIENT_ID",
    "QBO_CLIENT_SECRET",
    "QBO_REDIRECT_URI",
    "QBO_SANDBOX",
    "QBO_MINOR_VERSION",
    "QBO_DEBUG",
    "QBO_TOKEN_PATH",
    "QBO_FETCH_ALL_MAX_RECORDS",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in QBO_VARS:
        monkeypatch.delenv(name, raising=False)
    with patch("mcp_quickbooks.config.get_secure_credential", return_value=None):
        yield


class TestSettings:
    def test_defaults(self):
        settings = Settings.from_env()

        assert settings.client_id == ""
        assert not settings.is_configured
        assert settings.redirect_uri == DEFAULT_REDIRECT_URI
        assert settings.sandbox is False
        assert settings.minor_version == 65
        assert settings.debug is False
        assert settings.token_path is None
        assert settings.fetch_all_max_records == 100_000

    def test_environment(self, monkeypatch):
        monkeypatch.setenv("QBO_CLIENT_ID", "env-id")
        monkeypatch.setenv("QBO_CLIENT_SECRET", "env-secret")
        monkeypatch.setenv("QBO_SANDBOX", "true")
        monkeypatch.setenv("QBO_MINOR_VERSION", "70")
        monkeypatch.setenv("QBO_DEBUG", "1")
        monkeypatch.setenv("QBO_TOKEN_PATH", "/tmp/qbo/tokens.enc")

        settings = Settings.from_env()

        assert settings.is_configured
        assert settings.sandbox is True
        assert settings.minor_version == 70
        assert settings.debug is True
        assert settings.token_path == Path("/tmp/qbo/tokens.enc")

    def test_explicit_arguments_win(self, monkeypatch):
        monkeypatch.setenv("QBO_CLIENT_ID", "env-id")

        settings = Settings.from_env(client_id="arg-id", client_secret="arg-secret")

        assert settings.client_id == "arg-id"
        assert settings.client_secret == "arg-secret"

    def test_secure_storage_before_environment(self, monkeypatch):
        monkeypatch.setenv("QBO_CLIENT_ID", "env-id")
        stored = {"qbo-client-id": "keychain-id"}

        with patch("mcp_quickbooks.config.get_secure_credential", side_effect=stored.get):
            settings = Settings.from_env()

        assert settings.client_id == "keychain-id"

    def test_invalid_integer(self, monkeypatch):
        monkeypatch.setenv("QBO_MINOR_VERSION", "latest")

        with pytest.raises(ValueError, match="QBO_MINOR_VERSION"):
            Settings.from_env()
