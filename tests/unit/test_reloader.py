"""
Unit tests for config reloading and OAuth tokens.
"""

import json
from unittest.mock import MagicMock, patch

import pytest

from entity_sync.config.config_loader import SyncConfig
from entity_sync.config.reloader import ConfigReloader, OAuthTokenProvider
from entity_sync.core.exceptions import ConfigError


def token_response(token, expires_in=3600):
    response = MagicMock()
    response.json.return_value = {"access_token": token, "expires_in": expires_in}
    return response


class TestOAuthTokenProvider:
    """Tests for OAuthTokenProvider."""

    def test_from_dict_missing_keys(self):
        with pytest.raises(ConfigError) as exc_info:
            OAuthTokenProvider.from_dict({"auth_endpoint": "https://auth.example.io/token"})

        assert "client_id" in str(exc_info.value)
        assert "client_secret" in str(exc_info.value)

    @patch("entity_sync.config.reloader.requests.post")
    def test_token_cached_until_expiry(self, mock_post):
        now = [1000.0]
        mock_post.side_effect = [token_response("first", 60), token_response("second", 60)]
        provider = OAuthTokenProvider(
            "https://auth.example.io/token", "id", "secret", audience="svc", clock=lambda: now[0]
        )

        assert provider() == "first"
        now[0] += 30
        assert provider() == "first"
        now[0] += 25
        assert provider() == "second"

        payload = mock_post.call_args.kwargs["json"]
        assert payload == {
            "client_id": "id",
            "client_secret": "secret",
            "audience": "svc",
            "grant_type": "client_credentials",
        }

    @patch("entity_sync.config.reloader.requests.post")
    def test_missing_access_token(self, mock_post):
        response = MagicMock()
        response.json.return_value = {}
        mock_post.return_value = response

        with pytest.raises(ConfigError):
            OAuthTokenProvider("https://auth.example.io/token", "id", "secret")()


class TestConfigReloader:
    """Tests for ConfigReloader."""

    def write(self, path, datasets):
        path.write_text(json.dumps({"dataset_definitions": datasets}))

    def test_check_reports_changes(self, tmp_path, clean_env):
        path = tmp_path / "config.json"
        self.write(path, [{"name": "a"}])
        seen = []
        reloader = ConfigReloader(str(path), seen.append)

        assert reloader.check() is True
        assert reloader.check() is False

        self.write(path, [{"name": "a"}, {"name": "b"}])
        assert reloader.check() is True
        assert [d.name for d in seen[-1].get_dataset_definitions()] == ["a", "b"]
        assert len(seen) == 2

    def test_initial_config_suppresses_first_change(self, tmp_path, clean_env):
        path = tmp_path / "config.json"
        self.write(path, [{"name": "a"}])
        seen = []

        reloader = ConfigReloader(str(path), seen.append, initial=SyncConfig(path))

        assert reloader.check() is False
        assert seen == []

    def test_start_stop(self, tmp_path, clean_env):
        path = tmp_path / "config.json"
        self.write(path, [])
        reloader = ConfigReloader(str(path), lambda config: None, interval=3600)

        reloader.start()
        reloader.stop(timeout=5)

        assert reloader._thread is None
