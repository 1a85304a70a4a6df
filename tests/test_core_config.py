import json

import pytest
from pydantic import ValidationError

from core.config import BotSettings, Endpoint, Identity, RetryPolicy


@pytest.fixture
def isolated(monkeypatch, tmp_path):
    """Run with no .env and a config file path that does not exist."""
    monkeypatch.chdir(tmp_path)
    for var in ("PORT", "ACCOUNTS", "ROTATION_SEQUENCE", "RETRY_BASE_DELAY", "SERVER_HOST", "CONNECTOR"):
        monkeypatch.delenv(var, raising=False)
    return tmp_path


def write_config(path, payload):
    path.write_text(json.dumps(payload), encoding="utf-8")
    return str(path)


class TestBotSettings:
    """Test suite for BotSettings."""

    def test_defaults(self, isolated):
        settings = BotSettings(config_file=str(isolated / "missing.json"))

        assert settings.connector == "tcp"
        assert settings.port == 3000
        assert settings.safety_timeout == 60
        assert settings.rotation_interval == 1800
        assert [a.name for a in settings.accounts] == ["BOT1", "BOT2", "BOT3", "BOT4", "BOT5"]
        assert settings.accounts[2].credential_location == "./profiles/BOT3"
        assert "sendto" in settings.ignored_error_patterns

    def test_env_overrides(self, isolated, monkeypatch):
        monkeypatch.setenv("PORT", "8080")
        monkeypatch.setenv("RETRY_BASE_DELAY", "2.5")
        monkeypatch.setenv("SERVER_HOST", "mc.example.org")
        settings = BotSettings(config_file=str(isolated / "missing.json"))

        assert settings.port == 8080
        assert settings.retry_policy().base_delay == 2.5
        assert settings.endpoint().host == "mc.example.org"

    def test_accounts_from_env_json(self, isolated, monkeypatch):
        monkeypatch.setenv("ACCOUNTS", '[{"name": "Alpha", "profile_path": "/data/alpha"}]')
        settings = BotSettings(config_file=str(isolated / "missing.json"))
        assert settings.accounts == [Identity(name="Alpha", profile_path="/data/alpha")]

    def test_accounts_from_config_file(self, isolated):
        path = write_config(isolated / "bot_config.json", {
            "accounts": [
                {"name": "Alpha", "profile_path": "./profiles/alpha"},
                {"username": "Beta"},
                {"name": "Gamma", "enabled": False},
                "not-a-dict",
                {"profile_path": "./nameless"},
            ]
        })
        settings = BotSettings(config_file=path)

        assert [a.name for a in settings.accounts] == ["Alpha", "Beta", "Gamma"]
        assert settings.accounts[1].credential_location == "./profiles/Beta"
        assert [a.name for a in settings.enabled_identities()] == ["Alpha", "Beta"]

    def test_config_file_does_not_overwrite(self, isolated):
        path = write_config(isolated / "bot_config.json", {
            "accounts": [{"name": "Alpha", "profile_path": "./other"}]
        })
        settings = BotSettings(
            config_file=path,
            accounts=[Identity(name="Alpha", profile_path="./mine")],
        )
        assert len(settings.accounts) == 1
        assert settings.accounts[0].credential_location == "./mine"

    def test_malformed_config_file_is_ignored(self, isolated, caplog):
        path = isolated / "bot_config.json"
        path.write_text("{not json", encoding="utf-8")
        settings = BotSettings(config_file=str(path))

        assert len(settings.accounts) == 5
        assert "Failed to load" in caplog.text

    def test_accounts_must_be_list(self, isolated):
        path = write_config(isolated / "bot_config.json", {"accounts": {"Alpha": {}}})
        settings = BotSettings(config_file=path)
        assert [a.name for a in settings.accounts][0] == "BOT1"

    def test_retry_policy_and_endpoint(self, isolated):
        settings = BotSettings(
            config_file=str(isolated / "missing.json"),
            retry_max_delay=60,
            connect_timeout=5,
        )
        assert settings.retry_policy() == RetryPolicy(max_delay=60)
        assert settings.endpoint() == Endpoint(host="donutsmp.net", port=19132, connect_timeout=5)


class TestRotationSequence:
    """Test suite for resolve_rotation_sequence."""

    def test_staggered_default_for_five(self, isolated):
        settings = BotSettings(config_file=str(isolated / "missing.json"))
        assert settings.resolve_rotation_sequence(5) == [2, 0, 3, 1, 4]

    def test_pool_order_for_other_sizes(self, isolated):
        settings = BotSettings(config_file=str(isolated / "missing.json"))
        assert settings.resolve_rotation_sequence(3) == [0, 1, 2]
        assert settings.resolve_rotation_sequence(0) == []

    def test_configured_sequence_wins(self, isolated, monkeypatch):
        monkeypatch.setenv("ROTATION_SEQUENCE", "[1, 0, 2]")
        settings = BotSettings(config_file=str(isolated / "missing.json"))
        assert settings.resolve_rotation_sequence(3) == [1, 0, 2]


class TestIdentity:
    """Test suite for the Identity model."""

    def test_identity_is_frozen(self):
        identity = Identity(name="BOT1", profile_path="./profiles/BOT1")
        with pytest.raises(ValidationError):
            identity.name = "BOT2"

    def test_populate_by_field_name(self):
        identity = Identity(name="BOT1", credential_location="/srv/profiles/BOT1")
        assert identity.credential_location == "/srv/profiles/BOT1"
        assert identity.enabled is True
