"""Tests for gateway settings."""

import pytest

from giftaid.config import DEFAULT_TIMEOUT, GatewaySettings

ENV_VARS = (
    "GIFTAID_SENDER_ID", "GIFTAID_PASSWORD", "GIFTAID_VENDOR_ID",
    "GIFTAID_SOFTWARE_NAME", "GIFTAID_SOFTWARE_VERSION", "GIFTAID_TEST",
    "GIFTAID_TEST_ENDPOINT", "GIFTAID_TIMEOUT", "GIFTAID_COMPRESS",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    # Registered with monkeypatch so values loaded from .env files are undone too
    for name in ENV_VARS:
        monkeypatch.setenv(name, "")
        monkeypatch.delenv(name)


@pytest.fixture
def credentials(monkeypatch):
    monkeypatch.setenv("GIFTAID_SENDER_ID", "323412300001")
    monkeypatch.setenv("GIFTAID_PASSWORD", "testing1")
    monkeypatch.setenv("GIFTAID_VENDOR_ID", "1234")


class TestGatewaySettings:
    def test_defaults(self, credentials, tmp_path):
        settings = GatewaySettings.from_env(tmp_path / ".env")
        assert settings.sender_id == "323412300001"
        assert settings.vendor_id == "1234"
        assert settings.software_name == "giftaid"
        assert settings.test is False
        assert settings.test_endpoint is None
        assert settings.timeout == DEFAULT_TIMEOUT
        assert settings.compress is True

    def test_overrides(self, credentials, monkeypatch, tmp_path):
        monkeypatch.setenv("GIFTAID_TEST", "yes")
        monkeypatch.setenv("GIFTAID_TEST_ENDPOINT", "http://localhost:5665/LTS/LTSPostServlet")
        monkeypatch.setenv("GIFTAID_TIMEOUT", "15")
        monkeypatch.setenv("GIFTAID_COMPRESS", "0")
        monkeypatch.setenv("GIFTAID_SOFTWARE_VERSION", "2.1")
        settings = GatewaySettings.from_env(tmp_path / ".env")
        assert settings.test is True
        assert settings.test_endpoint == "http://localhost:5665/LTS/LTSPostServlet"
        assert settings.timeout == 15
        assert settings.compress is False
        assert settings.software_version == "2.1"

    def test_missing_credentials(self, monkeypatch, tmp_path):
        monkeypatch.setenv("GIFTAID_SENDER_ID", "323412300001")
        with pytest.raises(ValueError, match="GIFTAID_PASSWORD, GIFTAID_VENDOR_ID"):
            GatewaySettings.from_env(tmp_path / ".env")

    def test_bad_timeout(self, credentials, monkeypatch, tmp_path):
        monkeypatch.setenv("GIFTAID_TIMEOUT", "soon")
        with pytest.raises(ValueError, match="GIFTAID_TIMEOUT"):
            GatewaySettings.from_env(tmp_path / ".env")

    def test_env_file(self, tmp_path):
        env_file = tmp_path / ".env"
        env_file.write_text(
            "GIFTAID_SENDER_ID=fromfile\n"
            "GIFTAID_PASSWORD=secret\n"
            "GIFTAID_VENDOR_ID=4321\n"
            "GIFTAID_TEST=true\n"
        )
        settings = GatewaySettings.from_env(env_file)
        assert settings.sender_id == "fromfile"
        assert settings.vendor_id == "4321"
        assert settings.test is True

    def test_environment_wins_over_env_file(self, credentials, tmp_path):
        env_file = tmp_path / ".env"
        env_file.write_text("GIFTAID_SENDER_ID=fromfile\n")
        assert GatewaySettings.from_env(env_file).sender_id == "323412300001"
