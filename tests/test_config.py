"""Tests for configuration loading."""

from pathlib import Path

import pytest

from zhidao_client.config import DEFAULT_BASE_URL, ClientConfig, load_config


class TestLoadConfig:
    """Tests for load_config function."""

    def test_reads_environment(self, tmp_path):
        """Test values come from ZHIDAO_* variables."""
        config = load_config()

        assert config.base_url == "http://zhidao.test"
        assert config.timeout == 300.0
        assert config.locale == "en"
        assert config.history_path == tmp_path / "history.json"

    def test_defaults(self, monkeypatch):
        """Test defaults when variables are unset."""
        for name in ("ZHIDAO_BASE_URL", "ZHIDAO_TIMEOUT", "ZHIDAO_LOCALE", "ZHIDAO_HISTORY_PATH"):
            monkeypatch.delenv(name, raising=False)

        config = load_config(env_file="/nonexistent/.env")

        assert config.base_url == DEFAULT_BASE_URL
        assert config.timeout == 300.0
        assert config.history_path.name == "saved_conversations.json"

    def test_env_file(self, monkeypatch, tmp_path):
        """Test a dotenv file fills unset variables."""
        monkeypatch.delenv("ZHIDAO_LOCALE", raising=False)
        env_file = tmp_path / ".env"
        env_file.write_text("ZHIDAO_LOCALE=zh\n")

        assert load_config(env_file=str(env_file)).locale == "zh"

    def test_invalid_timeout(self, monkeypatch):
        """Test a non-numeric timeout raises ValueError."""
        monkeypatch.setenv("ZHIDAO_TIMEOUT", "soon")

        with pytest.raises(ValueError) as exc_info:
            load_config()

        assert "must be a number" in str(exc_info.value)

    def test_non_positive_timeout(self, monkeypatch):
        """Test a zero timeout raises ValueError."""
        monkeypatch.setenv("ZHIDAO_TIMEOUT", "0")

        with pytest.raises(ValueError) as exc_info:
            load_config()

        assert "must be positive" in str(exc_info.value)

    def test_unsupported_locale(self, monkeypatch):
        """Test an unknown locale raises ValueError."""
        monkeypatch.setenv("ZHIDAO_LOCALE", "fr")

        with pytest.raises(ValueError):
            load_config()


class TestClientConfig:
    """Tests for ClientConfig."""

    def test_stream_url(self):
        """Test the stream endpoint is joined without a double slash."""
        config = ClientConfig(base_url="https://example.org/", history_path=Path("h.json"))

        assert config.stream_url == "https://example.org/stream-question"
