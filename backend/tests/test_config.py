"""Tests for environment-driven settings."""

from cybersuite import config


class TestLoadConfig:

    def test_defaults(self, monkeypatch):
        for name in ("OTX_API_KEY", "NVD_API_KEY", "CACHE_TTL_SECONDS", "SCAN_RATE_LIMIT", "PORT"):
            monkeypatch.delenv(name, raising=False)
        settings = config.load_config()
        assert settings["OTX_API_KEY"] == ""
        assert settings["CACHE_TTL_SECONDS"] == 300
        assert settings["SCAN_RATE_LIMIT"] == 100
        assert settings["SCAN_RATE_WINDOW_SECONDS"] == 900
        assert settings["PORT"] == 8080

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("NVD_API_KEY", "abc")
        monkeypatch.setenv("SCAN_RATE_LIMIT", "5")
        settings = config.load_config()
        assert settings["NVD_API_KEY"] == "abc"
        assert settings["SCAN_RATE_LIMIT"] == 5

    def test_bad_integer_falls_back(self, monkeypatch):
        monkeypatch.setenv("CACHE_TTL_SECONDS", "five minutes")
        assert config.load_config()["CACHE_TTL_SECONDS"] == 300


class TestCors:

    def test_origins(self, monkeypatch):
        monkeypatch.setenv("CORS_ORIGINS", "https://a.example, https://b.example,")
        assert config.cors_origins() == ["https://a.example", "https://b.example"]
        assert config.is_production() is True

    def test_dev(self, monkeypatch):
        monkeypatch.delenv("CORS_ORIGINS", raising=False)
        assert config.cors_origins() == []
        assert config.is_production() is False


def test_key_status_never_shows_the_key():
    assert config.key_status("super-secret") == "Configured"
    assert config.key_status("") == "Not Set"
