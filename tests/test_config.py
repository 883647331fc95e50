"""
Tests for configuration loading and logging setup.
"""

import logging
import logging.config
import os
import sys

import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from wagateway.config.provider import (
    DEFAULT_BROWSER_ARGS,
    EnvConfigProvider,
    SessionConfig,
)
from wagateway.logging_config import QuietPathFilter, get_logging_config
from wagateway.modules.config import ConfigModule

ENV_VARS = [
    "PORT",
    "API_PORT",
    "API_HOST",
    "LOG_LEVEL",
    "DEBUG",
    "SERVICE_NAME",
    "PLATFORM",
    "CORS_ORIGINS",
    "BROWSER_EXECUTABLE_PATH",
    "PUPPETEER_EXECUTABLE_PATH",
    "BROWSER_EXTRA_ARGS",
    "SESSION_DIR",
    "CLIENT_ID",
    "BROWSER_HEADLESS",
    "QR_TTL",
    "SEND_TIMEOUT",
    "RELAUNCH_ON_DISCONNECT",
]


@pytest.fixture
def clean_env(monkeypatch):
    """Remove configuration variables inherited from the host."""
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


class TestConfigModule:
    """Test server configuration from the environment."""

    def test_defaults(self, clean_env):
        config = ConfigModule()

        assert config.get("host") == "0.0.0.0"
        assert config.get("port") == 10000
        assert config.get("log_level") == "INFO"
        assert config.get("debug") is False
        assert config.get("service_name") == "whatsapp-api"
        assert config.get("platform") == "render-free"

    def test_port_from_env(self, clean_env):
        """Test PORT wins over API_PORT."""
        clean_env.setenv("API_PORT", "9000")
        assert ConfigModule().get("port") == 9000

        clean_env.setenv("PORT", "8080")
        assert ConfigModule().get("port") == 8080

    def test_invalid_port(self, clean_env):
        clean_env.setenv("PORT", "eighty")
        with pytest.raises(ValueError, match="PORT must be an integer"):
            ConfigModule()

    def test_port_out_of_range(self, clean_env):
        clean_env.setenv("PORT", "70000")
        with pytest.raises(ValueError, match="Invalid PORT"):
            ConfigModule()

    def test_log_level_normalized(self, clean_env):
        clean_env.setenv("LOG_LEVEL", "debug")
        assert ConfigModule().get("log_level") == "DEBUG"

    def test_invalid_log_level(self, clean_env):
        clean_env.setenv("LOG_LEVEL", "chatty")
        with pytest.raises(ValueError, match="Invalid LOG_LEVEL"):
            ConfigModule()

    def test_set_and_get_all(self, clean_env):
        config = ConfigModule()
        config.set("platform", "local")

        values = config.get_all()
        assert values["platform"] == "local"

        values["platform"] = "changed"
        assert config.get("platform") == "local"

    def test_schema_lists_required_keys(self):
        schema = ConfigModule.get_config_schema()
        assert set(schema["required"]) == {"host", "port", "log_level", "service_name", "platform"}
        assert "debug" in schema["optional"]


class TestEnvConfigProvider:
    """Test typed configuration sections."""

    def test_api_config(self, clean_env):
        provider = EnvConfigProvider()
        assert provider.get_api_config().cors_origins == ["*"]

        clean_env.setenv("CORS_ORIGINS", "https://a.example, https://b.example,")
        assert provider.get_api_config().cors_origins == ["https://a.example", "https://b.example"]

    def test_browser_config_defaults(self, clean_env):
        browser = EnvConfigProvider().get_browser_config()

        assert browser.executable_path is None
        assert browser.headless is True
        assert browser.args == DEFAULT_BROWSER_ARGS
        assert browser.profile_dir == os.path.join("./whatsapp-session", "session-client-render")

    def test_browser_config_overrides(self, clean_env):
        clean_env.setenv("PUPPETEER_EXECUTABLE_PATH", "/usr/bin/chromium")
        clean_env.setenv("BROWSER_EXTRA_ARGS", "--lang=es --mute-audio")
        clean_env.setenv("SESSION_DIR", "/data")
        clean_env.setenv("CLIENT_ID", "main")
        clean_env.setenv("BROWSER_HEADLESS", "no")

        browser = EnvConfigProvider().get_browser_config()

        assert browser.executable_path == "/usr/bin/chromium"
        assert browser.args[-2:] == ["--lang=es", "--mute-audio"]
        assert browser.profile_dir == os.path.join("/data", "session-main")
        assert browser.headless is False

    def test_explicit_executable_wins(self, clean_env):
        clean_env.setenv("PUPPETEER_EXECUTABLE_PATH", "/usr/bin/chromium")
        clean_env.setenv("BROWSER_EXECUTABLE_PATH", "/opt/chrome")
        assert EnvConfigProvider().get_browser_config().executable_path == "/opt/chrome"

    def test_session_config_defaults(self, clean_env):
        assert EnvConfigProvider().get_session_config() == SessionConfig()

    def test_session_config_overrides(self, clean_env):
        clean_env.setenv("QR_TTL", "90")
        clean_env.setenv("SEND_TIMEOUT", "12.5")
        clean_env.setenv("RELAUNCH_ON_DISCONNECT", "false")

        session = EnvConfigProvider().get_session_config()

        assert session.pairing_ttl == 90
        assert session.send_timeout == 12.5
        assert session.relaunch_on_disconnect is False

    def test_bad_number_rejected(self, clean_env):
        clean_env.setenv("QR_TTL", "two minutes")
        with pytest.raises(ValueError, match="QR_TTL"):
            EnvConfigProvider().get_session_config()


class TestLogging:
    """Test logging configuration."""

    def _access(self, method, path):
        # Same argument layout uvicorn uses for access records
        return logging.LogRecord(
            "uvicorn.access",
            logging.INFO,
            __file__,
            1,
            '%s - "%s %s HTTP/%s" %d',
            ("127.0.0.1:5000", method, path, "1.1", 200),
            None,
        )

    def test_health_checks_filtered(self):
        quiet = QuietPathFilter()

        assert not quiet.filter(self._access("GET", "/health"))
        assert not quiet.filter(self._access("GET", "/health?probe=render"))
        assert quiet.filter(self._access("GET", "/api/status"))
        assert quiet.filter(self._access("POST", "/health"))

    def test_plain_message_fallback(self):
        quiet = QuietPathFilter()
        record = logging.LogRecord(
            "uvicorn.access", logging.INFO, __file__, 1, '127.0.0.1 - "GET /health HTTP/1.1" 200', None, None
        )
        assert not quiet.filter(record)

    def test_other_loggers_untouched(self):
        record = logging.LogRecord("wagateway.main", logging.INFO, __file__, 1, "GET /health", None, None)
        assert QuietPathFilter().filter(record)

    def test_custom_quiet_paths(self):
        quiet = QuietPathFilter(paths=["/health", "/api/status"])
        assert not quiet.filter(self._access("GET", "/api/status"))

    def test_config_applies(self):
        config = get_logging_config("debug", quiet_paths=["/health", "/api/qr"])

        assert config["loggers"]["wagateway"]["level"] == "DEBUG"
        assert config["root"]["level"] == "DEBUG"
        assert config["handlers"]["access"]["filters"] == ["quiet_paths"]
        assert config["filters"]["quiet_paths"]["paths"] == ["/health", "/api/qr"]

    def test_config_is_loadable(self):
        logging.config.dictConfig(get_logging_config("info"))
        access = logging.getLogger("uvicorn.access")
        assert any(isinstance(f, QuietPathFilter) for h in access.handlers for f in h.filters)
