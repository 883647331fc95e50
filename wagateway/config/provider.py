"""Configuration provider following Black Box Design principles."""
import os
from dataclasses import dataclass, field
from typing import Optional, Protocol, List


# Flags for running Chromium inside small free-tier containers
DEFAULT_BROWSER_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-gpu",
    "--no-first-run",
    "--no-zygote",
    "--memory-pressure-off",
    "--disable-background-timer-throttling",
    "--disable-backgrounding-occluded-windows",
    "--disable-renderer-backgrounding",
    "--disable-features=TranslateUI,VizDisplayCompositor",
    "--disable-extensions",
    "--disable-default-apps",
    "--disable-sync",
    "--disable-background-networking",
    "--disable-component-update",
    "--disable-hang-monitor",
    "--disable-prompt-on-repost",
    "--disable-client-side-phishing-detection",
]

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


def _env_float(name: str, default: str) -> float:
    raw = os.getenv(name, default)
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got '{raw}'")


@dataclass
class APIConfig:
    """API configuration."""
    cors_origins: List[str]


@dataclass
class BrowserConfig:
    """Browser launch configuration consumed by the messaging client."""
    executable_path: Optional[str]
    session_dir: str
    client_id: str
    headless: bool = True
    args: List[str] = field(default_factory=lambda: list(DEFAULT_BROWSER_ARGS))
    user_agent: str = DEFAULT_USER_AGENT
    launch_timeout: float = 60.0
    navigation_timeout: float = 60.0
    poll_interval: float = 1.0
    auth_timeout: float = 60.0

    @property
    def profile_dir(self) -> str:
        """Persistent profile directory holding the linked-device session."""
        return os.path.join(self.session_dir, f"session-{self.client_id}")


@dataclass
class SessionConfig:
    """Session lifecycle configuration (timeouts and relaunch delays, seconds)."""
    pairing_ttl: float = 120.0
    send_timeout: float = 30.0
    request_timeout: float = 30.0
    startup_delay: float = 5.0
    restart_delay: float = 5.0
    pairing_expired_delay: float = 3.0
    launch_retry_delay: float = 15.0
    launch_retry_max_delay: float = 60.0
    auth_failed_delay: float = 30.0
    disconnected_delay: float = 15.0
    relaunch_on_disconnect: bool = True
    auto_reply_ping: bool = True
    print_qr: bool = True


class ConfigProvider(Protocol):
    """Protocol for configuration providers."""

    def get_api_config(self) -> APIConfig:
        """Get API configuration."""
        ...

    def get_browser_config(self) -> BrowserConfig:
        """Get browser configuration."""
        ...

    def get_session_config(self) -> SessionConfig:
        """Get session lifecycle configuration."""
        ...


class EnvConfigProvider:
    """Environment-based configuration provider."""

    def get_api_config(self) -> APIConfig:
        """Get API configuration from environment variables."""
        return APIConfig(
            cors_origins=[o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
        )

    def get_browser_config(self) -> BrowserConfig:
        """Get browser configuration from environment variables."""
        # PUPPETEER_EXECUTABLE_PATH is accepted as a fallback name
        executable_path = (
            os.getenv("BROWSER_EXECUTABLE_PATH")
            or os.getenv("PUPPETEER_EXECUTABLE_PATH")
            or None
        )
        extra_args = os.getenv("BROWSER_EXTRA_ARGS", "").split()

        return BrowserConfig(
            executable_path=executable_path,
            session_dir=os.getenv("SESSION_DIR", "./whatsapp-session"),
            client_id=os.getenv("CLIENT_ID", "client-render"),
            headless=_env_bool("BROWSER_HEADLESS", "true"),
            args=list(DEFAULT_BROWSER_ARGS) + extra_args,
            user_agent=os.getenv("BROWSER_USER_AGENT", DEFAULT_USER_AGENT),
            launch_timeout=_env_float("BROWSER_LAUNCH_TIMEOUT", "60"),
            navigation_timeout=_env_float("BROWSER_NAVIGATION_TIMEOUT", "60"),
            poll_interval=_env_float("BROWSER_POLL_INTERVAL", "1"),
            auth_timeout=_env_float("AUTH_TIMEOUT", "60"),
        )

    def get_session_config(self) -> SessionConfig:
        """Get session lifecycle configuration from environment variables."""
        return SessionConfig(
            pairing_ttl=_env_float("QR_TTL", "120"),
            send_timeout=_env_float("SEND_TIMEOUT", "30"),
            request_timeout=_env_float("REQUEST_TIMEOUT", "30"),
            startup_delay=_env_float("STARTUP_DELAY", "5"),
            restart_delay=_env_float("RESTART_DELAY", "5"),
            pairing_expired_delay=_env_float("QR_EXPIRED_RELAUNCH_DELAY", "3"),
            launch_retry_delay=_env_float("LAUNCH_RETRY_DELAY", "15"),
            launch_retry_max_delay=_env_float("LAUNCH_RETRY_MAX_DELAY", "60"),
            auth_failed_delay=_env_float("AUTH_FAILED_RETRY_DELAY", "30"),
            disconnected_delay=_env_float("RECONNECT_DELAY", "15"),
            relaunch_on_disconnect=_env_bool("RELAUNCH_ON_DISCONNECT", "true"),
            auto_reply_ping=_env_bool("AUTO_REPLY_PING", "true"),
            print_qr=_env_bool("PRINT_QR", "true"),
        )
