"""
Messaging Client Factory following Black Box Design principles.

This factory:
- Reads browser configuration from the provider
- Returns a zero-argument constructor the session controller calls on every launch
"""

import logging
from typing import Callable

from ...config.provider import ConfigProvider
from .interfaces import MessagingClient
from .playwright_client import PlaywrightMessagingClient

logger = logging.getLogger(__name__)

ClientBuilder = Callable[[], MessagingClient]


class ClientFactory:
    """
    Factory for building messaging clients.

    The session controller owns client lifetimes, so it receives a builder
    rather than an instance: each relaunch needs a fresh client.
    """

    @staticmethod
    def build(config_provider: ConfigProvider) -> ClientBuilder:
        """
        Build the client constructor.

        Args:
            config_provider: Configuration provider

        Returns:
            Callable producing a new, not yet launched, MessagingClient
        """
        browser_config = config_provider.get_browser_config()
        logger.info(
            f"Messaging clients will use profile {browser_config.profile_dir} "
            f"(browser: {browser_config.executable_path or 'bundled chromium'}, "
            f"headless: {browser_config.headless})"
        )

        def builder() -> MessagingClient:
            return PlaywrightMessagingClient(browser_config)

        return builder
