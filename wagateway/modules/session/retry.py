"""
Relaunch Policy: one delay per relaunch reason

- LAUNCH_FAILED: capped exponential backoff on consecutive failures
- Everything else: fixed delay

Every scheduled relaunch in the session controller goes through
RetryPolicy.delay_for(), so the delays live in one place.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from ...config.provider import SessionConfig


class RelaunchReason(str, Enum):
    """Why a launch gets scheduled."""

    STARTUP = "startup"
    LAUNCH_FAILED = "launch_failed"
    AUTH_FAILED = "auth_failed"
    DISCONNECTED = "disconnected"
    PAIRING_EXPIRED = "pairing_expired"
    PAIRING_REQUESTED = "pairing_requested"
    RESTART = "restart"


@dataclass
class RetryPolicy:
    """Relaunch delays, in seconds."""

    startup_delay: float = 5.0
    launch_base_delay: float = 15.0
    launch_max_delay: float = 60.0
    exponential_base: float = 2.0
    auth_failed_delay: float = 30.0
    disconnected_delay: float = 15.0
    pairing_expired_delay: float = 3.0
    restart_delay: float = 5.0
    relaunch_on_disconnect: bool = True

    def __post_init__(self) -> None:
        for name in (
            "launch_base_delay",
            "auth_failed_delay",
            "disconnected_delay",
        ):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive")
        if self.launch_max_delay < self.launch_base_delay:
            raise ValueError("launch_max_delay must be >= launch_base_delay")
        for name in ("startup_delay", "pairing_expired_delay", "restart_delay"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must not be negative")

    @classmethod
    def from_config(cls, config: SessionConfig) -> RetryPolicy:
        return cls(
            startup_delay=config.startup_delay,
            launch_base_delay=config.launch_retry_delay,
            launch_max_delay=config.launch_retry_max_delay,
            auth_failed_delay=config.auth_failed_delay,
            disconnected_delay=config.disconnected_delay,
            pairing_expired_delay=config.pairing_expired_delay,
            restart_delay=config.restart_delay,
            relaunch_on_disconnect=config.relaunch_on_disconnect,
        )

    def delay_for(self, kind: RelaunchReason, attempt: int = 1) -> float:
        """
        Delay before the next launch.

        Args:
            kind: Why the launch is needed
            attempt: Consecutive failures of this kind (1 = first)

        Returns:
            Delay in seconds
        """
        if kind is RelaunchReason.LAUNCH_FAILED:
            exponent = max(attempt, 1) - 1
            delay = self.launch_base_delay * (self.exponential_base ** exponent)
            return min(delay, self.launch_max_delay)
        if kind is RelaunchReason.AUTH_FAILED:
            return self.auth_failed_delay
        if kind is RelaunchReason.DISCONNECTED:
            return self.disconnected_delay
        if kind in (RelaunchReason.PAIRING_EXPIRED, RelaunchReason.PAIRING_REQUESTED):
            return self.pairing_expired_delay
        if kind is RelaunchReason.RESTART:
            return self.restart_delay
        return self.startup_delay

    def should_relaunch(self, kind: RelaunchReason) -> bool:
        """Whether this reason schedules a relaunch at all."""
        if kind is RelaunchReason.DISCONNECTED:
            return self.relaunch_on_disconnect
        return True
