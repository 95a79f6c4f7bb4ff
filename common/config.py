"""Session configuration for timesync-testkit.

Contains:
- Role: Enum for client/server role
- ConfigError: Raised for invalid configuration (fatal at startup)
- SessionConfig: Validated driver and correlation settings
- env_float / env_int: Environment variable overrides for defaults
"""

import os
from dataclasses import dataclass
from enum import Enum

from common.protocol import (
    DEFAULT_INTERVAL_S,
    DEFAULT_MAX_ROUNDS,
    DEFAULT_REPLY_TIMEOUT_S,
    DEFAULT_SETTLE_S,
)


class Role(Enum):
    """Role in the ping/pong exchange."""

    CLIENT = "client"  # Drives rounds and measures
    SERVER = "server"  # Answers PINGs with its own clock reading


class ConfigError(ValueError):
    """Raised when session configuration is invalid."""

    pass


def env_float(name: str, default: float) -> float:
    """Read a float from the environment, falling back to default."""
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigError(f"{name}={raw!r} is not a number")


def env_int(name: str, default: int) -> int:
    """Read an int from the environment, falling back to default."""
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigError(f"{name}={raw!r} is not an integer")


@dataclass(frozen=True)
class SessionConfig:
    """Parameters for a measurement session.

    Attributes:
        interval_s: Seconds between PINGs (also the initial delay).
        max_rounds: Number of PINGs to send, 0 = until stopped.
        reply_timeout_s: Pending PINGs older than this are counted lost.
        settle_s: Time allowed for in-flight PONGs after the driver stops.
        accept_unmatched: Record PONGs that match no pending PING (flagged)
            instead of rejecting them.
    """

    interval_s: float = DEFAULT_INTERVAL_S
    max_rounds: int = DEFAULT_MAX_ROUNDS
    reply_timeout_s: float = DEFAULT_REPLY_TIMEOUT_S
    settle_s: float = DEFAULT_SETTLE_S
    accept_unmatched: bool = False

    def __post_init__(self) -> None:
        """Validate invariants."""
        if not self.interval_s > 0:
            raise ConfigError(f"interval must be positive, got {self.interval_s}")
        if self.max_rounds < 0:
            raise ConfigError(f"max_rounds must be >= 0, got {self.max_rounds}")
        if not self.reply_timeout_s > 0:
            raise ConfigError(f"reply timeout must be positive, got {self.reply_timeout_s}")
        if self.settle_s < 0:
            raise ConfigError(f"settle time must be >= 0, got {self.settle_s}")

    @property
    def unbounded(self) -> bool:
        """True when the driver runs until externally stopped."""
        return self.max_rounds == 0

    @classmethod
    def from_env(cls) -> "SessionConfig":
        """Build a config from TIMESYNC_* environment variables."""
        return cls(
            interval_s=env_float("TIMESYNC_INTERVAL_S", DEFAULT_INTERVAL_S),
            max_rounds=env_int("TIMESYNC_MAX_ROUNDS", DEFAULT_MAX_ROUNDS),
            reply_timeout_s=env_float("TIMESYNC_REPLY_TIMEOUT_S", DEFAULT_REPLY_TIMEOUT_S),
            settle_s=env_float("TIMESYNC_SETTLE_S", DEFAULT_SETTLE_S),
        )
