"""Client configuration."""

import math
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

import redis.asyncio

from sentinelclient.exceptions import ConfigurationError

ConnectionFactory = Callable[[int, str, Mapping[str, Any]], Any]


def default_connection_factory(port: int, host: str, options: Mapping[str, Any]) -> Any:
    """Create a redis-py asyncio client for a data node."""
    return redis.asyncio.Redis(host=host, port=port, **options)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


@dataclass(frozen=True)
class SentinelOptions:
    """Options resolved once when a client is built.

    All durations are in seconds.
    """

    connect_timeout: float = 0.5
    command_timeout: float = 1.5
    outage_retry_delay: float = 5.0
    refresh_period: float = 60.0
    randomize_order: bool = True
    watched_names: Sequence[str] | None = None
    discover_monitors: bool = False
    connection_factory: ConnectionFactory = default_connection_factory
    connection_options: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        for name in ("connect_timeout", "command_timeout", "refresh_period"):
            value = getattr(self, name)
            if not _is_number(value):
                raise ConfigurationError(f"{name} should be a number (seconds)")
            if not value > 0:
                raise ConfigurationError(f"{name} needs to be greater than 0")

        if not _is_number(self.outage_retry_delay):
            raise ConfigurationError("outage_retry_delay should be a number (seconds)")
        if math.isnan(self.outage_retry_delay):
            raise ConfigurationError("outage_retry_delay cannot be NaN")

        for name in ("randomize_order", "discover_monitors"):
            if not isinstance(getattr(self, name), bool):
                raise ConfigurationError(f"{name} should be a bool")

        if not callable(self.connection_factory):
            raise ConfigurationError("connection_factory should be callable")

        if not isinstance(self.connection_options, Mapping):
            raise ConfigurationError("connection_options should be a mapping")
        object.__setattr__(
            self, "connection_options", MappingProxyType(dict(self.connection_options))
        )

        if self.watched_names is not None:
            if isinstance(self.watched_names, str) or not isinstance(self.watched_names, Sequence):
                raise ConfigurationError("watched_names, if not None, should be a list of strings")
            for i, item in enumerate(self.watched_names):
                if not isinstance(item, str):
                    raise ConfigurationError(f"watched_names[{i}] should be a string")
            object.__setattr__(self, "watched_names", tuple(self.watched_names))

    @property
    def retry_on_outage(self) -> bool:
        return self.outage_retry_delay >= 0
