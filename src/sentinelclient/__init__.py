"""Async replica set tracking through Redis Sentinel."""

from collections.abc import Iterable
from typing import Any

from sentinelclient.client import ClientState, SentinelClient
from sentinelclient.endpoints import DEFAULT_SENTINEL_PORT, Endpoint, EndpointSet
from sentinelclient.events import (
    ChangeEvent,
    ClientEvent,
    ErrorEvent,
    EventSubscription,
    NotificationEvent,
)
from sentinelclient.exceptions import (
    CommandTimeoutError,
    ConfigurationError,
    ConnectionError,
    IntegrityError,
    NotASentinelError,
    OutageError,
    ProtocolError,
    SentinelError,
)
from sentinelclient.options import SentinelOptions, default_connection_factory
from sentinelclient.records import ServerRecord
from sentinelclient.replica_set import ReplicaSet, Target

__all__ = [
    "connect",
    "SentinelClient",
    "ClientState",
    "SentinelOptions",
    "default_connection_factory",
    "Endpoint",
    "EndpointSet",
    "DEFAULT_SENTINEL_PORT",
    "ReplicaSet",
    "ServerRecord",
    "Target",
    "EventSubscription",
    "ClientEvent",
    "ChangeEvent",
    "NotificationEvent",
    "ErrorEvent",
    "SentinelError",
    "ConfigurationError",
    "ConnectionError",
    "CommandTimeoutError",
    "NotASentinelError",
    "ProtocolError",
    "OutageError",
    "IntegrityError",
]

__version__ = "0.1.0"


async def connect(endpoints: Iterable[Any], **options: Any) -> SentinelClient:
    """Create a client and start tracking in the background.

    Args:
        endpoints: Sentinel addresses, e.g. [{"host": "localhost", "port": 26379}]
        **options: Keyword options accepted by SentinelClient

    Returns:
        A started SentinelClient. Call ``shutdown()`` when done.
    """
    client = SentinelClient(endpoints, **options)
    client.start()
    return client
