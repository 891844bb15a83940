"""Pytest configuration for sentinel-client tests."""

import asyncio
from collections.abc import Iterator
from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
import redis.exceptions

from sentinelclient.endpoints import Endpoint

SENTINEL_INFO = (
    "# Server\r\nredis_version:2.8.11\r\nredis_mode:sentinel\r\ntcp_port:26379\r\n"
    "uptime_in_seconds:116301\r\n\r\n"
    "# Sentinel\r\nsentinel_masters:1\r\nsentinel_tilt:0\r\n"
    "master0:name=main,status=ok,address=127.0.0.1:6379,slaves=1,sentinels=3\r\n"
)

STANDALONE_INFO = (
    "# Server\r\nredis_version:2.8.11\r\nredis_mode:standalone\r\ntcp_port:6379\r\n\r\n"
    "# Replication\r\nrole:master\r\nconnected_slaves:0\r\n\r\n"
    "# Keyspace\r\ndb0:keys=1,expires=0,avg_ttl=0\r\n"
)


class FakeSentinel:
    """Scriptable stand-in for a sentinel process.

    Answers INFO, SENTINEL MASTERS / SLAVES / SENTINELS and SUBSCRIBE the
    way a real sentinel does, and can push notifications to subscribers.
    """

    def __init__(self, info: str | None = SENTINEL_INFO) -> None:
        self.info = info
        self.refuse = False
        self.silent = False
        self.stall = False
        self.masters: dict[str, dict[str, Any]] = {}
        self.replicas: dict[str, list[dict[str, Any]]] = {}
        self.peers: dict[str, list[tuple[str, int]]] = {}
        self.masters_reply: Any = None
        self.replicas_reply: Any = None
        self.peers_reply: Any = None
        self.commands: list[tuple[Any, ...]] = []
        self.connections: list["FakeConnection"] = []

    def add_master(self, name: str, ip: str, port: int, *, down: bool = False) -> "FakeSentinel":
        self.masters[name] = {"ip": ip, "port": port, "down": down}
        return self

    def add_replica(self, name: str, ip: str, port: int, *, down: bool = False) -> "FakeSentinel":
        self.replicas.setdefault(name, []).append({"ip": ip, "port": port, "down": down})
        return self

    def add_peer(self, name: str, ip: str, port: int) -> "FakeSentinel":
        self.peers.setdefault(name, []).append((ip, port))
        return self

    def count(self, *command: str) -> int:
        return sum(1 for c in self.commands if c[: len(command)] == command)

    def publish(self, channel: str, message: str) -> None:
        for conn in self.connections:
            if channel in conn.subscribed:
                conn.push(["message", channel, message])

    def kill(self) -> None:
        """Hang up every open connection."""
        for conn in self.connections:
            conn.push(redis.exceptions.ConnectionError("Connection closed by server."))

    def handle(self, args: tuple[Any, ...], conn: "FakeConnection") -> list[Any]:
        if self.silent:
            return []

        cmd = str(args[0]).upper()
        if cmd == "INFO":
            return [self.info]

        if cmd == "SUBSCRIBE":
            conn.subscribed.extend(args[1:])
            return [
                ["subscribe", channel, i + 1] for i, channel in enumerate(args[1:])
            ]

        if cmd == "SENTINEL":
            sub = str(args[1]).upper()
            if sub == "MASTERS":
                if self.masters_reply is not None:
                    return [self.masters_reply]
                return [
                    [
                        [
                            "name", name,
                            "ip", m["ip"],
                            "port", str(m["port"]),
                            "flags", "master" + (",o_down" if m["down"] else ""),
                        ]
                        for name, m in self.masters.items()
                    ]
                ]
            if sub == "SLAVES":
                if self.replicas_reply is not None:
                    return [self.replicas_reply]
                return [
                    [
                        [
                            "name", f"{r['ip']}:{r['port']}",
                            "ip", r["ip"],
                            "port", str(r["port"]),
                            "flags", "slave" + (",s_down" if r["down"] else ""),
                        ]
                        for r in self.replicas.get(args[2], [])
                    ]
                ]
            if sub == "SENTINELS":
                if self.peers_reply is not None:
                    return [self.peers_reply]
                return [
                    [
                        ["name", f"peer-{ip}-{port}", "ip", ip, "port", str(port)]
                        for ip, port in self.peers.get(args[2], [])
                    ]
                ]

        return [redis.exceptions.ResponseError(f"ERR unknown command {cmd}")]


class FakeConnection:
    """Replacement for redis.asyncio.connection.Connection."""

    def __init__(self, network: "FakeNetwork", host: str, port: int, **kwargs: Any) -> None:
        self.network = network
        self.endpoint = Endpoint(host, port)
        self.kwargs = kwargs
        self.subscribed: list[str] = []
        self.disconnected = False
        self._replies: asyncio.Queue[Any] = asyncio.Queue()
        self._sentinel: FakeSentinel | None = None

    def push(self, reply: Any) -> None:
        self._replies.put_nowait(reply)

    async def connect(self) -> None:
        sentinel = self.network.sentinels.get(self.endpoint)
        if sentinel is not None and sentinel.stall:
            await asyncio.sleep(3600)
        if sentinel is None or sentinel.refuse:
            raise redis.exceptions.ConnectionError(f"Error 111 connecting to {self.endpoint}")
        self._sentinel = sentinel
        sentinel.connections.append(self)

    async def send_command(self, *args: Any) -> None:
        if self.disconnected or self._sentinel is None:
            raise redis.exceptions.ConnectionError("Connection closed.")
        self._sentinel.commands.append(args)
        for reply in self._sentinel.handle(args, self):
            self.push(reply)

    async def read_response(self) -> Any:
        reply = await self._replies.get()
        if isinstance(reply, Exception):
            raise reply
        return reply

    async def disconnect(self, nowait: bool = False) -> None:
        self.disconnected = True
        if self._sentinel is not None and self in self._sentinel.connections:
            self._sentinel.connections.remove(self)


class FakeNetwork:
    """Maps endpoints to fake sentinels."""

    def __init__(self) -> None:
        self.sentinels: dict[Endpoint, FakeSentinel] = {}
        self.opened: list[FakeConnection] = []

    def add(self, host: str, port: int, sentinel: FakeSentinel | None = None) -> FakeSentinel:
        sentinel = sentinel or FakeSentinel()
        self.sentinels[Endpoint(host, port)] = sentinel
        return sentinel

    def connection(self, *, host: str, port: int, **kwargs: Any) -> FakeConnection:
        conn = FakeConnection(self, host, port, **kwargs)
        self.opened.append(conn)
        return conn


@pytest.fixture
def network() -> Iterator[FakeNetwork]:
    """Route sentinel connections to in-memory fakes."""
    fake = FakeNetwork()
    with patch("sentinelclient.protocol.Connection", side_effect=fake.connection):
        yield fake


@pytest.fixture
def mock_connection() -> MagicMock:
    """Create a mock redis connection."""
    conn = MagicMock()
    conn.connect = AsyncMock()
    conn.send_command = AsyncMock()
    conn.read_response = AsyncMock()
    conn.disconnect = AsyncMock()
    return conn


@pytest.fixture
def sentinel_info() -> str:
    """INFO reply of a process in sentinel mode."""
    return SENTINEL_INFO


@pytest.fixture
def standalone_info() -> str:
    """INFO reply of a plain data node."""
    return STANDALONE_INFO
