"""Replica set membership queries against an attached sentinel."""

import asyncio
import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from enum import Enum

from sentinelclient.endpoints import Endpoint
from sentinelclient.exceptions import ProtocolError
from sentinelclient.protocol import SentinelProtocol
from sentinelclient.records import Role, ServerRecord, build_lookup, parse_server_list

logger = logging.getLogger(__name__)


class FetchState(Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    FETCHING_WITH_PENDING = "fetching_with_pending"


@dataclass
class ReplicaSetUpdate:
    """Membership of one replica set as reported by the sentinel."""

    name: str
    primary: ServerRecord
    replicas: list[ServerRecord]


@dataclass
class FetchResult:
    """Outcome of one complete refresh cycle."""

    updates: list[ReplicaSetUpdate] = field(default_factory=list)
    sentinels: list[Endpoint] = field(default_factory=list)


class MembershipFetcher:
    """Runs refresh cycles on request, one at a time.

    Requests made while a cycle is running collapse into a single
    follow-up cycle.
    """

    def __init__(
        self,
        protocol: SentinelProtocol,
        on_result: Callable[[FetchResult], None],
        *,
        watched_names: Sequence[str] | None = None,
        discover_monitors: bool = False,
    ) -> None:
        self._protocol = protocol
        self._on_result = on_result
        self._watched_names = watched_names
        self._discover_monitors = discover_monitors
        self._state = FetchState.IDLE
        self._wakeup = asyncio.Event()

    @property
    def state(self) -> FetchState:
        return self._state

    def request_refresh(self) -> None:
        """Ask for a refresh cycle."""
        if self._state is FetchState.IDLE:
            self._wakeup.set()
        elif self._state is FetchState.FETCHING:
            self._state = FetchState.FETCHING_WITH_PENDING

    async def run(self) -> None:
        """Serve refresh requests until cancelled or a cycle fails."""
        while True:
            await self._wakeup.wait()
            self._wakeup.clear()

            self._state = FetchState.FETCHING
            result = await self.fetch()
            self._on_result(result)
            logger.debug("Done fetching configs")

            if self._state is FetchState.FETCHING_WITH_PENDING:
                self._wakeup.set()
            self._state = FetchState.IDLE

    async def fetch(self) -> FetchResult:
        """Run one refresh cycle.

        Raises ConnectionError on I/O failure and ProtocolError on a
        malformed primary or replica list. Nothing is delivered unless
        every query of the cycle succeeded.
        """
        logger.debug("Refreshing replica configurations from %s", self._protocol.endpoint)

        reply = await self._protocol.masters()
        primaries = build_lookup(parse_server_list(Role.PRIMARY, reply))
        if primaries is None:
            raise ProtocolError("Parsing primary list failed")

        if self._watched_names is None:
            names = list(primaries)
        else:
            names = []
            for name in dict.fromkeys(self._watched_names):
                if name not in primaries:
                    logger.warning("Replica set %r is watched but not on sentinel", name)
                    continue
                names.append(name)

        try:
            async with asyncio.TaskGroup() as tg:
                tasks = [tg.create_task(self._fetch_members(name)) for name in names]
        except BaseExceptionGroup as group:
            raise group.exceptions[0] from None

        result = FetchResult()
        discovered: dict[str, Endpoint] = {}
        for name, task in zip(names, tasks, strict=True):
            replicas, sentinels = task.result()
            result.updates.append(ReplicaSetUpdate(name, primaries[name], replicas))
            for endpoint in sentinels:
                discovered.setdefault(f"{endpoint.host}:{endpoint.port}", endpoint)

        result.sentinels = list(discovered.values())
        return result

    async def _fetch_members(self, name: str) -> tuple[list[ServerRecord], list[Endpoint]]:
        replicas = parse_server_list(Role.REPLICA, await self._protocol.replicas(name))
        if replicas is None:
            raise ProtocolError(f"Parsing replica list for {name!r} failed")

        if not self._discover_monitors:
            return replicas, []

        sentinels = parse_server_list(Role.SENTINEL, await self._protocol.sentinels(name))
        if sentinels is None:
            logger.warning("Sentinel list for %r could not be parsed. No sentinels added.", name)
            return replicas, []

        return replicas, [
            Endpoint(host=record.ip, port=record.port)
            for record in sentinels
            if record.ip and record.port
        ]
