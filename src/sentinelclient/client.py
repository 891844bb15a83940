"""Sentinel connection management and replica set tracking."""

import asyncio
import logging
import random
from collections.abc import Iterable, Mapping, Sequence
from enum import Enum
from types import MappingProxyType
from typing import Any

from sentinelclient.endpoints import Endpoint, EndpointSet
from sentinelclient.events import (
    ChangeEvent,
    ErrorEvent,
    EventHub,
    EventSubscription,
    NotificationEvent,
)
from sentinelclient.exceptions import ConnectionError, OutageError, ProtocolError
from sentinelclient.fetcher import FetchResult, MembershipFetcher
from sentinelclient.options import ConnectionFactory, SentinelOptions, default_connection_factory
from sentinelclient.probe import probe_sentinel
from sentinelclient.protocol import SentinelProtocol
from sentinelclient.replica_set import ReplicaSet
from sentinelclient.watcher import TopologyWatcher

logger = logging.getLogger(__name__)


class ClientState(Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    TERMINATED = "terminated"


class SentinelClient:
    """Tracks replica sets through whichever sentinel is reachable.

    Connects to the first sentinel that validates, keeps the replica sets
    up to date from it, and moves on to another sentinel whenever the
    current one fails.

    Connection and malformed-reply errors only trigger a reconnect. Any
    other error raised while applying an update, such as an
    ``IntegrityError`` from ``ReplicaSet.load_primary``, stops the client:
    it is logged, published to subscribers as an ``ErrorEvent`` and
    re-raised from the background task.
    """

    def __init__(
        self,
        endpoints: Iterable[Any],
        *,
        options: SentinelOptions | None = None,
        connect_timeout: float = 0.5,
        command_timeout: float = 1.5,
        outage_retry_delay: float = 5.0,
        refresh_period: float = 60.0,
        randomize_order: bool = True,
        watched_names: Sequence[str] | None = None,
        discover_monitors: bool = False,
        connection_factory: ConnectionFactory = default_connection_factory,
        connection_options: Mapping[str, Any] | None = None,
        rng: random.Random | None = None,
    ) -> None:
        """Initialize the client (does not connect yet).

        Args:
            endpoints: Sentinel addresses, as mappings, (host, port) pairs
                or "host:port" strings
            options: Prebuilt options; the keyword arguments below are
                ignored when given
            connect_timeout: Per-sentinel connect timeout in seconds
            command_timeout: Per-command reply timeout in seconds
            outage_retry_delay: Pause before sweeping all sentinels again;
                negative to give up instead
            refresh_period: Fallback refresh interval in seconds
            randomize_order: Shuffle the sentinels on every sweep
            watched_names: Replica set names to track, or None for all
            discover_monitors: Learn about more sentinels from the current one
            connection_factory: Called as (port, host, connection_options)
                to create data node clients
            connection_options: Passed verbatim to connection_factory
            rng: Random source for shuffling and replica selection
        """
        if options is None:
            options = SentinelOptions(
                connect_timeout=connect_timeout,
                command_timeout=command_timeout,
                outage_retry_delay=outage_retry_delay,
                refresh_period=refresh_period,
                randomize_order=randomize_order,
                watched_names=watched_names,
                discover_monitors=discover_monitors,
                connection_factory=connection_factory,
                connection_options=connection_options or {},
            )

        self._options = options
        self._rng = rng or random.Random()
        self._endpoints = EndpointSet(endpoints, rng=self._rng)
        self._replica_sets: dict[str, ReplicaSet] = {}
        self._hub = EventHub()
        self._state = ClientState.DISCONNECTED
        self._current: Endpoint | None = None
        self._task: asyncio.Task[None] | None = None

    @property
    def options(self) -> SentinelOptions:
        return self._options

    @property
    def state(self) -> ClientState:
        return self._state

    @property
    def endpoints(self) -> EndpointSet:
        return self._endpoints

    @property
    def current_endpoint(self) -> Endpoint | None:
        """The sentinel currently attached to, if any."""
        return self._current

    @property
    def replica_sets(self) -> Mapping[str, ReplicaSet]:
        return MappingProxyType(self._replica_sets)

    def get_replica_set(self, name: str) -> ReplicaSet | None:
        return self._replica_sets.get(name)

    def subscribe(self) -> EventSubscription:
        """Get a stream of change, notification and error events."""
        return self._hub.subscribe()

    def start(self) -> None:
        """Start connecting in the background. Requires a running loop."""
        if self._task is not None or self._state is ClientState.TERMINATED:
            return
        logger.debug("Initialization started with %d sentinels", len(self._endpoints))
        self._task = asyncio.create_task(self._run())

    async def shutdown(self) -> None:
        """Disconnect for good. Safe to call more than once."""
        if self._state is ClientState.TERMINATED:
            return
        self._state = ClientState.TERMINATED
        logger.info("Termination triggered from outside")

        if self._task is not None:
            self._task.cancel()
            # Failures were already logged and published by _run.
            await asyncio.gather(self._task, return_exceptions=True)

        self._current = None
        self._hub.close()

    async def __aenter__(self) -> "SentinelClient":
        self.start()
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.shutdown()

    def _set_state(self, state: ClientState) -> None:
        if self._state is not ClientState.TERMINATED:
            self._state = state

    async def _run(self) -> None:
        try:
            await self._connect_loop()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.exception("Sentinel client stopped")
            self._stop(e)
            raise

    def _stop(self, error: Exception) -> None:
        self._set_state(ClientState.DISCONNECTED)
        self._current = None
        self._hub.publish(ErrorEvent(error))
        self._hub.close()

    async def _connect_loop(self) -> None:
        while True:
            self._set_state(ClientState.CONNECTING)
            protocol, errors = await self._connect_any()

            if protocol is None:
                message = f"Could not connect to a sentinel. Errors: {'; '.join(errors)}"
                if not self._options.retry_on_outage:
                    logger.error(message)
                    self._stop(OutageError(message))
                    return

                logger.info(
                    "All sentinels down. Pausing %.1fs before retry",
                    self._options.outage_retry_delay,
                )
                await asyncio.sleep(self._options.outage_retry_delay)
                continue

            try:
                await self._run_session(protocol)
            except (ConnectionError, ProtocolError) as e:
                logger.warning("Error encountered on sentinel %s: %s", protocol.endpoint, e)
            finally:
                self._current = None

    async def _connect_any(self) -> tuple[SentinelProtocol | None, list[str]]:
        """Try each sentinel in turn until one validates."""
        logger.debug("Starting sentinel connection...")
        errors: list[str] = []

        for endpoint in self._endpoints.snapshot(randomize=self._options.randomize_order):
            try:
                protocol = await probe_sentinel(
                    endpoint,
                    connect_timeout=self._options.connect_timeout,
                    command_timeout=self._options.command_timeout,
                )
            except ConnectionError as e:
                logger.debug("Sentinel %s rejected: %s", endpoint, e)
                errors.append(f"{endpoint}: {e}")
                continue
            return protocol, errors

        return None, errors

    async def _run_session(self, protocol: SentinelProtocol) -> None:
        """Track replica sets through one validated sentinel until it fails."""
        fetcher = MembershipFetcher(
            protocol,
            self._apply_result,
            watched_names=self._options.watched_names,
            discover_monitors=self._options.discover_monitors,
        )
        watcher = TopologyWatcher(
            protocol.endpoint,
            on_refresh=fetcher.request_refresh,
            on_event=self._forward_event,
            refresh_period=self._options.refresh_period,
            connect_timeout=self._options.connect_timeout,
            command_timeout=self._options.command_timeout,
        )

        self._current = protocol.endpoint
        self._set_state(ClientState.CONNECTED)
        logger.info("Attached to sentinel %s", protocol.endpoint)

        fetch_task = asyncio.create_task(fetcher.run())
        watch_task = asyncio.create_task(watcher.run())
        try:
            done, _ = await asyncio.wait(
                {fetch_task, watch_task}, return_when=asyncio.FIRST_COMPLETED
            )
            for task in done:
                task.result()
            raise ConnectionError(f"Session with {protocol.endpoint} ended")
        finally:
            for task in (fetch_task, watch_task):
                task.cancel()
            await asyncio.gather(fetch_task, watch_task, return_exceptions=True)
            await watcher.close()
            await protocol.close()
            logger.info("Detached from sentinel %s", protocol.endpoint)

    def _apply_result(self, result: FetchResult) -> None:
        if self._state is ClientState.TERMINATED:
            return

        for update in result.updates:
            replica_set = self._replica_sets.get(update.name)
            if replica_set is None:
                replica_set = self._replica_sets[update.name] = ReplicaSet(
                    update.name,
                    connection_factory=self._options.connection_factory,
                    connection_options=self._options.connection_options,
                    rng=self._rng,
                )

            primary_changed = replica_set.load_primary(update.primary)
            replicas_changed = replica_set.load_replicas(update.replicas)
            logger.debug("Replica set configuration: %s", replica_set.describe())

            if primary_changed or replicas_changed:
                logger.debug("Replica set %s has changed", update.name)
                self._hub.publish(ChangeEvent(update.name, replica_set))

        if result.sentinels:
            if not self._options.discover_monitors:
                logger.warning("Fetcher reported sentinels when not configured to")
                return
            added = self._endpoints.add(result.sentinels)
            if added:
                logger.debug("Discovered %d new sentinels", added)

    def _forward_event(self, channel: str, message: str) -> None:
        if self._state is ClientState.TERMINATED:
            return
        self._hub.publish(NotificationEvent(channel, message))
