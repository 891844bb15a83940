"""Refresh triggers: sentinel notifications plus a fallback timer."""

import asyncio
import logging
from collections.abc import Callable

from sentinelclient.endpoints import Endpoint
from sentinelclient.protocol import SentinelProtocol

logger = logging.getLogger(__name__)

# Channels whose messages mean the topology may have changed.
RELOAD_CHANNELS = (
    # replicas / primaries toggling on and off
    "+sdown",
    "-sdown",
    "+odown",
    "-odown",
    # failovers, as documented
    "+reset-master",
    "switch-master",
    # failovers, as observed
    "+role-change",
    "-role-change",
    "+switch-master",
)

# Passed along to subscribers only.
INFO_CHANNELS = (
    "+slave",
    "failover-end",
    "no-good-slave",
)

CHANNELS = RELOAD_CHANNELS + INFO_CHANNELS


class TopologyWatcher:
    """Decides when the replica set membership should be refreshed.

    Uses its own subscription connection to the sentinel. A refresh is
    requested once on start, whenever a reload channel fires, and after
    every ``refresh_period`` seconds without one.
    """

    def __init__(
        self,
        endpoint: Endpoint,
        *,
        on_refresh: Callable[[], None],
        on_event: Callable[[str, str], None],
        refresh_period: float,
        connect_timeout: float,
        command_timeout: float,
    ) -> None:
        self._endpoint = endpoint
        self._on_refresh = on_refresh
        self._on_event = on_event
        self._refresh_period = refresh_period
        self._connect_timeout = connect_timeout
        self._command_timeout = command_timeout
        self._protocol: SentinelProtocol | None = None
        self._timer_reset = asyncio.Event()
        self._finalized = False

    @property
    def finalized(self) -> bool:
        return self._finalized

    async def run(self) -> None:
        """Watch until cancelled. Raises ConnectionError if the link fails."""
        logger.debug("Refreshing due to init")
        self._refresh()

        timer = asyncio.create_task(self._run_timer())
        try:
            self._protocol = await SentinelProtocol.open(
                self._endpoint,
                connect_timeout=self._connect_timeout,
                command_timeout=self._command_timeout,
            )
            await self._protocol.subscribe(list(CHANNELS))

            while True:
                channel, message = await self._protocol.read_message()
                self.handle_message(channel, message)
        finally:
            timer.cancel()

    def handle_message(self, channel: str, message: str) -> None:
        if self._finalized:
            return

        logger.debug("Got event: %s %s", channel, message)
        self._on_event(channel, message)

        if channel in RELOAD_CHANNELS:
            logger.debug("Refreshing due to %s event", channel)
            self._refresh()
            self._timer_reset.set()

    async def close(self) -> None:
        """Stop watching and release the connection. Safe to call twice."""
        if self._finalized:
            return
        self._finalized = True

        if self._protocol is not None:
            await self._protocol.close()
        logger.debug("Closed connection to %s", self._endpoint)

    def _refresh(self) -> None:
        if not self._finalized:
            self._on_refresh()

    async def _run_timer(self) -> None:
        while True:
            try:
                async with asyncio.timeout(self._refresh_period):
                    await self._timer_reset.wait()
            except TimeoutError:
                logger.debug("Refreshing due to timeout")
                self._refresh()
            else:
                self._timer_reset.clear()
