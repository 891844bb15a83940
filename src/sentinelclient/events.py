"""Events published by the sentinel client."""

import asyncio
from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from sentinelclient.replica_set import ReplicaSet


@dataclass(frozen=True)
class ChangeEvent:
    """A replica set's primary or replicas changed."""

    name: str
    replica_set: "ReplicaSet"


@dataclass(frozen=True)
class NotificationEvent:
    """A raw notification pushed by the sentinel."""

    channel: str
    message: str


@dataclass(frozen=True)
class ErrorEvent:
    """The client stopped because of an unrecoverable error."""

    error: BaseException


ClientEvent = ChangeEvent | NotificationEvent | ErrorEvent


class EventSubscription:
    """Queue of client events for one consumer.

    Iterate with ``async for``; iteration ends once the client stops.
    """

    def __init__(self, hub: "EventHub") -> None:
        self._hub = hub
        self._queue: asyncio.Queue[ClientEvent | None] = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def _put(self, event: ClientEvent | None) -> None:
        if not self._closed:
            self._queue.put_nowait(event)
        if event is None:
            self._closed = True

    async def get(self) -> ClientEvent | None:
        """Wait for the next event. Returns None once the client stopped."""
        if self._closed and self._queue.empty():
            return None
        return await self._queue.get()

    def close(self) -> None:
        """Stop receiving events."""
        self._hub.discard(self)
        self._put(None)

    def __aiter__(self) -> AsyncIterator[ClientEvent]:
        return self

    async def __anext__(self) -> ClientEvent:
        event = await self.get()
        if event is None:
            raise StopAsyncIteration
        return event


class EventHub:
    """Fans events out to every live subscription."""

    def __init__(self) -> None:
        self._subscriptions: set[EventSubscription] = set()
        self._closed = False

    def subscribe(self) -> EventSubscription:
        subscription = EventSubscription(self)
        if self._closed:
            subscription._put(None)
        else:
            self._subscriptions.add(subscription)
        return subscription

    def discard(self, subscription: EventSubscription) -> None:
        self._subscriptions.discard(subscription)

    def publish(self, event: ClientEvent) -> None:
        for subscription in list(self._subscriptions):
            subscription._put(event)

    def close(self) -> None:
        """End every subscription."""
        self._closed = True
        for subscription in list(self._subscriptions):
            subscription._put(None)
        self._subscriptions.clear()
