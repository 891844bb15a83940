"""Sentinel endpoint bookkeeping."""

import random
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass
from typing import Any

from sentinelclient.exceptions import ConfigurationError

DEFAULT_SENTINEL_PORT = 26379


@dataclass(frozen=True)
class Endpoint:
    """Address of a sentinel."""

    host: str
    port: int = DEFAULT_SENTINEL_PORT

    @property
    def key(self) -> str:
        """Deduplication key: lower-cased host plus port."""
        return f"{self.host.lower()}:{self.port}"

    def __str__(self) -> str:
        if ":" in self.host:
            return f"[{self.host}]:{self.port}"
        return f"{self.host}:{self.port}"


def _coerce_port(value: Any) -> int:
    try:
        port = int(value)
    except (TypeError, ValueError):
        return DEFAULT_SENTINEL_PORT
    return port if port > 0 else DEFAULT_SENTINEL_PORT


def _split_host_port(value: str) -> dict[str, str]:
    """Split "host:port", "[v6]:port", "[v6]" or a bare host."""
    if value.startswith("["):
        host, sep, rest = value[1:].partition("]")
        if not sep or (rest and not rest.startswith(":")):
            return {"host": ""}
        return {"host": host, "port": rest[1:]}

    # More than one colon without brackets is a bare IPv6 address.
    if value.count(":") != 1:
        return {"host": value}

    host, _, port = value.partition(":")
    return {"host": host, "port": port}


def parse_endpoint(item: Any, index: int = 0) -> Endpoint:
    """Normalize one endpoint descriptor.

    Accepts an ``Endpoint``, a mapping with ``host`` and optional ``port``,
    a ``(host, port)`` pair, or a ``"host:port"`` / ``"host"`` string.
    """
    if isinstance(item, Endpoint):
        return item

    if isinstance(item, str):
        item = _split_host_port(item)
    elif isinstance(item, tuple) and len(item) == 2:
        item = {"host": item[0], "port": item[1]}

    if not isinstance(item, Mapping):
        raise ConfigurationError(f"Item #{index} in sentinels list isn't an endpoint descriptor")

    host = item.get("host")
    if not host or not isinstance(host, str):
        raise ConfigurationError(f"Item #{index} in sentinels list doesn't have a correct host")

    return Endpoint(host=host, port=_coerce_port(item.get("port")))


class EndpointSet:
    """Deduplicated, insertion-ordered set of sentinel endpoints."""

    def __init__(
        self,
        endpoints: Iterable[Any],
        *,
        rng: random.Random | None = None,
    ) -> None:
        if isinstance(endpoints, (str, bytes, Mapping)) or not isinstance(endpoints, Iterable):
            raise ConfigurationError("Sentinels should be a list of endpoint descriptors")

        parsed = [parse_endpoint(item, i) for i, item in enumerate(endpoints)]
        if not parsed:
            raise ConfigurationError("Sentinels list shouldn't be empty")

        self._rng = rng or random.Random()
        self._endpoints: dict[str, Endpoint] = {}
        self.add(parsed)

    def add(self, endpoints: Iterable[Any]) -> int:
        """Merge endpoints into the set.

        Returns the number of endpoints that were not already present.
        """
        added = 0
        for i, item in enumerate(endpoints):
            endpoint = parse_endpoint(item, i)
            if endpoint.key not in self._endpoints:
                self._endpoints[endpoint.key] = endpoint
                added += 1
        return added

    def snapshot(self, randomize: bool = False) -> list[Endpoint]:
        """Get an iteration order for one connection sweep."""
        endpoints = list(self._endpoints.values())
        if randomize:
            # Fisher-Yates
            self._rng.shuffle(endpoints)
        return endpoints

    def __contains__(self, item: object) -> bool:
        if not isinstance(item, Endpoint):
            return False
        return item.key in self._endpoints

    def __iter__(self) -> Iterator[Endpoint]:
        return iter(list(self._endpoints.values()))

    def __len__(self) -> int:
        return len(self._endpoints)
