"""Per-name replica set state."""

import random
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from sentinelclient.exceptions import IntegrityError
from sentinelclient.options import ConnectionFactory, default_connection_factory
from sentinelclient.records import Role, ServerRecord, is_down


@dataclass(frozen=True)
class Target:
    """Connectable address of a data node."""

    host: str
    port: int


def _is_live(role: Role, record: ServerRecord | None) -> bool:
    # Rows without an address cannot be connected to.
    if is_down(role, record):
        return False
    assert record is not None
    return bool(record.ip) and bool(record.port)


def _target(record: ServerRecord) -> Target:
    assert record.ip is not None and record.port is not None
    return Target(host=record.ip, port=record.port)


class ReplicaSet:
    """Current primary and replicas of one named replica set.

    Only the client's fetch handler mutates this object. Readers may look
    at it at any time and see whatever was last loaded.
    """

    def __init__(
        self,
        name: str,
        *,
        connection_factory: ConnectionFactory = default_connection_factory,
        connection_options: Mapping[str, Any] | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self.name = name
        self.primary: ServerRecord | None = None
        self.replicas: list[ServerRecord] = []
        self._connection_factory = connection_factory
        self._connection_options = connection_options or {}
        self._rng = rng or random.Random()

    def load_primary(self, record: ServerRecord | None) -> bool:
        """Store a new primary record.

        Returns True if the address or the up/down status changed.
        """
        if record is not None and record.name != self.name:
            raise IntegrityError(
                f"Primary {record.name!r} loaded into wrong replica set {self.name!r}"
            )

        old = self.primary
        if old is None or record is None:
            changed = old is not record
        else:
            changed = (
                old.ip != record.ip
                or old.port != record.port
                or is_down(Role.PRIMARY, old) != is_down(Role.PRIMARY, record)
            )

        self.primary = record
        return changed

    def load_replicas(self, records: Sequence[ServerRecord]) -> bool:
        """Store a new replica list.

        Returns True if a replica appeared, disappeared or flipped up/down.
        Order is not significant.
        """
        records = list(records)
        old = self.replicas
        self.replicas = records

        if len(old) != len(records):
            return True

        for old_replica in old:
            match = next(
                (r for r in records if r.ip == old_replica.ip and r.port == old_replica.port),
                None,
            )
            if match is None:
                return True
            if is_down(Role.REPLICA, old_replica) != is_down(Role.REPLICA, match):
                return True

        return False

    def _live_replicas(self) -> list[ServerRecord]:
        return [r for r in self.replicas if _is_live(Role.REPLICA, r)]

    def get_primary_target(self) -> Target | None:
        if self.primary is None or not _is_live(Role.PRIMARY, self.primary):
            return None
        return _target(self.primary)

    def get_replica_target(self) -> Target | None:
        live = self._live_replicas()
        if not live:
            return None
        return _target(self._rng.choice(live))

    def get_all_replica_targets(self) -> list[Target]:
        return [_target(r) for r in self._live_replicas()]

    def _connect(self, target: Target) -> Any:
        return self._connection_factory(target.port, target.host, self._connection_options)

    def connect_primary(self) -> Any:
        """Create a client for the primary, or None if it is down."""
        target = self.get_primary_target()
        return None if target is None else self._connect(target)

    def connect_replica(self) -> Any:
        """Create a client for a random live replica, or None."""
        target = self.get_replica_target()
        return None if target is None else self._connect(target)

    def connect_all_replicas(self) -> list[Any]:
        return [self._connect(target) for target in self.get_all_replica_targets()]

    def describe(self) -> str:
        """Human readable summary, for logs."""

        def status(role: Role, record: ServerRecord | None) -> str:
            if record is None:
                return "(none) DOWN"
            state = "DOWN" if is_down(role, record) else "UP"
            return f"{record.ip}:{record.port} {state}"

        lines = [f"Replica set {self.name}", f"  primary: {status(Role.PRIMARY, self.primary)}"]
        lines.extend(f"  replica: {status(Role.REPLICA, r)}" for r in self.replicas)
        return "\n".join(lines)

    def __repr__(self) -> str:
        return f"ReplicaSet(name={self.name!r}, primary={self.primary!r}, replicas={len(self.replicas)})"
