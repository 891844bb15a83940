"""Parsing of sentinel replies into server records."""

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)

SENTINEL_INFO_MARKER = "# Sentinel"


class Role(Enum):
    """Role of a server within a replica set."""

    PRIMARY = "primary"
    REPLICA = "replica"
    SENTINEL = "sentinel"


# Sentinel flags a primary down only once a quorum agrees (o_down); a single
# sentinel's opinion (s_down) is enough for replicas.
DOWN_FLAGS = {
    Role.PRIMARY: "o_down",
    Role.REPLICA: "s_down",
}


@dataclass
class ServerRecord:
    """One row of a SENTINEL MASTERS / SLAVES / SENTINELS reply."""

    name: str
    ip: str | None = None
    port: int | None = None
    flags: list[str] = field(default_factory=list)
    extra: dict[str, str] = field(default_factory=dict)


def is_info_response_valid(info: Any) -> bool:
    """Check that an INFO reply comes from a process in sentinel mode."""
    if not info or not isinstance(info, str):
        return False
    return SENTINEL_INFO_MARKER in info


def is_down(role: Role, record: ServerRecord | None) -> bool:
    """Whether a record counts as down. Absent records are always down."""
    if record is None:
        return True
    return DOWN_FLAGS[role] in record.flags


def _parse_row(row: Any) -> ServerRecord | str:
    """Parse one flat key/value row. Returns the record or a rejection reason."""
    if not isinstance(row, (list, tuple)) or len(row) % 2 == 1:
        return "malformed row"

    fields: dict[str, Any] = {}
    for key, value in zip(row[::2], row[1::2], strict=True):
        if not isinstance(key, str):
            return "row has a non-string key"
        if key in fields:
            return "row had duplicate property"

        if key == "port":
            try:
                value = int(value)
            except (TypeError, ValueError):
                return "row has a non-numeric port"
            if value < 0:
                return "row has a negative port"
        elif key == "flags":
            value = str(value).split(",")

        fields[key] = value

    name = fields.pop("name", None)
    if not name:
        return "row lacked a name property"

    return ServerRecord(
        name=str(name),
        ip=fields.pop("ip", None),
        port=fields.pop("port", None),
        flags=fields.pop("flags", []),
        extra={str(k): str(v) for k, v in fields.items()},
    )


def parse_server_list(role: Role, result: Any) -> list[ServerRecord] | None:
    """Parse a list reply into records.

    Any bad row rejects the whole reply: the reason is logged and None
    returned.
    """
    label = f"{role.value.capitalize()} list rejected:"

    if not isinstance(result, (list, tuple)):
        logger.warning("%s bad input", label)
        return None

    records: list[ServerRecord] = []
    for row in result:
        parsed = _parse_row(row)
        if isinstance(parsed, str):
            logger.warning("%s %s", label, parsed)
            return None
        records.append(parsed)

    return records


def build_lookup(records: Sequence[ServerRecord] | None) -> dict[str, ServerRecord] | None:
    """Index records by name. Returns None on duplicate names."""
    if records is None:
        # Parsing already failed and logged why.
        return None

    lookup: dict[str, ServerRecord] = {}
    for record in records:
        if record.name in lookup:
            logger.warning("Failed to build lookup: duplicate name %r", record.name)
            return None
        lookup[record.name] = record

    return lookup
