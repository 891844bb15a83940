"""Validation of sentinel candidates."""

import logging

from sentinelclient.endpoints import Endpoint
from sentinelclient.exceptions import NotASentinelError
from sentinelclient.protocol import SentinelProtocol
from sentinelclient.records import is_info_response_valid

logger = logging.getLogger(__name__)


async def probe_sentinel(
    endpoint: Endpoint,
    *,
    connect_timeout: float,
    command_timeout: float,
) -> SentinelProtocol:
    """Connect to a candidate and check that it really is a sentinel.

    Returns the open, validated connection. Every failure (refused or
    timed out connect, INFO timeout, hangup, a data node answering
    instead of a sentinel) raises ConnectionError and leaves nothing open.
    """
    logger.debug("Probing sentinel %s", endpoint)

    protocol = await SentinelProtocol.open(
        endpoint,
        connect_timeout=connect_timeout,
        command_timeout=command_timeout,
    )

    try:
        info = await protocol.info()
        if not is_info_response_valid(info):
            raise NotASentinelError(f"{endpoint} is not running in sentinel mode")
    except BaseException:
        await protocol.close()
        raise

    logger.debug("Successfully connected to %s", endpoint)
    return protocol
