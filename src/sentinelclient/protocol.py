"""Low-level command channel to a single sentinel."""

import asyncio
import contextlib
from typing import Any

from redis.asyncio.connection import Connection
from redis.asyncio.retry import Retry
from redis.backoff import NoBackoff
from redis.exceptions import RedisError

from sentinelclient.endpoints import Endpoint
from sentinelclient.exceptions import CommandTimeoutError, ConnectionError


class SentinelProtocol:
    """Command/reply and pub/sub handling for one sentinel connection.

    Commands are serialized on the connection so every reply is read by
    the caller that sent the matching command.
    """

    def __init__(
        self,
        connection: Connection,
        endpoint: Endpoint,
        *,
        command_timeout: float,
    ) -> None:
        self._connection = connection
        self._endpoint = endpoint
        self._command_timeout = command_timeout
        self._lock = asyncio.Lock()
        self._closed = False

    @classmethod
    async def open(
        cls,
        endpoint: Endpoint,
        *,
        connect_timeout: float,
        command_timeout: float,
    ) -> "SentinelProtocol":
        """Connect to a sentinel with a single attempt."""
        connection = Connection(
            host=endpoint.host,
            port=endpoint.port,
            socket_connect_timeout=connect_timeout,
            retry=Retry(NoBackoff(), 0),
            decode_responses=True,
            lib_name=None,
            lib_version=None,
        )

        try:
            await asyncio.wait_for(connection.connect(), timeout=connect_timeout)
        except TimeoutError as e:
            await cls._discard(connection)
            raise ConnectionError(f"Connection to {endpoint} timed out") from e
        except (RedisError, OSError) as e:
            await cls._discard(connection)
            raise ConnectionError(f"Failed to connect to {endpoint}: {e}") from e
        except BaseException:
            await cls._discard(connection)
            raise

        return cls(connection, endpoint, command_timeout=command_timeout)

    @property
    def endpoint(self) -> Endpoint:
        return self._endpoint

    @property
    def is_closed(self) -> bool:
        return self._closed

    async def execute(self, *args: Any) -> Any:
        """Send a command and return its raw reply.

        A timeout leaves the reply stream unusable, so the connection is
        closed and any late reply is never read.
        """
        if self._closed:
            raise ConnectionError(f"Connection to {self._endpoint} is closed")

        command = " ".join(str(arg) for arg in args)

        try:
            async with asyncio.timeout(self._command_timeout):
                async with self._lock:
                    await self._connection.send_command(*args)
                    return await self._connection.read_response()
        except TimeoutError as e:
            await self.close()
            raise CommandTimeoutError(f"Command timed out: {command}") from e
        except RedisError as e:
            raise ConnectionError(f"Command {command} failed on {self._endpoint}: {e}") from e

    async def info(self) -> Any:
        return await self.execute("INFO")

    async def masters(self) -> Any:
        return await self.execute("SENTINEL", "MASTERS")

    async def replicas(self, name: str) -> Any:
        return await self.execute("SENTINEL", "SLAVES", name)

    async def sentinels(self, name: str) -> Any:
        return await self.execute("SENTINEL", "SENTINELS", name)

    async def subscribe(self, channels: list[str]) -> None:
        """Subscribe to notification channels.

        After this the connection only carries pushed messages; read them
        with ``read_message``.
        """
        try:
            async with asyncio.timeout(self._command_timeout):
                async with self._lock:
                    await self._connection.send_command("SUBSCRIBE", *channels)
        except TimeoutError as e:
            await self.close()
            raise CommandTimeoutError("Command timed out: SUBSCRIBE") from e
        except RedisError as e:
            raise ConnectionError(f"Subscribe failed on {self._endpoint}: {e}") from e

    async def read_message(self) -> tuple[str, str]:
        """Wait for the next pushed message.

        Returns (channel, message). Subscription confirmations are skipped.
        """
        while True:
            if self._closed:
                raise ConnectionError(f"Connection to {self._endpoint} is closed")
            try:
                response = await self._connection.read_response()
            except RedisError as e:
                raise ConnectionError(f"Lost connection to {self._endpoint}: {e}") from e

            if isinstance(response, list) and len(response) == 3 and response[0] == "message":
                return str(response[1]), str(response[2])

    async def close(self) -> None:
        """Close the connection."""
        if self._closed:
            return
        self._closed = True
        await self._discard(self._connection)

    @staticmethod
    async def _discard(connection: Connection) -> None:
        with contextlib.suppress(RedisError, OSError):
            await connection.disconnect(nowait=True)
