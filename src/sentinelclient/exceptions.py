"""Exceptions for the sentinel client."""


class SentinelError(Exception):
    """Base exception for sentinel client errors."""

    pass


class ConfigurationError(SentinelError):
    """Invalid endpoint list or option value."""

    pass


class ConnectionError(SentinelError):
    """Error establishing or maintaining a connection to a sentinel."""

    pass


class CommandTimeoutError(ConnectionError):
    """A sentinel did not answer a command in time."""

    pass


class NotASentinelError(ConnectionError):
    """The peer answered, but is not running in sentinel mode."""

    pass


class ProtocolError(SentinelError):
    """Malformed reply from a sentinel."""

    pass


class OutageError(SentinelError):
    """None of the known sentinels could be reached."""

    pass


class IntegrityError(SentinelError):
    """A record was loaded into the wrong replica set."""

    pass
