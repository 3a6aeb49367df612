"""
Custom exceptions for the remote signer client.
"""

from __future__ import annotations


class BunkerError(Exception):
    """Base class for all remote signer client errors."""


class MalformedDescriptor(BunkerError):
    """The connection string cannot be parsed into a descriptor."""

    def __init__(self, message: str, connection_string: str | None = None) -> None:
        super().__init__(message)
        self.connection_string = connection_string


class TransportUnavailable(BunkerError):
    """No relay could be used to reach the remote signer."""


class AuthorizationTimeout(BunkerError):
    """The remote key was not obtained within the authorization window."""

    def __init__(self, message: str, *, auth_requested: bool = False) -> None:
        super().__init__(message)
        self.auth_requested = auth_requested


class SigningFailed(BunkerError):
    """All attempts for one remote operation failed."""

    def __init__(self, message: str, last_error: BaseException | None = None) -> None:
        super().__init__(message)
        self.last_error = last_error


class SessionClosed(BunkerError):
    """An operation was attempted on (or pending at) a closed session."""


class UnsupportedOperation(BunkerError):
    """The remote signer does not provide the requested method."""


class IdentityStoreError(BunkerError):
    """The persisted client key is unreadable."""


class ConnectionInProgress(BunkerError):
    """A login is already running for this client."""


class SessionStateError(BunkerError):
    """An illegal session state transition was requested."""


class ChannelClosedError(BunkerError):
    """The remote channel reports itself closed."""


class RemoteSignerError(BunkerError):
    """The remote signer answered with an error."""


class PointerStructureError(BunkerError):
    """The protocol implementation cannot use the given descriptor."""


class ProtocolUnavailable(BunkerError):
    """The primary protocol implementation cannot be loaded."""
