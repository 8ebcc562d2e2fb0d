"""Exception types for the T3 client.

Input and precondition errors are raised before any request is sent.
Protocol and authentication errors come from server responses. Transport
failures (``httpx.HTTPError``) are never wrapped and reach the caller as-is.
"""


class T3Error(Exception):
    """Base exception for all T3 client errors."""


class ValidationError(T3Error, ValueError):
    """Bad caller input or a missing endpoint in the configuration."""


class PreconditionError(T3Error):
    """An authenticated call was made without an active login."""


class ProtocolError(T3Error):
    """The server response did not follow the expected protocol."""


class AuthenticationError(ProtocolError):
    """The server rejected the login handshake."""
