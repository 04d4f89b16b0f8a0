"""
Geth Facade Exceptions

Custom exception classes shared by the dispatcher, the transports and
backend implementations.
"""


class FacadeException(Exception):
    """Base exception for the facade."""
    pass


class BackendError(FacadeException):
    """
    Application-level failure reported by a backend.

    The message is forwarded verbatim to the client as a -32000 error.
    """
    pass


class HexDecodeError(FacadeException, ValueError):
    """A hex-encoded parameter could not be decoded."""
    pass


class UnsupportedBlockTagError(FacadeException, ValueError):
    """Block tag is neither a known symbolic name nor a hex number."""
    pass


class SubscriptionError(FacadeException):
    """Subscription could not be created or is not supported."""
    pass
