"""Exceptions raised by the ZhiDao streaming client."""


class ZhiDaoError(Exception):
    """Base class for all client errors."""
    pass


class InvalidInputError(ZhiDaoError, ValueError):
    """Raised when a query is empty or whitespace-only."""
    pass


class DecodeError(ZhiDaoError):
    """Raised when one event payload cannot be decoded.

    Decode errors are never fatal to a stream: the offending payload is
    skipped and the following frames are processed normally.
    """

    def __init__(self, message: str, payload: str = ""):
        super().__init__(message)
        self.payload = payload


class StreamConnectionError(ZhiDaoError):
    """Raised when the transport fails or closes before the answer completes."""
    pass


class UnexpectedDisconnectError(StreamConnectionError):
    """The stream closed cleanly but no ``complete`` event was received."""
    pass


class ServerReportedError(ZhiDaoError):
    """The backend sent an explicit ``error`` event."""
    pass
