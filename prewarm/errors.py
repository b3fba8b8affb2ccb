"""
Failure taxonomy of the proxy pipeline.

``NetworkError``, ``DecodeError`` and ``WriteError`` raised before the client
response is committed are turned into an error response by the route. Raised
while the body is streaming they can only end the stream early and are
reported to whatever awaits the extraction. ``CrawlTaskError`` never leaves
the background crawler.
"""

from typing import Optional


class ProxyError(Exception):
    """Base class for all pipeline failures."""


class NetworkError(ProxyError):
    """Origin unreachable, or the transport failed during a fetch."""

    def __init__(self, message: str, url: Optional[str] = None, timeout: bool = False):
        super().__init__(message)
        self.url = url
        self.timeout = timeout


class DecodeError(ProxyError):
    """The incremental decoder hit an invalid byte sequence."""

    def __init__(self, message: str, offset: int = 0):
        super().__init__(message)
        self.offset = offset


class WriteError(ProxyError):
    """The output sink rejected a write, usually because the client went away."""


class CrawlTaskError(ProxyError):
    """A single cache-warming fetch failed."""

    def __init__(self, message: str, url: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(message)
        self.url = url
        self.status_code = status_code
