import logging
from dataclasses import dataclass, field
from typing import AsyncIterator, Callable, Optional

import httpx

from prewarm.errors import NetworkError
from prewarm.utils import redact_url
from prewarm.vars import (
    CACHE_EVERYTHING,
    CACHE_KEY,
    CACHE_TTL,
    ORIGIN_HOSTNAME,
    ORIGIN_PORT,
    ORIGIN_SCHEME,
    PROXY_TIMEOUT,
)

logger = logging.getLogger("uvicorn.error")

# Request extension key the edge transport reads the cache directive from
CACHE_EXTENSION = "cache_directive"

# Hop-by-hop headers that should NOT be forwarded (RFC 2616)
HOP_BY_HOP_HEADERS = {
    "connection",
    "keep-alive",
    "proxy-authenticate",
    "proxy-authorization",
    "te",
    "trailers",
    "transfer-encoding",
    "upgrade",
}

# Set by the transport for the rewritten request
TRANSPORT_MANAGED_HEADERS = {"host", "content-length", "accept-encoding"}


@dataclass(frozen=True)
class CacheDirective:
    """
    Hint asking the edge cache to store the response.

    ``cache_everything`` caches according to the origin's cache-control
    headers, ``cache_ttl`` caches regardless of them for that many seconds.
    The same directive goes out with every fetch, including cache-warming
    ones, so a coarse directive on per-user content can poison the cache.
    """

    cache_everything: bool = True
    cache_ttl: Optional[int] = None
    cache_key: Optional[str] = None

    @classmethod
    def from_env(cls) -> "CacheDirective":
        return cls(
            cache_everything=CACHE_EVERYTHING, cache_ttl=CACHE_TTL, cache_key=CACHE_KEY
        )

    def as_extension(self) -> dict:
        directive = {"cache_everything": self.cache_everything}
        if self.cache_ttl is not None:
            directive["cache_ttl"] = self.cache_ttl
        if self.cache_key:
            directive["cache_key"] = self.cache_key
        return directive


@dataclass(frozen=True)
class IncomingRequest:
    """The parts of the client request that every origin fetch reuses."""

    method: str
    url: str
    headers: list[tuple[str, str]] = field(default_factory=list)
    body: bytes = b""


def build_origin_url(url: str) -> str:
    """
    Point an incoming request URL at the origin host.

    Path and query are kept; scheme and port follow the incoming request
    unless ORIGIN_SCHEME / ORIGIN_PORT are configured.
    """
    parsed = httpx.URL(url)
    changes = {"host": ORIGIN_HOSTNAME}
    if ORIGIN_SCHEME:
        changes["scheme"] = ORIGIN_SCHEME
    if ORIGIN_PORT is not None:
        changes["port"] = ORIGIN_PORT
    return str(parsed.copy_with(**changes))


def forwardable_headers(headers: list[tuple[str, str]]) -> list[tuple[str, str]]:
    """Drop hop-by-hop headers and the ones the transport sets itself."""
    return [
        (name, value)
        for name, value in headers
        if name.lower() not in HOP_BY_HOP_HEADERS
        and name.lower() not in TRANSPORT_MANAGED_HEADERS
    ]


class OriginResponse:
    """
    A streamed origin response: status and headers are available, the body
    is still on the wire.

    The body can be consumed once, through ``iter_raw`` (bytes exactly as
    sent, still content-encoded) or ``iter_decoded`` (transport encodings
    such as gzip removed). Either iterator closes the response when it ends.
    """

    def __init__(self, response: httpx.Response):
        self._response = response

    @property
    def status_code(self) -> int:
        return self._response.status_code

    @property
    def url(self) -> str:
        return str(self._response.request.url)

    @property
    def headers(self) -> httpx.Headers:
        return self._response.headers

    @property
    def content_type(self) -> str:
        return self._response.headers.get("content-type", "")

    @property
    def is_html(self) -> bool:
        return "text/html" in self.content_type.lower()

    @property
    def is_success(self) -> bool:
        return self._response.is_success

    @property
    def is_content_encoded(self) -> bool:
        encoding = self._response.headers.get("content-encoding", "").strip().lower()
        return encoding not in ("", "identity")

    def response_headers(self, decoded: bool = False) -> list[tuple[bytes, bytes]]:
        """
        Raw header pairs to send to the client, duplicates kept.

        With ``decoded`` the body is forwarded after transport decoding and
        may end early, so the length header is dropped, and so is the
        encoding header when the origin body was encoded.
        """
        dropped = set(HOP_BY_HOP_HEADERS)
        if decoded:
            dropped.add("content-length")
            if self.is_content_encoded:
                dropped.add("content-encoding")
        return [
            (name, value)
            for name, value in self._response.headers.raw
            if name.decode("latin-1").lower() not in dropped
        ]

    def iter_raw(self) -> AsyncIterator[bytes]:
        return self._iterate(self._response.aiter_raw)

    def iter_decoded(self) -> AsyncIterator[bytes]:
        return self._iterate(self._response.aiter_bytes)

    async def _iterate(self, chunks: Callable[[], AsyncIterator[bytes]]) -> AsyncIterator[bytes]:
        try:
            if self._response.is_stream_consumed:
                # Bodies built in memory are read by httpx up front
                if self._response.content:
                    yield self._response.content
                return
            async for chunk in chunks():
                yield chunk
        except httpx.RequestError as e:
            raise NetworkError(
                f"Reading the origin body failed: {e}",
                url=self.url,
                timeout=isinstance(e, httpx.TimeoutException),
            ) from e
        finally:
            await self._response.aclose()

    async def discard(self) -> int:
        """Read the whole body and drop it; returns the number of bytes read."""
        size = 0
        async for chunk in self.iter_raw():
            size += len(chunk)
        return size

    async def aclose(self) -> None:
        await self._response.aclose()


class OriginFetcher:
    """
    Issues origin requests with the cache directive attached.

    One pooled client serves the primary request and all cache-warming
    requests. Redirects are passed back untouched; there are no retries.
    """

    def __init__(
        self,
        directive: Optional[CacheDirective] = None,
        timeout: float = PROXY_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.directive = directive or CacheDirective.from_env()
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(timeout),
            follow_redirects=False,
            transport=transport,
        )

    def build_request(self, url: str, template: IncomingRequest) -> httpx.Request:
        return self._client.build_request(
            method=template.method,
            url=url,
            headers=forwardable_headers(template.headers),
            content=template.body or None,
            extensions={CACHE_EXTENSION: self.directive.as_extension()},
        )

    async def fetch(self, url: str, template: IncomingRequest) -> OriginResponse:
        """
        Send ``template`` to ``url`` and return once headers are in.

        Raises:
            NetworkError: DNS, connect, timeout or protocol failure.
        """
        request = self.build_request(url, template)
        logger.debug(f"[Origin] {template.method} {redact_url(url)}")
        try:
            response = await self._client.send(request, stream=True)
        except httpx.RequestError as e:
            raise NetworkError(
                f"Origin request to {redact_url(url)} failed: {e}",
                url=url,
                timeout=isinstance(e, httpx.TimeoutException),
            ) from e
        return OriginResponse(response)

    async def aclose(self) -> None:
        await self._client.aclose()
