import asyncio
from typing import AsyncIterator, Optional

import httpx


async def iter_chunks(chunks, pulled: Optional[list] = None) -> AsyncIterator[bytes]:
    """Async byte source; appends every chunk handed out to ``pulled``."""
    for chunk in chunks:
        if pulled is not None:
            pulled.append(chunk)
        yield chunk


def split(data: bytes, size: int) -> list[bytes]:
    return [data[i : i + size] for i in range(0, len(data), size)] or [b""]


class OriginStub:
    """
    Stand-in for the origin server behind an ``httpx.MockTransport``.

    Pages are registered by path; every request is recorded. A page can be
    held back with an ``asyncio.Event`` gate or fail with a transport error.
    """

    def __init__(self):
        self.pages: dict[str, dict] = {}
        self.requests: list[httpx.Request] = []
        self.pulled: dict[str, list[bytes]] = {}

    def serve(
        self,
        path: str,
        body: bytes = b"",
        content_type: Optional[str] = "text/html; charset=utf-8",
        status: int = 200,
        chunks: Optional[list] = None,
        headers: Optional[list] = None,
        gate: Optional[asyncio.Event] = None,
        error: Optional[Exception] = None,
    ) -> None:
        response_headers = list(headers or [])
        if content_type is not None:
            response_headers.append(("content-type", content_type))
        self.pages[path] = {
            "status": status,
            "chunks": chunks if chunks is not None else [body],
            "headers": response_headers,
            "gate": gate,
            "error": error,
        }

    @property
    def paths(self) -> list[str]:
        return [request.url.path for request in self.requests]

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        page = self.pages.get(request.url.path)
        if page is None:
            return httpx.Response(
                404,
                headers=[("content-type", "text/plain")],
                content=iter_chunks([b"not found"]),
            )
        if page["gate"] is not None:
            await page["gate"].wait()
        if page["error"] is not None:
            raise page["error"]
        pulled = self.pulled.setdefault(request.url.path, [])
        return httpx.Response(
            page["status"],
            headers=page["headers"],
            content=iter_chunks(page["chunks"], pulled),
        )


