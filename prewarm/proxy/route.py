import logging
from typing import AsyncIterator, Optional

from fastapi import APIRouter, Request
from fastapi.responses import PlainTextResponse, Response, StreamingResponse
from opentelemetry import trace

from prewarm.crawler import BackgroundCrawler, CrawlResult
from prewarm.errors import NetworkError, WriteError
from prewarm.extract import StreamChannel, StreamingLinkExtractor
from prewarm.keepalive import KeepAlive
from prewarm.metrics import EXTRACTION_FAILURES, LINKS_DISCOVERED
from prewarm.origin import (
    IncomingRequest,
    OriginFetcher,
    OriginResponse,
    build_origin_url,
)
from prewarm.utils import redact_url, url_origin
from prewarm.utils.exception_logging import (
    format_exception_message,
    log_exception_with_details,
)

router = APIRouter()
tracer = trace.get_tracer(__name__)
logger = logging.getLogger("uvicorn.error")

FALLBACK_ERROR_MESSAGE = "Proxy request failed"


async def read_incoming(request: Request) -> IncomingRequest:
    body = await request.body()
    return IncomingRequest(
        method=request.method,
        url=str(request.url),
        headers=list(request.headers.items()),
        body=body,
    )


def error_response(error: BaseException) -> Response:
    """
    Minimal response for a failure before anything was sent to the client.

    Origin timeouts map to 504, other network failures to 502, anything
    else to 500.
    """
    message = format_exception_message(error) or FALLBACK_ERROR_MESSAGE
    if isinstance(error, NetworkError):
        status_code = 504 if error.timeout else 502
    else:
        status_code = 500
    return PlainTextResponse(message, status_code=status_code)


def committed_response(
    origin_response: OriginResponse, body: AsyncIterator[bytes], decoded: bool = False
) -> StreamingResponse:
    """Client response with the origin's status and headers around ``body``."""
    response = StreamingResponse(body, status_code=origin_response.status_code)
    response.raw_headers = origin_response.response_headers(decoded=decoded)
    return response


async def extract_and_warm(
    extractor: StreamingLinkExtractor,
    crawler: BackgroundCrawler,
    origin: str,
    template: IncomingRequest,
) -> list[CrawlResult]:
    """
    Background job of an HTML response: stream it, then warm its links.

    The status line is already on its way to the client, so a failed
    extraction can only be logged; no crawl starts from a partial link list.
    """
    try:
        links = await extractor.run()
    except WriteError as e:
        EXTRACTION_FAILURES.labels(kind=type(e).__name__).inc()
        logger.info(f"[Extractor] Client stream ended early, skipping cache warming: {e}")
        return []
    except Exception as e:
        EXTRACTION_FAILURES.labels(kind=type(e).__name__).inc()
        log_exception_with_details(
            logger,
            f"[Extractor] Body for {origin} truncated after {extractor.bytes_written} bytes,"
            " skipping cache warming:",
            e,
            level=logging.WARNING,
        )
        return []

    LINKS_DISCOVERED.inc(len(links))
    return await crawler.crawl(links, origin, template)


async def forward_to_origin(
    request: Request, fetcher: OriginFetcher, keep_alive: KeepAlive
) -> Response:
    """
    Proxy one request to the origin.

    Non-HTML responses stream back untouched. HTML responses stream back
    through a link extractor, and the links it finds are warmed in a
    background job registered with ``keep_alive``. Only failures up to the
    origin's headers turn into an error response.
    """
    with tracer.start_as_current_span("proxy_request") as span:
        origin_response: Optional[OriginResponse] = None
        try:
            incoming = await read_incoming(request)
            target_url = build_origin_url(incoming.url)
            span.set_attribute("proxy.target_url", redact_url(target_url))
            span.set_attribute("proxy.method", incoming.method)
            logger.debug(
                f"Proxying {incoming.method} {request.url.path} -> {redact_url(target_url)}"
            )

            origin_response = await fetcher.fetch(target_url, incoming)
            span.set_attribute("proxy.status_code", origin_response.status_code)

            if not origin_response.is_html:
                return committed_response(origin_response, origin_response.iter_raw())

            span.set_attribute("proxy.extract_links", True)
            channel = StreamChannel()
            extractor = StreamingLinkExtractor(origin_response.iter_decoded(), channel)
            response = committed_response(origin_response, channel.body(), decoded=True)
        except Exception as e:
            span.set_attribute("proxy.error", type(e).__name__)
            log_exception_with_details(
                logger, f"[Proxy] {request.method} {request.url.path} failed:", e
            )
            if origin_response is not None:
                await origin_response.aclose()
            return error_response(e)

        keep_alive.wait_until(
            extract_and_warm(
                extractor, BackgroundCrawler(fetcher), url_origin(target_url), incoming
            ),
            name=f"prewarm {redact_url(target_url)}",
        )
        return response


# Register catch-all route for proxying
@router.api_route(
    "/{path:path}", methods=["GET", "POST", "PUT", "DELETE", "PATCH", "HEAD", "OPTIONS"]
)
async def proxy_all(request: Request, path: str):
    """Catch-all route that proxies all requests to the origin server."""
    return await forward_to_origin(
        request, request.app.state.fetcher, request.app.state.keep_alive
    )
