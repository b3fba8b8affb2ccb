import asyncio
import logging
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urljoin, urlsplit

from opentelemetry import trace

from prewarm.errors import CrawlTaskError
from prewarm.metrics import WARM_FETCHES
from prewarm.origin import IncomingRequest, OriginFetcher
from prewarm.utils import redact_url
from prewarm.utils.traced_requests import traced_request

logger = logging.getLogger("uvicorn.error")
tracer = trace.get_tracer(__name__)

WARMABLE_SCHEMES = ("http", "https")


@dataclass(frozen=True)
class CrawlTask:
    """A discovered link and the origin (scheme + host) of the page it came from."""

    link: str
    origin: str

    def target_url(self) -> str:
        """
        Resolve the link against the page origin.

        Raises:
            CrawlTaskError: the result is not an http(s) URL.
        """
        url = urljoin(self.origin, self.link)
        scheme = urlsplit(url).scheme.lower()
        if scheme not in WARMABLE_SCHEMES:
            raise CrawlTaskError(f"Not a warmable URL: {self.link!r}", url=url)
        return url


@dataclass
class CrawlResult:
    task: CrawlTask
    url: Optional[str] = None
    status_code: Optional[int] = None
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class BackgroundCrawler:
    """
    Warms the edge cache for every link discovered on a page.

    All fetches run concurrently and each one settles into its own
    ``CrawlResult``. A failing link is logged and recorded, it never
    cancels its siblings and never reaches the client. No deduplication,
    no recursion, no rate limiting.
    """

    def __init__(self, fetcher: OriginFetcher):
        self._fetcher = fetcher

    async def crawl(
        self, links: list[str], origin: str, template: IncomingRequest
    ) -> list[CrawlResult]:
        tasks = [CrawlTask(link=link, origin=origin) for link in links]
        if not tasks:
            return []

        results = await asyncio.gather(*(self._warm(task, template) for task in tasks))

        failed = sum(1 for result in results if not result.ok)
        logger.info(
            f"[Crawler] Done fetching {len(results)} links for {origin} ({failed} failed)"
        )
        return list(results)

    async def _warm(self, task: CrawlTask, template: IncomingRequest) -> CrawlResult:
        result = CrawlResult(task=task)
        try:
            result.url = task.target_url()
            with traced_request(
                tracer,
                "cache_warm",
                template.method,
                result.url,
                f"[Crawler] Fetching {redact_url(result.url)}",
                extra_attrs={"prewarm.link": task.link},
            ) as span:
                response = await self._fetcher.fetch(result.url, template)
                result.status_code = response.status_code
                span.set_attribute("http.status_code", response.status_code)
                if not response.is_success:
                    await response.aclose()
                    raise CrawlTaskError(
                        f"Origin answered {response.status_code}",
                        url=result.url,
                        status_code=response.status_code,
                    )
                # The edge cache only stores a response that was read completely
                await response.discard()
        except Exception as e:
            if not isinstance(e, CrawlTaskError):
                wrapped = CrawlTaskError(f"{type(e).__name__}: {e}", url=result.url)
                wrapped.__cause__ = e
                e = wrapped
            result.error = e
            WARM_FETCHES.labels(outcome="failed").inc()
            logger.warning(
                f"[Crawler] Warming {redact_url(result.url) if result.url else task.link!r} failed: "
                f"{type(e).__name__}: {e}"
            )
            return result

        WARM_FETCHES.labels(outcome="warmed").inc()
        return result
