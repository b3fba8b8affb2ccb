import httpx
import pytest

from prewarm.origin import CacheDirective, OriginFetcher
from prewarm.utils_tests.origin_stub import OriginStub


@pytest.fixture(autouse=True)
def origin_host(monkeypatch):
    monkeypatch.setattr("prewarm.origin.fetcher.ORIGIN_HOSTNAME", "example.com")
    monkeypatch.setattr("prewarm.origin.fetcher.ORIGIN_SCHEME", "")
    monkeypatch.setattr("prewarm.origin.fetcher.ORIGIN_PORT", None)
    return "example.com"


@pytest.fixture
def origin():
    return OriginStub()


@pytest.fixture
def fetcher(origin):
    return OriginFetcher(
        directive=CacheDirective(cache_everything=True),
        transport=httpx.MockTransport(origin),
    )
