from .fetcher import (
    CACHE_EXTENSION,
    CacheDirective,
    IncomingRequest,
    OriginFetcher,
    OriginResponse,
    build_origin_url,
)

__all__ = [
    "CACHE_EXTENSION",
    "CacheDirective",
    "IncomingRequest",
    "OriginFetcher",
    "OriginResponse",
    "build_origin_url",
]
