from typing import Optional
from urllib.parse import urlsplit


def url_origin(url: str) -> str:
    """Return ``scheme://host[:port]`` of a URL, the base for resolving links."""
    parts = urlsplit(url)
    return f"{parts.scheme}://{parts.netloc}"


def redact_url(url: Optional[str]) -> str:
    """Drop the query string so tokens in URLs do not end up in logs."""
    if not url:
        return "<empty>"
    parts = urlsplit(url)
    suffix = "?..." if parts.query else ""
    return f"{parts.scheme}://{parts.netloc}{parts.path}{suffix}"
