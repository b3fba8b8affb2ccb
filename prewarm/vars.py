import os

SERVICE_NAME = os.getenv("SERVICE_NAME", "prewarm-proxy")

ORIGIN_HOSTNAME = os.environ.get("ORIGIN_HOSTNAME", "example.com")
# Empty means: keep the scheme/port of the incoming request
ORIGIN_SCHEME = os.environ.get("ORIGIN_SCHEME", "").lower()
ORIGIN_PORT = int(os.environ["ORIGIN_PORT"]) if os.environ.get("ORIGIN_PORT") else None

PROXY_TIMEOUT = float(os.getenv("PROXY_TIMEOUT", "300"))  # 5 minutes default
SINK_WRITE_TIMEOUT = float(os.getenv("SINK_WRITE_TIMEOUT", "60"))
BACKGROUND_DRAIN_TIMEOUT = float(os.getenv("BACKGROUND_DRAIN_TIMEOUT", "30"))

CACHE_EVERYTHING = os.getenv("CACHE_EVERYTHING", "true").lower() == "true"
CACHE_TTL = int(os.environ["CACHE_TTL"]) if os.environ.get("CACHE_TTL") else None
CACHE_KEY = os.getenv("CACHE_KEY") or None

OTLP_ENDPOINT = os.getenv("OTLP_ENDPOINT")


def _parse_key_value_list(raw: str) -> dict:
    mapping: dict = {}
    if not raw:
        return mapping
    for entry in raw.split(","):
        entry = entry.strip()
        if not entry:
            continue
        if "=" in entry:
            key, val = entry.split("=", 1)
            key = key.strip()
            val = val.strip()
            if key and val:
                mapping[key] = val
    return mapping


# "key=value,key2=value2"
OTLP_HEADERS = _parse_key_value_list(os.getenv("OTLP_HEADERS", ""))
METRICS_PATH = os.getenv("METRICS_PATH", "/metrics")
