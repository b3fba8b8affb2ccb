from prometheus_client import Counter

LINKS_DISCOVERED = Counter(
    "prewarm_links_discovered_total",
    "Anchor links found in proxied HTML responses",
)
EXTRACTION_FAILURES = Counter(
    "prewarm_extraction_failures_total",
    "HTML responses whose streaming extraction ended early",
    ["kind"],
)
WARM_FETCHES = Counter(
    "prewarm_warm_fetches_total",
    "Background cache-warming fetches by outcome",
    ["outcome"],
)
