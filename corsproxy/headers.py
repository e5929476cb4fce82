# corsproxy/headers.py
from collections.abc import Iterable, Mapping

# Identifying / forwarding metadata that must never reach a third-party target.
STRIP_REQUEST_HEADERS = frozenset({
    "host",
    "origin",
    "referer",
    "cookie",
    "set-cookie",
    "x-forwarded-for",
    "x-real-ip",
    "cf-connecting-ip",
    "cf-ray",
    "cf-visitor",
})

# The only upstream headers relayed to the caller; CORS and security headers
# are always the proxy's own.
KEEP_RESPONSE_HEADERS = frozenset({
    "content-type",
    "content-length",
    "content-encoding",
    "cache-control",
    "expires",
    "last-modified",
    "etag",
})

# Meaningless on a request that is sent without a body.
_BODY_FRAMING_HEADERS = frozenset({"content-length", "transfer-encoding"})


def clean_request_headers(headers: Mapping[str, str], *, has_body: bool = True) -> dict[str, str]:
    """Copy inbound request headers minus the deny-set (case-insensitive)."""
    drop = STRIP_REQUEST_HEADERS if has_body else STRIP_REQUEST_HEADERS | _BODY_FRAMING_HEADERS
    return {k: v for k, v in headers.items() if k.lower() not in drop}


def filter_response_headers(headers: Iterable[tuple[str, str]]) -> dict[str, str]:
    """Keep only the allow-set of upstream response headers (case-insensitive)."""
    return {k.lower(): v for k, v in headers if k.lower() in KEEP_RESPONSE_HEADERS}
