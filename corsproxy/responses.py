# corsproxy/responses.py
from collections.abc import AsyncIterator
from datetime import datetime, timezone

import httpx
from fastapi.responses import JSONResponse, StreamingResponse

import cors
from config import Policy
from headers import filter_response_headers
from proxy import PolicyRejection, ProxyOutcome, TimedOut

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "X-XSS-Protection": "1; mode=block",
}


def _timestamp() -> str:
    """ISO-8601 UTC with millisecond precision and a Z suffix."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def error_response(message: str, status_code: int = 400) -> JSONResponse:
    return JSONResponse(
        content={"error": message, "timestamp": _timestamp()},
        status_code=status_code,
        headers=cors.error_headers(),
    )


def failure_response(outcome: ProxyOutcome) -> JSONResponse:
    """Map a non-success executor outcome to its error envelope."""
    if isinstance(outcome, PolicyRejection):
        return error_response(outcome.reason, outcome.status_code)
    if isinstance(outcome, TimedOut):
        return error_response("Request timeout", 408)
    return error_response("Failed to fetch target URL", 502)


def proxy_response(
    upstream: httpx.Response,
    body: AsyncIterator[bytes],
    origin: str | None,
    policy: Policy,
) -> StreamingResponse:
    headers = filter_response_headers(upstream.headers.multi_items())
    headers.update(cors.relay_headers(origin, policy))
    headers.update(SECURITY_HEADERS)
    return StreamingResponse(body, status_code=upstream.status_code, headers=headers)
