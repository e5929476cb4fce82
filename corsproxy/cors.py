# corsproxy/cors.py
from fastapi.responses import Response

from config import Policy

ALLOW_METHODS = "GET, POST, PUT, DELETE, OPTIONS"
ALLOW_HEADERS = "Content-Type, Authorization, X-Requested-With"
EXPOSE_HEADERS = "Content-Length, Content-Type"
MAX_AGE = "86400"


def origin_allowed(origin: str | None, policy: Policy) -> bool:
    return policy.any_origin or origin in policy.allowed_origins


def check_origin(origin: str | None, policy: Policy) -> str | None:
    """Return a rejection reason for a disallowed Origin, or None.

    Requests without an Origin header (same-origin, server-to-server) pass.
    """
    if not origin:
        return None
    if not origin_allowed(origin, policy):
        return f"Origin {origin} is not allowed"
    return None


def preflight(origin: str | None, policy: Policy) -> Response:
    """Answer an OPTIONS preflight without contacting the target."""
    if not origin_allowed(origin, policy):
        return Response(status_code=403)
    return Response(
        status_code=200,
        headers={
            "Access-Control-Allow-Origin": origin or "*",
            "Access-Control-Allow-Methods": ALLOW_METHODS,
            "Access-Control-Allow-Headers": ALLOW_HEADERS,
            "Access-Control-Max-Age": MAX_AGE,
        },
    )


def relay_headers(origin: str | None, policy: Policy) -> dict[str, str]:
    """CORS headers attached to a successfully relayed response."""
    allow_origin = "*" if "*" in policy.allowed_origins else (origin or "*")
    return {
        "Access-Control-Allow-Origin": allow_origin,
        "Access-Control-Allow-Methods": ALLOW_METHODS,
        "Access-Control-Allow-Headers": ALLOW_HEADERS,
        "Access-Control-Expose-Headers": EXPOSE_HEADERS,
    }


def error_headers() -> dict[str, str]:
    # Errors are readable from any origin.
    return {
        "Access-Control-Allow-Origin": "*",
        "Access-Control-Allow-Methods": ALLOW_METHODS,
        "Access-Control-Allow-Headers": ALLOW_HEADERS,
    }
