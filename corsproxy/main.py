# corsproxy/main.py
import logging
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from contextvars import ContextVar

import httpx
from fastapi import Depends, FastAPI, Request
from fastapi.responses import Response, StreamingResponse

import cors
import proxy
import responses
import validate
from config import Policy, settings

request_id_var: ContextVar[str] = ContextVar("request_id", default="-")


class RequestIdFilter(logging.Filter):
    """Stamp every record with the id of the request being handled."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_var.get()
        return True


_log_handler = logging.StreamHandler()
_log_handler.addFilter(RequestIdFilter())
logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)-8s %(name)s [%(request_id)s] %(message)s",
    handlers=[_log_handler],
)
logger = logging.getLogger(__name__)

# Registered on the catch-all route. Any other method is routed to it through
# the 405 handler below.
ROUTE_METHODS = ["GET", "HEAD", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"]


@asynccontextmanager
async def lifespan(app: FastAPI):
    policy = settings.policy()
    logger.info(
        "Policy: domains=%s origins=%s timeout=%dms max_body=%d bytes "
        "resolve_hosts=%s max_redirects=%d",
        sorted(policy.allowed_domains) or "any",
        sorted(policy.allowed_origins) or "any",
        policy.timeout_ms,
        policy.max_body_bytes,
        policy.resolve_hosts,
        policy.max_redirects,
    )
    yield


# Every path belongs to the proxy, so the docs routes are off.
app = FastAPI(
    title="CORS Proxy",
    version="1.0.0",
    lifespan=lifespan,
    docs_url=None,
    redoc_url=None,
    openapi_url=None,
)


@app.middleware("http")
async def add_request_id(request: Request, call_next):
    """Propagate or generate an X-Request-ID and tag this request's log lines with it."""
    req_id = request.headers.get("x-request-id") or str(uuid.uuid4())
    request.state.request_id = req_id
    token = request_id_var.set(req_id)
    try:
        response = await call_next(request)
    finally:
        request_id_var.reset(token)
    response.headers["x-request-id"] = req_id
    return response


def get_policy() -> Policy:
    return settings.policy()


def get_http_client() -> httpx.AsyncClient:
    # One client per request: no pooled connections and no cookie jar shared
    # between callers. Redirects are followed by proxy.forward, hop by hop.
    return httpx.AsyncClient(follow_redirects=False)


async def _relay(upstream: httpx.Response, client: httpx.AsyncClient) -> AsyncIterator[bytes]:
    try:
        async for chunk in upstream.aiter_raw():
            yield chunk
    finally:
        await upstream.aclose()
        await client.aclose()


async def _handle(request: Request, policy: Policy, client: httpx.AsyncClient) -> Response:
    origin = request.headers.get("origin")

    if request.method == "OPTIONS":
        return cors.preflight(origin, policy)

    result = validate.validate_request(request.query_params, policy)
    result = await validate.confirm_resolution(result, policy)
    if isinstance(result, validate.Invalid):
        logger.info("Rejected %s %s: %s", request.method, request.url, result.reason)
        return responses.error_response(result.reason, result.status_code)

    reason = cors.check_origin(origin, policy)
    if reason:
        logger.info("Rejected %s %s: %s", request.method, request.url, reason)
        return responses.error_response(reason, 403)

    outcome = await proxy.forward(request, result.target_url, policy, client)
    if isinstance(outcome, proxy.Success):
        return responses.proxy_response(
            outcome.response, _relay(outcome.response, client), origin, policy
        )
    return responses.failure_response(outcome)


async def _dispatch(request: Request, policy: Policy, client: httpx.AsyncClient) -> Response:
    logger.info("%s %s", request.method, request.url)
    try:
        response = await _handle(request, policy, client)
    except Exception:
        logger.exception("Request handling error")
        response = responses.error_response("Internal server error", 500)
    # Only a relayed body keeps the client open; _relay closes it when done.
    if not isinstance(response, StreamingResponse):
        await client.aclose()
    return response


@app.api_route("/{path:path}", methods=ROUTE_METHODS)
async def relay(
    path: str,
    request: Request,
    policy: Policy = Depends(get_policy),
    client: httpx.AsyncClient = Depends(get_http_client),
) -> Response:
    return await _dispatch(request, policy, client)


@app.exception_handler(405)
async def relay_other_methods(request: Request, exc: Exception) -> Response:
    """Proxy extension methods (PROPFIND, REPORT, ...) the route table does not list."""
    overrides = app.dependency_overrides
    policy = overrides.get(get_policy, get_policy)()
    client = overrides.get(get_http_client, get_http_client)()
    return await _dispatch(request, policy, client)
