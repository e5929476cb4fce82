# corsproxy/proxy.py
import asyncio
import logging
from collections.abc import AsyncIterator
from dataclasses import dataclass

import httpx
from fastapi import Request

import validate
from config import Policy
from headers import clean_request_headers

logger = logging.getLogger(__name__)

_BODYLESS_METHODS = {"GET", "HEAD"}

MSG_TOO_LARGE = "Request body too large"


@dataclass(frozen=True)
class Success:
    response: httpx.Response


@dataclass(frozen=True)
class TimedOut:
    pass


@dataclass(frozen=True)
class TransportFailure:
    cause: BaseException


@dataclass(frozen=True)
class PolicyRejection:
    reason: str
    status_code: int


ProxyOutcome = Success | TimedOut | TransportFailure | PolicyRejection


class BodyTooLarge(Exception):
    """Raised from the outbound body stream once the byte budget is spent."""


async def _limited(stream: AsyncIterator[bytes], limit: int) -> AsyncIterator[bytes]:
    received = 0
    async for chunk in stream:
        received += len(chunk)
        if received > limit:
            raise BodyTooLarge(received)
        yield chunk


def _has_body(request: Request) -> bool:
    if request.method.upper() in _BODYLESS_METHODS:
        return False
    # Without content-length or transfer-encoding the request carries no body.
    return "content-length" in request.headers or "transfer-encoding" in request.headers


def _declared_length(request: Request) -> int | None:
    value = request.headers.get("content-length")
    if value and value.strip().isdigit():
        return int(value)
    return None


async def _send(
    client: httpx.AsyncClient, outbound: httpx.Request, policy: Policy
) -> httpx.Response | PolicyRejection:
    """Send and follow redirects, re-checking every hop against the policy."""
    response = await client.send(outbound, stream=True)
    hops = 0
    while policy.max_redirects and response.has_redirect_location:
        next_request = response.next_request
        await response.aclose()
        if next_request is None:
            raise httpx.RemoteProtocolError("Unusable redirect", request=outbound)
        if hops >= policy.max_redirects:
            raise httpx.TooManyRedirects("Exceeded maximum allowed redirects.", request=next_request)

        check = await validate.check_target(str(next_request.url), policy)
        if isinstance(check, validate.Invalid):
            logger.info("Redirect to %s blocked: %s", next_request.url, check.reason)
            return PolicyRejection(f"Redirect blocked: {check.reason}", check.status_code)

        hops += 1
        response = await client.send(next_request, stream=True)
    return response


async def forward(
    request: Request, target_url: str, policy: Policy, client: httpx.AsyncClient
) -> ProxyOutcome:
    """Forward the inbound request to target_url within policy limits.

    On Success the upstream response is still open; the caller streams and
    closes it.
    """
    declared = _declared_length(request)
    if declared is not None and declared > policy.max_body_bytes:
        return PolicyRejection(MSG_TOO_LARGE, 413)

    has_body = _has_body(request)
    headers = clean_request_headers(request.headers, has_body=has_body)
    body = _limited(request.stream(), policy.max_body_bytes) if has_body else None

    outbound = client.build_request(
        method=request.method,
        url=target_url,
        headers=headers,
        content=body,
        timeout=policy.timeout_seconds,
    )

    try:
        # The timer covers the whole redirect chain up to the final response
        # headers; on expiry the in-flight send is cancelled.
        result = await asyncio.wait_for(_send(client, outbound, policy), policy.timeout_seconds)
    except BodyTooLarge:
        logger.info("Request body to %s exceeded %d bytes", target_url, policy.max_body_bytes)
        return PolicyRejection(MSG_TOO_LARGE, 413)
    except (asyncio.TimeoutError, httpx.TimeoutException):
        logger.warning("Timed out after %dms fetching %s", policy.timeout_ms, target_url)
        return TimedOut()
    except (httpx.RequestError, httpx.StreamError) as exc:
        logger.error("Proxy request error for %s: %r", target_url, exc)
        return TransportFailure(exc)

    if isinstance(result, PolicyRejection):
        return result

    if result.status_code >= 500:
        logger.warning("Upstream error %s for %s %s", result.status_code, request.method, target_url)
    return Success(result)
