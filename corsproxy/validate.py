# corsproxy/validate.py
from dataclasses import dataclass

import httpx
from fastapi.datastructures import QueryParams

import netcheck
from config import Policy

ALLOWED_SCHEMES = ("http", "https")

MSG_MISSING_URL = "Missing required parameter: url"
MSG_INVALID_URL = "Invalid URL format"
MSG_BAD_SCHEME = "Only HTTP and HTTPS protocols are allowed"
MSG_PRIVATE_IP = "Access to private IP addresses is not allowed"


@dataclass(frozen=True)
class Valid:
    target_url: str
    host: str


@dataclass(frozen=True)
class Invalid:
    reason: str
    status_code: int = 400


ValidationResult = Valid | Invalid


def parse_target(raw: str, policy: Policy) -> ValidationResult:
    """Check an absolute target URL against scheme, domain and private-network rules."""
    try:
        url = httpx.URL(raw)
    except httpx.InvalidURL:
        return Invalid(MSG_INVALID_URL)
    if not url.scheme:
        return Invalid(MSG_INVALID_URL)
    if url.scheme not in ALLOWED_SCHEMES:
        return Invalid(MSG_BAD_SCHEME)
    if not url.host:
        return Invalid(MSG_INVALID_URL)

    try:
        host = netcheck.canonical_ipv4(url.host)
    except netcheck.InvalidIPv4:
        return Invalid(MSG_INVALID_URL)
    if host != url.host:
        url = url.copy_with(host=host)
    # Round-trip through raw_path so an empty path is written as "/".
    url = url.copy_with(raw_path=url.raw_path)

    if policy.allowed_domains and host not in policy.allowed_domains:
        return Invalid(f"Domain {host} is not allowed")

    if netcheck.is_private_host(host):
        return Invalid(MSG_PRIVATE_IP)

    return Valid(target_url=str(url), host=host)


def validate_request(params: QueryParams, policy: Policy) -> ValidationResult:
    # First occurrence wins when ?url= is repeated.
    values = params.getlist("url")
    raw = values[0] if values else ""
    if not raw:
        return Invalid(MSG_MISSING_URL)
    return parse_target(raw, policy)


async def confirm_resolution(result: ValidationResult, policy: Policy) -> ValidationResult:
    """Apply the resolver-backed private-network check when the policy asks for it."""
    if isinstance(result, Valid) and policy.resolve_hosts:
        if await netcheck.resolves_to_private(result.host):
            return Invalid(MSG_PRIVATE_IP)
    return result


async def check_target(raw: str, policy: Policy) -> ValidationResult:
    """Full target check, used for the initial URL and every redirect hop."""
    return await confirm_resolution(parse_target(raw, policy), policy)
