# corsproxy/config.py
import re
from collections.abc import Mapping
from dataclasses import dataclass

from pydantic_settings import BaseSettings

# Built-in allow-lists. Entries from ALLOWED_DOMAINS / ALLOWED_ORIGINS are
# appended to these, never substituted for them.
DEFAULT_ALLOWED_DOMAINS: tuple[str, ...] = ()
DEFAULT_ALLOWED_ORIGINS: tuple[str, ...] = ()

DEFAULT_TIMEOUT_SECONDS = 30
DEFAULT_MAX_BODY_MB = 10
DEFAULT_MAX_REDIRECTS = 20

_LEADING_INT = re.compile(r"\s*([+-]?\d+)")


def _csv_list(value: str | None) -> list[str]:
    if not value:
        return []
    return [x.strip() for x in value.split(",") if x.strip()]


def _parse_int(value: str | None) -> int | None:
    """Leading-integer parse: "45" -> 45, "45s" -> 45, "abc" -> None."""
    if not value:
        return None
    m = _LEADING_INT.match(value)
    return int(m.group(1)) if m else None


@dataclass(frozen=True)
class Policy:
    allowed_domains: frozenset[str]
    allowed_origins: frozenset[str]
    timeout_ms: int
    max_body_bytes: int
    resolve_hosts: bool = False
    max_redirects: int = DEFAULT_MAX_REDIRECTS

    def __post_init__(self) -> None:
        if self.timeout_ms <= 0:
            raise ValueError("timeout_ms must be positive")
        if self.max_body_bytes <= 0:
            raise ValueError("max_body_bytes must be positive")
        if self.max_redirects < 0:
            raise ValueError("max_redirects must not be negative")

    @property
    def timeout_seconds(self) -> float:
        return self.timeout_ms / 1000

    @property
    def any_origin(self) -> bool:
        """True when every Origin is acceptable (empty list or explicit "*")."""
        return not self.allowed_origins or "*" in self.allowed_origins


def resolve_policy(
    overrides: Mapping[str, str | None] | None = None,
    *,
    resolve_hosts: bool = False,
    max_redirects: int = DEFAULT_MAX_REDIRECTS,
) -> Policy:
    """Build a Policy from the built-in defaults plus string overrides.

    Recognised keys: ALLOWED_DOMAINS, ALLOWED_ORIGINS (CSV, additive),
    TIMEOUT (seconds) and MAX_BODY_SIZE (megabytes). Numeric values that are
    missing, unparseable or not positive silently fall back to the defaults.
    """
    overrides = overrides or {}

    domains = [*DEFAULT_ALLOWED_DOMAINS, *_csv_list(overrides.get("ALLOWED_DOMAINS"))]
    origins = [*DEFAULT_ALLOWED_ORIGINS, *_csv_list(overrides.get("ALLOWED_ORIGINS"))]

    timeout_s = _parse_int(overrides.get("TIMEOUT"))
    if timeout_s is None or timeout_s <= 0:
        timeout_s = DEFAULT_TIMEOUT_SECONDS

    max_body_mb = _parse_int(overrides.get("MAX_BODY_SIZE"))
    if max_body_mb is None or max_body_mb <= 0:
        max_body_mb = DEFAULT_MAX_BODY_MB

    return Policy(
        allowed_domains=frozenset(domains),
        allowed_origins=frozenset(origins),
        timeout_ms=timeout_s * 1000,
        max_body_bytes=max_body_mb * 1024 * 1024,
        resolve_hosts=resolve_hosts,
        max_redirects=max(max_redirects, 0),
    )


class Settings(BaseSettings):
    # Allow-lists (CSV), appended to the built-in defaults.
    # ALLOWED_DOMAINS=api.example.com,cdn.example.com
    # ALLOWED_ORIGINS=https://app.example.com   ("*" = any origin)
    # Empty list means "allow all".
    allowed_domains: str = ""     # ALLOWED_DOMAINS
    allowed_origins: str = ""     # ALLOWED_ORIGINS

    # Kept as raw strings: a malformed value falls back to the default
    # instead of failing startup.
    timeout: str = ""             # TIMEOUT        (seconds, default 30)
    max_body_size: str = ""       # MAX_BODY_SIZE  (megabytes, default 10)

    # Hardening
    resolve_hosts: bool = False   # RESOLVE_HOSTS  (DNS-resolve targets and block private answers)
    max_redirects: int = DEFAULT_MAX_REDIRECTS  # MAX_REDIRECTS (0 = relay 3xx as-is)

    log_level: str = "INFO"       # LOG_LEVEL

    def overrides(self) -> dict[str, str]:
        return {
            "ALLOWED_DOMAINS": self.allowed_domains,
            "ALLOWED_ORIGINS": self.allowed_origins,
            "TIMEOUT": self.timeout,
            "MAX_BODY_SIZE": self.max_body_size,
        }

    def policy(self) -> Policy:
        return resolve_policy(
            self.overrides(),
            resolve_hosts=self.resolve_hosts,
            max_redirects=self.max_redirects,
        )

    model_config = {"env_file": ".env", "case_sensitive": False}


settings = Settings()
