# corsproxy/test_config.py
from unittest.mock import patch

import pytest

from config import Policy, Settings, _csv_list, _parse_int, resolve_policy

MB = 1024 * 1024


# ---------------------------------------------------------------------------
# Parsing helpers
# ---------------------------------------------------------------------------

class TestCsvList:
    def test_splits_and_trims(self):
        assert _csv_list(" a.com , b.com,c.com ") == ["a.com", "b.com", "c.com"]

    def test_drops_empty_entries(self):
        assert _csv_list("a.com,, ,b.com,") == ["a.com", "b.com"]

    def test_none_and_empty(self):
        assert _csv_list(None) == []
        assert _csv_list("") == []


class TestParseInt:
    @pytest.mark.parametrize("raw,expected", [
        ("45", 45),
        (" 7", 7),
        ("45s", 45),
        ("1.5", 1),
        ("-3", -3),
        ("abc", None),
        ("", None),
        (None, None),
    ])
    def test_leading_integer(self, raw, expected):
        assert _parse_int(raw) == expected


# ---------------------------------------------------------------------------
# resolve_policy
# ---------------------------------------------------------------------------

class TestResolvePolicyDefaults:
    def test_no_overrides(self):
        policy = resolve_policy()
        assert policy.allowed_domains == frozenset()
        assert policy.allowed_origins == frozenset()
        assert policy.timeout_ms == 30_000
        assert policy.max_body_bytes == 10 * MB

    def test_empty_mapping_same_as_none(self):
        assert resolve_policy({}) == resolve_policy(None)


class TestResolvePolicyAllowLists:
    def test_domains_parsed(self):
        policy = resolve_policy({"ALLOWED_DOMAINS": "api.example.com, cdn.example.com"})
        assert policy.allowed_domains == {"api.example.com", "cdn.example.com"}

    def test_origins_parsed(self):
        policy = resolve_policy({"ALLOWED_ORIGINS": "https://a.com,*"})
        assert policy.allowed_origins == {"https://a.com", "*"}

    def test_overrides_are_appended_to_defaults(self):
        with patch("config.DEFAULT_ALLOWED_DOMAINS", ("builtin.example.com",)), \
             patch("config.DEFAULT_ALLOWED_ORIGINS", ("https://builtin.example.com",)):
            policy = resolve_policy({
                "ALLOWED_DOMAINS": "extra.example.com",
                "ALLOWED_ORIGINS": "https://extra.example.com",
            })
        assert policy.allowed_domains == {"builtin.example.com", "extra.example.com"}
        assert policy.allowed_origins == {"https://builtin.example.com", "https://extra.example.com"}

    def test_defaults_kept_without_overrides(self):
        with patch("config.DEFAULT_ALLOWED_DOMAINS", ("builtin.example.com",)):
            policy = resolve_policy({"ALLOWED_DOMAINS": ""})
        assert policy.allowed_domains == {"builtin.example.com"}


class TestResolvePolicyNumbers:
    def test_timeout_seconds_to_millis(self):
        assert resolve_policy({"TIMEOUT": "5"}).timeout_ms == 5000

    def test_max_body_megabytes_to_bytes(self):
        assert resolve_policy({"MAX_BODY_SIZE": "2"}).max_body_bytes == 2 * MB

    @pytest.mark.parametrize("raw", ["abc", "", "0", "-10"])
    def test_bad_timeout_falls_back(self, raw):
        assert resolve_policy({"TIMEOUT": raw}).timeout_ms == 30_000

    @pytest.mark.parametrize("raw", ["lots", "", "0", "-1"])
    def test_bad_max_body_falls_back(self, raw):
        assert resolve_policy({"MAX_BODY_SIZE": raw}).max_body_bytes == 10 * MB

    def test_hardening_options_passed_through(self):
        policy = resolve_policy(resolve_hosts=True, max_redirects=3)
        assert policy.resolve_hosts is True
        assert policy.max_redirects == 3


# ---------------------------------------------------------------------------
# Policy
# ---------------------------------------------------------------------------

class TestPolicy:
    def _policy(self, **overrides):
        base = dict(
            allowed_domains=frozenset(),
            allowed_origins=frozenset(),
            timeout_ms=1000,
            max_body_bytes=100,
        )
        base.update(overrides)
        return Policy(**base)

    def test_is_immutable(self):
        policy = self._policy()
        with pytest.raises(AttributeError):
            policy.timeout_ms = 5

    def test_rejects_non_positive_timeout(self):
        with pytest.raises(ValueError):
            self._policy(timeout_ms=0)

    def test_rejects_non_positive_max_body(self):
        with pytest.raises(ValueError):
            self._policy(max_body_bytes=0)

    def test_timeout_seconds(self):
        assert self._policy(timeout_ms=2500).timeout_seconds == 2.5

    def test_any_origin_when_empty(self):
        assert self._policy().any_origin is True

    def test_any_origin_with_star(self):
        assert self._policy(allowed_origins=frozenset({"*", "https://a.com"})).any_origin is True

    def test_restricted_origins(self):
        assert self._policy(allowed_origins=frozenset({"https://a.com"})).any_origin is False


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------

class TestSettings:
    def test_reads_environment(self, monkeypatch):
        monkeypatch.setenv("ALLOWED_DOMAINS", "api.example.com")
        monkeypatch.setenv("ALLOWED_ORIGINS", "https://app.example.com")
        monkeypatch.setenv("TIMEOUT", "12")
        monkeypatch.setenv("MAX_BODY_SIZE", "3")
        monkeypatch.setenv("RESOLVE_HOSTS", "true")
        monkeypatch.setenv("MAX_REDIRECTS", "0")
        policy = Settings(_env_file=None).policy()
        assert policy.allowed_domains == {"api.example.com"}
        assert policy.allowed_origins == {"https://app.example.com"}
        assert policy.timeout_ms == 12_000
        assert policy.max_body_bytes == 3 * MB
        assert policy.resolve_hosts is True
        assert policy.max_redirects == 0

    def test_malformed_numbers_do_not_fail(self, monkeypatch):
        monkeypatch.setenv("TIMEOUT", "soon")
        monkeypatch.setenv("MAX_BODY_SIZE", "big")
        policy = Settings(_env_file=None).policy()
        assert policy.timeout_ms == 30_000
        assert policy.max_body_bytes == 10 * MB
