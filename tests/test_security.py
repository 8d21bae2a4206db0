"""Tests for rate limiting and signed sessions."""

import time
from unittest.mock import MagicMock, patch

import pytest
from pydantic import SecretStr, ValidationError

from floraa.core.settings import SecuritySettings, SessionSettings
from floraa.web_api.security import RateLimiter, SessionSigner, get_client_id

SECRET = "s" * 40


class TestRateLimiter:

    @pytest.mark.asyncio
    async def test_allows_up_to_limit(self):
        limiter = RateLimiter(requests=3, window_seconds=60)

        results = [await limiter.check_rate_limit("10.0.0.1") for _ in range(4)]

        assert results == [True, True, True, False]

    @pytest.mark.asyncio
    async def test_clients_are_independent(self):
        limiter = RateLimiter(requests=1, window_seconds=60)

        assert await limiter.check_rate_limit("a")
        assert await limiter.check_rate_limit("b")
        assert not await limiter.check_rate_limit("a")

    @pytest.mark.asyncio
    async def test_window_expires(self):
        limiter = RateLimiter(requests=1, window_seconds=10)

        with patch("floraa.web_api.security.time.time", return_value=1000.0):
            assert await limiter.check_rate_limit("a")
            assert not await limiter.check_rate_limit("a")
        with patch("floraa.web_api.security.time.time", return_value=1011.0):
            assert await limiter.check_rate_limit("a")

    @pytest.mark.asyncio
    async def test_cleanup_drops_idle_clients(self):
        limiter = RateLimiter(requests=5, window_seconds=10)
        with patch("floraa.web_api.security.time.time", return_value=1000.0):
            await limiter.check_rate_limit("old")
        with patch("floraa.web_api.security.time.time", return_value=1005.0):
            await limiter.check_rate_limit("new")

        with patch("floraa.web_api.security.time.time", return_value=1012.0):
            await limiter.cleanup()

        assert list(limiter.clients) == ["new"]

    @pytest.mark.asyncio
    async def test_idle_clients_pruned_past_threshold(self):
        limiter = RateLimiter(requests=5, window_seconds=10, prune_threshold=1)
        with patch("floraa.web_api.security.time.time", return_value=1000.0):
            await limiter.check_rate_limit("old")
        with patch("floraa.web_api.security.time.time", return_value=1020.0):
            await limiter.check_rate_limit("new")

        assert list(limiter.clients) == ["new"]

    def test_from_settings(self):
        limiter = RateLimiter.from_settings(SecuritySettings(rate_limit_requests=7, rate_limit_window_minutes=2))

        assert limiter.requests == 7
        assert limiter.window_seconds == 120


class TestClientId:

    def test_forwarded_for(self):
        request = MagicMock()
        request.headers = {"X-Forwarded-For": "203.0.113.7, 10.0.0.1"}

        assert get_client_id(request) == "203.0.113.7"

    def test_peer_address(self):
        request = MagicMock()
        request.headers = {}
        request.client.host = "127.0.0.1"

        assert get_client_id(request) == "127.0.0.1"

    def test_unknown(self):
        request = MagicMock()
        request.headers = {}
        request.client = None

        assert get_client_id(request) == "unknown"


class TestSessionSigner:

    @pytest.fixture
    def signer(self):
        return SessionSigner(SessionSettings(secret=SecretStr(SECRET), max_age=3600))

    def test_round_trip(self, signer):
        token = signer.encode({"user": {"login": "octocat"}})

        assert signer.decode(token) == {"user": {"login": "octocat"}}

    def test_tampered_payload(self, signer):
        token = signer.encode({"user": {"login": "octocat"}})
        other = signer.encode({"user": {"login": "admin"}})
        forged = f"{other.split('.')[0]}.{token.split('.')[1]}"

        assert signer.decode(forged) is None

    def test_other_secret(self, signer):
        token = signer.encode({"a": 1})
        other = SessionSigner(SessionSettings(secret=SecretStr("t" * 40)))

        assert other.decode(token) is None

    def test_expired(self, signer):
        token = signer.encode({"a": 1}, issued_at=time.time() - 3601)

        assert signer.decode(token) is None

    @pytest.mark.parametrize("token", [None, "", "no-dot", "abc.def"])
    def test_malformed(self, signer, token):
        assert signer.decode(token) is None

    def test_short_secret_rejected(self):
        with pytest.raises(ValidationError):
            SessionSettings(secret=SecretStr("short"))
