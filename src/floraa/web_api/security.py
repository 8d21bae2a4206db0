"""
HTTP security helpers: per-client rate limiting and signed session cookies.
"""

import asyncio
import base64
import hashlib
import hmac
import json
import time
from collections import deque
from typing import Any, Deque, Dict, Optional

from fastapi import Request

from floraa.core.logging import get_logger
from floraa.core.settings import SecuritySettings, SessionSettings

logger = get_logger(__name__)


class RateLimiter:
    """
    Sliding-window limiter keyed by client address.

    Each client keeps a deque of request times inside the window. Idle
    clients are pruned once the table grows past ``prune_threshold``.
    """

    def __init__(self, requests: int, window_seconds: float, prune_threshold: int = 10_000):
        self.requests = requests
        self.window_seconds = window_seconds
        self.prune_threshold = prune_threshold
        self.clients: Dict[str, Deque[float]] = {}
        self._lock = asyncio.Lock()

    @classmethod
    def from_settings(cls, security: SecuritySettings) -> "RateLimiter":
        return cls(security.rate_limit_requests, security.rate_limit_window_minutes * 60)

    def _expire(self, hits: Deque[float], now: float) -> None:
        while hits and now - hits[0] >= self.window_seconds:
            hits.popleft()

    def _prune(self, now: float) -> None:
        for client_id in list(self.clients):
            self._expire(self.clients[client_id], now)
            if not self.clients[client_id]:
                del self.clients[client_id]

    async def check_rate_limit(self, client_id: str) -> bool:
        """Count one request from ``client_id``; False once the window is full."""
        async with self._lock:
            now = time.time()
            hits = self.clients.setdefault(client_id, deque())
            self._expire(hits, now)
            if len(hits) >= self.requests:
                return False
            hits.append(now)
            if len(self.clients) > self.prune_threshold:
                self._prune(now)
            return True

    async def cleanup(self) -> None:
        """Forget clients with no request left in the window."""
        async with self._lock:
            self._prune(time.time())


def get_client_id(request: Request) -> str:
    """Client identifier for rate limiting."""
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


def _b64encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def _b64decode(data: str) -> bytes:
    return base64.urlsafe_b64decode(data + "=" * (-len(data) % 4))


class SessionSigner:
    """
    Encodes session data as ``<payload>.<signature>``.

    The payload is base64url JSON carrying the data and the issue time; the
    signature is HMAC-SHA256 over the payload with the session secret.
    Tokens older than ``max_age`` seconds are rejected.
    """

    def __init__(self, settings: SessionSettings):
        self.secret = settings.secret.get_secret_value().encode("utf-8")
        self.max_age = settings.max_age

    def _sign(self, payload: str) -> str:
        return hmac.new(self.secret, payload.encode("ascii"), hashlib.sha256).hexdigest()

    def encode(self, data: Dict[str, Any], issued_at: Optional[float] = None) -> str:
        body = {"data": data, "iat": int(issued_at if issued_at is not None else time.time())}
        payload = _b64encode(json.dumps(body, separators=(",", ":")).encode("utf-8"))
        return f"{payload}.{self._sign(payload)}"

    def decode(self, token: Optional[str]) -> Optional[Dict[str, Any]]:
        """Session data, or None when the token is missing, tampered with or expired."""
        if not token or "." not in token:
            return None

        payload, signature = token.rsplit(".", 1)
        if not hmac.compare_digest(self._sign(payload), signature):
            logger.warning("Rejected session with invalid signature")
            return None

        try:
            body = json.loads(_b64decode(payload))
        except (ValueError, UnicodeDecodeError):
            return None

        if time.time() - body.get("iat", 0) > self.max_age:
            logger.debug("Rejected expired session")
            return None
        return body.get("data")
