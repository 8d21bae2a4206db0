"""
HTTP API for chat, voice, GitHub sign-in and administration.
"""

from floraa.web_api.app import FloraaServer, create_app
from floraa.web_api.security import RateLimiter, SessionSigner, get_client_id

__all__ = [
    "FloraaServer",
    "create_app",
    "RateLimiter",
    "SessionSigner",
    "get_client_id",
]
