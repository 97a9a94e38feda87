"""
Per-client fixed-window rate limiting.

Installed as an app-wide dependency so every routed request is counted,
whatever router it was included through. Counters live in process memory.
"""

import logging

from fastapi import Request
from limits import parse
from limits.storage import MemoryStorage
from limits.strategies import FixedWindowRateLimiter
from slowapi.util import get_remote_address

from keeper.core.errors import TooManyRequests

logger = logging.getLogger(__name__)

RATE_LIMIT_MESSAGE = "Too many requests from this IP, please try again later."


class RateLimit:
    def __init__(self, limit: str, enabled: bool = True, key_func=get_remote_address):
        self.item = parse(limit)
        self.enabled = enabled
        self.key_func = key_func
        self.strategy = FixedWindowRateLimiter(MemoryStorage())

    def __call__(self, request: Request) -> None:
        if not self.enabled:
            return
        key = self.key_func(request)
        if not self.strategy.hit(self.item, key):
            logger.warning(f"Rate limit {self.item} exceeded for {key}")
            raise TooManyRequests(RATE_LIMIT_MESSAGE)
