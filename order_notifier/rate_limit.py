"""
Per-client rate limiting for the /api routes.

Requests are counted per client IP over a sliding window kept in memory.
Forwarding headers are only honored for the number of proxy hops configured
in TRUSTED_PROXY_HOPS; with the default of 0 the socket peer is the client.
"""

from collections import deque
from datetime import datetime, timedelta, timezone
from typing import Deque, Dict

from fastapi import HTTPException, Request, status

from order_notifier.config import settings

TOO_MANY_REQUESTS_MESSAGE = "Too many requests. Please try again later."


class SlidingWindowRateLimiter:
    """Allow at most `max_requests` per `window` for each identifier."""

    def __init__(self, max_requests: int, window: timedelta):
        self.max_requests = max_requests
        self.window = window
        self._hits: Dict[str, Deque[datetime]] = {}
        self._last_sweep = datetime.now(timezone.utc)

    @property
    def tracked_clients(self) -> int:
        return len(self._hits)

    def check(self, identifier: str) -> None:
        """
        Count a request for the identifier.

        Raises:
            HTTPException: 429 when the identifier is over its limit
        """
        now = datetime.now(timezone.utc)
        cutoff = now - self.window
        self._sweep(now, cutoff)

        hits = self._hits.get(identifier)
        if hits is None:
            hits = self._hits[identifier] = deque()

        # Remove hits outside the window
        while hits and hits[0] <= cutoff:
            hits.popleft()

        if len(hits) >= self.max_requests:
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail=TOO_MANY_REQUESTS_MESSAGE,
            )
        hits.append(now)

    def _sweep(self, now: datetime, cutoff: datetime) -> None:
        """Forget clients whose newest hit left the window, at most once per window."""
        if now - self._last_sweep < self.window:
            return
        self._last_sweep = now
        for identifier in [key for key, hits in self._hits.items() if not hits or hits[-1] <= cutoff]:
            del self._hits[identifier]

    def reset(self) -> None:
        self._hits.clear()
        self._last_sweep = datetime.now(timezone.utc)


def get_client_ip(request: Request, trusted_proxy_hops: int = 0) -> str:
    """
    Get client IP address from request.

    X-Forwarded-For is read right to left: each trusted proxy appends the
    address it received the request from, so the entry `trusted_proxy_hops`
    positions from the end is the first one no trusted proxy vouches for.
    """
    peer = request.client.host if request.client else "unknown"
    if trusted_proxy_hops <= 0:
        return peer

    forwarded_for = request.headers.get("X-Forwarded-For")
    if not forwarded_for:
        return peer

    addresses = [address.strip() for address in forwarded_for.split(",") if address.strip()]
    if not addresses:
        return peer
    return addresses[-min(trusted_proxy_hops, len(addresses))]


api_limiter = SlidingWindowRateLimiter(
    max_requests=settings.RATE_LIMIT_REQUESTS,
    window=timedelta(seconds=settings.RATE_LIMIT_WINDOW_SECONDS),
)


def enforce_rate_limit(request: Request) -> None:
    """FastAPI dependency applied to the /api router."""
    api_limiter.check(get_client_ip(request, settings.TRUSTED_PROXY_HOPS))
