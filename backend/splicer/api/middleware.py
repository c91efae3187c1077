"""Boundary middleware: rate limiting, upload size ceiling, security headers."""
import asyncio
import logging
import threading
import time
from collections import defaultdict, deque
from typing import Deque, DefaultDict

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from splicer.config import settings
from splicer.services.storage_service import PayloadTooLarge

logger = logging.getLogger(__name__)

# Multipart boundaries and the segments field on top of the file itself
FORM_OVERHEAD_BYTES = 1024 * 1024

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "SAMEORIGIN",
    "X-DNS-Prefetch-Control": "off",
    "Referrer-Policy": "no-referrer",
    "Cross-Origin-Resource-Policy": "same-origin",
    "Cross-Origin-Opener-Policy": "same-origin",
}


class RateLimiter:
    """Sliding-window request counter per client."""

    def __init__(self, max_requests: int, window_seconds: float) -> None:
        self._hits: DefaultDict[str, Deque[float]] = defaultdict(deque)
        self._max = max(max_requests, 1)
        self._window = window_seconds
        self._lock = threading.Lock()

    @property
    def max_requests(self) -> int:
        return self._max

    def check(self, identifier: str) -> bool:
        now = time.monotonic()
        cutoff = now - self._window
        with self._lock:
            hits = self._hits[identifier]
            while hits and hits[0] <= cutoff:
                hits.popleft()
            if len(hits) >= self._max:
                return False
            hits.append(now)
            return True

    @property
    def tracked_clients(self) -> int:
        return len(self._hits)

    def cleanup_old_identifiers(self) -> int:
        """Forget clients with no hit inside the window. Returns how many were dropped."""
        cutoff = time.monotonic() - self._window
        with self._lock:
            stale = [key for key, hits in self._hits.items() if not hits or hits[-1] <= cutoff]
            for key in stale:
                self._hits.pop(key, None)
        return len(stale)

    def reset(self) -> None:
        with self._lock:
            self._hits.clear()


async def sweep_rate_limiter(limiter: RateLimiter, interval: float) -> None:
    """Periodically drop idle clients so the hit table does not grow unbounded."""
    while True:
        await asyncio.sleep(interval)
        try:
            dropped = limiter.cleanup_old_identifiers()
        except Exception as exc:
            logger.warning(f"Rate limiter cleanup failed: {exc}")
            continue
        if dropped:
            logger.debug(f"Rate limiter dropped {dropped} idle clients")


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Limit requests under a path prefix per client address."""

    def __init__(self, app, limiter: RateLimiter, prefix: str = "/api/"):
        super().__init__(app)
        self.limiter = limiter
        self.prefix = prefix

    async def dispatch(self, request: Request, call_next):
        if request.url.path.startswith(self.prefix):
            client = request.client.host if request.client else "unknown"
            if not self.limiter.check(client):
                logger.warning(f"Rate limit exceeded for {client}")
                return JSONResponse(
                    status_code=429,
                    content={"error": "too many requests, try again later"}
                )
        return await call_next(request)


class UploadLimitMiddleware(BaseHTTPMiddleware):
    """Reject uploads whose declared length is over the ceiling before parsing."""

    async def dispatch(self, request: Request, call_next):
        if request.method == "POST":
            declared = request.headers.get("content-length")
            limit = settings.max_upload_bytes
            if declared and declared.isdigit() and int(declared) > limit + FORM_OVERHEAD_BYTES:
                error = PayloadTooLarge(limit)
                logger.warning(f"Rejected upload of {declared} bytes on {request.url.path}")
                return JSONResponse(
                    status_code=413,
                    content={"error": error.message, "details": error.details}
                )
        return await call_next(request)


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add conservative security headers to every response."""

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        for name, value in SECURITY_HEADERS.items():
            response.headers.setdefault(name, value)
        return response
