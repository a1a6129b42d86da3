"""In-memory rate limiting middleware.

Limits (per client IP, production only):
  /auth/             → 10 requests/minute
  /consents/share/   → share_rate_limit_per_minute requests/minute

Public share links are guessable only by brute force; the share limit
keeps token guessing slow. Single-process state, suitable for one
instance.
"""

import time
from collections import defaultdict

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from app.config import settings

AUTH_PREFIX = "/auth/"
SHARE_PREFIX = "/consents/share/"


def _ip_rules() -> list[tuple[str, int, int]]:
    # (prefix, max_requests, window_seconds)
    return [
        (AUTH_PREFIX, 10, 60),
        (SHARE_PREFIX, settings.share_rate_limit_per_minute, 60),
    ]


class _SlidingWindow:
    """Sliding-window hit counter keyed by client."""

    def __init__(self) -> None:
        # key -> list of timestamps
        self._hits: dict[str, list[float]] = defaultdict(list)

    def is_allowed(self, key: str, max_requests: int, window: int) -> bool:
        now = time.monotonic()
        cutoff = now - window
        self._hits[key] = hits = [t for t in self._hits[key] if t > cutoff]
        if len(hits) >= max_requests:
            return False
        hits.append(now)
        return True

    def clear(self) -> None:
        self._hits.clear()


_ip_window = _SlidingWindow()


class RateLimitMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if not settings.is_production:
            return await call_next(request)

        path = request.url.path
        client_ip = request.client.host if request.client else "unknown"

        for prefix, max_req, window in _ip_rules():
            if path.startswith(prefix):
                key = f"ip:{client_ip}:{prefix}"
                if not _ip_window.is_allowed(key, max_req, window):
                    return _rate_limit_response(request, window)

        return await call_next(request)


def _rate_limit_response(request: Request, retry_after: int) -> JSONResponse:
    request_id = getattr(request.state, "request_id", None)
    return JSONResponse(
        status_code=429,
        content={
            "error": True,
            "status_code": 429,
            "detail": "Rate limit exceeded. Please try again later.",
            "request_id": request_id,
        },
        headers={"Retry-After": str(retry_after)},
    )
