"""
Rate limiting middleware
"""

from typing import Dict, List
import time

from fastapi import Request
from fastapi.responses import JSONResponse


class RateLimiter:
    """
    Per-client sliding window.

    Clients with no request inside the window are forgotten, so the table
    only holds addresses seen during the last two windows.
    """

    def __init__(self, requests_per_minute: int = 60, window_seconds: float = 60.0):
        self.rpm = requests_per_minute
        self.window = window_seconds
        self.requests: Dict[str, List[float]] = {}
        self._last_sweep = time.time()

    def _recent(self, client_ip: str, now: float) -> List[float]:
        recent = [t for t in self.requests.get(client_ip, ()) if now - t < self.window]
        if recent:
            self.requests[client_ip] = recent
        else:
            self.requests.pop(client_ip, None)
        return recent

    def _sweep(self, now: float) -> None:
        if now - self._last_sweep < self.window:
            return
        for client_ip in list(self.requests):
            self._recent(client_ip, now)
        self._last_sweep = now

    async def __call__(self, request: Request, call_next):
        client_ip = request.client.host if request.client else "unknown"
        now = time.time()
        self._sweep(now)

        recent = self._recent(client_ip, now)
        if len(recent) >= self.rpm:
            return JSONResponse(status_code=429, content={"detail": "Rate limit exceeded"})
        recent.append(now)
        self.requests[client_ip] = recent
        return await call_next(request)
