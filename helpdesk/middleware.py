from __future__ import annotations
import json, logging, threading, time, uuid
from typing import Callable, Dict, Optional, Tuple

import redis
from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

class JsonLogger:
    def __init__(self, name: str = "registrar.http"):
        self.logger = logging.getLogger(name)

    def log(self, level: int = logging.INFO, **fields):
        self.logger.log(level, json.dumps(fields, ensure_ascii=False))

class RequestContextMiddleware(BaseHTTPMiddleware):
    """Tags every request with an id and writes one access line when it finishes."""
    def __init__(self, app, logger: Optional[JsonLogger] = None):
        super().__init__(app)
        self.access = logger or JsonLogger()

    async def dispatch(self, request: Request, call_next: Callable):
        request_id = request.headers.get("X-Request-Id") or uuid.uuid4().hex
        request.state.request_id = request_id
        started = time.perf_counter()
        status = 500
        try:
            response: Response = await call_next(request)
            status = response.status_code
            response.headers["X-Request-Id"] = request_id
            return response
        finally:
            self.access.log(
                logging.WARNING if status >= 500 else logging.INFO,
                event="http",
                request_id=request_id,
                user_id=request.headers.get("X-User-Id"),
                method=request.method,
                path=request.url.path,
                status=status,
                duration_ms=round((time.perf_counter() - started) * 1000, 1),
                client_ip=request.client.host if request.client else None,
            )

class BodySizeLimitMiddleware(BaseHTTPMiddleware):
    # Sits outside the exception handlers, so it builds its own envelopes
    def __init__(self, app, max_bytes: int):
        super().__init__(app)
        self.max_bytes = max_bytes

    async def dispatch(self, request: Request, call_next: Callable):
        declared = request.headers.get("content-length")
        if declared is not None:
            try:
                size = int(declared)
            except ValueError:
                return JSONResponse(status_code=400, content={"success": False, "message": "Invalid Content-Length"})
            if size > self.max_bytes:
                return JSONResponse(
                    status_code=413,
                    content={"success": False, "message": f"Request body exceeds {self.max_bytes // 1024} KB"},
                )
        return await call_next(request)

class RateLimiter:
    """Fixed one-minute window per identity.

    Counts live in Redis when it is reachable. Otherwise each process keeps
    one (window, count) pair per identity, replaced when the minute rolls over.
    """
    WINDOW_SECONDS = 60

    def __init__(self, per_minute: int, redis_url: Optional[str] = None, prefix: str = "registrar:rl"):
        self.per_minute = per_minute
        self.prefix = prefix
        self.redis = redis.Redis.from_url(redis_url, decode_responses=True) if redis_url else None
        self._lock = threading.Lock()
        self._windows: Dict[str, Tuple[int, int]] = {}
        self._log = logging.getLogger("registrar.ratelimit")

    def _redis_hit(self, identity: str, window: int) -> Optional[int]:
        key = f"{self.prefix}:{identity}:{window}"
        try:
            pipe = self.redis.pipeline()
            pipe.incr(key)
            pipe.expire(key, self.WINDOW_SECONDS + 10)
            count, _ = pipe.execute()
            return int(count)
        except redis.RedisError as e:
            self._log.warning(json.dumps({"event": "ratelimit_redis_unavailable", "error": str(e)}))
            return None

    def _memory_hit(self, identity: str, window: int) -> int:
        with self._lock:
            seen_window, count = self._windows.get(identity, (window, 0))
            count = count + 1 if seen_window == window else 1
            self._windows[identity] = (window, count)
            return count

    def check(self, identity: str, now: Optional[float] = None):
        now = time.time() if now is None else now
        window = int(now // self.WINDOW_SECONDS)
        count = self._redis_hit(identity, window) if self.redis is not None else None
        if count is None:
            count = self._memory_hit(identity, window)
        if count > self.per_minute:
            retry_after = self.WINDOW_SECONDS - int(now) % self.WINDOW_SECONDS
            raise HTTPException(status_code=429, detail="Rate limit exceeded",
                                headers={"Retry-After": str(retry_after)})
