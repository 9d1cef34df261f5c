"""Redis-backed rate limiter."""
import logging
import time
from typing import Optional, Tuple
import redis
from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from auth import get_principal_from_token
from monitoring import rate_limit_exceeded_counter, suspicious_activity_counter

logger = logging.getLogger(__name__)


class RedisRateLimiter(BaseHTTPMiddleware):
    """
    Rate limiter using Redis for distributed rate limiting.

    Counters live in Redis so limits hold across service instances and
    restarts, and expire on their own.

    Implements dual-tier sliding window rate limiting:
    - Per IP: higher limit, since many customers can share one address
    - Per user: lower limit, keyed by the authenticated principal
    """

    def __init__(
        self,
        app,
        redis_client: redis.Redis,
        requests_per_minute_ip: int = 50000,
        requests_per_minute_user: int = 500,
        window_seconds: int = 60
    ):
        """
        Initialize Redis-backed rate limiter.

        Args:
            app: FastAPI application
            redis_client: Redis connection
            requests_per_minute_ip: Max requests per IP per minute
            requests_per_minute_user: Max requests per user per minute
            window_seconds: Sliding window size in seconds
        """
        super().__init__(app)
        self.redis = redis_client
        self.requests_per_minute_ip = requests_per_minute_ip
        self.requests_per_minute_user = requests_per_minute_user
        self.window_seconds = window_seconds

    def _check_rate_limit(
        self,
        key: str,
        limit: int,
        window: int
    ) -> Tuple[bool, int]:
        """
        Check rate limit using Redis sorted set (sliding window).

        Algorithm:
        1. Remove timestamps older than window
        2. Count requests in window
        3. Add current request
        4. Set TTL

        Args:
            key: Redis key for this limit (e.g., "rate:ip:192.168.1.1")
            limit: Maximum requests allowed
            window: Time window in seconds

        Returns:
            Tuple of (is_allowed, current_count)
        """
        try:
            current_time = time.time()
            window_start = current_time - window

            pipe = self.redis.pipeline()
            pipe.zremrangebyscore(key, 0, window_start)
            pipe.zcard(key)
            pipe.zadd(key, {str(current_time): current_time})
            pipe.expire(key, window + 1)
            results = pipe.execute()

            # Count BEFORE adding current request
            count = results[1]

            return count < limit, count + 1

        except redis.RedisError as e:
            logger.error(f"Redis rate limit error: {e}")
            # Fail open: allow request if Redis is unavailable
            return True, 0

    def _rejection(self, limit_type: str, limit: int) -> JSONResponse:
        return JSONResponse(
            status_code=429,
            content={
                "kind": "RateLimited",
                "message": f"Rate limit exceeded for {limit_type}. Maximum {limit} requests per minute."
            },
            headers={"Retry-After": str(self.window_seconds)}
        )

    async def dispatch(self, request: Request, call_next):
        """
        Process request with Redis-backed dual-tier rate limiting.

        Args:
            request: Incoming request
            call_next: Next middleware in chain

        Returns:
            Response or 429 if rate limited
        """
        client_ip = request.client.host if request.client else "unknown"
        if "x-forwarded-for" in request.headers:
            client_ip = request.headers["x-forwarded-for"].split(",")[0].strip()

        user_id = None
        auth_header = request.headers.get("authorization")
        if auth_header and auth_header.startswith("Bearer "):
            principal = get_principal_from_token(auth_header.split(" ", 1)[1].strip())
            if principal is not None:
                user_id = principal.user_id

        # --- IP-based rate limiting ---
        ip_allowed, ip_count = self._check_rate_limit(
            f"rate:ip:{client_ip}",
            self.requests_per_minute_ip,
            self.window_seconds
        )
        if not ip_allowed:
            rate_limit_exceeded_counter.add(1, {"limit_type": "ip"})
            logger.warning("IP rate limit exceeded", extra={
                "client_ip": client_ip,
                "requests_in_window": ip_count,
                "limit": self.requests_per_minute_ip
            })
            return self._rejection("IP", self.requests_per_minute_ip)

        # --- User-based rate limiting ---
        if user_id:
            user_allowed, user_count = self._check_rate_limit(
                f"rate:user:{user_id}",
                self.requests_per_minute_user,
                self.window_seconds
            )
            if not user_allowed:
                rate_limit_exceeded_counter.add(1, {"limit_type": "user"})
                logger.warning("User rate limit exceeded", extra={
                    "user_id": user_id,
                    "requests_in_window": user_count,
                    "limit": self.requests_per_minute_user
                })
                return self._rejection("user", self.requests_per_minute_user)

        response = await call_next(request)

        self._detect_suspicious_activity(request, response.status_code, client_ip)

        return response

    def _detect_suspicious_activity(self, request: Request, status_code: int, client_ip: str) -> None:
        """
        Flag clients producing bursts of failures.

        Patterns (5 minute window):
        - Credential stuffing: 5+ rejected tokens
        - Endpoint scanning: 10+ 404s
        """
        patterns = {401: ("credential_stuffing", 5), 404: ("endpoint_scanning", 10)}
        if status_code not in patterns:
            return

        pattern, threshold = patterns[status_code]
        try:
            current_time = time.time()
            window = 300
            key = f"suspicious:{status_code}:{client_ip}"

            self.redis.zadd(key, {str(current_time): current_time})
            self.redis.expire(key, window + 1)

            count = self.redis.zcount(key, current_time - window, current_time)
            if count >= threshold:
                suspicious_activity_counter.add(1, {"type": pattern})
                logger.warning("Suspicious activity detected", extra={
                    "type": pattern,
                    "client_ip": client_ip,
                    "endpoint": request.url.path,
                    "count": count
                })
        except redis.RedisError as e:
            logger.error(f"Error detecting suspicious activity: {e}")
