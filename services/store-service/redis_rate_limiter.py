"""Sliding-window rate limiting backed by Redis sorted sets."""
import logging
import time
from typing import List, Optional, Tuple

import jwt
import redis
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from config import RATE_LIMIT_PER_MINUTE_IP, RATE_LIMIT_PER_MINUTE_USER
from error_handlers import error_response
from monitoring import rate_limit_exceeded_counter, suspicious_activity_counter

logger = logging.getLogger(__name__)

SUSPICIOUS_WINDOW_SECONDS = 300

# status predicate, key suffix, threshold, activity type
SUSPICIOUS_PATTERNS = (
    (lambda code: code == 401, "401", 5, "credential_stuffing"),
    (lambda code: code == 404, "404", 10, "endpoint_scanning"),
    (lambda code: 400 <= code < 500, "4xx", 20, "abuse"),
)


def client_ip_of(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


def user_id_from_header(auth_header: Optional[str]) -> Optional[str]:
    """
    Read the ``sub`` claim of a bearer token without verifying it.

    The value only selects a rate-limit bucket; authentication happens
    later in the request pipeline.
    """
    if not auth_header or not auth_header.startswith("Bearer "):
        return None
    token = auth_header[len("Bearer "):].strip()
    try:
        claims = jwt.decode(token, options={"verify_signature": False})
    except jwt.InvalidTokenError:
        return None
    subject = claims.get("sub")
    return str(subject) if subject else None


class RedisRateLimiter(BaseHTTPMiddleware):
    """
    Two-tier request limits shared by every service instance.

    Each request is counted against its client IP and, when it carries a
    bearer token, against the token's user. Requests are refused with 429
    once either tier is exhausted. Redis errors let requests through.
    """

    def __init__(
        self,
        app,
        redis_client: redis.Redis,
        requests_per_minute_ip: int = RATE_LIMIT_PER_MINUTE_IP,
        requests_per_minute_user: int = RATE_LIMIT_PER_MINUTE_USER,
        window_seconds: int = 60
    ):
        super().__init__(app)
        self.redis = redis_client
        self.ip_limit = requests_per_minute_ip
        self.user_limit = requests_per_minute_user
        self.window_seconds = window_seconds

    def _hit(self, key: str, limit: int) -> Tuple[bool, int]:
        """
        Record one request in the window stored at ``key``.

        Returns:
            Tuple of (is_allowed, requests_in_window)
        """
        now = time.time()
        try:
            with self.redis.pipeline() as pipe:
                pipe.zremrangebyscore(key, 0, now - self.window_seconds)
                pipe.zcard(key)
                pipe.zadd(key, {str(now): now})
                pipe.expire(key, self.window_seconds + 1)
                _, previous, _, _ = pipe.execute()
        except redis.RedisError as e:
            logger.error("Rate limit check skipped", extra={"key": key, "error": str(e)})
            return True, 0

        return previous < limit, previous + 1

    def _tiers(self, request: Request) -> List[Tuple[str, str, int]]:
        tiers = [("ip", client_ip_of(request), self.ip_limit)]
        user_id = user_id_from_header(request.headers.get("authorization"))
        if user_id:
            tiers.append(("user", user_id, self.user_limit))
        return tiers

    async def dispatch(self, request: Request, call_next):
        tiers = self._tiers(request)

        for tier, identity, limit in tiers:
            allowed, count = self._hit(f"rate:{tier}:{identity}", limit)
            if not allowed:
                rate_limit_exceeded_counter.add(1, {"limit_type": tier})
                logger.warning("Rate limit exceeded", extra={
                    "limit_type": tier,
                    "identity": identity,
                    "count": count,
                    "limit": limit
                })
                return error_response(
                    429,
                    f"Rate limit exceeded for {tier}. Maximum {limit} requests per minute.",
                    headers={"Retry-After": str(self.window_seconds)}
                )

        response = await call_next(request)
        self._track_failures(response.status_code, tiers[0][1])
        return response

    def _track_failures(self, status_code: int, client_ip: str) -> None:
        """
        Flag bursts of failed requests from one client within five minutes.

        credential_stuffing: 5+ 401s; endpoint_scanning: 10+ 404s; abuse: 20+ 4xx.
        """
        now = time.time()
        try:
            for matches, suffix, threshold, activity in SUSPICIOUS_PATTERNS:
                if not matches(status_code):
                    continue

                key = f"suspicious:{suffix}:{client_ip}"
                self.redis.zadd(key, {str(now): now})
                self.redis.expire(key, SUSPICIOUS_WINDOW_SECONDS + 1)
                count = self.redis.zcount(key, now - SUSPICIOUS_WINDOW_SECONDS, now)
                if count >= threshold:
                    suspicious_activity_counter.add(1, {"type": activity})
                    logger.warning("Suspicious activity detected", extra={
                        "activity": activity,
                        "client_ip": client_ip,
                        "count": count
                    })
        except redis.RedisError as e:
            logger.error("Suspicious activity tracking skipped", extra={"error": str(e)})
