"""
Rate Limiter Module

Rate limiting for the attempt-start and answer-submission endpoints.
Counters live in Redis so that limits hold across application instances;
when Redis is absent or failing, a per-process counter is used instead.
"""

import time
from typing import Any, Callable, Dict, Optional, Tuple

from redis.asyncio import Redis
from fastapi import Request

from backend.common.error_handling import RateLimitedError
from backend.common.logger import get_logger

logger = get_logger(__name__)


class RateLimiter:
    """
    Fixed-window request counter.

    Examples:
        limiter = RateLimiter(redis_client)

        allowed, reset_time = await limiter.check("start:user-1", max_requests=10, period=60)

        @router.post("/assessments/{assessment_id}/start")
        async def start(_: bool = Depends(limiter.rate_limit_dependency(10, 60, "start"))):
            ...
    """

    def __init__(self, redis: Optional[Redis] = None, prefix: str = "rate_limit:"):
        """
        Args:
            redis: Redis client instance (optional, uses in-memory if None)
            prefix: Key prefix for Redis storage
        """
        self.redis = redis
        self.prefix = prefix
        self.local_storage: Dict[str, Tuple[int, float]] = {}

    async def check(
        self,
        key: str,
        max_requests: int,
        period: int,
        increment: bool = True
    ) -> Tuple[bool, Optional[int]]:
        """
        Check if the rate limit allows another request.

        Args:
            key: Unique identifier for the caller and action
            max_requests: Maximum number of requests allowed in the period
            period: Time period in seconds
            increment: Whether to count this request

        Returns:
            Tuple of (is_allowed, reset_time) where reset_time is the number
            of seconds until the window resets (None if allowed)
        """
        now = time.time()
        redis_key = f"{self.prefix}{key}:{period}"

        if self.redis is not None:
            try:
                current_count = await self.check_redis(redis_key, period, increment)
                if current_count > max_requests:
                    ttl = await self.redis.ttl(redis_key)
                    return False, max(1, ttl)
                return True, None
            except Exception as e:
                logger.error(f"Redis rate limit error: {str(e)}")

        return self.check_local(redis_key, max_requests, period, increment, now)

    async def check_redis(self, key: str, period: int, increment: bool) -> int:
        """Count the request in Redis and return the window's total."""
        if increment:
            current = await self.redis.incr(key)
            if current == 1:
                await self.redis.expire(key, period)
        else:
            current = int(await self.redis.get(key) or 0)
        return current

    def check_local(
        self,
        key: str,
        max_requests: int,
        period: int,
        increment: bool,
        now: float
    ) -> Tuple[bool, Optional[int]]:
        """Check rate limit using local storage (fallback)."""
        self._clean_expired_local(now)
        count, expire_time = self.local_storage.get(key, (0, now + period))

        if increment:
            count += 1
            self.local_storage[key] = (count, expire_time)

        if count > max_requests:
            return False, max(1, int(expire_time - now))
        return True, None

    def _clean_expired_local(self, now: float) -> None:
        expired = [key for key, (_, expire_time) in self.local_storage.items() if now > expire_time]
        for key in expired:
            del self.local_storage[key]

    async def enforce(self, key: str, max_requests: int, period: int) -> None:
        """
        Count a request and reject it when over the limit.

        Raises:
            RateLimitedError: If the limit is exceeded
        """
        allowed, reset_time = await self.check(key, max_requests, period)
        if not allowed:
            logger.warning(f"Rate limit exceeded for {key}; retry in {reset_time}s")
            raise RateLimitedError(
                f"Rate limit exceeded. Try again in {reset_time} seconds.",
                retry_after=reset_time
            )

    def rate_limit_dependency(
        self,
        max_requests: int,
        period: int,
        action: str,
        key_func: Optional[Callable[[Request], str]] = None
    ) -> Callable[[Request], Any]:
        """
        Create a FastAPI dependency for rate limiting one action.

        Args:
            max_requests: Maximum number of requests allowed
            period: Time period in seconds
            action: Name of the limited action, part of the counter key
            key_func: Function extracting the caller key (default: the bearer
                token, falling back to the client IP)

        Returns:
            FastAPI dependency function
        """
        async def dependency(request: Request) -> bool:
            caller = key_func(request) if key_func is not None else self._get_caller(request)
            await self.enforce(f"{action}:{caller}", max_requests, period)
            return True

        return dependency

    def _get_caller(self, request: Request) -> str:
        authorization = request.headers.get("Authorization")
        if authorization and " " in authorization:
            return authorization.split(" ", 1)[1].strip()
        forwarded = request.headers.get("X-Forwarded-For")
        if forwarded:
            return forwarded.split(",")[0].strip()
        return request.client.host if request.client else "unknown"
