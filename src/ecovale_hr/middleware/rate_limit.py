"""Rate limiting middleware — in-process token buckets per client IP.

Only the auth endpoints are guarded, each with its own limit class:
- login:    5 requests, refilled over 1 minute
- register: 3 requests, refilled over 5 minutes
- general:  20 requests, refilled over 1 minute (refresh, me, logout, ...)

Buckets refill continuously at capacity / refill_seconds. They live in an
injected BucketStore that is sharded (different IPs rarely share a lock),
size-capped, and drops buckets that have sat idle, so memory stays
bounded however many distinct IPs show up.

Failures inside the limiter never block traffic: if the store blows up,
the request goes through and a warning is logged.
"""

import math
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional

import structlog
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from ecovale_hr.config import Settings, settings
from ecovale_hr.errors import RateLimitExceeded
from ecovale_hr.middleware.client_ip import get_client_ip

logger = structlog.get_logger()


@dataclass(frozen=True)
class LimitClass:
    """Bucket parameters for one class of guarded paths."""

    name: str
    capacity: int
    refill_seconds: int
    message: str

    @property
    def refill_rate(self) -> float:
        return self.capacity / self.refill_seconds


def _humanize(seconds: int) -> str:
    if seconds % 60 == 0:
        minutes = seconds // 60
        return f"{minutes} minute" if minutes == 1 else f"{minutes} minutes"
    return f"{seconds} seconds"


class TokenBucket:
    """Capacity refills continuously; each request takes one token."""

    def __init__(self, limit: LimitClass, now: float):
        self.limit = limit
        self.tokens = float(limit.capacity)
        self.updated_at = now
        self.last_seen = now
        self._lock = threading.Lock()

    def try_consume(self, now: float, amount: int = 1) -> bool:
        with self._lock:
            self._refill(now)
            if self.tokens >= amount:
                self.tokens -= amount
                return True
            return False

    def remaining(self, now: float) -> int:
        with self._lock:
            self._refill(now)
            return int(self.tokens)

    def _refill(self, now: float) -> None:
        elapsed = max(0.0, now - self.updated_at)
        self.tokens = min(
            float(self.limit.capacity), self.tokens + elapsed * self.limit.refill_rate
        )
        self.updated_at = now


class _Shard:
    def __init__(self):
        self.buckets: "OrderedDict[str, TokenBucket]" = OrderedDict()
        self.lock = threading.Lock()


class BucketStore:
    """Bounded map of bucket key -> TokenBucket.

    Keys hash to one of `shards` independent LRU maps. Each map holds at
    most max_clients / shards buckets and forgets buckets unused for
    `idle_seconds` (a bucket idle that long would be full again anyway,
    as long as idle_seconds >= the longest refill interval).
    """

    def __init__(
        self,
        max_clients: int = 10_000,
        idle_seconds: float = 900,
        shards: int = 16,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_clients < 1 or shards < 1:
            raise ValueError("max_clients and shards must be positive")
        self._shards = [_Shard() for _ in range(shards)]
        self._per_shard = max(1, max_clients // shards)
        self.max_clients = max_clients
        self.idle_seconds = idle_seconds
        self.clock = clock

    def get_or_create(self, key: str, limit: LimitClass) -> TokenBucket:
        shard = self._shards[hash(key) % len(self._shards)]
        now = self.clock()
        with shard.lock:
            bucket = shard.buckets.get(key)
            if bucket is not None and now - bucket.last_seen > self.idle_seconds:
                del shard.buckets[key]
                bucket = None

            if bucket is None:
                self._evict(shard, now)
                bucket = TokenBucket(limit, now)
                shard.buckets[key] = bucket
            else:
                shard.buckets.move_to_end(key)
            bucket.last_seen = now
            return bucket

    def _evict(self, shard: _Shard, now: float) -> None:
        # Least recently used first: drop idle buckets, then enforce the cap
        while shard.buckets:
            key, oldest = next(iter(shard.buckets.items()))
            if (
                now - oldest.last_seen > self.idle_seconds
                or len(shard.buckets) >= self._per_shard
            ):
                del shard.buckets[key]
            else:
                break

    def __len__(self) -> int:
        return sum(len(s.buckets) for s in self._shards)


class RateLimiter:
    """Maps a request path to a limit class and charges the caller's bucket."""

    def __init__(
        self,
        path_prefix: str,
        login: LimitClass,
        register: LimitClass,
        general: LimitClass,
        store: Optional[BucketStore] = None,
    ):
        self.path_prefix = path_prefix.rstrip("/")
        self.login = login
        self.register = register
        self.general = general
        # An empty BucketStore is falsy (it defines __len__)
        self.store = store if store is not None else BucketStore()

    @classmethod
    def from_settings(
        cls, config: Optional[Settings] = None, store: Optional[BucketStore] = None
    ) -> "RateLimiter":
        config = config or settings
        if store is None:
            store = BucketStore(
                max_clients=config.rate_limit_max_clients,
                idle_seconds=config.rate_limit_idle_seconds,
            )
        login_refill = config.rate_limit_login_refill_seconds
        register_refill = config.rate_limit_register_refill_seconds
        return cls(
            path_prefix=config.rate_limit_path_prefix,
            login=LimitClass(
                name="login",
                capacity=config.rate_limit_login_capacity,
                refill_seconds=login_refill,
                message=(
                    "Too many login attempts. "
                    f"Please try again in {_humanize(login_refill)}."
                ),
            ),
            register=LimitClass(
                name="register",
                capacity=config.rate_limit_register_capacity,
                refill_seconds=register_refill,
                message=(
                    "Too many registration attempts. "
                    f"Please try again in {_humanize(register_refill)}."
                ),
            ),
            general=LimitClass(
                name="general",
                capacity=config.rate_limit_general_capacity,
                refill_seconds=config.rate_limit_general_refill_seconds,
                message="Rate limit exceeded. Please try again later.",
            ),
            store=store,
        )

    def classify(self, path: str) -> Optional[LimitClass]:
        """Limit class for `path`, or None when the path is not guarded."""
        if path != self.path_prefix and not path.startswith(self.path_prefix + "/"):
            return None
        if "/login" in path:
            return self.login
        if "/register" in path:
            return self.register
        return self.general

    def acquire(self, client_ip: str, path: str) -> Optional[TokenBucket]:
        """Take one token for (client_ip, class of path).

        Returns the bucket charged, or None when the path is unguarded or
        the store failed (fail open). Raises RateLimitExceeded when the
        bucket is empty.
        """
        limit = self.classify(path)
        if limit is None:
            return None

        try:
            bucket = self.store.get_or_create(f"{client_ip}:{limit.name}", limit)
        except Exception as e:
            logger.warning(
                "rate_limit.store_error",
                error=str(e),
                client_ip=client_ip,
                limit_class=limit.name,
            )
            return None

        if not bucket.try_consume(self.store.clock()):
            raise RateLimitExceeded(
                limit.message, retry_after=limit.refill_seconds, limit_class=limit.name
            )
        return bucket


def too_many_requests_response(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    return JSONResponse(
        status_code=429,
        content={
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "status": 429,
            "error": "Too Many Requests",
            "message": exc.message,
            "path": request.url.path,
        },
        headers={"Retry-After": str(math.ceil(exc.retry_after))},
    )


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Reject callers that exhaust their bucket with 429 before any auth logic runs."""

    def __init__(self, app, limiter: RateLimiter):
        super().__init__(app)
        self.limiter = limiter

    async def dispatch(self, request: Request, call_next) -> Response:
        if request.method == "OPTIONS":
            return await call_next(request)

        client_ip = get_client_ip(request)
        path = request.url.path
        try:
            bucket = self.limiter.acquire(client_ip, path)
        except RateLimitExceeded as e:
            logger.warning(
                "rate_limit.exceeded",
                client_ip=client_ip,
                path=path,
                limit_class=e.limit_class,
            )
            return too_many_requests_response(request, e)

        response: Response = await call_next(request)
        if bucket is not None:
            response.headers["X-RateLimit-Limit"] = str(bucket.limit.capacity)
            response.headers["X-RateLimit-Remaining"] = str(
                bucket.remaining(self.limiter.store.clock())
            )
        return response
