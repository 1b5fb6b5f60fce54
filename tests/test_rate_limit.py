"""Rate limiter tests — token buckets, bounded store, and the 429 middleware.

Learn: The bucket store takes a fake monotonic clock, so "within one
minute" and "after the refill interval" are exact, not sleep-based.
"""

import pytest

from ecovale_hr.config import Settings
from ecovale_hr.errors import RateLimitExceeded
from ecovale_hr.middleware.rate_limit import (
    BucketStore,
    LimitClass,
    RateLimiter,
    TokenBucket,
)

from conftest import FakeMonotonic

LOGIN = "/api/v1/auth/login"
REGISTER = "/api/v1/auth/register"


@pytest.fixture()
def limiter(bucket_clock):
    return RateLimiter.from_settings(Settings(), store=BucketStore(clock=bucket_clock))


# ═══════════════════════════════════════════════════════════
# Token bucket
# ═══════════════════════════════════════════════════════════


def test_bucket_allows_capacity_then_refuses():
    bucket = TokenBucket(LimitClass("t", capacity=3, refill_seconds=60, message=""), now=0.0)
    assert [bucket.try_consume(0.0) for _ in range(4)] == [True, True, True, False]


def test_bucket_refills_continuously():
    bucket = TokenBucket(LimitClass("t", capacity=6, refill_seconds=60, message=""), now=0.0)
    for _ in range(6):
        assert bucket.try_consume(0.0)
    assert not bucket.try_consume(5.0)  # 0.5 token refilled
    assert bucket.try_consume(10.0)  # 1 token refilled
    assert not bucket.try_consume(10.0)


def test_bucket_never_exceeds_capacity():
    bucket = TokenBucket(LimitClass("t", capacity=2, refill_seconds=10, message=""), now=0.0)
    assert bucket.remaining(10_000.0) == 2


# ═══════════════════════════════════════════════════════════
# Limiter
# ═══════════════════════════════════════════════════════════


@pytest.mark.parametrize(
    "path,expected",
    [
        (LOGIN, "login"),
        (REGISTER, "register"),
        ("/api/v1/auth/refresh", "general"),
        ("/api/v1/auth/me", "general"),
        ("/api/v1/auth", "general"),
        ("/api/v1/health", None),
        ("/api/v1/admin/users", None),
        ("/api/v1/authors", None),
    ],
)
def test_classify(limiter, path, expected):
    limit = limiter.classify(path)
    assert (limit.name if limit else None) == expected


def test_within_capacity_all_succeed_and_next_is_rejected(limiter, bucket_clock):
    for _ in range(5):
        limiter.acquire("10.0.0.1", LOGIN)
        bucket_clock.advance(1)

    with pytest.raises(RateLimitExceeded) as exc_info:
        limiter.acquire("10.0.0.1", LOGIN)
    assert exc_info.value.retry_after == 60
    assert exc_info.value.limit_class == "login"
    assert "1 minute" in exc_info.value.message


def test_other_ip_unaffected(limiter):
    for _ in range(5):
        limiter.acquire("10.0.0.1", LOGIN)
    with pytest.raises(RateLimitExceeded):
        limiter.acquire("10.0.0.1", LOGIN)

    assert limiter.acquire("10.0.0.2", LOGIN) is not None


def test_classes_have_separate_buckets(limiter):
    for _ in range(5):
        limiter.acquire("10.0.0.1", LOGIN)
    # Login exhausted, register still has its own budget
    for _ in range(3):
        limiter.acquire("10.0.0.1", REGISTER)
    with pytest.raises(RateLimitExceeded) as exc_info:
        limiter.acquire("10.0.0.1", REGISTER)
    assert exc_info.value.retry_after == 300
    assert "5 minutes" in exc_info.value.message


def test_budget_returns_after_refill_interval(limiter, bucket_clock):
    for _ in range(5):
        limiter.acquire("10.0.0.1", LOGIN)
    with pytest.raises(RateLimitExceeded):
        limiter.acquire("10.0.0.1", LOGIN)

    bucket_clock.advance(60)
    for _ in range(5):
        limiter.acquire("10.0.0.1", LOGIN)


def test_unguarded_path_is_not_charged(limiter):
    for _ in range(100):
        assert limiter.acquire("10.0.0.1", "/api/v1/health") is None


def test_limits_come_from_configuration(bucket_clock):
    config = Settings(rate_limit_login_capacity=2, rate_limit_login_refill_seconds=30)
    limiter = RateLimiter.from_settings(config, store=BucketStore(clock=bucket_clock))
    limiter.acquire("ip", LOGIN)
    limiter.acquire("ip", LOGIN)
    with pytest.raises(RateLimitExceeded) as exc_info:
        limiter.acquire("ip", LOGIN)
    assert exc_info.value.retry_after == 30
    assert "30 seconds" in exc_info.value.message


class BrokenStore(BucketStore):
    def get_or_create(self, key, limit):
        raise MemoryError("store exhausted")


def test_store_failure_fails_open():
    limiter = RateLimiter.from_settings(Settings(), store=BrokenStore(clock=FakeMonotonic()))
    for _ in range(50):
        assert limiter.acquire("10.0.0.1", LOGIN) is None


# ═══════════════════════════════════════════════════════════
# Bounded store
# ═══════════════════════════════════════════════════════════


LIMIT = LimitClass("t", capacity=1, refill_seconds=60, message="")


def test_store_is_size_capped():
    store = BucketStore(max_clients=3, shards=1, clock=FakeMonotonic())
    for i in range(10):
        store.get_or_create(f"ip-{i}", LIMIT)
    assert len(store) == 3


def test_store_evicts_least_recently_used():
    clock = FakeMonotonic()
    store = BucketStore(max_clients=2, shards=1, clock=clock)
    a = store.get_or_create("a", LIMIT)
    store.get_or_create("b", LIMIT)
    clock.advance(1)
    assert store.get_or_create("a", LIMIT) is a  # touch a, b is now oldest
    store.get_or_create("c", LIMIT)
    assert store.get_or_create("a", LIMIT) is a


def test_store_drops_idle_buckets():
    clock = FakeMonotonic()
    store = BucketStore(max_clients=100, idle_seconds=300, shards=1, clock=clock)
    first = store.get_or_create("a", LIMIT)
    clock.advance(301)
    assert store.get_or_create("a", LIMIT) is not first


def test_store_returns_same_bucket_for_same_key():
    store = BucketStore(clock=FakeMonotonic())
    assert store.get_or_create("k", LIMIT) is store.get_or_create("k", LIMIT)


# ═══════════════════════════════════════════════════════════
# Middleware
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_six_rapid_logins_sixth_is_429(client, user):
    """Attempts 1-5 reach credential checking; attempt 6 never does."""
    statuses = []
    for _ in range(6):
        r = await client.post(
            LOGIN, json={"username": "alice", "password": "wrong-password"}
        )
        statuses.append(r.status_code)

    assert statuses == [401, 401, 401, 401, 401, 429]
    assert r.headers["Retry-After"] == "60"
    body = r.json()
    assert body["status"] == 429
    assert body["error"] == "Too Many Requests"
    assert body["path"] == LOGIN
    assert "login attempts" in body["message"]
    assert "timestamp" in body


@pytest.mark.asyncio
async def test_rate_limited_even_with_correct_password(client, user):
    for _ in range(5):
        await client.post(LOGIN, json={"username": "alice", "password": "wrong"})
    r = await client.post(
        LOGIN, json={"username": "alice", "password": "correct-password-123"}
    )
    assert r.status_code == 429


@pytest.mark.asyncio
async def test_forwarded_ip_has_its_own_budget(client, user):
    for _ in range(5):
        await client.post(
            LOGIN,
            json={"username": "alice", "password": "wrong"},
            headers={"X-Forwarded-For": "203.0.113.7, 10.0.0.1"},
        )
    r = await client.post(
        LOGIN,
        json={"username": "alice", "password": "wrong"},
        headers={"X-Forwarded-For": "203.0.113.7"},
    )
    assert r.status_code == 429

    r = await client.post(
        LOGIN,
        json={"username": "alice", "password": "wrong"},
        headers={"X-Forwarded-For": "198.51.100.9"},
    )
    assert r.status_code == 401


@pytest.mark.asyncio
async def test_rate_limit_headers_on_allowed_response(client, user):
    r = await client.post(LOGIN, json={"username": "alice", "password": "wrong"})
    assert r.headers["X-RateLimit-Limit"] == "5"
    assert r.headers["X-RateLimit-Remaining"] == "4"


@pytest.mark.asyncio
async def test_429_still_carries_correlation_headers(client):
    for _ in range(3):
        await client.post(REGISTER, json={})
    r = await client.post(REGISTER, json={}, headers={"X-Correlation-ID": "trace-429"})
    assert r.status_code == 429
    assert r.headers["Retry-After"] == "300"
    assert r.headers["X-Correlation-ID"] == "trace-429"
    assert "X-Request-ID" in r.headers


@pytest.mark.asyncio
async def test_health_is_never_rate_limited(client):
    for _ in range(30):
        r = await client.get("/api/v1/health")
        assert r.status_code == 200


# ═══════════════════════════════════════════════════════════
# Store wiring
# ═══════════════════════════════════════════════════════════


def test_from_settings_applies_configured_store_bounds():
    config = Settings(rate_limit_max_clients=32, rate_limit_idle_seconds=600)
    limiter = RateLimiter.from_settings(config)
    assert limiter.store.max_clients == 32
    assert limiter.store.idle_seconds == 600
    assert limiter.store._per_shard == 2


def test_injected_empty_store_is_kept(bucket_clock):
    store = BucketStore(clock=bucket_clock)
    assert len(store) == 0
    limiter = RateLimiter.from_settings(Settings(), store=store)
    assert limiter.store is store
    assert limiter.store.clock is bucket_clock
