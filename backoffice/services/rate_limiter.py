# ================================
# RATE LIMITER (services/rate_limiter.py)
# ================================

"""
Fixed-window request throttling per client identifier.

Two policies are configured: a general API policy and a stricter policy for
authentication-sensitive flows (login, registration, password reset). Each
policy keeps its own counter per identifier under the key
``<policy>:<identifier>``, so one caller's budget never touches another's.

Counters live behind the ``CounterStore`` protocol:

- ``InMemoryCounterStore``: process-local, lock-guarded. Counters reset when
  the process restarts.
- ``RedisCounterStore``: shared between workers; increment and expiry happen
  in one Lua script so concurrent requests cannot lose updates.
"""

from dataclasses import dataclass
from collections import OrderedDict
from typing import Callable, Optional, Protocol, Tuple
from fastapi import Request
from backoffice.config import settings
from backoffice.core.exceptions import RateLimitError
import math
import threading
import time
import logging

import redis

logger = logging.getLogger(__name__)

@dataclass(frozen=True)
class RateLimitPolicy:
    """Ceiling and window of one throttling policy"""
    name: str
    max_requests: int
    window_seconds: int

@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    count: int
    limit: int
    reset_in: float  # seconds until the current window closes
    retry_after: int = 0

    @property
    def remaining(self) -> int:
        return max(0, self.limit - self.count)

class CounterStore(Protocol):
    """Atomic counter with a per-key expiry window"""

    def increment(self, key: str, window_seconds: int) -> Tuple[int, float]:
        """Increment ``key`` and return (count, seconds until the window resets)"""
        ...

    def reset(self, key: str) -> None:
        ...

# ================================
# COUNTER STORES
# ================================

class InMemoryCounterStore:
    """Process-local buckets guarded by a lock.

    At most ``max_buckets`` buckets are kept. Expired buckets are swept at
    most once per ``sweep_interval`` seconds; if the map is still full, the
    buckets whose window opened first are evicted.
    """

    def __init__(
        self,
        clock: Callable[[], float] = time.monotonic,
        max_buckets: int = 10000,
        sweep_interval: float = 60.0
    ):
        self._clock = clock
        self._max_buckets = max(1, max_buckets)
        self._sweep_interval = sweep_interval
        self._last_sweep = float("-inf")
        # Ordered by window start, oldest first
        self._buckets: "OrderedDict[str, Tuple[int, float]]" = OrderedDict()
        self._lock = threading.Lock()

    def increment(self, key: str, window_seconds: int) -> Tuple[int, float]:
        with self._lock:
            now = self._clock()
            count, reset_at = self._buckets.get(key, (0, 0.0))

            # A request at or after the reset timestamp opens a fresh window
            if count == 0 or now >= reset_at:
                count, reset_at = 0, now + window_seconds
                self._buckets.pop(key, None)

            count += 1
            self._buckets[key] = (count, reset_at)

            if len(self._buckets) > self._max_buckets:
                self._enforce_capacity(now)

            return count, reset_at - now

    def reset(self, key: str) -> None:
        with self._lock:
            self._buckets.pop(key, None)

    def _enforce_capacity(self, now: float):
        """Sweep (rate-limited) and then evict the oldest windows (lock held by caller)"""
        if now - self._last_sweep >= self._sweep_interval:
            self._cleanup_expired(now)
            self._last_sweep = now

        evicted = 0
        while len(self._buckets) > self._max_buckets:
            self._buckets.popitem(last=False)
            evicted += 1
        if evicted:
            logger.warning(f"Rate limit store full, evicted {evicted} bucket(s)")

    def _cleanup_expired(self, now: float):
        """Drop buckets whose window already closed (lock held by caller)"""
        expired = [key for key, (_, reset_at) in self._buckets.items() if now >= reset_at]
        for key in expired:
            del self._buckets[key]

# INCR and PEXPIRE in one round trip; the first hit of a window sets the expiry
LUA_INCREMENT = """
local count = redis.call("INCR", KEYS[1])
if count == 1 then
  redis.call("PEXPIRE", KEYS[1], ARGV[1])
end
local ttl = redis.call("PTTL", KEYS[1])
if ttl < 0 then
  redis.call("PEXPIRE", KEYS[1], ARGV[1])
  ttl = tonumber(ARGV[1])
end
return {count, ttl}
"""

class RedisCounterStore:
    """Counters shared between processes, expiring via Redis TTLs"""

    def __init__(self, client: "redis.Redis", key_prefix: str = "ratelimit:"):
        self.redis = client
        self.key_prefix = key_prefix
        self._increment_script = self.redis.register_script(LUA_INCREMENT)

    @classmethod
    def from_url(cls, url: str, **kwargs) -> "RedisCounterStore":
        return cls(redis.Redis.from_url(url, decode_responses=True), **kwargs)

    def increment(self, key: str, window_seconds: int) -> Tuple[int, float]:
        count, ttl_ms = self._increment_script(
            keys=[self.key_prefix + key],
            args=[int(window_seconds * 1000)]
        )
        return int(count), int(ttl_ms) / 1000.0

    def reset(self, key: str) -> None:
        self.redis.delete(self.key_prefix + key)

# ================================
# RATE LIMITER
# ================================

class RateLimiter:
    """Applies the API and auth policies on top of a counter store"""

    def __init__(
        self,
        store: CounterStore,
        api_policy: Optional[RateLimitPolicy] = None,
        auth_policy: Optional[RateLimitPolicy] = None
    ):
        self.store = store
        self.api_policy = api_policy or RateLimitPolicy(
            "api", settings.API_RATE_LIMIT_MAX, settings.API_RATE_LIMIT_WINDOW_SECONDS
        )
        self.auth_policy = auth_policy or RateLimitPolicy(
            "auth", settings.AUTH_RATE_LIMIT_MAX, settings.AUTH_RATE_LIMIT_WINDOW_SECONDS
        )

    @staticmethod
    def bucket_key(policy: RateLimitPolicy, identifier: str) -> str:
        return f"{policy.name}:{identifier}"

    def check(self, policy: RateLimitPolicy, identifier: str) -> RateLimitResult:
        """Count one request against ``policy`` without raising"""
        try:
            count, reset_in = self.store.increment(self.bucket_key(policy, identifier), policy.window_seconds)
        except Exception as e:
            # Store unavailable: fail open, throttling is abuse mitigation only
            logger.warning(f"Rate limit store unavailable for policy '{policy.name}': {e}")
            return RateLimitResult(allowed=True, count=0, limit=policy.max_requests, reset_in=0.0)

        if count > policy.max_requests:
            retry_after = max(1, math.ceil(reset_in))
            return RateLimitResult(
                allowed=False, count=count, limit=policy.max_requests,
                reset_in=reset_in, retry_after=retry_after
            )

        return RateLimitResult(allowed=True, count=count, limit=policy.max_requests, reset_in=reset_in)

    def enforce(self, policy: RateLimitPolicy, identifier: str) -> RateLimitResult:
        result = self.check(policy, identifier)
        if not result.allowed:
            logger.warning(
                f"Rate limit exceeded: policy={policy.name} identifier={identifier} "
                f"count={result.count} retry_after={result.retry_after}s"
            )
            raise RateLimitError(result.retry_after)
        return result

    def api_rate_limit(self, identifier: str) -> RateLimitResult:
        """General policy for most mutating actions"""
        return self.enforce(self.api_policy, identifier)

    def auth_rate_limit(self, identifier: str) -> RateLimitResult:
        """Strict policy for login and password flows"""
        return self.enforce(self.auth_policy, identifier)

    def reset(self, policy: RateLimitPolicy, identifier: str) -> None:
        self.store.reset(self.bucket_key(policy, identifier))

# ================================
# CLIENT IDENTIFICATION
# ================================

def get_client_ip(request: Request) -> str:
    """Client address, honoring X-Forwarded-For only behind a trusted proxy"""
    if settings.TRUST_PROXY_HEADERS:
        forwarded = request.headers.get("X-Forwarded-For")
        if forwarded:
            return forwarded.split(",")[0].strip()
        real_ip = request.headers.get("X-Real-IP")
        if real_ip:
            return real_ip.strip()
    return request.client.host if request.client else "unknown"

def get_client_identifier(request: Request, user=None) -> str:
    """Stable throttling key: the user id once authenticated, else the address"""
    if user is not None and getattr(user, "id", None) is not None:
        return f"user:{user.id}"
    return f"ip:{get_client_ip(request)}"

# ================================
# SINGLETON
# ================================

def build_counter_store() -> CounterStore:
    if settings.RATE_LIMIT_BACKEND.lower() == "redis":
        logger.info("Using Redis rate limit store")
        return RedisCounterStore.from_url(settings.REDIS_URL)
    return InMemoryCounterStore()

_rate_limiter: Optional[RateLimiter] = None
_rate_limiter_lock = threading.Lock()

def get_rate_limiter() -> RateLimiter:
    """Process-wide limiter (FastAPI dependency)"""
    global _rate_limiter
    if _rate_limiter is None:
        with _rate_limiter_lock:
            if _rate_limiter is None:
                _rate_limiter = RateLimiter(build_counter_store())
    return _rate_limiter
