"""
Circuit breakers for the external services (GitHub, Hiro, signer, mirror).

Breaker state lives in Redis so consecutive CLI invocations and the daemon
share it:
  - CLOSED    → calls pass through
  - OPEN      → failure_threshold consecutive failures; calls raise CircuitOpenError
  - HALF_OPEN → reset_timeout elapsed; the next call is a probe

Redis being unreachable never blocks a call (fail-open).
"""
import logging
import time
from functools import wraps

logger = logging.getLogger('services.circuit_breaker')

CLOSED = 'closed'
OPEN = 'open'
HALF_OPEN = 'half_open'


class CircuitOpenError(Exception):
    """Raised instead of calling a service whose breaker is open."""
    def __init__(self, name, retry_after=None):
        self.name = name
        self.retry_after = retry_after
        super().__init__(f"Circuit breaker '{name}' is open, service unavailable")


class CircuitBreaker:
    """
    Redis-backed breaker for one named service.

        github = CircuitBreaker('github', redis_client, failure_threshold=5, reset_timeout=120)
        data = github.call(session.get, url)
    """

    PREFIX = 'appleseed:cb'

    def __init__(self, name, redis_client, failure_threshold=3, reset_timeout=300):
        self.name = name
        self.redis = redis_client
        self.failure_threshold = failure_threshold
        self.reset_timeout = reset_timeout

    def _key(self, suffix):
        return f'{self.PREFIX}:{self.name}:{suffix}'

    def _safe(self, op, default=None):
        """Run a Redis operation, returning default when Redis misbehaves."""
        try:
            return op()
        except Exception as e:
            logger.debug("Redis unavailable for breaker '%s': %s", self.name, e)
            return default

    # ── State ─────────────────────────────────────────────────────────

    def _opened_at(self):
        raw = self._safe(lambda: self.redis.get(self._key('opened_at')))
        return float(raw) if raw else None

    @property
    def state(self):
        current = self._safe(lambda: self.redis.get(self._key('state')))
        if current != OPEN:
            return current or CLOSED
        opened_at = self._opened_at()
        if opened_at is not None and time.time() - opened_at > self.reset_timeout:
            self._safe(lambda: self.redis.set(self._key('state'), HALF_OPEN))
            return HALF_OPEN
        return OPEN

    @property
    def failure_count(self):
        raw = self._safe(lambda: self.redis.get(self._key('failures')))
        return int(raw) if raw else 0

    def retry_after(self):
        opened_at = self._opened_at()
        if opened_at is None:
            return None
        return max(0.0, self.reset_timeout - (time.time() - opened_at))

    # ── Calls ─────────────────────────────────────────────────────────

    def call(self, func, *args, **kwargs):
        """Invoke func unless the circuit is open; failures count toward opening it."""
        if self.state == OPEN:
            raise CircuitOpenError(self.name, retry_after=self.retry_after())
        try:
            result = func(*args, **kwargs)
        except Exception as e:
            self._on_failure(e)
            raise
        self._on_success()
        return result

    def protect(self, func):
        """Decorator form of call()."""
        @wraps(func)
        def wrapper(*args, **kwargs):
            return self.call(func, *args, **kwargs)
        return wrapper

    def _on_success(self):
        def _close():
            pipe = self.redis.pipeline()
            pipe.set(self._key('state'), CLOSED)
            pipe.set(self._key('failures'), 0)
            pipe.hincrby(self._key('health'), 'success', 1)
            pipe.hset(self._key('health'), 'last_success', str(time.time()))
            pipe.execute()
        self._safe(_close)

    def _on_failure(self, error):
        count = self._safe(lambda: self.redis.incr(self._key('failures')), default=0)

        def _record():
            pipe = self.redis.pipeline()
            pipe.hincrby(self._key('health'), 'failure', 1)
            pipe.hset(self._key('health'), 'last_failure', str(time.time()))
            pipe.hset(self._key('health'), 'last_error', str(error)[:200])
            pipe.execute()
        self._safe(_record)

        if count >= self.failure_threshold:
            def _open():
                pipe = self.redis.pipeline()
                pipe.set(self._key('state'), OPEN)
                pipe.set(self._key('opened_at'), str(time.time()))
                pipe.execute()
            self._safe(_open)
            logger.warning("Circuit '%s' opened after %d failures: %s", self.name, count, error)
        elif count:
            logger.info("Circuit '%s' failure %d/%d: %s",
                        self.name, count, self.failure_threshold, error)

    def reset(self):
        """Force the circuit closed and forget recorded failures."""
        def _reset():
            pipe = self.redis.pipeline()
            pipe.set(self._key('state'), CLOSED)
            pipe.set(self._key('failures'), 0)
            pipe.delete(self._key('opened_at'))
            pipe.execute()
        self._safe(_reset)
        logger.info("Circuit '%s' reset", self.name)

    def get_health(self):
        """Health snapshot for the status command."""
        data = self._safe(lambda: self.redis.hgetall(self._key('health')), default={}) or {}
        return {
            'name': self.name,
            'state': self.state,
            'failure_count': self.failure_count,
            'failure_threshold': self.failure_threshold,
            'total_success': int(data.get('success', 0)),
            'total_failure': int(data.get('failure', 0)),
            'last_error': data.get('last_error', ''),
        }


# ── Registry ──────────────────────────────────────────────────────────────

# name → (failure_threshold, reset_timeout seconds)
SERVICE_LIMITS = {
    'github': (5, 120),
    'hiro': (5, 60),
    'signer': (3, 300),
    'mirror': (3, 300),
}

_registry = {}


def get_breaker(name, redis_client=None):
    """Get or create the breaker for a service (one per name per process)."""
    if name not in _registry:
        if redis_client is None:
            from appleseed.extensions import get_redis
            redis_client = get_redis()
        threshold, timeout = SERVICE_LIMITS.get(name, (3, 300))
        _registry[name] = CircuitBreaker(
            name, redis_client, failure_threshold=threshold, reset_timeout=timeout,
        )
    return _registry[name]


def init_breakers(redis_client):
    """Register breakers for every external service against redis_client."""
    for name, (threshold, timeout) in SERVICE_LIMITS.items():
        _registry[name] = CircuitBreaker(
            name, redis_client, failure_threshold=threshold, reset_timeout=timeout,
        )
    return dict(_registry)


def get_all_breakers():
    return dict(_registry)
