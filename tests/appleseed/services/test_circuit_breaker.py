"""Tests for appleseed.services.circuit_breaker — CircuitBreaker class and registry."""
import time
import pytest
from unittest.mock import MagicMock

from appleseed.services.circuit_breaker import (
    CircuitBreaker, CircuitOpenError, CLOSED, OPEN, HALF_OPEN, SERVICE_LIMITS,
    get_breaker, get_all_breakers, init_breakers, _registry,
)


@pytest.fixture
def cb(fake_redis):
    """Fresh circuit breaker with fake Redis."""
    return CircuitBreaker('test_svc', fake_redis, failure_threshold=3, reset_timeout=10)


@pytest.fixture
def clean_registry():
    saved = dict(_registry)
    _registry.clear()
    yield _registry
    _registry.clear()
    _registry.update(saved)


def _fail():
    raise ValueError("boom")


def _trip(cb, times=3):
    for _ in range(times):
        with pytest.raises(ValueError):
            cb.call(_fail)


# ---------------------------------------------------------------------------
# State transitions
# ---------------------------------------------------------------------------

class TestCircuitBreakerStates:
    """Circuit breaker state machine: CLOSED → OPEN → HALF_OPEN → CLOSED."""

    def test_starts_closed(self, cb):
        assert cb.state == CLOSED

    def test_stays_closed_on_success(self, cb):
        assert cb.call(lambda: 'ok') == 'ok'
        assert cb.state == CLOSED

    def test_increments_failures(self, cb):
        _trip(cb, 2)
        assert cb.failure_count == 2
        assert cb.state == CLOSED  # still below threshold

    def test_success_resets_failure_count(self, cb):
        _trip(cb, 2)
        cb.call(lambda: 'ok')
        assert cb.failure_count == 0

    def test_opens_at_threshold(self, cb):
        _trip(cb)
        assert cb.state == OPEN

    def test_open_rejects_calls(self, cb):
        _trip(cb)
        called = []
        with pytest.raises(CircuitOpenError) as exc_info:
            cb.call(lambda: called.append(1))
        assert 'test_svc' in str(exc_info.value)
        assert exc_info.value.retry_after <= 10
        assert called == []

    def test_half_open_after_timeout(self, cb, fake_redis):
        _trip(cb)
        # Simulate time passing beyond reset_timeout
        fake_redis.get_store[cb._key('opened_at')] = str(time.time() - 20)
        assert cb.state == HALF_OPEN

    def test_success_in_half_open_closes(self, cb, fake_redis):
        _trip(cb)
        fake_redis.get_store[cb._key('opened_at')] = str(time.time() - 20)
        assert cb.call(lambda: 'recovered') == 'recovered'
        assert cb.state == CLOSED

    def test_failure_in_half_open_reopens(self, cb, fake_redis):
        _trip(cb)
        fake_redis.get_store[cb._key('opened_at')] = str(time.time() - 20)
        assert cb.state == HALF_OPEN
        with pytest.raises(ValueError):
            cb.call(_fail)
        assert cb.state == OPEN


# ---------------------------------------------------------------------------
# Redis unavailable
# ---------------------------------------------------------------------------

class TestFailOpen:
    """A broken Redis never blocks calls."""

    def test_calls_pass_when_redis_down(self):
        broken = MagicMock()
        broken.get.side_effect = ConnectionError('redis down')
        broken.incr.side_effect = ConnectionError('redis down')
        broken.pipeline.side_effect = ConnectionError('redis down')
        cb = CircuitBreaker('svc', broken)
        assert cb.state == CLOSED
        assert cb.call(lambda: 'ok') == 'ok'
        with pytest.raises(ValueError):
            cb.call(_fail)
        assert cb.get_health()['total_failure'] == 0


# ---------------------------------------------------------------------------
# Reset + health
# ---------------------------------------------------------------------------

class TestCircuitBreakerReset:
    """Manual circuit breaker reset."""

    def test_reset_closes_circuit(self, cb):
        _trip(cb)
        cb.reset()
        assert cb.state == CLOSED
        assert cb.failure_count == 0
        assert cb.call(lambda: 'ok') == 'ok'


class TestCircuitBreakerHealth:
    """get_health() returns metrics dict."""

    def test_health_after_success(self, cb):
        cb.call(lambda: 'ok')
        health = cb.get_health()
        assert health['name'] == 'test_svc'
        assert health['state'] == CLOSED
        assert health['total_success'] == 1
        assert health['total_failure'] == 0

    def test_health_after_failure(self, cb):
        with pytest.raises(ValueError):
            cb.call(_fail)
        health = cb.get_health()
        assert health['total_failure'] == 1
        assert health['last_error'] == 'boom'
        assert health['failure_threshold'] == 3


class TestCircuitBreakerDecorator:
    """@cb.protect decorator form."""

    def test_protect_passes_through(self, cb):
        @cb.protect
        def double(x):
            return x * 2
        assert double(5) == 10

    def test_protect_tracks_failures(self, cb):
        @cb.protect
        def broken():
            raise RuntimeError("fail")
        with pytest.raises(RuntimeError):
            broken()
        assert cb.failure_count == 1


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

class TestCircuitBreakerRegistry:
    """init_breakers(), get_breaker() and get_all_breakers()."""

    def test_init_breakers(self, fake_redis, clean_registry):
        breakers = init_breakers(fake_redis)
        assert set(breakers) == {'github', 'hiro', 'signer', 'mirror'}
        assert breakers['github'].failure_threshold == 5
        assert breakers['signer'].reset_timeout == 300
        assert set(get_all_breakers()) == set(SERVICE_LIMITS)

    def test_get_breaker_creates_on_demand(self, fake_redis, clean_registry):
        cb = get_breaker('new_service', fake_redis)
        assert cb.name == 'new_service'
        assert (cb.failure_threshold, cb.reset_timeout) == (3, 300)
        assert get_breaker('new_service') is cb

    def test_keys_are_namespaced(self, cb):
        assert cb._key('state') == 'appleseed:cb:test_svc:state'
