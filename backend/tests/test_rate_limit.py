from datetime import timedelta

from fastapi import status

from blogapi.core.rate_limit import AttemptThrottle, RateLimitConfig
from conftest import API, login


def test_sixth_attempt_in_window_is_rejected(client, runtime, clock):
    runtime.reconfigure_rate_limit(limit=5, window_seconds=10)

    for _ in range(5):
        assert login(client, "nobody", "wrong-pass").status_code == status.HTTP_401_UNAUTHORIZED

    resp = login(client, "nobody", "wrong-pass")
    assert resp.status_code == status.HTTP_429_TOO_MANY_REQUESTS
    assert int(resp.headers["retry-after"]) == 11

    clock.advance(seconds=11)
    assert login(client, "nobody", "wrong-pass").status_code == status.HTTP_401_UNAUTHORIZED


def test_limit_is_per_route(client, runtime):
    runtime.reconfigure_rate_limit(limit=1, window_seconds=10)

    assert login(client, "nobody", "wrong-pass").status_code == status.HTTP_401_UNAUTHORIZED
    assert login(client, "nobody", "wrong-pass").status_code == status.HTTP_429_TOO_MANY_REQUESTS

    resp = client.post(f"{API}/auth/password-recovery", json={"email": "ghost@example.com"})
    assert resp.status_code == status.HTTP_204_NO_CONTENT


def test_unthrottled_routes_are_not_counted(client, runtime):
    runtime.reconfigure_rate_limit(limit=1, window_seconds=10)
    for _ in range(3):
        assert client.post(f"{API}/auth/refresh-token").status_code == status.HTTP_401_UNAUTHORIZED


def test_disabled_limiter_never_rejects(client, runtime):
    runtime.reconfigure_rate_limit(limit=1, enabled=False)
    for _ in range(3):
        assert login(client, "nobody", "wrong-pass").status_code == status.HTTP_401_UNAUTHORIZED


def test_throttle_window_slides(db_session, clock):
    """Old attempts age out one by one; there are no fixed buckets."""
    throttle = AttemptThrottle(db_session, RateLimitConfig(limit=5, window_seconds=10), clock=clock)

    for _ in range(5):
        assert throttle.hit("1.2.3.4", "/api/auth/login").allowed
        clock.advance(seconds=1)

    res = throttle.hit("1.2.3.4", "/api/auth/login")
    assert not res.allowed
    assert res.count == 6
    # Attempts at t0..t0+5; the next one fits once t0 and t0+1 have aged out,
    # i.e. strictly after t0+11
    assert res.retry_after_seconds == 7

    clock.advance(seconds=6)
    assert not throttle.hit("1.2.3.4", "/api/auth/login").allowed

    clock.advance(seconds=11)
    assert throttle.hit("1.2.3.4", "/api/auth/login").allowed


def test_throttle_keys_by_ip_and_url(db_session, clock):
    throttle = AttemptThrottle(db_session, RateLimitConfig(limit=1, window_seconds=10), clock=clock)

    assert throttle.hit("1.1.1.1", "/a").allowed
    assert not throttle.hit("1.1.1.1", "/a").allowed
    assert throttle.hit("2.2.2.2", "/a").allowed
    assert throttle.hit("1.1.1.1", "/b").allowed
    assert throttle.count_recent("1.1.1.1", "/a", timedelta(seconds=10).total_seconds()) == 2


def test_attempt_exactly_window_old_still_counts(db_session, clock):
    throttle = AttemptThrottle(db_session, RateLimitConfig(limit=5, window_seconds=10), clock=clock)
    throttle.record_attempt("1.2.3.4", "/x")

    clock.advance(seconds=10)
    assert throttle.count_recent("1.2.3.4", "/x", 10) == 1

    clock.advance(microseconds=1)
    assert throttle.count_recent("1.2.3.4", "/x", 10) == 0


def test_still_rejected_when_window_has_just_elapsed(client, runtime, clock):
    """Attempts exactly window_seconds old still count against the limit."""
    runtime.reconfigure_rate_limit(limit=5, window_seconds=10)

    for _ in range(5):
        assert login(client, "nobody", "wrong-pass").status_code == status.HTTP_401_UNAUTHORIZED

    clock.advance(seconds=10)
    assert login(client, "nobody", "wrong-pass").status_code == status.HTTP_429_TOO_MANY_REQUESTS
