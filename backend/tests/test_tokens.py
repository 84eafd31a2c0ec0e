from datetime import timedelta

from blogapi.core.tokens import TokenConfig, TokenService
from conftest import FakeClock


def make_service(clock=None) -> TokenService:
    config = TokenConfig(
        secret_key="access-secret-for-tests-0123456789abcdef",
        refresh_secret_key="refresh-secret-for-tests-0123456789abcdef",
        recovery_secret_key="recovery-secret-for-tests-0123456789abcdef",
    )
    return TokenService(config, clock=clock or FakeClock())


def test_refresh_token_round_trips_claims():
    tokens = make_service()
    issued_at, expires_at = tokens.new_refresh_window()
    token = tokens.issue_refresh_token(7, "device-1", issued_at, expires_at)

    claims = tokens.verify_refresh_token(token)
    assert claims is not None
    assert claims.user_id == "7"
    assert claims.device_id == "device-1"
    assert claims.issued_at == issued_at


def test_new_refresh_window_strictly_advances():
    clock = FakeClock()
    tokens = make_service(clock)
    first, _ = tokens.new_refresh_window()
    second, _ = tokens.new_refresh_window(previous=first)
    assert second > first

    clock.advance(seconds=3)
    third, expires = tokens.new_refresh_window(previous=second)
    assert third == clock.now
    assert expires - third == timedelta(days=14)


def test_token_types_are_not_interchangeable():
    tokens = make_service()
    access = tokens.issue_access_token(1)
    recovery = tokens.issue_recovery_code(1)

    assert tokens.verify_access_token(access) == "1"
    assert tokens.verify_refresh_token(access) is None
    assert tokens.verify_access_token(recovery) is None
    assert tokens.verify_recovery_code(recovery) == "1"


def test_tampered_and_expired_tokens_rejected():
    clock = FakeClock()
    tokens = make_service(clock)
    access = tokens.issue_access_token(1)

    assert tokens.verify_access_token(access[:-2] + "xx") is None
    assert tokens.verify_access_token("") is None

    clock.advance(minutes=10)
    assert tokens.verify_access_token(access) is None


def test_reconfigure_changes_lifetimes_for_new_tokens():
    clock = FakeClock()
    tokens = make_service(clock)
    tokens.reconfigure(access_lifetime=timedelta(seconds=5))
    access = tokens.issue_access_token(1)

    clock.advance(seconds=6)
    assert tokens.verify_access_token(access) is None


def test_decode_refresh_token_reads_expired_claims():
    clock = FakeClock()
    tokens = make_service(clock)
    issued_at, expires_at = tokens.new_refresh_window()
    token = tokens.issue_refresh_token(3, "device-9", issued_at, expires_at)

    clock.advance(days=15)
    assert tokens.verify_refresh_token(token) is None
    claims = tokens.decode_refresh_token(token)
    assert claims is not None
    assert claims.device_id == "device-9"
    assert tokens.decode_refresh_token("garbage") is None
