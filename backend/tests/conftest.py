import os
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Use in-memory SQLite for tests by default, can be overridden via TEST_DATABASE_URL
TEST_DB_URL = os.getenv("TEST_DATABASE_URL", "sqlite+pysqlite:///:memory:")

# Ensure the app uses SQLite during imports (blogapi.main creates tables in non-prod).
os.environ.setdefault("ENVIRONMENT", "development")
os.environ.setdefault("DATABASE_URL", TEST_DB_URL)
os.environ.setdefault("COOKIE_SECURE", "true")

from blogapi.container import AuthRuntime
from blogapi.core.config import get_settings
from blogapi.db.base import Base
from blogapi.db.session import get_db_session
from blogapi.main import create_app
from blogapi.utils.mailer import EmailManager
import blogapi.models  # noqa: F401

API = "/api"


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, start: datetime = None):
        self.now = start or datetime.now(timezone.utc).replace(microsecond=0)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class CapturingMailer(EmailManager):
    """Records outgoing codes instead of talking to SMTP."""

    def __init__(self):
        super().__init__()
        self.registration_codes: dict[str, list[str]] = {}
        self.recovery_codes: dict[str, list[str]] = {}

    def send_registration_message(self, email: str, confirmation_code: str) -> bool:
        self.registration_codes.setdefault(email, []).append(confirmation_code)
        return True

    def send_password_recovery_message(self, email: str, recovery_code: str) -> bool:
        self.recovery_codes.setdefault(email, []).append(recovery_code)
        return True


@pytest.fixture(scope="function")
def engine():
    # Important: in-memory SQLite needs StaticPool to keep the same DB across connections.
    kwargs = {"connect_args": {"check_same_thread": False}}
    if TEST_DB_URL.endswith(":memory:"):
        kwargs["poolclass"] = StaticPool
    eng = create_engine(TEST_DB_URL, **kwargs)
    Base.metadata.create_all(bind=eng)
    try:
        yield eng
    finally:
        Base.metadata.drop_all(bind=eng)


@pytest.fixture(scope="function")
def db_session(engine):
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def mailer():
    return CapturingMailer()


@pytest.fixture
def runtime(clock, mailer):
    rt = AuthRuntime(get_settings(), clock=clock, mailer=mailer)
    # Most tests hammer throttled routes; the limiter has its own tests
    rt.reconfigure_rate_limit(limit=1000)
    return rt


@pytest.fixture(scope="function")
def client(db_session, runtime):
    app = create_app(runtime=runtime)

    # Override the DB session dependency to use the test database
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db_session] = override_get_db
    # https so the Secure refresh cookie round-trips
    return TestClient(app, base_url="https://testserver")


ADMIN_AUTH = ("admin", "qwerty")


def create_user(client, login: str = "alice", email: str = "alice@example.com", password: str = "secret123"):
    resp = client.post(
        f"{API}/users",
        json={"login": login, "email": email, "password": password},
        auth=ADMIN_AUTH,
    )
    assert resp.status_code == 201, resp.text
    return resp.json()


def login(client, login_or_email: str = "alice", password: str = "secret123", user_agent: str = None):
    headers = {"User-Agent": user_agent} if user_agent else {}
    client.cookies.clear()
    return client.post(
        f"{API}/auth/login",
        json={"loginOrEmail": login_or_email, "password": password},
        headers=headers,
    )


def set_cookie_headers(resp) -> list:
    return [h for h in resp.headers.get_list("set-cookie") if h.startswith("refreshToken=")]


def refresh_cookie(resp):
    """Value of the refreshToken cookie set by `resp`, or None."""
    for header in set_cookie_headers(resp):
        value = header.split(";", 1)[0].split("=", 1)[1].strip('"')
        return value or None
    return None


def with_refresh(client, token: str) -> dict:
    """Headers presenting `token` as the only cookie."""
    client.cookies.clear()
    return {"Cookie": f"refreshToken={token}"}


def bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


def logged_in(client, login_or_email: str = "alice", password: str = "secret123", user_agent: str = None):
    """Log in and return (access_token, refresh_token)."""
    resp = login(client, login_or_email, password, user_agent=user_agent)
    assert resp.status_code == 200, resp.text
    token = refresh_cookie(resp)
    assert token
    return resp.json()["accessToken"], token
