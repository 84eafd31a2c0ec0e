from fastapi import status
from sqlalchemy import select

from blogapi.core.config import get_settings
from blogapi.models.user import User
from blogapi.utils.crypto import hmac_sha256_hex
from conftest import API, create_user, logged_in, login, with_refresh


def request_recovery(client, email: str = "alice@example.com"):
    return client.post(f"{API}/auth/password-recovery", json={"email": email})


def new_password(client, code: str, password: str = "newpass456"):
    return client.post(f"{API}/auth/new-password", json={"newPassword": password, "recoveryCode": code})


def test_unknown_email_gets_same_response_and_no_mail(client, mailer):
    create_user(client)

    unknown = request_recovery(client, "ghost@example.com")
    known = request_recovery(client)

    assert unknown.status_code == known.status_code == status.HTTP_204_NO_CONTENT
    assert "ghost@example.com" not in mailer.recovery_codes
    assert len(mailer.recovery_codes["alice@example.com"]) == 1


def test_recovery_sets_new_password(client, mailer):
    create_user(client)
    request_recovery(client)
    code = mailer.recovery_codes["alice@example.com"][0]

    assert new_password(client, code).status_code == status.HTTP_204_NO_CONTENT

    assert login(client, "alice", "secret123").status_code == status.HTTP_401_UNAUTHORIZED
    assert login(client, "alice", "newpass456").status_code == status.HTTP_200_OK


def test_recovery_code_is_single_use(client, mailer):
    create_user(client)
    request_recovery(client)
    code = mailer.recovery_codes["alice@example.com"][0]

    assert new_password(client, code).status_code == status.HTTP_204_NO_CONTENT

    resp = new_password(client, code, "another789")
    assert resp.status_code == status.HTTP_400_BAD_REQUEST
    assert resp.json()["errorsMessages"] == [
        {"field": "recoveryCode", "message": "Recovery code is incorrect or expired"}
    ]
    assert login(client, "alice", "newpass456").status_code == status.HTTP_200_OK


def test_newer_request_supersedes_older_code(client, mailer):
    create_user(client)
    request_recovery(client)
    request_recovery(client)
    first, second = mailer.recovery_codes["alice@example.com"]

    assert new_password(client, first).status_code == status.HTTP_400_BAD_REQUEST
    assert new_password(client, second).status_code == status.HTTP_204_NO_CONTENT


def test_expired_recovery_code_rejected(client, mailer, clock):
    create_user(client)
    request_recovery(client)
    code = mailer.recovery_codes["alice@example.com"][0]

    clock.advance(minutes=61)
    assert new_password(client, code).status_code == status.HTTP_400_BAD_REQUEST
    assert login(client, "alice", "secret123").status_code == status.HTTP_200_OK


def test_garbage_recovery_code_rejected(client):
    create_user(client)
    assert new_password(client, "not-a-code").status_code == status.HTTP_400_BAD_REQUEST


def test_recovery_revokes_existing_sessions(client, mailer):
    create_user(client)
    _, rt = logged_in(client)

    request_recovery(client)
    new_password(client, mailer.recovery_codes["alice@example.com"][0])

    resp = client.post(f"{API}/auth/refresh-token", headers=with_refresh(client, rt))
    assert resp.status_code == status.HTTP_401_UNAUTHORIZED


def test_new_password_validates_length(client):
    resp = new_password(client, "whatever", "123")
    assert resp.status_code == status.HTTP_400_BAD_REQUEST
    assert [e["field"] for e in resp.json()["errorsMessages"]] == ["newPassword"]


def test_recovery_code_hash_uses_runtime_key(client, runtime, mailer, db_session):
    """The stored hash is keyed by the app's own settings, not the process-wide ones."""
    runtime_key = "runtime-code-hash-key-0123456789abcdefghij"
    runtime.settings = runtime.settings.model_copy(update={"code_hash_secret_key": runtime_key})
    create_user(client)

    request_recovery(client)
    code = mailer.recovery_codes["alice@example.com"][0]

    db_session.expire_all()
    user = db_session.execute(select(User).where(User.login == "alice")).scalar_one()
    assert user.recovery_code_hash == hmac_sha256_hex(code, runtime_key)
    assert user.recovery_code_hash != hmac_sha256_hex(code, get_settings().code_hash_secret_key)

    assert new_password(client, code).status_code == status.HTTP_204_NO_CONTENT
