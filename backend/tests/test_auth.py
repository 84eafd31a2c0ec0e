from fastapi import status

from conftest import API, ADMIN_AUTH, bearer, create_user, logged_in, login, refresh_cookie, set_cookie_headers


def test_login_sets_access_token_and_refresh_cookie(client):
    """Access token in the body, refresh token only as a locked-down cookie."""
    create_user(client)

    resp = login(client)
    assert resp.status_code == status.HTTP_200_OK
    assert resp.json()["accessToken"]
    assert "refreshToken" not in resp.json()

    headers = set_cookie_headers(resp)
    assert len(headers) == 1
    cookie = headers[0].lower()
    assert "httponly" in cookie
    assert "secure" in cookie
    assert "path=/api" in cookie
    assert "samesite=strict" in cookie
    assert "expires=" in cookie


def test_login_by_email(client):
    create_user(client, login="bob", email="bob@example.com")
    resp = login(client, "bob@example.com")
    assert resp.status_code == status.HTTP_200_OK


def test_login_invalid_password_and_unknown_user_look_the_same(client):
    """Wrong password and unknown account give the same 401 and no cookie."""
    create_user(client)

    bad_password = login(client, "alice", "wrong-pass")
    unknown = login(client, "nobody", "wrong-pass")

    assert bad_password.status_code == status.HTTP_401_UNAUTHORIZED
    assert unknown.status_code == status.HTTP_401_UNAUTHORIZED
    assert bad_password.json() == unknown.json()
    assert refresh_cookie(bad_password) is None
    assert refresh_cookie(unknown) is None


def test_login_body_validation_returns_field_errors(client):
    resp = client.post(f"{API}/auth/login", json={"password": "secret123"})
    assert resp.status_code == status.HTTP_400_BAD_REQUEST
    fields = [e["field"] for e in resp.json()["errorsMessages"]]
    assert fields == ["loginOrEmail"]


def test_me_requires_valid_access_token(client):
    user = create_user(client)
    access, _ = logged_in(client)

    resp = client.get(f"{API}/auth/me", headers=bearer(access))
    assert resp.status_code == status.HTTP_200_OK
    assert resp.json() == {"userId": user["id"], "login": "alice", "email": "alice@example.com"}

    assert client.get(f"{API}/auth/me").status_code == status.HTTP_401_UNAUTHORIZED
    assert client.get(f"{API}/auth/me", headers=bearer("garbage")).status_code == status.HTTP_401_UNAUTHORIZED


def test_refresh_token_is_not_accepted_as_access_token(client):
    create_user(client)
    _, refresh = logged_in(client)
    resp = client.get(f"{API}/auth/me", headers=bearer(refresh))
    assert resp.status_code == status.HTTP_401_UNAUTHORIZED


def test_access_token_expires(client, clock):
    create_user(client)
    access, _ = logged_in(client)

    clock.advance(minutes=11)
    resp = client.get(f"{API}/auth/me", headers=bearer(access))
    assert resp.status_code == status.HTTP_401_UNAUTHORIZED


def test_deleted_user_access_token_rejected(client):
    """Soft-deleting a user invalidates tokens issued before the deletion."""
    user = create_user(client)
    access, _ = logged_in(client)

    resp = client.delete(f"{API}/users/{user['id']}", auth=ADMIN_AUTH)
    assert resp.status_code == status.HTTP_204_NO_CONTENT

    assert client.get(f"{API}/auth/me", headers=bearer(access)).status_code == status.HTTP_401_UNAUTHORIZED
    assert login(client).status_code == status.HTTP_401_UNAUTHORIZED


def test_users_endpoints_require_admin(client):
    resp = client.post(
        f"{API}/users",
        json={"login": "alice", "email": "alice@example.com", "password": "secret123"},
    )
    assert resp.status_code == status.HTTP_401_UNAUTHORIZED

    resp = client.post(
        f"{API}/users",
        json={"login": "alice", "email": "alice@example.com", "password": "secret123"},
        auth=("admin", "wrong"),
    )
    assert resp.status_code == status.HTTP_401_UNAUTHORIZED


def test_create_user_rejects_duplicates(client):
    create_user(client)
    resp = client.post(
        f"{API}/users",
        json={"login": "alice", "email": "alice@example.com", "password": "secret123"},
        auth=ADMIN_AUTH,
    )
    assert resp.status_code == status.HTTP_400_BAD_REQUEST
    fields = sorted(e["field"] for e in resp.json()["errorsMessages"])
    assert fields == ["email", "login"]


def test_delete_unknown_user_is_404(client):
    assert client.delete(f"{API}/users/999", auth=ADMIN_AUTH).status_code == status.HTTP_404_NOT_FOUND
    assert client.delete(f"{API}/users/abc", auth=ADMIN_AUTH).status_code == status.HTTP_404_NOT_FOUND


def test_testing_all_data_wipes_everything(client):
    create_user(client)
    logged_in(client)

    resp = client.delete(f"{API}/testing/all-data")
    assert resp.status_code == status.HTTP_204_NO_CONTENT
    assert login(client).status_code == status.HTTP_401_UNAUTHORIZED


def test_health_and_metrics(client):
    resp = client.get(f"{API}/health")
    assert resp.status_code == status.HTTP_200_OK
    assert resp.json()["checks"]["db"] == "ok"
    assert resp.headers.get("x-request-id")

    metrics = client.get(f"{API}/metrics")
    assert metrics.status_code == status.HTTP_200_OK
    assert "blog_http_requests_total" in metrics.text
