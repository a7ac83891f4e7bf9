import base64
import time

import jwt

from conftest import ADMIN_PASSWORD, ADMIN_USERNAME, login, register


def test_register_and_login_returns_user_role(client):
    response = client.post("/register", json={"username": "alice", "password": "secret123"})
    assert response.status_code == 201
    assert response.json()["role"] == "user"

    response = client.post("/login", json={"username": "alice", "password": "secret123"})
    assert response.status_code == 200
    body = response.json()
    assert body["username"] == "alice"
    assert body["role"] == "user"
    assert body["token_type"] == "bearer"
    assert body["access_token"] and body["refresh_token"]


def test_register_duplicate_username_conflicts(client):
    register(client, "alice")
    response = client.post("/register", json={"username": "  ALICE ", "password": "another1"})
    assert response.status_code == 409


def test_username_is_normalized(client):
    response = client.post("/register", json={"username": "  Bob ", "password": "secret123"})
    assert response.json()["username"] == "bob"

    response = client.post("/login", json={"username": "BOB", "password": "secret123"})
    assert response.status_code == 200
    assert response.json()["username"] == "bob"


def test_login_rejects_bad_credentials(client):
    register(client, "alice")
    assert client.post("/login", json={"username": "alice", "password": "wrong"}).status_code == 401
    assert client.post("/login", json={"username": "nobody", "password": "secret123"}).status_code == 401


def test_login_rejects_malformed_body(client):
    assert client.post("/login", json={"username": 123, "password": "x"}).status_code == 400
    assert client.post("/login", json={"username": "alice"}).status_code == 400


def test_register_requires_reasonable_password(client):
    response = client.post("/register", json={"username": "alice", "password": "123"})
    assert response.status_code == 400


def test_me_with_bearer_token(client, user_headers):
    response = client.get("/user/me", headers=user_headers)
    assert response.status_code == 200
    assert response.json()["username"] == "alice"


def test_me_with_login_cookie(client):
    client.post("/register", json={"username": "carol", "password": "secret123"})
    client.post("/login", json={"username": "carol", "password": "secret123"})

    response = client.get("/user/me")
    assert response.status_code == 200
    assert response.json()["username"] == "carol"

    client.post("/logout")
    assert client.get("/user/me").status_code == 401


def test_me_requires_authentication(client):
    response = client.get("/user/me")
    assert response.status_code == 401
    assert response.headers["WWW-Authenticate"] == "Bearer"


def test_role_endpoint(client, admin_headers, user_headers):
    assert client.get("/user/role", headers=admin_headers).json() == {"role": "admin", "is_admin": True}
    assert client.get("/user/role", headers=user_headers).json() == {"role": "user", "is_admin": False}


def test_unsigned_client_token_is_rejected(client, admin_headers):
    # base64("username:timestamp") carries no signature and must not authenticate
    forged = base64.b64encode(f"{ADMIN_USERNAME}:{int(time.time())}".encode()).decode()
    response = client.get("/user/me", headers={"Authorization": f"Bearer {forged}"})
    assert response.status_code == 401


def test_token_signed_with_other_key_is_rejected(client, admin_headers):
    forged = jwt.encode(
        {"sub": ADMIN_USERNAME, "id": 1, "role": "admin", "token_type": "access"},
        "not-the-secret",
        algorithm="HS256",
    )
    response = client.post(
        "/authors", json={"name": "x"}, headers={"Authorization": f"Bearer {forged}"}
    )
    assert response.status_code == 401


def test_refresh_token_cannot_authenticate_requests(client):
    register(client, "alice")
    tokens = client.post("/login", json={"username": "alice", "password": "secret123"}).json()
    client.cookies.clear()

    response = client.get("/user/me", headers={"Authorization": f"Bearer {tokens['refresh_token']}"})
    assert response.status_code == 401


def test_refresh_token_issues_new_access_token(client):
    register(client, "alice")
    tokens = client.post("/login", json={"username": "alice", "password": "secret123"}).json()
    client.cookies.clear()

    response = client.post("/refresh-token", json={"refresh_token": tokens["refresh_token"]})
    assert response.status_code == 200
    client.cookies.clear()

    access_token = response.json()["access_token"]
    me = client.get("/user/me", headers={"Authorization": f"Bearer {access_token}"})
    assert me.json()["username"] == "alice"

    bad = client.post("/refresh-token", json={"refresh_token": tokens["access_token"]})
    assert bad.status_code == 401


def test_forgot_password_for_own_account(client, user_headers):
    response = client.post(
        "/forgot-password",
        json={"username": "alice", "password": "newsecret"},
        headers=user_headers,
    )
    assert response.status_code == 200

    assert client.post("/login", json={"username": "alice", "password": "secret123"}).status_code == 401
    login(client, "alice", "newsecret")


def test_forgot_password_for_other_account_is_forbidden(client, user_headers):
    register(client, "bob")
    response = client.post(
        "/forgot-password",
        json={"username": "bob", "password": "hijacked"},
        headers=user_headers,
    )
    assert response.status_code == 403


def test_admin_can_reset_any_password(client, admin_headers, user_headers):
    response = client.post(
        "/forgot-password",
        json={"username": "alice", "password": "reset-by-admin"},
        headers=admin_headers,
    )
    assert response.status_code == 200
    login(client, "alice", "reset-by-admin")

    missing = client.post(
        "/forgot-password",
        json={"username": "ghost", "password": "whatever"},
        headers=admin_headers,
    )
    assert missing.status_code == 404


def test_routes_are_mirrored_under_api_prefix(client):
    response = client.post("/api/login", json={"username": ADMIN_USERNAME, "password": ADMIN_PASSWORD})
    assert response.status_code == 200
    assert response.json()["role"] == "admin"


def test_regular_user_cannot_create_books(client, user_headers):
    response = client.post("/books", json={"title": "foo", "author_id": 1}, headers=user_headers)
    assert response.status_code == 403


def test_anonymous_user_cannot_create_books(client):
    response = client.post("/books", json={"title": "foo", "author_id": 1})
    assert response.status_code == 401


def test_forgot_password_is_a_change_for_logged_in_callers(client, user_headers):
    anonymous = client.post("/forgot-password", json={"username": "alice", "password": "newsecret"})
    assert anonymous.status_code == 401

    too_short = client.post(
        "/forgot-password", json={"username": "alice", "password": "123"}, headers=user_headers
    )
    assert too_short.status_code == 400
