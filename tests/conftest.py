import pytest
from fastapi.testclient import TestClient

from app.config import Settings
from app.main import create_app

ADMIN_USERNAME = "admin"
ADMIN_PASSWORD = "adminpass"


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def settings(tmp_path):
    dist = tmp_path / "dist"
    (dist / "assets").mkdir(parents=True)
    (dist / "index.html").write_text("<html>library client</html>")
    (dist / "assets" / "app.js").write_text("console.log('client')")

    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        db_connect_retries=1,
        db_connect_delay=0,
        db_create_tables=True,
        secret_key="test-secret",
        bcrypt_rounds=4,
        cors_origins=["http://client.test"],
        admin_username=ADMIN_USERNAME,
        admin_password=ADMIN_PASSWORD,
        asset_backend="local",
        upload_dir=str(tmp_path / "uploads"),
        client_dist_dir=str(dist),
        log_level="WARNING",
    )


@pytest.fixture
def client(settings):
    app = create_app(settings)
    with TestClient(app) as test_client:
        yield test_client


def login(client, username, password) -> dict:
    """
    Logs in and returns bearer headers; the auth cookie is dropped so
    requests without headers stay anonymous
    """
    response = client.post("/login", json={"username": username, "password": password})
    assert response.status_code == 200, response.text
    client.cookies.clear()
    return {"Authorization": f"Bearer {response.json()['access_token']}"}


def register(client, username, password="secret123") -> dict:
    response = client.post("/register", json={"username": username, "password": password})
    assert response.status_code == 201, response.text
    return login(client, username, password)


@pytest.fixture
def admin_headers(client):
    return login(client, ADMIN_USERNAME, ADMIN_PASSWORD)


@pytest.fixture
def user_headers(client):
    return register(client, "alice")


@pytest.fixture
def author(client, admin_headers):
    response = client.post("/authors", json={"name": "jane austen"}, headers=admin_headers)
    assert response.status_code == 201, response.text
    return response.json()


@pytest.fixture
def book(client, admin_headers, author):
    response = client.post(
        "/books",
        json={"title": "pride and prejudice", "author_id": author["id"]},
        headers=admin_headers,
    )
    assert response.status_code == 201, response.text
    return response.json()["book"]
