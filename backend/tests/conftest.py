from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from todox.core.config import Settings
from todox.core.storage import InMemoryBlobStorage
from todox.main import create_app

PASSWORD = "secret123"


@pytest.fixture()
def settings(tmp_path: Path) -> Settings:
    return Settings(
        _env_file=None,
        DATABASE_URL=f"sqlite+aiosqlite:///{tmp_path / 'todox.db'}",
        SECRET_KEY="test-secret",
        UPLOADS_DIR=str(tmp_path / "uploads"),
        LOG_LEVEL="WARNING",
    )


@pytest.fixture()
def storage() -> InMemoryBlobStorage:
    return InMemoryBlobStorage()


@pytest.fixture()
def client(settings: Settings, storage: InMemoryBlobStorage):
    with TestClient(create_app(settings, storage=storage)) as test_client:
        yield test_client


def register(client: TestClient, username: str) -> dict:
    response = client.post(
        "/api/auth/register",
        json={"username": username, "email": f"{username}@example.com", "password": PASSWORD},
    )
    assert response.status_code == 201, response.text
    return response.json()


def bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
def alice(client: TestClient) -> dict:
    return bearer(register(client, "alice")["token"])


@pytest.fixture()
def bob(client: TestClient) -> dict:
    return bearer(register(client, "bob")["token"])


def create_task(client: TestClient, headers: dict, **fields) -> dict:
    response = client.post("/api/tasks", json={"title": "Task", **fields}, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()


def create_category(client: TestClient, headers: dict, name: str) -> dict:
    response = client.post("/api/categories", json={"name": name}, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()
