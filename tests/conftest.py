from __future__ import annotations

import json

import pytest
from fastapi.testclient import TestClient

from mapnotes.api import create_app
from mapnotes.config import Settings
from mapnotes.security import get_password_hash


@pytest.fixture()
def settings(tmp_path) -> Settings:
    return Settings(
        _env_file=None,
        data_file=tmp_path / "data" / "mapdata.json",
        public_dir=tmp_path / "public",
        bcrypt_rounds=4,
    )


@pytest.fixture()
def seed_user(settings):
    """Write an extra user into the store document before the app opens it."""

    def _seed(username: str, password: str, user_id: str) -> dict:
        path = settings.data_file
        path.parent.mkdir(parents=True, exist_ok=True)
        document = json.loads(path.read_text()) if path.exists() else {"users": [], "annotations": []}
        user = {
            "id": user_id,
            "username": username,
            "password": get_password_hash(password, rounds=4),
            "createdAt": "2026-01-01T00:00:00.000Z",
        }
        document["users"].append(user)
        path.write_text(json.dumps(document))
        return user

    return _seed


@pytest.fixture()
def app(settings):
    return create_app(settings)


@pytest.fixture()
def client(app):
    with TestClient(app) as c:
        yield c


@pytest.fixture()
def admin_client(client):
    response = client.post("/api/login", json={"username": "admin", "password": "admin"})
    assert response.status_code == 200
    return client
