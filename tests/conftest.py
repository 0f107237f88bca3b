import pytest
from fastapi.testclient import TestClient

import main
from config import Settings
from container import build_container


@pytest.fixture
def settings(tmp_path):
    return Settings(
        storage_backend="memory",
        secret_key="test-secret",
        bcrypt_rounds=4,
        upload_dir=tmp_path / "uploads",
        max_upload_mb=1,
    )


@pytest.fixture
def container(settings):
    c = build_container(settings)
    c.prepare()
    return c


@pytest.fixture
def client(container):
    main.app.dependency_overrides[main.get_container] = lambda: container
    yield TestClient(main.app)
    main.app.dependency_overrides.clear()


@pytest.fixture
def register(client):
    """Register through the API and return ``(user, auth_headers)``."""

    def _register(role="student", name=None, email=None, password="secret123"):
        name = name or f"{role.title()} One"
        email = email or f"{name.lower().replace(' ', '.')}@college.edu"
        resp = client.post(
            "/auth/register",
            json={"name": name, "email": email, "password": password, "role": role},
        )
        assert resp.status_code == 201, resp.text
        body = resp.json()
        return body["user"], {"Authorization": f"Bearer {body['access_token']}"}

    return _register
