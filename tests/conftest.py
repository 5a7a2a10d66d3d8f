"""
PyFileHub test configuration.

This module provides pytest fixtures for setting up test environments, including:
- Per-test metadata databases and artifact directories
- Credential store, catalog, artifact backend and storage service
- Configuration files
- API client setup
"""

import io
import os

import pytest
from fastapi.testclient import TestClient
from starlette.datastructures import Headers, UploadFile

from pyfilehub.config.settings import ConfigManager
from pyfilehub.core.auth import CredentialStore, SessionAuthenticator
from pyfilehub.core.service import StorageService
from pyfilehub.core.storage.artifacts import LocalArtifactBackend
from pyfilehub.core.storage.catalog import FileCatalog
from pyfilehub.core.storage.database import Database

TEST_SECRET = "test-secret-for-session-tokens"
TEST_MAX_FILE_SIZE = 1024


# Session-level fixture to clear environment variables before any tests run
@pytest.fixture(scope="session", autouse=True)
def clear_env_vars():
    """
    Clear PYFILEHUB environment variables at session start.

    Variables from a developer's shell or .env file must not leak into the
    configuration the tests build.
    """
    original_values = {
        var: value for var, value in os.environ.items()
        if var.startswith("PYFILEHUB_")
    }
    for var in original_values:
        del os.environ[var]

    yield

    for var, value in original_values.items():
        os.environ[var] = value


@pytest.fixture
async def database(tmp_path):
    """Fresh SQLite metadata database for one test."""
    db = Database(f"sqlite+aiosqlite:///{tmp_path / 'metadata.db'}")
    await db.create_all()
    yield db
    await db.dispose()


@pytest.fixture
def artifacts_dir(tmp_path):
    return tmp_path / "uploads"


@pytest.fixture
def artifacts(artifacts_dir):
    return LocalArtifactBackend(artifacts_dir)


@pytest.fixture
def credential_store(database):
    return CredentialStore(database)


@pytest.fixture
def authenticator():
    return SessionAuthenticator(TEST_SECRET)


@pytest.fixture
def catalog(database):
    return FileCatalog(database)


@pytest.fixture
def service(catalog, artifacts):
    return StorageService(catalog, artifacts, max_file_size_bytes=TEST_MAX_FILE_SIZE)


@pytest.fixture
async def alice(credential_store):
    return await credential_store.register("alice", "alice@x.com", "secret1")


@pytest.fixture
async def bob(credential_store):
    return await credential_store.register("bob", "bob@x.com", "secret2")


@pytest.fixture
def make_upload():
    """Build UploadFiles the way FastAPI hands them to an endpoint."""
    def _make(filename, data, content_type="text/plain", size=None):
        return UploadFile(
            file=io.BytesIO(data),
            size=size,
            filename=filename,
            headers=Headers({"content-type": content_type}),
        )

    return _make


@pytest.fixture
def config_path(tmp_path):
    """Config file pointing all storage at the test's temporary directory."""
    path = tmp_path / "test_config.yaml"
    path.write_text(f"""
storage:
    database_url: "sqlite+aiosqlite:///{tmp_path / 'api.db'}"
    artifacts:
        base_dir: "{tmp_path / 'api_uploads'}"
uploads:
    max_file_size_bytes: {TEST_MAX_FILE_SIZE}
""")
    return path


@pytest.fixture
def setup_config(config_path, monkeypatch):
    """
    Point PYFILEHUB_CONFIG_PATH at the test config and set the token secret.

    The ConfigManager singleton is reset so the new file is picked up.
    """
    monkeypatch.setenv("PYFILEHUB_CONFIG_PATH", str(config_path))
    monkeypatch.setenv("PYFILEHUB_SECURITY__TOKEN_SECRET", TEST_SECRET)
    ConfigManager.reset_instance()

    yield config_path

    ConfigManager.reset_instance()


@pytest.fixture
def api_client(setup_config):
    """API client backed by its own database and artifact directory."""
    from pyfilehub.main import create_app

    with TestClient(create_app(), base_url="http://testserver") as client:
        yield client


@pytest.fixture
def register_user(api_client):
    """Register a user through the API and return its auth headers."""
    def _register(username, email, password="secret1"):
        response = api_client.post(
            "/api/auth/register",
            json={"username": username, "email": email, "password": password},
        )
        assert response.status_code == 201, response.text
        return {"Authorization": f"Bearer {response.json()['token']}"}

    return _register
