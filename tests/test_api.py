"""End-to-end tests for the HTTP API."""

from unittest.mock import AsyncMock
from urllib.parse import quote

import pytest
from fastapi.testclient import TestClient
from starlette.requests import Request

from pyfilehub.core.api.router_files import download_file, limit_request_body
from pyfilehub.core.errors import UploadTooLargeError
from pyfilehub.core.models import Identity
from pyfilehub.main import create_app

# Matches uploads.max_file_size_bytes in the test config
TEST_MAX_FILE_SIZE = 1024


def upload(client, headers, *files):
    return client.post(
        "/api/files/upload",
        headers=headers,
        files=[("files", f) for f in files],
    )


def test_health(api_client):
    response = api_client.get("/api/health")

    assert response.status_code == 200
    assert response.json() == {"status": "OK"}


def test_alice_and_bob_scenario(api_client, register_user):
    alice = register_user("alice", "alice@x.com", "secret1")
    bob = register_user("bob", "bob@x.com", "secret2")

    response = upload(api_client, alice, ("notes.txt", b"n" * 100, "text/plain"))
    assert response.status_code == 201
    files = response.json()["files"]
    assert len(files) == 1
    assert files[0]["size"] == 100
    file_id = files[0]["id"]

    listed = api_client.get("/api/files", headers=alice).json()
    assert [f["name"] for f in listed] == ["notes.txt"]

    response = api_client.get(f"/api/files/download/{file_id}", headers=bob)
    assert response.status_code == 404
    assert response.json()["error"]["code"] == "NOT_FOUND"

    response = api_client.delete(f"/api/files/{file_id}", headers=alice)
    assert response.status_code == 200

    assert api_client.get("/api/files", headers=alice).json() == []


def test_register_response_shape(api_client):
    response = api_client.post(
        "/api/auth/register",
        json={"username": "alice", "email": "alice@x.com", "password": "secret1"},
    )

    assert response.status_code == 201
    body = response.json()
    assert body["token"]
    assert body["user"] == {"id": body["user"]["id"], "username": "alice",
                            "email": "alice@x.com"}


def test_register_duplicate_email(api_client, register_user):
    register_user("alice", "alice@x.com")

    response = api_client.post(
        "/api/auth/register",
        json={"username": "alice2", "email": "alice@x.com", "password": "secret1"},
    )

    assert response.status_code == 409
    assert response.json()["error"]["code"] == "CONFLICT"


def test_register_short_password(api_client):
    response = api_client.post(
        "/api/auth/register",
        json={"username": "alice", "email": "alice@x.com", "password": "12345"},
    )

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "VALIDATION_ERROR"


def test_register_missing_fields(api_client):
    response = api_client.post("/api/auth/register", json={"username": "alice"})

    assert response.status_code == 400
    assert response.json()["error"]["message"] == "All fields are required"


def test_malformed_json_body(api_client):
    response = api_client.post(
        "/api/auth/login",
        content=b"{not json",
        headers={"Content-Type": "application/json"},
    )

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "VALIDATION_ERROR"


def test_login_then_me(api_client, register_user):
    register_user("alice", "alice@x.com", "secret1")

    response = api_client.post(
        "/api/auth/login", json={"email": "alice@x.com", "password": "secret1"})
    assert response.status_code == 200
    token = response.json()["token"]

    me = api_client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert me.status_code == 200
    body = me.json()
    assert body["username"] == "alice"
    assert body["email"] == "alice@x.com"
    assert body["id"] == response.json()["user"]["id"]
    assert "created_at" in body
    assert "password_hash" not in body


def test_login_wrong_password(api_client, register_user):
    register_user("alice", "alice@x.com", "secret1")

    response = api_client.post(
        "/api/auth/login", json={"email": "alice@x.com", "password": "nope123"})

    assert response.status_code == 401
    assert response.json()["error"]["message"] == "Invalid credentials"


def test_protected_routes_require_token(api_client):
    assert api_client.get("/api/files").status_code == 401
    assert api_client.get("/api/auth/me").status_code == 401

    response = api_client.get("/api/files", headers={"Authorization": "Bearer garbage"})
    assert response.status_code == 401
    assert response.json()["error"]["code"] == "INVALID_TOKEN"


def test_upload_download_preserves_bytes_and_name(api_client, register_user):
    alice = register_user("alice", "alice@x.com")
    data = bytes(range(256))

    file_id = upload(api_client, alice, ("résumé data.bin", data, "application/x-test")) \
        .json()["files"][0]["id"]

    response = api_client.get(f"/api/files/download/{file_id}", headers=alice)
    assert response.status_code == 200
    assert response.content == data
    assert response.headers["content-type"].startswith("application/x-test")
    disposition = response.headers["content-disposition"]
    assert disposition.startswith("attachment")
    assert f"filename*=UTF-8''{quote('résumé data.bin', safe='')}" in disposition


def test_stored_name_never_exposed(api_client, register_user):
    alice = register_user("alice", "alice@x.com")

    body = upload(api_client, alice, ("a.txt", b"abc", "text/plain")).json()

    assert set(body["files"][0]) == {"id", "name", "size", "content_type", "uploaded_at"}


def test_upload_without_files(api_client, register_user):
    alice = register_user("alice", "alice@x.com")

    response = api_client.post("/api/files/upload", headers=alice, data={"other": "x"})

    assert response.status_code == 400
    assert response.json()["error"]["message"] == "No files uploaded"


def test_upload_too_large(api_client, register_user):
    alice = register_user("alice", "alice@x.com")

    response = upload(api_client, alice,
                      ("big.bin", b"x" * (TEST_MAX_FILE_SIZE + 1), "application/octet-stream"))

    assert response.status_code == 413
    assert response.json()["error"]["code"] == "FILE_TOO_LARGE"
    assert api_client.get("/api/files", headers=alice).json() == []


def test_upload_too_many_files(api_client, register_user):
    alice = register_user("alice", "alice@x.com")
    files = [(f"{i}.txt", b"x", "text/plain") for i in range(11)]

    response = upload(api_client, alice, *files)

    assert response.status_code == 400
    assert api_client.get("/api/files", headers=alice).json() == []


def test_rename(api_client, register_user):
    alice = register_user("alice", "alice@x.com")
    file_id = upload(api_client, alice, ("a.txt", b"abc", "text/plain")).json()["files"][0]["id"]

    response = api_client.put(
        f"/api/files/rename/{file_id}", headers=alice, json={"newName": "b.txt"})
    assert response.status_code == 200
    assert response.json()["file"]["name"] == "b.txt"
    assert response.json()["file"]["size"] == 3

    response = api_client.put(
        f"/api/files/rename/{file_id}", headers=alice, json={"new_name": "c.txt"})
    assert response.json()["file"]["name"] == "c.txt"

    response = api_client.put(
        f"/api/files/rename/{file_id}", headers=alice, json={"newName": "  "})
    assert response.status_code == 400


def test_rename_other_users_file(api_client, register_user):
    alice = register_user("alice", "alice@x.com")
    bob = register_user("bob", "bob@x.com")
    file_id = upload(api_client, alice, ("a.txt", b"abc", "text/plain")).json()["files"][0]["id"]

    response = api_client.put(
        f"/api/files/rename/{file_id}", headers=bob, json={"newName": "mine.txt"})

    assert response.status_code == 404
    assert api_client.get("/api/files", headers=alice).json()[0]["name"] == "a.txt"


def test_delete_twice(api_client, register_user):
    alice = register_user("alice", "alice@x.com")
    file_id = upload(api_client, alice, ("a.txt", b"abc", "text/plain")).json()["files"][0]["id"]

    assert api_client.delete(f"/api/files/{file_id}", headers=alice).status_code == 200
    assert api_client.delete(f"/api/files/{file_id}", headers=alice).status_code == 404
    assert api_client.get(f"/api/files/download/{file_id}", headers=alice).status_code == 404


def test_oversized_upload_body_rejected_before_parsing(api_client, register_user, monkeypatch):
    alice = register_user("alice", "alice@x.com")
    service_upload = AsyncMock()
    monkeypatch.setattr(api_client.app.state.storage_service, "upload", service_upload)

    response = upload(api_client, alice,
                      ("huge.bin", b"x" * (200 * 1024), "application/octet-stream"))

    assert response.status_code == 413
    assert response.json()["error"]["code"] == "FILE_TOO_LARGE"
    service_upload.assert_not_called()


def body_request(chunks, headers=()):
    messages = [{"type": "http.request", "body": chunk, "more_body": True}
                for chunk in chunks]
    messages.append({"type": "http.request", "body": b"", "more_body": False})

    async def receive():
        return messages.pop(0)

    scope = {"type": "http", "method": "POST", "path": "/api/files/upload",
             "query_string": b"", "headers": list(headers)}
    return Request(scope, receive=receive)


async def test_body_without_content_length_stops_at_limit():
    request = body_request([b"a" * 6, b"b" * 6, b"c" * 6])
    received = []

    with pytest.raises(UploadTooLargeError):
        async for chunk in limit_request_body(request, 10).stream():
            received.append(chunk)

    assert received == [b"a" * 6]


async def test_declared_content_length_over_limit_rejected_without_reading():
    request = body_request([b"a" * 20], headers=[(b"content-length", b"20")])
    request_receive = AsyncMock()
    request._receive = request_receive

    with pytest.raises(UploadTooLargeError):
        limit_request_body(request, 10)
    request_receive.assert_not_called()


async def test_body_within_limit_passes_through():
    request = body_request([b"a" * 4, b"b" * 4])

    assert await limit_request_body(request, 10).body() == b"a" * 4 + b"b" * 4


async def test_download_closes_handle_when_stream_is_not_consumed(
        service, make_upload, alice, monkeypatch):
    record = (await service.upload(alice.id, [make_upload("a.txt", b"abc")]))[0]
    handles = []
    original_download = service.download

    async def recording_download(user_id, file_id):
        result = await original_download(user_id, file_id)
        handles.append(result[1])
        return result

    monkeypatch.setattr(service, "download", recording_download)
    identity = Identity(id=alice.id, username=alice.username, email=alice.email)

    response = await download_file(record.id, identity=identity, service=service)

    assert response.background is not None
    await response.background()
    assert handles[0].closed


def test_unexpected_error_gets_generic_server_error(setup_config):
    app = create_app()

    @app.get("/api/explode")
    async def explode():
        raise RuntimeError("secret path /var/lib/pyfilehub")

    with TestClient(app, raise_server_exceptions=False) as client:
        response = client.get("/api/explode")

    assert response.status_code == 500
    assert response.json() == {
        "error": {"message": "Internal server error", "code": "SERVER_ERROR"}}
