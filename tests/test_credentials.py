"""Tests for CredentialStore."""

from unittest.mock import AsyncMock

import pytest
from sqlalchemy import func, select

from pyfilehub.core.errors import ConflictError, NotFound, Unauthenticated, ValidationError
from pyfilehub.core.storage.database import users_table


async def test_register_returns_user(credential_store):
    user = await credential_store.register("alice", "alice@x.com", "secret1")

    assert user.id is not None
    assert user.username == "alice"
    assert user.email == "alice@x.com"
    assert user.created_at.tzinfo is not None


async def test_register_never_stores_raw_password(credential_store, database):
    await credential_store.register("alice", "alice@x.com", "secret1")

    async with database.engine.connect() as conn:
        stored = (await conn.execute(select(users_table.c.password_hash))).scalar_one()

    assert stored != "secret1"
    assert "secret1" not in stored


async def test_register_duplicate_email_conflicts(credential_store):
    await credential_store.register("alice", "alice@x.com", "secret1")

    with pytest.raises(ConflictError):
        await credential_store.register("alice2", "alice@x.com", "secret1")


async def test_register_duplicate_username_conflicts(credential_store):
    await credential_store.register("alice", "alice@x.com", "secret1")

    with pytest.raises(ConflictError):
        await credential_store.register("alice", "other@x.com", "secret1")


async def test_register_short_password_rejected(credential_store):
    with pytest.raises(ValidationError):
        await credential_store.register("alice", "alice@x.com", "12345")


@pytest.mark.parametrize("username,email,password", [
    ("", "alice@x.com", "secret1"),
    ("alice", "   ", "secret1"),
    ("alice", "alice@x.com", None),
])
async def test_register_missing_fields_rejected(credential_store, username, email, password):
    with pytest.raises(ValidationError, match="All fields are required"):
        await credential_store.register(username, email, password)


async def test_find_by_email_and_id(credential_store, alice):
    assert (await credential_store.find_by_email("alice@x.com")).id == alice.id
    assert (await credential_store.find_by_id(alice.id)).email == "alice@x.com"


async def test_find_unknown_user(credential_store):
    with pytest.raises(NotFound):
        await credential_store.find_by_id(12345)
    with pytest.raises(NotFound):
        await credential_store.find_by_email("nobody@x.com")


async def test_verify_password(credential_store, alice):
    assert await credential_store.verify_password(alice, "secret1")
    assert not await credential_store.verify_password(alice, "secret2")
    assert not await credential_store.verify_password(alice, "")


async def test_authenticate(credential_store, alice):
    user = await credential_store.authenticate("alice@x.com", "secret1")
    assert user.id == alice.id


async def test_authenticate_failures_are_indistinguishable(credential_store, alice):
    with pytest.raises(Unauthenticated) as wrong_password:
        await credential_store.authenticate("alice@x.com", "wrong-password")
    with pytest.raises(Unauthenticated) as unknown_email:
        await credential_store.authenticate("nobody@x.com", "secret1")

    assert wrong_password.value.message == unknown_email.value.message


async def test_authenticate_requires_both_fields(credential_store):
    with pytest.raises(ValidationError):
        await credential_store.authenticate("", "secret1")


async def test_register_race_surfaces_as_conflict(credential_store, monkeypatch):
    await credential_store.register("alice", "alice@x.com", "secret1")
    # Both registrations pass the lookup; the unique constraint decides
    monkeypatch.setattr(credential_store, "_is_taken", AsyncMock(return_value=False))

    with pytest.raises(ConflictError, match="User already exists"):
        await credential_store.register("alice", "alice@x.com", "secret1")

    async with credential_store.database.engine.connect() as conn:
        count = (await conn.execute(select(func.count()).select_from(users_table))).scalar_one()
    assert count == 1
