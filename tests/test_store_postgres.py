"""Tests for the asyncpg-backed stores against a real PostgreSQL."""

from __future__ import annotations

import shutil
import uuid

import pytest

from contactsync.errors import LocalStoreFailure
from contactsync.models import Contact, PhoneType

# Skip all tests in this module if Docker is not available
docker_available = shutil.which("docker") is not None
pytestmark = [
    pytest.mark.integration,
    pytest.mark.skipif(not docker_available, reason="Docker not available"),
]


def _unique_db_name() -> str:
    return f"test_{uuid.uuid4().hex[:12]}"


@pytest.fixture(scope="module")
def postgres_container():
    """Start a PostgreSQL container for the test module."""
    from testcontainers.postgres import PostgresContainer

    with PostgresContainer("postgres:16") as pg:
        yield pg


@pytest.fixture
async def pool(postgres_container):
    """Provision a fresh database with the contactsync schema and return a pool."""
    from contactsync.db import Database

    db = Database(
        db_name=_unique_db_name(),
        host=postgres_container.get_container_host_ip(),
        port=int(postgres_container.get_exposed_port(5432)),
        user=postgres_container.username,
        password=postgres_container.password,
    )
    await db.provision()
    p = await db.connect()
    yield p
    await db.close()


async def test_contact_roundtrip(pool):
    from contactsync.store import PostgresContactStore

    store = PostgresContactStore(pool)
    local_id = await store.insert(
        Contact(
            name="Doe",
            firstname="Jane",
            phone_type=PhoneType.MOBILE,
            phone_number="+41 79 000 00 00",
        )
    )

    stored = await store.get_by_id(local_id)
    assert stored is not None
    assert stored.local_id == local_id
    assert stored.phone_type is PhoneType.MOBILE
    assert stored.dirty is True
    assert stored.remote_id is None


async def test_update_and_dirty_query(pool):
    from contactsync.store import PostgresContactStore

    store = PostgresContactStore(pool)
    a = await store.insert(Contact(name="A"))
    b = await store.insert(Contact(name="B"))

    await store.update(Contact(local_id=a, name="A", remote_id="10", dirty=False))

    dirty = await store.get_dirty()
    assert [c.local_id for c in dirty] == [b]
    synced = await store.get_by_id(a)
    assert synced is not None
    assert synced.remote_id == "10"


async def test_update_unknown_record_fails(pool):
    from contactsync.store import PostgresContactStore

    store = PostgresContactStore(pool)
    with pytest.raises(LocalStoreFailure):
        await store.update(Contact(local_id=12345, name="Ghost"))


async def test_delete_and_clear(pool):
    from contactsync.store import PostgresContactStore

    store = PostgresContactStore(pool)
    a = await store.insert(Contact(name="A"))
    await store.insert(Contact(name="B"))

    await store.delete(a)
    assert [c.name for c in await store.get_all()] == ["B"]

    await store.clear_all()
    assert await store.get_all() == []


async def test_token_store_in_state_table(pool):
    from contactsync.store import StateTokenStore

    store = StateTokenStore(pool)
    assert await store.get_token() is None

    await store.set_token("12345")
    assert await store.get_token() == "12345"

    await store.set_token("67890")
    assert await store.get_token() == "67890"

    await store.clear_token()
    assert await store.get_token() is None
