"""Local persistence contracts and implementations.

Two collaborators back the sync engine:

- a :class:`ContactStore`: the keyed contact collection, queryable by id,
  by "all" and by ``dirty = true``;
- a :class:`TokenStore`: a single-key value store holding the enrollment
  token.

Both come in an in-memory flavour (tests, ephemeral CLI runs) and a
PostgreSQL flavour built on asyncpg.  Stores never decide sync transitions;
they persist exactly what the engine hands them.
"""

from __future__ import annotations

import itertools
import logging
from typing import Any, Protocol

import asyncpg

from contactsync.core.state import state_delete, state_get, state_set
from contactsync.errors import LocalStoreFailure
from contactsync.models import Contact, PhoneType

logger = logging.getLogger(__name__)

TOKEN_STATE_KEY = "identity::token"

_CONTACT_COLUMNS = (
    "local_id, remote_id, name, firstname, birthday, email, address, zip, city, "
    "phone_type, phone_number, dirty, deleted_locally"
)


class ContactStore(Protocol):
    """Persistence contract for local contact records."""

    async def insert(self, contact: Contact) -> int:
        """Persist a new record and return its assigned local id."""
        ...

    async def update(self, contact: Contact) -> None:
        """Overwrite the record identified by ``contact.local_id``."""
        ...

    async def delete(self, local_id: int) -> None:
        """Remove a record.  No-op when it does not exist."""
        ...

    async def get_all(self) -> list[Contact]:
        """Return every record ordered by local id."""
        ...

    async def get_by_id(self, local_id: int) -> Contact | None:
        """Return one record, or ``None``."""
        ...

    async def get_dirty(self) -> list[Contact]:
        """Return every record with ``dirty = true`` ordered by local id."""
        ...

    async def clear_all(self) -> None:
        """Remove every record."""
        ...


class TokenStore(Protocol):
    """Persistence contract for the device enrollment token."""

    async def get_token(self) -> str | None: ...

    async def set_token(self, token: str) -> None: ...

    async def clear_token(self) -> None: ...


# ---------------------------------------------------------------------------
# In-memory implementations
# ---------------------------------------------------------------------------


class InMemoryContactStore:
    """Dict-backed :class:`ContactStore`; records are copied in and out."""

    def __init__(self) -> None:
        self._rows: dict[int, Contact] = {}
        self._ids = itertools.count(1)

    async def insert(self, contact: Contact) -> int:
        local_id = next(self._ids)
        self._rows[local_id] = contact.model_copy(update={"local_id": local_id})
        return local_id

    async def update(self, contact: Contact) -> None:
        if contact.local_id is None or contact.local_id not in self._rows:
            raise LocalStoreFailure(f"Cannot update unknown contact local_id={contact.local_id!r}")
        self._rows[contact.local_id] = contact.model_copy()

    async def delete(self, local_id: int) -> None:
        self._rows.pop(local_id, None)

    async def get_all(self) -> list[Contact]:
        return [self._rows[k].model_copy() for k in sorted(self._rows)]

    async def get_by_id(self, local_id: int) -> Contact | None:
        row = self._rows.get(local_id)
        return row.model_copy() if row is not None else None

    async def get_dirty(self) -> list[Contact]:
        return [c for c in await self.get_all() if c.dirty]

    async def clear_all(self) -> None:
        self._rows.clear()


class InMemoryTokenStore:
    """Process-local :class:`TokenStore`."""

    def __init__(self, token: str | None = None) -> None:
        self._token = token

    async def get_token(self) -> str | None:
        return self._token

    async def set_token(self, token: str) -> None:
        self._token = token

    async def clear_token(self) -> None:
        self._token = None


# ---------------------------------------------------------------------------
# PostgreSQL implementations
# ---------------------------------------------------------------------------


def _row_to_contact(row: Any) -> Contact:
    phone_type = row["phone_type"]
    return Contact(
        local_id=row["local_id"],
        remote_id=row["remote_id"],
        name=row["name"],
        firstname=row["firstname"],
        birthday=row["birthday"],
        email=row["email"],
        address=row["address"],
        zip=row["zip"],
        city=row["city"],
        phone_type=PhoneType(phone_type) if phone_type else None,
        phone_number=row["phone_number"],
        dirty=row["dirty"],
        deleted_locally=row["deleted_locally"],
    )


def _contact_values(contact: Contact) -> tuple[Any, ...]:
    return (
        contact.remote_id,
        contact.name,
        contact.firstname,
        contact.birthday,
        contact.email,
        contact.address,
        contact.zip,
        contact.city,
        contact.phone_type.value if contact.phone_type is not None else None,
        contact.phone_number,
        contact.dirty,
        contact.deleted_locally,
    )


class PostgresContactStore:
    """asyncpg-backed :class:`ContactStore` over the ``contacts`` table."""

    def __init__(self, pool: asyncpg.Pool) -> None:
        self._pool = pool

    async def insert(self, contact: Contact) -> int:
        try:
            local_id = await self._pool.fetchval(
                """
                INSERT INTO contacts
                    (remote_id, name, firstname, birthday, email, address, zip, city,
                     phone_type, phone_number, dirty, deleted_locally)
                VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12)
                RETURNING local_id
                """,
                *_contact_values(contact),
            )
        except asyncpg.PostgresError as exc:
            raise LocalStoreFailure(f"Failed to insert contact: {exc}") from exc
        return int(local_id)

    async def update(self, contact: Contact) -> None:
        if contact.local_id is None:
            raise LocalStoreFailure("Cannot update a contact without local_id")
        try:
            status = await self._pool.execute(
                """
                UPDATE contacts SET
                    remote_id = $2, name = $3, firstname = $4, birthday = $5,
                    email = $6, address = $7, zip = $8, city = $9,
                    phone_type = $10, phone_number = $11, dirty = $12,
                    deleted_locally = $13, updated_at = now()
                WHERE local_id = $1
                """,
                contact.local_id,
                *_contact_values(contact),
            )
        except asyncpg.PostgresError as exc:
            raise LocalStoreFailure(
                f"Failed to update contact local_id={contact.local_id}: {exc}"
            ) from exc
        if status == "UPDATE 0":
            raise LocalStoreFailure(f"Cannot update unknown contact local_id={contact.local_id}")

    async def delete(self, local_id: int) -> None:
        try:
            await self._pool.execute("DELETE FROM contacts WHERE local_id = $1", local_id)
        except asyncpg.PostgresError as exc:
            raise LocalStoreFailure(f"Failed to delete contact local_id={local_id}: {exc}") from exc

    async def get_all(self) -> list[Contact]:
        rows = await self._fetch(f"SELECT {_CONTACT_COLUMNS} FROM contacts ORDER BY local_id")
        return [_row_to_contact(row) for row in rows]

    async def get_by_id(self, local_id: int) -> Contact | None:
        try:
            row = await self._pool.fetchrow(
                f"SELECT {_CONTACT_COLUMNS} FROM contacts WHERE local_id = $1",
                local_id,
            )
        except asyncpg.PostgresError as exc:
            raise LocalStoreFailure(f"Failed to load contact local_id={local_id}: {exc}") from exc
        return _row_to_contact(row) if row is not None else None

    async def get_dirty(self) -> list[Contact]:
        rows = await self._fetch(
            f"SELECT {_CONTACT_COLUMNS} FROM contacts WHERE dirty ORDER BY local_id"
        )
        return [_row_to_contact(row) for row in rows]

    async def clear_all(self) -> None:
        try:
            await self._pool.execute("DELETE FROM contacts")
        except asyncpg.PostgresError as exc:
            raise LocalStoreFailure(f"Failed to clear contacts: {exc}") from exc

    async def _fetch(self, query: str) -> list[Any]:
        try:
            return await self._pool.fetch(query)
        except asyncpg.PostgresError as exc:
            raise LocalStoreFailure(f"Failed to query contacts: {exc}") from exc


class StateTokenStore:
    """:class:`TokenStore` kept in the JSONB ``state`` table."""

    def __init__(self, pool: asyncpg.Pool, *, key: str = TOKEN_STATE_KEY) -> None:
        self._pool = pool
        self._key = key

    async def get_token(self) -> str | None:
        raw = await state_get(self._pool, self._key)
        if not isinstance(raw, dict):
            return None
        token = raw.get("token")
        if not isinstance(token, str) or not token:
            return None
        return token

    async def set_token(self, token: str) -> None:
        await state_set(self._pool, self._key, {"token": token})

    async def clear_token(self) -> None:
        await state_delete(self._pool, self._key)
