"""Database provisioning and connection pool management for the local store."""

from __future__ import annotations

import logging
import os
from typing import Any
from urllib.parse import parse_qs, urlparse

import asyncpg

logger = logging.getLogger(__name__)

CONTACTS_TABLE_DDL = """
CREATE TABLE IF NOT EXISTS contacts (
    local_id        BIGSERIAL PRIMARY KEY,
    remote_id       TEXT,
    name            TEXT NOT NULL,
    firstname       TEXT,
    birthday        TEXT,
    email           TEXT,
    address         TEXT,
    zip             TEXT,
    city            TEXT,
    phone_type      TEXT,
    phone_number    TEXT,
    dirty           BOOLEAN NOT NULL DEFAULT true,
    deleted_locally BOOLEAN NOT NULL DEFAULT false,
    updated_at      TIMESTAMPTZ NOT NULL DEFAULT now()
)
"""

CONTACTS_DIRTY_INDEX_DDL = """
CREATE INDEX IF NOT EXISTS ix_contacts_dirty
ON contacts (local_id) WHERE dirty
"""

STATE_TABLE_DDL = """
CREATE TABLE IF NOT EXISTS state (
    key        TEXT PRIMARY KEY,
    value      JSONB NOT NULL DEFAULT '{}',
    updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
)
"""


def db_params_from_env() -> dict[str, str | int | None]:
    """Connection params from ``DATABASE_URL``, else the ``POSTGRES_*`` variables.

    An ``sslmode`` query parameter (or ``POSTGRES_SSLMODE``) is passed through
    to asyncpg unchanged.
    """
    if database_url := os.environ.get("DATABASE_URL"):
        url = urlparse(database_url)
        return {
            "host": url.hostname or "localhost",
            "port": url.port or 5432,
            "user": url.username or "contactsync",
            "password": url.password or "contactsync",
            "ssl": parse_qs(url.query).get("sslmode", [None])[0],
        }
    return {
        "host": os.environ.get("POSTGRES_HOST", "localhost"),
        "port": int(os.environ.get("POSTGRES_PORT", "5432")),
        "user": os.environ.get("POSTGRES_USER", "contactsync"),
        "password": os.environ.get("POSTGRES_PASSWORD", "contactsync"),
        "ssl": os.environ.get("POSTGRES_SSLMODE") or None,
    }


async def ensure_schema(pool: asyncpg.Pool) -> None:
    """Create the ``contacts`` and ``state`` tables if they are missing."""
    async with pool.acquire() as conn:
        await conn.execute(CONTACTS_TABLE_DDL)
        await conn.execute(CONTACTS_DIRTY_INDEX_DDL)
        await conn.execute(STATE_TABLE_DDL)


class Database:
    """Manages the asyncpg connection pool and database provisioning."""

    def __init__(
        self,
        db_name: str,
        host: str = "localhost",
        port: int = 5432,
        user: str = "postgres",
        password: str = "postgres",
        ssl: str | None = None,
        min_pool_size: int = 1,
        max_pool_size: int = 5,
    ) -> None:
        self.db_name = db_name
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.ssl = ssl
        self.min_pool_size = min_pool_size
        self.max_pool_size = max_pool_size
        self.pool: asyncpg.Pool | None = None

    def _connect_kwargs(self, database: str) -> dict[str, Any]:
        kwargs: dict[str, Any] = {
            "host": self.host,
            "port": self.port,
            "user": self.user,
            "password": self.password,
            "database": database,
        }
        if self.ssl is not None:
            kwargs["ssl"] = self.ssl
        return kwargs

    async def provision(self) -> None:
        """Create the contact database through the maintenance database if missing."""
        conn = await asyncpg.connect(**self._connect_kwargs("postgres"))
        try:
            if await conn.fetchval(
                "SELECT 1 FROM pg_database WHERE datname = $1", self.db_name
            ):
                logger.debug("Contact database %s already provisioned", self.db_name)
                return
            # Identifiers cannot be bound as parameters
            quoted = self.db_name.replace('"', '""')
            await conn.execute(f'CREATE DATABASE "{quoted}"')
            logger.info("Provisioned contact database %s", self.db_name)
        finally:
            await conn.close()

    async def connect(self) -> asyncpg.Pool:
        """Create the pool, ensure the schema exists and return the pool."""
        self.pool = await asyncpg.create_pool(
            **self._connect_kwargs(self.db_name),
            min_size=self.min_pool_size,
            max_size=self.max_pool_size,
        )
        await ensure_schema(self.pool)
        logger.info("Connection pool created for: %s", self.db_name)
        return self.pool

    async def close(self) -> None:
        """Close the connection pool."""
        if self.pool:
            await self.pool.close()
            self.pool = None
            logger.info("Connection pool closed for: %s", self.db_name)

    @classmethod
    def from_env(cls, db_name: str) -> Database:
        """Create a Database from ``DATABASE_URL`` or the ``POSTGRES_*`` variables."""
        params = db_params_from_env()
        return cls(
            db_name=db_name,
            host=str(params["host"]),
            port=int(params["port"]),
            user=str(params["user"]),
            password=str(params["password"]),
            ssl=str(params["ssl"]) if params["ssl"] else None,
        )
