"""Key-value state store backed by PostgreSQL JSONB.

Small device-scoped values (currently only the enrollment token) live in the
``state`` table next to the ``contacts`` table.
"""

from __future__ import annotations

import json
import logging
from typing import Any

import asyncpg

logger = logging.getLogger(__name__)


def decode_jsonb(val: Any) -> Any:
    """Decode a JSONB value returned by asyncpg.

    asyncpg hands JSONB columns back as text when no codec is registered.
    A second pass handles values that were double-encoded on write.
    """
    if not isinstance(val, str):
        return val
    val = json.loads(val)
    if isinstance(val, str):
        try:
            val = json.loads(val)
        except (json.JSONDecodeError, ValueError):
            pass
        else:
            logger.warning("Double-encoded JSONB detected; applied second decode pass")
    return val


async def state_get(pool: asyncpg.Pool, key: str) -> Any | None:
    """Return the JSONB value for *key*, or ``None`` if the key does not exist."""
    row = await pool.fetchval(
        "SELECT value FROM state WHERE key = $1",
        key,
    )
    if row is None:
        return None
    return decode_jsonb(row)


async def state_set(pool: asyncpg.Pool, key: str, value: Any) -> None:
    """Upsert *key* with *value* (any JSON-serialisable type)."""
    await pool.execute(
        """
        INSERT INTO state (key, value, updated_at)
        VALUES ($1, $2::jsonb, now())
        ON CONFLICT (key) DO UPDATE
            SET value = EXCLUDED.value,
                updated_at = now()
        """,
        key,
        json.dumps(value),
    )


async def state_delete(pool: asyncpg.Pool, key: str) -> None:
    """Delete *key* from the state store.  No-op if the key does not exist."""
    await pool.execute("DELETE FROM state WHERE key = $1", key)
