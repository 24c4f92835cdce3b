"""Device identity: the enrollment token required by every contacts call."""

from __future__ import annotations

import logging

from contactsync.errors import MissingIdentityTokenError
from contactsync.remote import ContactsApiClient
from contactsync.store import TokenStore

logger = logging.getLogger(__name__)


def mask_token(token: str | None) -> str:
    """Render a token for logs without exposing it."""
    if not token:
        return "<none>"
    if len(token) <= 8:
        return "****"
    return f"{token[:4]}…{token[-4:]}"


class IdentityProvider:
    """Reads, enrolls and resets the persisted device token.

    No retries happen here; :class:`~contactsync.errors.RemoteFailure` from
    enrollment propagates to the caller unchanged.
    """

    def __init__(self, token_store: TokenStore, client: ContactsApiClient) -> None:
        self._token_store = token_store
        self._client = client

    async def get_token(self) -> str | None:
        return await self._token_store.get_token()

    async def require_token(self) -> str:
        """Return the token or raise :class:`MissingIdentityTokenError`."""
        token = await self._token_store.get_token()
        if token is None:
            raise MissingIdentityTokenError()
        return token

    async def enroll(self) -> str:
        """Obtain a new token from the API and persist it, replacing any previous one."""
        token = await self._client.enroll()
        await self._token_store.set_token(token)
        logger.info("Device enrolled: token=%s", mask_token(token))
        return token

    async def reset(self) -> None:
        await self._token_store.clear_token()
        logger.info("Device token cleared")
