"""Typed async client for the contacts REST API.

Routes::

    GET    /enroll                 -> token (no auth header)
    GET    /contacts               -> [contact, ...]
    POST   /contacts               -> contact with server-assigned id
    PUT    /contacts/{remote_id}   -> updated contact
    DELETE /contacts/{remote_id}   -> empty body

Every contacts route carries the enrollment token in ``X-UUID``.  Any
transport error, non-2xx status or malformed payload surfaces as
:class:`~contactsync.errors.RemoteFailure`.  The client never retries and
never touches local state.
"""

from __future__ import annotations

import logging
from types import TracebackType
from typing import Any

import httpx
from pydantic import ValidationError

from contactsync.errors import RemoteFailure
from contactsync.models import RemoteContact

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://daa.iict.ch"
DEFAULT_TIMEOUT_S = 20.0
DEFAULT_CONNECT_TIMEOUT_S = 10.0
TOKEN_HEADER = "X-UUID"


class ContactsApiClient:
    """Thin binding over the five contacts API endpoints."""

    def __init__(
        self,
        *,
        base_url: str = DEFAULT_BASE_URL,
        timeout_s: float = DEFAULT_TIMEOUT_S,
        connect_timeout_s: float = DEFAULT_CONNECT_TIMEOUT_S,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._owns_http_client = http_client is None
        self._http_client = (
            http_client
            if http_client is not None
            else httpx.AsyncClient(timeout=httpx.Timeout(timeout_s, connect=connect_timeout_s))
        )

    @property
    def base_url(self) -> str:
        return self._base_url

    async def __aenter__(self) -> ContactsApiClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_http_client:
            await self._http_client.aclose()

    # ------------------------------------------------------------------
    # Endpoints
    # ------------------------------------------------------------------

    async def enroll(self) -> str:
        """Request a fresh device token."""
        response = await self._request("GET", "/enroll")
        token = _parse_token(response)
        if token is None:
            raise RemoteFailure(
                status_code=response.status_code,
                message="Enrollment response did not contain a token",
            )
        return token

    async def list_contacts(self, token: str) -> list[RemoteContact]:
        response = await self._request("GET", "/contacts", token=token)
        payload = _json_payload(response)
        if not isinstance(payload, list):
            raise RemoteFailure(
                status_code=response.status_code,
                message="Contacts list payload must be a JSON array",
            )
        contacts: list[RemoteContact] = []
        for item in payload:
            if not isinstance(item, dict):
                logger.warning("Skipping non-object entry in contacts list")
                continue
            contacts.append(_validate_contact(item, response))
        return contacts

    async def create_contact(self, token: str, contact: RemoteContact) -> RemoteContact:
        response = await self._request(
            "POST",
            "/contacts",
            token=token,
            json=contact.to_payload(include_id=False),
        )
        created = _validate_contact(_json_payload(response), response)
        if created.id is None:
            raise RemoteFailure(
                status_code=response.status_code,
                message="Created contact is missing a server-assigned id",
            )
        return created

    async def update_contact(
        self,
        token: str,
        remote_id: str,
        contact: RemoteContact,
    ) -> RemoteContact:
        response = await self._request(
            "PUT",
            f"/contacts/{remote_id}",
            token=token,
            json=contact.to_payload(include_id=True),
        )
        return _validate_contact(_json_payload(response), response)

    async def delete_contact(self, token: str, remote_id: str) -> None:
        await self._request("DELETE", f"/contacts/{remote_id}", token=token)

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    async def _request(
        self,
        method: str,
        path: str,
        *,
        token: str | None = None,
        json: Any = None,
    ) -> httpx.Response:
        headers = {"Accept": "application/json"}
        if token is not None:
            headers[TOKEN_HEADER] = token
        try:
            response = await self._http_client.request(
                method,
                f"{self._base_url}{path}",
                headers=headers,
                json=json,
            )
        except httpx.HTTPError as exc:
            raise RemoteFailure(status_code=None, message=_describe_transport_error(exc)) from exc

        if response.status_code < 200 or response.status_code >= 300:
            raise RemoteFailure(
                status_code=response.status_code,
                message=_safe_error_message(response),
            )
        logger.debug("%s %s -> %s", method, path, response.status_code)
        return response


def _json_payload(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError as exc:
        raise RemoteFailure(
            status_code=response.status_code,
            message="Invalid JSON payload from contacts API",
        ) from exc


def _validate_contact(payload: Any, response: httpx.Response) -> RemoteContact:
    if not isinstance(payload, dict):
        raise RemoteFailure(
            status_code=response.status_code,
            message="Contact payload must be a JSON object",
        )
    try:
        return RemoteContact.model_validate(payload)
    except ValidationError as exc:
        raise RemoteFailure(
            status_code=response.status_code,
            message=f"Malformed contact payload: {exc.error_count()} validation error(s)",
        ) from exc


def _parse_token(response: httpx.Response) -> str | None:
    """Extract the token from a plain-text or JSON-string body."""
    try:
        payload = response.json()
    except ValueError:
        payload = response.text
    if not isinstance(payload, str):
        return None
    token = payload.strip().strip('"').strip()
    return token or None


def _describe_transport_error(exc: httpx.HTTPError) -> str:
    text = str(exc).strip()
    if text:
        return f"{type(exc).__name__}: {' '.join(text.split())[:200]}"
    return type(exc).__name__


def _safe_error_message(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        payload = None

    if isinstance(payload, dict):
        message = payload.get("error") or payload.get("message")
        if isinstance(message, str) and message.strip():
            return " ".join(message.split())[:200]

    text = response.text.strip()
    if text:
        return " ".join(text.split())[:200]
    return "unknown error"
