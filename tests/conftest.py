"""Shared fixtures: an in-process fake contacts API and wired-up engines."""

from __future__ import annotations

import itertools
import json
from collections.abc import AsyncIterator
from typing import Any

import httpx
import pytest

from contactsync.engine import SyncEngine
from contactsync.identity import IdentityProvider
from contactsync.remote import ContactsApiClient
from contactsync.store import InMemoryContactStore, InMemoryTokenStore

BASE_URL = "https://contacts.test"


class FakeContactsApi:
    """Stateful stand-in for the contacts REST service.

    Failures can be injected per request (``"METHOD /path"``), per contact
    name on create/update, or globally via ``offline``.
    """

    def __init__(self, token: str = "abc") -> None:
        self.enroll_token = token
        self.contacts: dict[int, dict[str, Any]] = {}
        self.requests: list[httpx.Request] = []
        self.offline = False
        self.fail_requests: set[str] = set()
        self.fail_names: set[str] = set()
        self.fail_status = 500
        self._ids = itertools.count(1)

    def seed(self, **fields: Any) -> dict[str, Any]:
        """Add a contact server-side and return its JSON."""
        contact_id = next(self._ids)
        payload = {"id": contact_id, **fields}
        self.contacts[contact_id] = payload
        return payload

    @property
    def contact_requests(self) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path.startswith("/contacts")]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.offline:
            raise httpx.ConnectError("network unreachable", request=request)

        key = f"{request.method} {request.url.path}"
        if key in self.fail_requests:
            return httpx.Response(self.fail_status, json={"error": "injected failure"})

        path = request.url.path
        if path == "/enroll" and request.method == "GET":
            return httpx.Response(200, text=self.enroll_token)

        if not path.startswith("/contacts"):
            return httpx.Response(404, json={"error": "no such route"})
        if request.headers.get("X-UUID") != self.enroll_token:
            return httpx.Response(401, json={"error": "unknown uuid"})

        if path == "/contacts":
            if request.method == "GET":
                return httpx.Response(200, json=list(self.contacts.values()))
            if request.method == "POST":
                body = json.loads(request.content)
                if body.get("name") in self.fail_names:
                    return httpx.Response(self.fail_status, json={"error": "injected failure"})
                if "id" in body:
                    return httpx.Response(400, json={"error": "id must not be set"})
                return httpx.Response(201, json=self.seed(**body))
            return httpx.Response(405)

        try:
            contact_id = int(path.rsplit("/", 1)[1])
        except ValueError:
            return httpx.Response(404, json={"error": "bad id"})

        if contact_id not in self.contacts:
            return httpx.Response(404, json={"error": "contact not found"})

        if request.method == "PUT":
            body = json.loads(request.content)
            if body.get("name") in self.fail_names:
                return httpx.Response(self.fail_status, json={"error": "injected failure"})
            body["id"] = contact_id
            self.contacts[contact_id] = body
            return httpx.Response(200, json=body)
        if request.method == "DELETE":
            del self.contacts[contact_id]
            return httpx.Response(204)
        return httpx.Response(405)


@pytest.fixture
def fake_api() -> FakeContactsApi:
    return FakeContactsApi()


@pytest.fixture
async def api_client(fake_api: FakeContactsApi) -> AsyncIterator[ContactsApiClient]:
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(fake_api.handler))
    client = ContactsApiClient(base_url=BASE_URL, http_client=http_client)
    yield client
    await http_client.aclose()


@pytest.fixture
def contact_store() -> InMemoryContactStore:
    return InMemoryContactStore()


@pytest.fixture
def token_store() -> InMemoryTokenStore:
    return InMemoryTokenStore()


@pytest.fixture
def identity(token_store: InMemoryTokenStore, api_client: ContactsApiClient) -> IdentityProvider:
    return IdentityProvider(token_store, api_client)


@pytest.fixture
def engine(
    contact_store: InMemoryContactStore,
    identity: IdentityProvider,
    api_client: ContactsApiClient,
) -> SyncEngine:
    return SyncEngine(store=contact_store, identity=identity, client=api_client)


@pytest.fixture
async def enrolled(token_store: InMemoryTokenStore, fake_api: FakeContactsApi) -> str:
    """Persist the fake API's token without going through enrollment."""
    await token_store.set_token(fake_api.enroll_token)
    return fake_api.enroll_token
