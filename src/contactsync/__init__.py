"""contactsync: offline-first contact synchronization against a REST API."""

from __future__ import annotations

from contactsync.engine import SyncEngine
from contactsync.errors import (
    ContactSyncError,
    LocalStoreFailure,
    MissingIdentityTokenError,
    PreconditionFailure,
    RemoteFailure,
)
from contactsync.identity import IdentityProvider
from contactsync.models import (
    Contact,
    EnrollResult,
    PhoneType,
    ReconcileResult,
    RemoteContact,
    SyncState,
)
from contactsync.remote import ContactsApiClient
from contactsync.store import (
    ContactStore,
    InMemoryContactStore,
    InMemoryTokenStore,
    PostgresContactStore,
    StateTokenStore,
    TokenStore,
)

__version__ = "0.1.0"

__all__ = [
    "Contact",
    "ContactStore",
    "ContactSyncError",
    "ContactsApiClient",
    "EnrollResult",
    "IdentityProvider",
    "InMemoryContactStore",
    "InMemoryTokenStore",
    "LocalStoreFailure",
    "MissingIdentityTokenError",
    "PhoneType",
    "PostgresContactStore",
    "PreconditionFailure",
    "ReconcileResult",
    "RemoteContact",
    "RemoteFailure",
    "StateTokenStore",
    "SyncEngine",
    "SyncState",
    "TokenStore",
    "__version__",
]
