"""Contact record, wire format and derived sync state.

``Contact`` is the locally persisted record.  Its sync lifecycle is never
stored explicitly; :attr:`Contact.sync_state` derives it from the
``local_id`` / ``remote_id`` / ``dirty`` / ``deleted_locally`` fields so the
engine can ``match`` on it exhaustively.

``RemoteContact`` mirrors the JSON shape of the contacts API.  Unknown keys
are ignored so newer servers can add fields without breaking older clients.
"""

from __future__ import annotations

import enum
import logging
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

logger = logging.getLogger(__name__)


class PhoneType(enum.StrEnum):
    """Kind of phone number attached to a contact."""

    HOME = "HOME"
    OFFICE = "OFFICE"
    MOBILE = "MOBILE"
    FAX = "FAX"


class SyncState(enum.StrEnum):
    """Position of one contact in the offline-first sync state machine."""

    NEW = "new"
    PENDING_UPDATE = "pending_update"
    PENDING_DELETE = "pending_delete"
    SYNCED = "synced"


class Contact(BaseModel):
    """A locally stored contact plus its sync bookkeeping."""

    model_config = ConfigDict(extra="forbid")

    local_id: int | None = None
    remote_id: str | None = None
    name: str
    firstname: str | None = None
    birthday: str | None = None
    email: str | None = None
    address: str | None = None
    zip: str | None = None
    city: str | None = None
    phone_type: PhoneType | None = None
    phone_number: str | None = None
    dirty: bool = True
    deleted_locally: bool = False

    @field_validator("remote_id", mode="before")
    @classmethod
    def _normalize_remote_id(cls, value: Any) -> str | None:
        if value is None:
            return None
        normalized = str(value).strip()
        return normalized or None

    @property
    def sync_state(self) -> SyncState:
        """Derive the sync state from the record's fields.

        A record that exists locally but was never created remotely counts as
        ``NEW`` while it is dirty: it can only be pushed with a create call.
        """
        if self.local_id is None:
            return SyncState.NEW
        if self.deleted_locally:
            return SyncState.PENDING_DELETE
        if not self.dirty:
            return SyncState.SYNCED
        if self.remote_id is None:
            return SyncState.NEW
        return SyncState.PENDING_UPDATE

    @property
    def display_name(self) -> str:
        if self.firstname:
            return f"{self.firstname} {self.name}"
        return self.name


class RemoteContact(BaseModel):
    """Contact as exchanged with the contacts API."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: int | None = None
    name: str
    firstname: str | None = None
    birthday: str | None = None
    email: str | None = None
    address: str | None = None
    zip: str | None = None
    city: str | None = None
    phone_type: PhoneType | None = Field(default=None, alias="type")
    phone_number: str | None = Field(default=None, alias="phoneNumber")

    @field_validator("phone_type", mode="before")
    @classmethod
    def _coerce_phone_type(cls, value: Any) -> PhoneType | None:
        if value is None or isinstance(value, PhoneType):
            return value
        if isinstance(value, str):
            try:
                return PhoneType(value.strip().upper())
            except ValueError:
                logger.warning("Ignoring unknown phone type from contacts API: %r", value)
                return None
        return None

    @classmethod
    def from_contact(cls, contact: Contact, *, include_id: bool) -> RemoteContact:
        """Build the wire representation of a local contact.

        The remote id is only sent when *include_id* is set; creation
        requests must not carry one.
        """
        remote_id: int | None = None
        if include_id and contact.remote_id is not None:
            try:
                remote_id = int(contact.remote_id)
            except ValueError:
                remote_id = None
        return cls(
            id=remote_id,
            name=contact.name,
            firstname=contact.firstname,
            birthday=contact.birthday,
            email=contact.email,
            address=contact.address,
            zip=contact.zip,
            city=contact.city,
            phone_type=contact.phone_type,
            phone_number=contact.phone_number,
        )

    def to_contact(self) -> Contact:
        """Return a clean, not yet locally persisted record for this contact."""
        return Contact(
            local_id=None,
            remote_id=str(self.id) if self.id is not None else None,
            name=self.name,
            firstname=self.firstname,
            birthday=self.birthday,
            email=self.email,
            address=self.address,
            zip=self.zip,
            city=self.city,
            phone_type=self.phone_type,
            phone_number=self.phone_number,
            dirty=False,
            deleted_locally=False,
        )

    def to_payload(self, *, include_id: bool = True) -> dict[str, Any]:
        """JSON body for a create/update request."""
        exclude = None if include_id else {"id"}
        return self.model_dump(mode="json", by_alias=True, exclude=exclude)


class EnrollResult(BaseModel):
    """Outcome of a device (re-)enrollment."""

    model_config = ConfigDict(extra="forbid")

    token: str
    fetched_contacts: int


class ReconcileResult(BaseModel):
    """Outcome summary from one reconciliation pass."""

    model_config = ConfigDict(extra="forbid")

    attempted: int = 0
    created: int = 0
    updated: int = 0
    deleted: int = 0
    failed: int = 0
    failed_local_ids: list[int] = Field(default_factory=list)

    @property
    def succeeded(self) -> int:
        return self.created + self.updated + self.deleted
