"""Tests for contact models, wire mapping and derived sync state."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from contactsync.models import Contact, PhoneType, ReconcileResult, RemoteContact, SyncState

pytestmark = pytest.mark.unit


@pytest.mark.parametrize(
    ("fields", "expected"),
    [
        ({}, SyncState.NEW),
        ({"local_id": 1}, SyncState.NEW),
        ({"local_id": 1, "remote_id": "7"}, SyncState.PENDING_UPDATE),
        ({"local_id": 1, "remote_id": "7", "dirty": False}, SyncState.SYNCED),
        ({"local_id": 1, "remote_id": "7", "deleted_locally": True}, SyncState.PENDING_DELETE),
        ({"local_id": 1, "deleted_locally": True}, SyncState.PENDING_DELETE),
        ({"remote_id": "7", "dirty": False}, SyncState.NEW),
    ],
)
def test_sync_state_is_derived_from_fields(fields, expected):
    assert Contact(name="Doe", **fields).sync_state is expected


def test_new_contact_defaults_to_dirty():
    contact = Contact(name="Doe")
    assert contact.dirty is True
    assert contact.deleted_locally is False
    assert contact.local_id is None


def test_name_is_required():
    with pytest.raises(ValidationError):
        Contact()  # type: ignore[call-arg]


def test_remote_id_is_normalized_to_string():
    assert Contact(name="Doe", remote_id=42).remote_id == "42"
    assert Contact(name="Doe", remote_id="  ").remote_id is None


def test_display_name_includes_firstname():
    assert Contact(name="Doe", firstname="Jane").display_name == "Jane Doe"
    assert Contact(name="Doe").display_name == "Doe"


class TestRemoteContact:
    def test_unknown_fields_are_ignored(self):
        remote = RemoteContact.model_validate(
            {"id": 3, "name": "Doe", "nickname": "JD", "avatar": {"url": "x"}}
        )
        assert remote.id == 3
        assert remote.name == "Doe"

    def test_wire_aliases_map_to_python_fields(self):
        remote = RemoteContact.model_validate(
            {"id": 3, "name": "Doe", "type": "office", "phoneNumber": "+41 24 000"}
        )
        assert remote.phone_type is PhoneType.OFFICE
        assert remote.phone_number == "+41 24 000"

    def test_unknown_phone_type_is_dropped(self):
        remote = RemoteContact.model_validate({"id": 3, "name": "Doe", "type": "PAGER"})
        assert remote.phone_type is None

    def test_to_contact_is_clean_and_not_locally_persisted(self):
        contact = RemoteContact(id=12, name="Doe", city="Sion").to_contact()
        assert contact.local_id is None
        assert contact.remote_id == "12"
        assert contact.dirty is False
        assert contact.city == "Sion"

    def test_create_payload_has_no_id(self):
        local = Contact(
            local_id=5,
            remote_id="12",
            name="Doe",
            phone_type=PhoneType.FAX,
            phone_number="123",
        )
        payload = RemoteContact.from_contact(local, include_id=False).to_payload(include_id=False)
        assert "id" not in payload
        assert payload["type"] == "FAX"
        assert payload["phoneNumber"] == "123"
        assert "local_id" not in payload
        assert "dirty" not in payload

    def test_update_payload_carries_numeric_remote_id(self):
        local = Contact(local_id=5, remote_id="12", name="Doe")
        payload = RemoteContact.from_contact(local, include_id=True).to_payload()
        assert payload["id"] == 12


def test_reconcile_result_counts_successes():
    result = ReconcileResult(attempted=4, created=1, updated=1, deleted=1, failed=1)
    assert result.succeeded == 3
