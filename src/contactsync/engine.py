"""Offline-first contact sync engine.

Every mutation follows the same per-record sequence:

1. durable local write (never rolled back),
2. optional remote call,
3. local confirmation write (clear ``dirty`` or purge the tombstone).

A :class:`~contactsync.errors.RemoteFailure` in step 2 is absorbed: the record
simply stays dirty and :meth:`SyncEngine.reconcile` pushes it again later.
A missing identity token is a precondition failure and always propagates.
During :meth:`SyncEngine.reconcile` any error raised for a single record,
including :class:`~contactsync.errors.LocalStoreFailure`, is logged and counted
as a failure for that record only.
"""

from __future__ import annotations

import asyncio
import logging
import time

from contactsync.core.metrics import SyncMetrics
from contactsync.core.telemetry import get_tracer
from contactsync.errors import PreconditionFailure, RemoteFailure
from contactsync.identity import IdentityProvider
from contactsync.models import Contact, EnrollResult, ReconcileResult, RemoteContact, SyncState
from contactsync.remote import ContactsApiClient
from contactsync.store import ContactStore

logger = logging.getLogger(__name__)


class SyncEngine:
    """Reconciles the local contact store with the contacts API."""

    def __init__(
        self,
        *,
        store: ContactStore,
        identity: IdentityProvider,
        client: ContactsApiClient,
        max_concurrency: int = 1,
        metrics: SyncMetrics | None = None,
    ) -> None:
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be a positive integer")
        self._store = store
        self._identity = identity
        self._client = client
        self._max_concurrency = max_concurrency
        self._metrics = metrics if metrics is not None else SyncMetrics()
        self._tracer = get_tracer()

    @property
    def identity(self) -> IdentityProvider:
        return self._identity

    # ------------------------------------------------------------------
    # Enrollment
    # ------------------------------------------------------------------

    async def enroll(self) -> EnrollResult:
        """Start fresh: wipe local contacts, enroll, then load the remote set.

        If enrollment fails nothing but the wipe has happened.  If the fetch
        fails the store stays empty with the new token persisted; the error
        propagates and is not retried.
        """
        with self._tracer.start_as_current_span("contactsync.enroll"):
            await self._store.clear_all()
            token = await self._identity.enroll()
            remote_contacts = await self._client.list_contacts(token)
            for remote in remote_contacts:
                await self._store.insert(remote.to_contact())

        logger.info("Enrollment complete: fetched %d remote contact(s)", len(remote_contacts))
        return EnrollResult(token=token, fetched_contacts=len(remote_contacts))

    # ------------------------------------------------------------------
    # Local mutations
    # ------------------------------------------------------------------

    async def create_local(self, contact: Contact) -> Contact:
        """Insert *contact* locally, then try to create it remotely."""
        with self._tracer.start_as_current_span("contactsync.create_local") as span:
            record = contact.model_copy(
                update={
                    "local_id": None,
                    "remote_id": None,
                    "dirty": True,
                    "deleted_locally": False,
                }
            )
            local_id = await self._store.insert(record)
            record = record.model_copy(update={"local_id": local_id})
            span.set_attribute("contactsync.local_id", local_id)

            token = await self._identity.require_token()
            await self._push_create(token, record)
            return await self._reload(record)

    async def update_local(self, contact: Contact) -> Contact:
        """Persist an edit as dirty, then push it if the contact exists remotely."""
        if contact.deleted_locally:
            raise PreconditionFailure(
                f"Contact local_id={contact.local_id} is pending deletion and cannot be edited"
            )
        with self._tracer.start_as_current_span("contactsync.update_local") as span:
            record = contact.model_copy(update={"dirty": True})
            await self._store.update(record)
            if record.local_id is not None:
                span.set_attribute("contactsync.local_id", record.local_id)

            token = await self._identity.require_token()
            if record.remote_id is None:
                # Picked up as NEW by the next reconciliation pass.
                return record
            await self._push_update(token, record)
            return await self._reload(record)

    async def delete_local(self, contact: Contact) -> Contact | None:
        """Tombstone *contact* and try to delete it remotely.

        Returns ``None`` once the record is purged, or the retained tombstone
        when the remote deletion could not be confirmed.
        """
        with self._tracer.start_as_current_span("contactsync.delete_local"):
            token = await self._identity.require_token()
            if contact.local_id is None:
                return None

            tombstone = contact.model_copy(update={"deleted_locally": True, "dirty": True})
            await self._store.update(tombstone)

            if tombstone.remote_id is None:
                await self._store.delete(contact.local_id)
                logger.debug("Purged never-synced contact local_id=%s", contact.local_id)
                return None

            if await self._push_delete(token, tombstone):
                return None
            return tombstone

    # ------------------------------------------------------------------
    # Reconciliation
    # ------------------------------------------------------------------

    async def reconcile(self) -> ReconcileResult:
        """Push every dirty record once, isolating per-record failures."""
        started = time.monotonic()
        with self._tracer.start_as_current_span("contactsync.reconcile") as span:
            token = await self._identity.require_token()
            dirty = await self._store.get_dirty()
            self._metrics.record_dirty_records(len(dirty))
            span.set_attribute("contactsync.dirty_records", len(dirty))

            semaphore = asyncio.Semaphore(self._max_concurrency)

            async def _run(record: Contact) -> tuple[Contact, SyncState, bool]:
                async with semaphore:
                    state = record.sync_state
                    try:
                        ok = await self._reconcile_one(token, record, state)
                    except Exception:
                        logger.exception(
                            "Reconciling contact local_id=%s failed; left dirty",
                            record.local_id,
                        )
                        ok = False
                    return record, state, ok

            async with asyncio.TaskGroup() as tg:
                tasks = [tg.create_task(_run(record)) for record in dirty]

        result = ReconcileResult(attempted=len(tasks))
        for task in tasks:
            record, state, ok = task.result()
            if not ok:
                result.failed += 1
                if record.local_id is not None:
                    result.failed_local_ids.append(record.local_id)
                continue
            match state:
                case SyncState.NEW:
                    result.created += 1
                case SyncState.PENDING_UPDATE:
                    result.updated += 1
                case SyncState.PENDING_DELETE:
                    result.deleted += 1

        elapsed_ms = (time.monotonic() - started) * 1000
        self._metrics.record_reconcile_duration(elapsed_ms)
        logger.info(
            "Reconciliation pass: attempted=%d created=%d updated=%d deleted=%d failed=%d",
            result.attempted,
            result.created,
            result.updated,
            result.deleted,
            result.failed,
        )
        return result

    async def _reconcile_one(self, token: str, record: Contact, state: SyncState) -> bool:
        match state:
            case SyncState.NEW:
                return await self._push_create(token, record)
            case SyncState.PENDING_DELETE:
                if record.remote_id is None:
                    assert record.local_id is not None
                    await self._store.delete(record.local_id)
                    return True
                return await self._push_delete(token, record)
            case SyncState.PENDING_UPDATE:
                return await self._push_update(token, record)
            case SyncState.SYNCED:
                logger.warning(
                    "Skipping contact local_id=%s: returned as dirty but already synced",
                    record.local_id,
                )
                return False

    # ------------------------------------------------------------------
    # Remote push paths
    # ------------------------------------------------------------------

    async def _push_create(self, token: str, record: Contact) -> bool:
        try:
            created = await self._client.create_contact(
                token, RemoteContact.from_contact(record, include_id=False)
            )
        except RemoteFailure as exc:
            self._record_failure("create", record, exc)
            return False

        await self._store.update(
            record.model_copy(update={"remote_id": str(created.id), "dirty": False})
        )
        self._metrics.record_push("create", ok=True)
        return True

    async def _push_update(self, token: str, record: Contact) -> bool:
        assert record.remote_id is not None and not record.deleted_locally
        try:
            await self._client.update_contact(
                token,
                record.remote_id,
                RemoteContact.from_contact(record, include_id=True),
            )
        except RemoteFailure as exc:
            self._record_failure("update", record, exc)
            return False

        await self._store.update(record.model_copy(update={"dirty": False}))
        self._metrics.record_push("update", ok=True)
        return True

    async def _push_delete(self, token: str, record: Contact) -> bool:
        assert record.remote_id is not None and record.local_id is not None
        try:
            await self._client.delete_contact(token, record.remote_id)
        except RemoteFailure as exc:
            if exc.status_code != 404:
                self._record_failure("delete", record, exc)
                return False
            logger.info(
                "Contact remote_id=%s already absent remotely; purging tombstone",
                record.remote_id,
            )

        await self._store.delete(record.local_id)
        self._metrics.record_push("delete", ok=True)
        return True

    def _record_failure(self, op: str, record: Contact, exc: RemoteFailure) -> None:
        self._metrics.record_push(op, ok=False)
        logger.warning(
            "Remote %s failed for contact local_id=%s remote_id=%s; left dirty: %s",
            op,
            record.local_id,
            record.remote_id,
            exc,
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def list_contacts(self) -> list[Contact]:
        """Every local record, tombstones included."""
        return await self._store.get_all()

    async def get_contact(self, local_id: int) -> Contact | None:
        return await self._store.get_by_id(local_id)

    async def dirty_contacts(self) -> list[Contact]:
        return await self._store.get_dirty()

    async def clear_local(self) -> None:
        await self._store.clear_all()

    async def _reload(self, record: Contact) -> Contact:
        assert record.local_id is not None
        stored = await self._store.get_by_id(record.local_id)
        return stored if stored is not None else record
