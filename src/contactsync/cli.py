"""CLI for contactsync: enroll a device, edit contacts offline, reconcile."""

from __future__ import annotations

import asyncio
import logging
import sys
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, TypeVar

import click

from contactsync import __version__
from contactsync.config import ConfigError, StoreBackend, SyncConfig, load_config
from contactsync.core.logging import configure_logging
from contactsync.core.metrics import init_metrics
from contactsync.core.telemetry import init_telemetry
from contactsync.db import Database
from contactsync.engine import SyncEngine
from contactsync.errors import ContactSyncError, MissingIdentityTokenError, RemoteFailure
from contactsync.identity import IdentityProvider, mask_token
from contactsync.models import Contact, PhoneType
from contactsync.remote import ContactsApiClient
from contactsync.store import (
    InMemoryContactStore,
    InMemoryTokenStore,
    PostgresContactStore,
    StateTokenStore,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


@asynccontextmanager
async def open_engine(config: SyncConfig) -> AsyncIterator[SyncEngine]:
    """Build a :class:`SyncEngine` wired to the configured store and API."""
    client = ContactsApiClient(
        base_url=config.remote.base_url,
        timeout_s=config.remote.timeout_s,
        connect_timeout_s=config.remote.connect_timeout_s,
    )
    db: Database | None = None
    try:
        if config.store.backend == StoreBackend.POSTGRES:
            db = Database.from_env(config.store.db_name)
            await db.provision()
            pool = await db.connect()
            store: Any = PostgresContactStore(pool)
            tokens: Any = StateTokenStore(pool)
        else:
            logger.warning("Using in-memory store; contacts are not kept between runs")
            store = InMemoryContactStore()
            tokens = InMemoryTokenStore()
        yield SyncEngine(
            store=store,
            identity=IdentityProvider(tokens, client),
            client=client,
            max_concurrency=config.sync.max_concurrency,
        )
    finally:
        await client.aclose()
        if db is not None:
            await db.close()


def _run(config: SyncConfig, action: Callable[[SyncEngine], Awaitable[T]]) -> T:
    """Run *action* against a fresh engine, mapping sync errors to exit codes."""

    async def _main() -> T:
        async with open_engine(config) as engine:
            return await action(engine)

    try:
        return asyncio.run(_main())
    except MissingIdentityTokenError:
        click.echo("No identity token found. Run `contactsync enroll` first.", err=True)
        sys.exit(1)
    except RemoteFailure as exc:
        click.echo(f"Remote error: {exc}", err=True)
        sys.exit(1)
    except ContactSyncError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)


def _format_row(contact: Contact) -> str:
    remote = contact.remote_id or "-"
    return (
        f"{contact.local_id!s:<8} {remote:<10} {contact.sync_state.value:<15} "
        f"{contact.display_name}"
    )


def _echo_contact(contact: Contact) -> None:
    click.echo(f"local_id:     {contact.local_id}")
    click.echo(f"remote_id:    {contact.remote_id or '-'}")
    click.echo(f"state:        {contact.sync_state.value}")
    click.echo(f"name:         {contact.name}")
    for field_name in ("firstname", "birthday", "email", "address", "zip", "city"):
        value = getattr(contact, field_name)
        if value:
            click.echo(f"{field_name + ':':<13} {value}")
    if contact.phone_number:
        kind = contact.phone_type.value if contact.phone_type else "?"
        click.echo(f"phone:        {contact.phone_number} ({kind})")


def _contact_options(func: Callable[..., Any]) -> Callable[..., Any]:
    """Shared optional contact field options for ``add`` and ``edit``."""
    options = [
        click.option("--firstname", default=None),
        click.option("--birthday", default=None, help="ISO date, e.g. 1990-04-21"),
        click.option("--email", default=None),
        click.option("--address", default=None),
        click.option("--zip", "zip_", default=None),
        click.option("--city", default=None),
        click.option(
            "--phone-type",
            type=click.Choice([p.value for p in PhoneType], case_sensitive=False),
            default=None,
        ),
        click.option("--phone-number", default=None),
    ]
    for option in reversed(options):
        func = option(func)
    return func


def _field_updates(fields: dict[str, Any]) -> dict[str, Any]:
    updates = {"zip": fields.pop("zip_", None), **fields}
    phone_type = updates.pop("phone_type", None)
    if phone_type is not None:
        updates["phone_type"] = PhoneType(phone_type.upper())
    return {k: v for k, v in updates.items() if v is not None}


@click.group()
@click.version_option(version=__version__)
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, path_type=Path),
    default=None,
    help="Path to contactsync.toml (or its directory)",
)
@click.option("--log-level", default=None, help="Override the configured log level")
@click.pass_context
def cli(ctx: click.Context, config_path: Path | None, log_level: str | None) -> None:
    """contactsync: offline-first contact synchronization."""
    try:
        config = load_config(config_path) if config_path is not None else SyncConfig()
    except ConfigError as exc:
        click.echo(f"Invalid configuration: {exc}", err=True)
        sys.exit(1)

    configure_logging(
        level=log_level or config.logging.level,
        fmt=config.logging.format,
        log_root=Path(config.logging.log_root) if config.logging.log_root else None,
        device=config.device,
    )
    init_telemetry(f"contactsync-{config.device}")
    init_metrics(f"contactsync-{config.device}")
    ctx.obj = config


@cli.command()
@click.confirmation_option(prompt="Enrolling wipes every local contact. Continue?")
@click.pass_obj
def enroll(config: SyncConfig) -> None:
    """Enroll this device and load the remote contact set."""
    result = _run(config, lambda engine: engine.enroll())
    click.echo(
        f"Enrolled (token {mask_token(result.token)}); "
        f"loaded {result.fetched_contacts} contact(s)"
    )


@cli.command("list")
@click.option("--dirty", "dirty_only", is_flag=True, help="Only show unsynced contacts")
@click.pass_obj
def list_cmd(config: SyncConfig, dirty_only: bool) -> None:
    """List local contacts with their sync state."""

    async def _list(engine: SyncEngine) -> list[Contact]:
        if dirty_only:
            return await engine.dirty_contacts()
        return await engine.list_contacts()

    contacts = _run(config, _list)
    if not contacts:
        click.echo("No contacts.")
        return

    click.echo(f"{'Local':<8} {'Remote':<10} {'State':<15} Name")
    click.echo("-" * 60)
    for contact in contacts:
        click.echo(_format_row(contact))


@cli.command()
@click.argument("local_id", type=int)
@click.pass_obj
def show(config: SyncConfig, local_id: int) -> None:
    """Show one contact."""
    contact = _run(config, lambda engine: engine.get_contact(local_id))
    if contact is None:
        click.echo(f"Contact {local_id} not found.", err=True)
        sys.exit(1)
    _echo_contact(contact)


@cli.command()
@click.option("--name", required=True)
@_contact_options
@click.pass_obj
def add(config: SyncConfig, name: str, **fields: Any) -> None:
    """Create a contact locally and push it if possible."""
    contact = Contact(name=name, **_field_updates(fields))
    created = _run(config, lambda engine: engine.create_local(contact))
    status = "synced" if not created.dirty else "saved locally, pending sync"
    click.echo(f"Created contact {created.local_id} ({status})")


@cli.command()
@click.argument("local_id", type=int)
@click.option("--name", default=None)
@_contact_options
@click.pass_obj
def edit(config: SyncConfig, local_id: int, name: str | None, **fields: Any) -> None:
    """Edit a contact locally and push the change if possible."""
    updates = _field_updates(fields)
    if name is not None:
        updates["name"] = name

    async def _edit(engine: SyncEngine) -> Contact | None:
        current = await engine.get_contact(local_id)
        if current is None or current.deleted_locally:
            return None
        return await engine.update_local(current.model_copy(update=updates))

    updated = _run(config, _edit)
    if updated is None:
        click.echo(f"Contact {local_id} not found.", err=True)
        sys.exit(1)
    status = "synced" if not updated.dirty else "saved locally, pending sync"
    click.echo(f"Updated contact {local_id} ({status})")


@cli.command()
@click.argument("local_id", type=int)
@click.pass_obj
def delete(config: SyncConfig, local_id: int) -> None:
    """Delete a contact; kept as a tombstone until the server confirms."""

    async def _delete(engine: SyncEngine) -> tuple[bool, Contact | None]:
        current = await engine.get_contact(local_id)
        if current is None:
            return False, None
        return True, await engine.delete_local(current)

    found, tombstone = _run(config, _delete)
    if not found:
        click.echo(f"Contact {local_id} not found.", err=True)
        sys.exit(1)
    if tombstone is None:
        click.echo(f"Deleted contact {local_id}")
    else:
        click.echo(f"Contact {local_id} marked deleted, pending sync")


@cli.command()
@click.pass_obj
def sync(config: SyncConfig) -> None:
    """Push every unsynced change to the server."""
    result = _run(config, lambda engine: engine.reconcile())
    click.echo(
        f"Synced {result.succeeded}/{result.attempted} record(s): "
        f"{result.created} created, {result.updated} updated, {result.deleted} deleted"
    )
    if result.failed:
        ids = ", ".join(str(i) for i in result.failed_local_ids)
        click.echo(f"{result.failed} record(s) still pending: {ids}")


@cli.command()
@click.pass_obj
def status(config: SyncConfig) -> None:
    """Show enrollment and pending-change status."""

    async def _status(engine: SyncEngine) -> tuple[str | None, int, int]:
        token = await engine.identity.get_token()
        contacts = await engine.list_contacts()
        return token, len(contacts), sum(1 for c in contacts if c.dirty)

    token, total, dirty = _run(config, _status)
    click.echo(f"Enrolled:  {'yes (' + mask_token(token) + ')' if token else 'no'}")
    click.echo(f"Contacts:  {total}")
    click.echo(f"Pending:   {dirty}")


def main() -> None:
    cli()
