"""
ClinicFlow CLI: rule files, manual triggers, booking review and secrets.

Usage:
    clinicflow rules validate <file>                 validate an automations YAML file
    clinicflow rules sync <tenant-slug> <file>       upsert the file's rules into the DB
    clinicflow trigger <tenant-id> <trigger> [...]   queue a rule-engine pass
    clinicflow bookings pending [--tenant <id>]      list booking requests awaiting review
    clinicflow secrets set <tenant> <name> <value>   save a secret
    clinicflow secrets list <tenant>                 list secrets for a tenant
"""

from __future__ import annotations

import asyncio
import logging

import click
from pydantic import ValidationError

from clinicflow.automation.rule_loader import load_rules_file, rule_values
from clinicflow.automation.types import AutomationTrigger
from clinicflow.core import secrets as secret_store

logger = logging.getLogger(__name__)


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output")
def cli(verbose: bool):
    """ClinicFlow: clinic messaging automation CLI."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format="%(levelname)s: %(message)s")


@cli.group()
def rules():
    """Manage automation rules."""


def _load_or_exit(path: str, tenant_id: str = ""):
    try:
        return load_rules_file(path, tenant_id=tenant_id)
    except FileNotFoundError as e:
        click.echo(f"Error: {e}", err=True)
        raise SystemExit(1)
    except (ValidationError, ValueError) as e:
        click.echo(f"Error: invalid rules in {path}:\n{e}", err=True)
        raise SystemExit(1)


@rules.command("validate")
@click.argument("path", type=click.Path())
def rules_validate(path: str):
    """Validate an automations YAML file without touching the DB."""
    loaded = _load_or_exit(path)
    for rule in loaded:
        click.echo(f"✓ {rule.name} ({rule.trigger.value}, priority {rule.priority}, {len(rule.actions)} action(s))")
    click.echo(f"\n{len(loaded)} rule(s) valid.")


@rules.command("sync")
@click.argument("tenant_slug")
@click.argument("path", type=click.Path())
def rules_sync(tenant_slug: str, path: str):
    """Upsert the file's rules for a tenant (matched by name)."""
    loaded = _load_or_exit(path)
    asyncio.run(_rules_sync(tenant_slug, loaded))


async def _rules_sync(tenant_slug: str, loaded: list) -> None:
    from clinicflow.core.crud import get_tenant_by_slug, upsert_rule
    from clinicflow.db import async_session

    async with async_session() as db:
        tenant = await get_tenant_by_slug(db, tenant_slug)
        if tenant is None:
            click.echo(f"Error: tenant {tenant_slug} not found", err=True)
            raise SystemExit(1)

        for rule in loaded:
            await upsert_rule(db, tenant.id, rule.name, rule_values(rule))
            click.echo(f"✓ Synced rule: {rule.name}")
        await db.commit()

    click.echo(f"\n✓ {len(loaded)} rule(s) synced for {tenant_slug}.")


@cli.command("trigger")
@click.argument("tenant_id")
@click.argument("trigger", type=click.Choice([t.value for t in AutomationTrigger]))
@click.option("--conversation", "conversation_id", default=None, help="Conversation id")
@click.option("--customer", "customer_id", default=None, help="Customer id")
@click.option("--message", "message_id", default=None, help="Message id")
@click.option("--booking", "booking_id", default=None, help="Booking id")
@click.option("--var", "variables", multiple=True, help="Extra template variable as key=value")
def trigger(
    tenant_id: str,
    trigger: str,
    conversation_id: str | None,
    customer_id: str | None,
    message_id: str | None,
    booking_id: str | None,
    variables: tuple[str, ...],
):
    """Queue a rule-engine pass for a tenant."""
    from clinicflow.workers.tasks import process_trigger_task

    context: dict = {"tenant_id": tenant_id}
    for key, value in (
        ("conversation_id", conversation_id),
        ("customer_id", customer_id),
        ("message_id", message_id),
        ("booking_id", booking_id),
    ):
        if value:
            context[key] = value

    extra = {}
    for item in variables:
        key, sep, value = item.partition("=")
        if not sep or not key:
            raise click.BadParameter(f"expected key=value, got {item!r}", param_hint="--var")
        extra[key] = value
    if extra:
        context["variables"] = extra

    result = process_trigger_task.delay(trigger, context)
    click.echo(f"✓ Queued {trigger} for tenant {tenant_id} (task {result.id})")


@cli.group()
def bookings():
    """Review booking requests."""


@bookings.command("pending")
@click.option("--tenant", "tenant_id", default=None, help="Only this tenant id")
def bookings_pending(tenant_id: str | None):
    """List booking requests awaiting a human decision."""
    asyncio.run(_bookings_pending(tenant_id))


async def _bookings_pending(tenant_id: str | None) -> None:
    from clinicflow.config import get_settings
    from clinicflow.core.runtime import build_booking_workflow
    from clinicflow.db import async_session

    workflow = build_booking_workflow(async_session, get_settings())
    pending = await workflow.list_pending(tenant_id)
    if not pending:
        click.echo("No pending booking requests.")
        return

    click.echo(f"{'Id':<38} {'Clinic':<20} {'Customer':<18} {'Date':<12} {'Waiting':>8}")
    click.echo("-" * 100)
    for req in pending:
        click.echo(
            f"{req.id:<38} {(req.tenant_slug or ''):<20} {(req.customer_name or '-'):<18} "
            f"{req.requested_date:<12} {int(req.waiting_minutes):>6}m"
        )


@cli.group()
def secrets():
    """Manage secrets."""


@secrets.command("set")
@click.argument("tenant_slug")
@click.argument("secret_name")
@click.argument("secret_value")
def secrets_set(tenant_slug: str, secret_name: str, secret_value: str):
    """Save a secret for a tenant."""
    path = secret_store.save_secret(tenant_slug, secret_name, secret_value)
    click.echo(f"✓ Saved secret: {path}")


@secrets.command("list")
@click.argument("tenant_slug")
def secrets_list(tenant_slug: str):
    """List secrets for a tenant."""
    names = secret_store.list_secrets(tenant_slug)
    if names is None:
        click.echo(f"No secrets directory for {tenant_slug}")
        return
    if not names:
        click.echo(f"No secrets for {tenant_slug}")
        return

    click.echo(f"Secrets for {tenant_slug}:")
    for name in names:
        click.echo(f"  • {name}")


if __name__ == "__main__":
    cli()
