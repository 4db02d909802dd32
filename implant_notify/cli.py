"""CLI tools for the notification engine."""

import asyncio
import logging

import click

from implant_notify.db.session import SessionLocal
from implant_notify.services import digest_service, flag_service, isq_sweep_service
from implant_notify.utils.datetime_parsing import local_now, parse_digest_time


@click.group()
@click.option("--verbose", is_flag=True, help="Log at DEBUG level")
def cli(verbose: bool):
    """Implant notification CLI tools."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


@cli.command()
@click.option("--at", "at_time", default=None, help="Run as if it were HH:MM today")
def run_digest(at_time: str | None):
    """
    Run one digest pass.

    Only preferences whose digest time matches the current (or --at) minute
    are processed.

    Example:
        implant-notify run-digest --at 08:00
    """
    now = local_now()
    if at_time:
        try:
            digest_time = parse_digest_time(at_time)
        except ValueError as e:
            raise click.BadParameter(str(e), param_hint="--at")
        now = now.replace(hour=digest_time.hour, minute=digest_time.minute, second=0)

    with SessionLocal() as db:
        summary = asyncio.run(digest_service.run_digest(db, now=now))

    click.echo(f"✓ Digest pass at {now:%H:%M}: processed={summary.processed}, sent={summary.sent}")
    for result in summary.results:
        if not result.success:
            click.echo(f"  ❌ user {result.user_id}: {result.error}")


@cli.command()
@click.option("--org-id", "org_ids", multiple=True, type=click.UUID, help="Limit to organization(s)")
def run_flag_detection(org_ids: tuple):
    """Run the clinical flag rules and create missing flags."""
    with SessionLocal() as db:
        summary = flag_service.run_detection(db, org_ids=list(org_ids) or None)

    click.echo(f"✓ Flags created: {summary.created}")
    click.echo(f"  Already open: {summary.existing}")
    if summary.failed_orgs:
        click.echo(f"❌ Failed organizations: {', '.join(str(o) for o in summary.failed_orgs)}")
        raise SystemExit(1)


@cli.command()
def run_isq_sweep():
    """Raise follow-up reminders for implants reaching the control age."""
    with SessionLocal() as db:
        created = asyncio.run(isq_sweep_service.run_isq_followup_sweep(db))

    click.echo(f"✓ Follow-up notifications created: {created}")


@cli.command()
def worker():
    """Run the scheduler loop in the foreground."""
    from implant_notify.worker import main

    main()


if __name__ == "__main__":
    cli()
