# cli/commands/reconcile.py
"""One-shot reconciliation."""

import sys
from typing import Optional

import click

from cli.store import open_store, run
from quotapool.controllers.manager import ControllerManager, SweepReport


@click.command()
@click.option('--pool', '-p', 'pool_name', help='Only reconcile this pool and its claims')
@click.pass_context
def reconcile(ctx: click.Context, pool_name: Optional[str]):
    """Run a single reconciliation sweep over pools and claims."""
    settings = ctx.obj['settings']

    async def _reconcile() -> SweepReport:
        async with open_store(ctx.obj['database_url'], ctx.obj['scheme']) as store:
            manager = ControllerManager(
                store,
                retry_policy=settings.retry_policy(),
                concurrency=settings.worker_concurrency,
            )
            return await manager.sweep(pool_name)

    report = run(_reconcile())

    click.echo(f"🔄 Reconciled {len(report.pools)} pool(s) and {len(report.claims)} claim(s)")
    if report.ok:
        click.echo("✅ Done")
        return

    for error in report.errors:
        click.echo(f"❌ {error}", err=True)
    sys.exit(1)
