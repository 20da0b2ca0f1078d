# cli/commands/pool.py
"""Pool inspection commands."""

import sys

import click

from cli.store import open_store, run
from quotapool.api.pool import POOL_KIND
from quotapool.resources.allocation import clamp_available
from quotapool.storage.interface import NotFoundError


@click.command()
@click.argument('pool_name')
@click.option('--claims/--no-claims', default=True, help='List the claims recorded in the pool')
@click.pass_context
def status(ctx: click.Context, pool_name: str, claims: bool):
    """Show the allocation of a pool."""

    async def _status():
        async with open_store(ctx.obj['database_url'], ctx.obj['scheme']) as store:
            return await store.get(POOL_KIND, pool_name)

    try:
        pool = run(_status())
    except NotFoundError as e:
        click.echo(f"❌ {e}", err=True)
        sys.exit(1)

    allocation = pool.status.allocation
    shown = clamp_available(allocation.available)

    click.echo(f"📊 Pool: {pool.name}")
    click.echo("=" * 60)
    click.echo(f"Namespaces: {pool.status.namespace_count} ({', '.join(pool.status.namespaces) or 'none'})")
    click.echo(f"Claims: {pool.status.claim_count}")
    click.echo(f"Ordered queue: {'yes' if pool.ordered else 'no'}")
    if pool.is_deleting():
        click.echo("⚠️  Pool is being deleted")

    click.echo(f"\n{'RESOURCE':<24}{'HARD':>12}{'USED':>12}{'AVAILABLE':>12}")
    for resource in sorted(allocation.hard):
        used = allocation.claimed.get(resource, "0")
        available = shown.get(resource, "0")
        marker = ""
        raw = allocation.available.get(resource)
        if raw is not None and raw.sign() < 0:
            marker = f"  (overcommitted by {-raw})"
        click.echo(f"{resource:<24}{str(allocation.hard[resource]):>12}{str(used):>12}{str(available):>12}{marker}")

    if pool.status.exhaustions:
        click.echo("\n🚫 Exhausted:")
        for resource in sorted(pool.status.exhaustions):
            exhaustion = pool.status.exhaustions[resource]
            click.echo(
                f"  • {resource}: requesting {exhaustion.requesting}, "
                f"available {exhaustion.available}"
            )

    if claims and pool.status.claims:
        click.echo("\n📄 Claims:")
        for namespace in sorted(pool.status.claims):
            for item in pool.status.claims[namespace]:
                amounts = ", ".join(f"{k}={item.claims[k]}" for k in sorted(item.claims))
                click.echo(f"  • {namespace}/{item.name}: {amounts}")
