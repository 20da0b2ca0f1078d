# cli/main.py
"""Main CLI entry point for the Quota Pool Engine."""

import click

from quotapool import __version__
from quotapool.api.registry import build_scheme
from quotapool.config import get_settings
from quotapool.monitoring.logging import configure_logging


@click.group()
@click.version_option(version=__version__)
@click.option(
    '--database-url',
    envvar='QUOTAPOOL_DATABASE_URL',
    help='Object store location (defaults to the configured database_url)'
)
@click.pass_context
def cli(ctx: click.Context, database_url: str):
    """Quota Pool Engine CLI - share quota across namespaces through pools and claims."""
    settings = get_settings()
    configure_logging(settings)

    ctx.ensure_object(dict)
    ctx.obj['settings'] = settings
    ctx.obj['database_url'] = database_url or settings.database_url
    ctx.obj['scheme'] = build_scheme()


def register_commands():
    """Register all CLI commands."""
    from cli.commands.objects import apply, get, delete, release
    cli.add_command(apply)
    cli.add_command(get)
    cli.add_command(delete)
    cli.add_command(release)

    from cli.commands.pool import status
    cli.add_command(status)

    from cli.commands.reconcile import reconcile
    cli.add_command(reconcile)


register_commands()


if __name__ == '__main__':
    cli()
