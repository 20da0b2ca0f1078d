"""Worker CLI implementation."""

import asyncio
import signal
import sys
from typing import Optional

import click
import structlog

from quotapool.config import get_settings
from quotapool.monitoring.logging import configure_logging
from quotapool.monitoring.metrics import MetricsExporter
from worker.runner import ReconcileRunner


logger = structlog.get_logger(__name__)


def setup_signal_handlers(runner: ReconcileRunner):
    """Setup signal handlers for graceful shutdown."""
    loop = asyncio.get_running_loop()

    def signal_handler(sig):
        logger.info("shutdown_signal_received", signal=sig.name)
        asyncio.ensure_future(runner.stop())

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, signal_handler, sig)


async def serve(runner: ReconcileRunner) -> None:
    setup_signal_handlers(runner)
    await runner.run()


@click.command()
@click.option(
    '--interval',
    '-i',
    type=float,
    help='Seconds between reconciliation sweeps'
)
@click.option(
    '--concurrency',
    '-c',
    type=int,
    help='Number of pools or claims reconciled at once'
)
@click.option(
    '--id',
    'worker_id',
    help='Worker ID (auto-generated if not provided)'
)
@click.option(
    '--once',
    is_flag=True,
    help='Run a single sweep and exit'
)
def main(
    interval: Optional[float],
    concurrency: Optional[int],
    worker_id: Optional[str],
    once: bool
):
    """Quota pool reconciliation worker."""
    settings = get_settings()
    configure_logging(settings)

    runner = ReconcileRunner(
        worker_id=worker_id,
        interval=interval,
        concurrency=concurrency,
        settings=settings
    )

    exporter = None
    if settings.enable_metrics and not once:
        exporter = MetricsExporter(settings.metrics_port, registry=runner.manager.registry)
        exporter.start()

    logger.info(
        "worker_starting",
        interval=runner.interval,
        concurrency=runner.concurrency,
        worker_id=runner.worker_id
    )

    try:
        if once:
            asyncio.run(_run_once(runner))
        else:
            asyncio.run(serve(runner))
    except KeyboardInterrupt:
        logger.info("worker_interrupted")
    except Exception as e:
        logger.error("worker_error", error=str(e))
        sys.exit(1)
    finally:
        if exporter:
            exporter.stop()

    logger.info("worker_stopped")


async def _run_once(runner: ReconcileRunner) -> None:
    await runner.store.initialize()
    try:
        report = await runner.run_once()
    finally:
        await runner.store.close()
    if not report.ok:
        raise click.ClickException(f"{len(report.errors)} reconcile error(s)")


if __name__ == "__main__":
    main()
