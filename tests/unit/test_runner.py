"""
Tests for the reconciliation worker.

Tests cover:
- Single sweeps and failure isolation
- The run loop and stopping it
- The worker command in --once mode
"""

import asyncio
from unittest.mock import AsyncMock, patch

import pytest
from click.testing import CliRunner

from quotapool.api.claim import CLAIM_KIND
from quotapool.config import Settings
from worker.cli import main
from worker.runner import ReconcileRunner

from conftest import make_claim, make_namespace, make_pool


@pytest.fixture
def settings():
    return Settings(_env_file=None, enable_metrics=False, reconcile_interval=60.0)


class TestReconcileRunner:
    """Test cases for ReconcileRunner."""

    def test_configuration(self, store, settings):
        """Test that unset options fall back to settings."""
        runner = ReconcileRunner(store=store, settings=settings)

        assert runner.interval == 60.0
        assert runner.concurrency == settings.worker_concurrency
        assert runner.worker_id

    @pytest.mark.asyncio
    async def test_run_once(self, store, settings):
        """Test a sweep binding a claim."""
        for obj in (make_namespace("ns-a"), make_pool(), make_claim("c1")):
            await store.create(obj)
        runner = ReconcileRunner(store=store, settings=settings)

        report = await runner.run_once()
        claim = await store.get(CLAIM_KIND, "c1", "ns-a")

        assert report.ok
        assert runner.sweeps == 1
        assert runner.last_report is report
        assert claim.is_bound()

    @pytest.mark.asyncio
    async def test_run_once_survives_failures(self, store, settings):
        """Test that a failing sweep is logged and reported."""
        runner = ReconcileRunner(store=store, settings=settings)

        with patch.object(runner.manager, "sweep", new=AsyncMock(side_effect=RuntimeError("boom"))):
            report = await runner.run_once()

        assert report.errors == ["boom"]
        assert runner.sweeps == 1

    @pytest.mark.asyncio
    async def test_run_until_stopped(self, store, settings):
        """Test that stop ends the loop without waiting for the interval."""
        runner = ReconcileRunner(store=store, settings=settings)
        sweep_once = runner.run_once

        async def sweep_then_stop():
            report = await sweep_once()
            await runner.stop()
            return report

        runner.run_once = sweep_then_stop
        await asyncio.wait_for(runner.run(), timeout=5)

        assert runner.sweeps == 1


class TestWorkerCommand:
    """Test cases for the worker command."""

    def test_once(self, tmp_path):
        """Test a single sweep against an empty database."""
        settings = Settings(
            _env_file=None,
            database_url=f"sqlite:///{tmp_path / 'worker.db'}",
            enable_metrics=False,
        )

        with patch("worker.cli.get_settings", return_value=settings):
            result = CliRunner().invoke(main, ["--once", "--id", "worker-1"])

        assert result.exit_code == 0
        assert (tmp_path / "worker.db").exists()
