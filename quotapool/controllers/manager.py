"""Wiring of the reconcilers and a single full reconciliation sweep."""

import asyncio
from dataclasses import dataclass, field
from typing import List, Optional

import structlog
from prometheus_client import CollectorRegistry

from quotapool.api.claim import CLAIM_KIND
from quotapool.api.pool import POOL_KIND
from quotapool.controllers.claim_controller import ClaimReconciler
from quotapool.controllers.pool_controller import PoolReconciler
from quotapool.coordination.mutator import PoolMutator
from quotapool.coordination.retry import RetryPolicy
from quotapool.errors import QuotaPoolError, TransientError
from quotapool.monitoring.metrics import ClaimRecorder, PoolRecorder
from quotapool.resources.projection import NamespaceProjector
from quotapool.storage.interface import VersionedStore
from quotapool.storage.resolvers import NamespaceResolver, StoreNamespaceResolver, StoreQuotaWriter


logger = structlog.get_logger(__name__)


@dataclass
class SweepReport:
    """What one sweep touched and what failed."""
    pools: List[str] = field(default_factory=list)
    claims: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


class ControllerManager:
    """Owns the reconcilers for one store and sweeps every pool and claim."""

    def __init__(
        self,
        store: VersionedStore,
        retry_policy: Optional[RetryPolicy] = None,
        resolver: Optional[NamespaceResolver] = None,
        registry: Optional[CollectorRegistry] = None,
        concurrency: int = 10
    ):
        self.store = store
        self.mutator = PoolMutator(store, retry_policy)
        self.pool_recorder = PoolRecorder(registry)
        self.claim_recorder = ClaimRecorder(self.pool_recorder.registry)
        self.pools = PoolReconciler(
            store,
            self.mutator,
            resolver or StoreNamespaceResolver(store),
            NamespaceProjector(StoreQuotaWriter(store)),
            self.pool_recorder,
        )
        self.claims = ClaimReconciler(store, self.mutator, self.claim_recorder)
        self.concurrency = concurrency

    @property
    def registry(self) -> CollectorRegistry:
        return self.pool_recorder.registry

    async def sweep(self, pool: Optional[str] = None) -> SweepReport:
        """Reconcile pools, then their claims, then pools again.

        The second pool pass picks up claims the claim pass just assigned,
        so a freshly applied set of objects converges in a single sweep.
        """
        report = SweepReport()

        pool_names = [pool] if pool else [p.name for p in await self.store.list(POOL_KIND)]
        await self._run_pools(pool_names, report)

        claims = await self.store.list(CLAIM_KIND)
        if pool:
            claims = [c for c in claims if c.spec.pool == pool or c.status.pool.name == pool]

        semaphore = asyncio.Semaphore(self.concurrency)

        async def run_claim(namespace: str, name: str) -> None:
            async with semaphore:
                await self._guard(report, f"{namespace}/{name}", self.claims.reconcile(namespace, name))

        await self._gather(run_claim(c.namespace or "", c.name) for c in claims)
        report.claims = [f"{c.namespace}/{c.name}" for c in claims]

        await self._run_pools(pool_names, report)
        report.pools = pool_names

        logger.info(
            "sweep_completed",
            pools=len(report.pools),
            claims=len(report.claims),
            errors=len(report.errors),
        )
        return report

    async def _run_pools(self, names: List[str], report: SweepReport) -> None:
        # Pools are independent of each other
        semaphore = asyncio.Semaphore(self.concurrency)

        async def run_pool(name: str) -> None:
            async with semaphore:
                await self._guard(report, name, self.pools.reconcile(name))

        await self._gather(run_pool(name) for name in names)

    async def _guard(self, report: SweepReport, target: str, coro) -> None:
        try:
            await coro
        except TransientError as e:
            # Retried on the next sweep
            logger.warning("reconcile_deferred", target=target, error=str(e))
            report.errors.append(f"{target}: {e}")
        except QuotaPoolError as e:
            logger.error("reconcile_failed", target=target, error=str(e), error_type=type(e).__name__)
            report.errors.append(f"{target}: {e}")

    @staticmethod
    async def _gather(coros) -> None:
        """Run every reconcile to completion, then raise the first unexpected error."""
        results = await asyncio.gather(*coros, return_exceptions=True)
        failures = [r for r in results if isinstance(r, BaseException)]
        if failures:
            logger.error("sweep_aborted", failures=len(failures), error=str(failures[0]))
            raise failures[0]
