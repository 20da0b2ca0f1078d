"""Projection of pool allocations into per-namespace ResourceQuota objects."""

import asyncio
from typing import Iterable, List, Protocol

import structlog

from quotapool.api.meta import ObjectMeta
from quotapool.api.namespace import ResourceQuota, ResourceQuotaSpec
from quotapool.api.pool import POOL_LABEL, Pool
from quotapool.resources.allocation import get_namespace_claims
from quotapool.resources.ledger import ClaimLedger
from quotapool.resources.quantity import Quantity
from quotapool.resources.requirements import ResourceList


logger = structlog.get_logger(__name__)


def get_effective_hard(pool: Pool, namespace: str) -> ResourceList:
    """Hard limits for one namespace: its claims plus the pool defaults.

    Zero claims are dropped so they do not show up in the quota object.
    Defaults are added on top rather than applied as a ceiling; they are
    not part of the pool-wide claimed total.
    """
    _, claimed = get_namespace_claims(ClaimLedger.from_status(pool.status.claims), namespace)

    hard = {name: amount for name, amount in claimed.items() if not amount.is_zero()}

    for name, amount in pool.spec.defaults.items():
        hard[name] = hard.get(name, Quantity.zero()) + amount

    return hard


def build_resource_quota(pool: Pool, namespace: str) -> ResourceQuota:
    return ResourceQuota(
        metadata=ObjectMeta(
            name=pool.quota_name,
            namespace=namespace,
            labels={POOL_LABEL: pool.name},
        ),
        spec=ResourceQuotaSpec(
            hard=get_effective_hard(pool, namespace),
            scopes=list(pool.spec.quota.scopes),
        ),
    )


class QuotaWriter(Protocol):
    """Sink for projected quota objects."""

    async def upsert(self, quota: ResourceQuota) -> None: ...

    async def delete(self, namespace: str, name: str) -> None: ...


class NamespaceProjector:
    """Writes one ResourceQuota per member namespace of a pool."""

    def __init__(self, writer: QuotaWriter):
        self.writer = writer

    async def sync(self, pool: Pool, namespaces: Iterable[str]) -> List[ResourceQuota]:
        """Upsert the quota object of every namespace concurrently."""
        quotas = [build_resource_quota(pool, namespace) for namespace in namespaces]

        await asyncio.gather(*(self.writer.upsert(quota) for quota in quotas))

        logger.debug(
            "resource_quotas_synced",
            pool=pool.name,
            namespaces=[q.metadata.namespace for q in quotas],
        )
        return quotas

    async def prune(self, pool: Pool, namespaces: Iterable[str]) -> None:
        """Remove the quota objects of namespaces that left the pool."""
        targets = list(namespaces)
        if not targets:
            return

        await asyncio.gather(*(self.writer.delete(namespace, pool.quota_name) for namespace in targets))

        logger.info("resource_quotas_pruned", pool=pool.name, namespaces=targets)
