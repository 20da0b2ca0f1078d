"""Store-backed adapters used by the controllers.

Namespace membership and quota projection both go through small protocols
so the controllers can be driven by any store (or by fakes in tests).
"""

from typing import Iterable, List, Protocol

import structlog

from quotapool.api.namespace import NAMESPACE_KIND, RESOURCE_QUOTA_KIND, Namespace, ResourceQuota
from quotapool.api.pool import NamespaceSelector, Pool
from quotapool.storage.interface import AlreadyExistsError, NotFoundError, VersionedStore


logger = structlog.get_logger(__name__)


class NamespaceResolver(Protocol):
    """Resolves a pool's selectors to the namespaces it spans."""

    async def resolve(self, pool: Pool) -> List[Namespace]: ...


def select_namespaces(
    namespaces: Iterable[Namespace],
    selectors: Iterable[NamespaceSelector]
) -> List[Namespace]:
    """Active namespaces matched by any selector, deduplicated and sorted by name."""
    selectors = list(selectors)
    if not selectors:
        return []

    selected = {}
    for namespace in namespaces:
        if not namespace.is_active():
            continue
        if any(selector.matches(namespace.metadata.labels) for selector in selectors):
            selected[namespace.name] = namespace

    return [selected[name] for name in sorted(selected)]


class StoreNamespaceResolver:
    """Matches selectors against the Namespace objects in a store."""

    def __init__(self, store: VersionedStore):
        self.store = store

    async def resolve(self, pool: Pool) -> List[Namespace]:
        namespaces = await self.store.list(NAMESPACE_KIND)
        return select_namespaces(namespaces, pool.spec.selectors)


class StoreQuotaWriter:
    """Persists projected ResourceQuota objects in a store."""

    def __init__(self, store: VersionedStore):
        self.store = store

    async def upsert(self, quota: ResourceQuota) -> None:
        try:
            current = await self.store.get(RESOURCE_QUOTA_KIND, quota.name, quota.namespace)
        except NotFoundError:
            try:
                await self.store.create(quota)
                return
            except AlreadyExistsError:
                # Lost a race with another writer; overwrite below
                current = await self.store.get(RESOURCE_QUOTA_KIND, quota.name, quota.namespace)

        if current.spec == quota.spec and current.metadata.labels == quota.metadata.labels:
            return

        current.spec = quota.spec
        current.metadata.labels = dict(quota.metadata.labels)
        await self.store.update(current)

    async def delete(self, namespace: str, name: str) -> None:
        try:
            await self.store.delete(RESOURCE_QUOTA_KIND, name, namespace)
        except NotFoundError:
            logger.debug("resource_quota_already_gone", namespace=namespace, name=name)
