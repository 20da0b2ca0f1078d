"""Pool lifecycle: membership, garbage collection, batch admission and projection."""

from typing import Dict, List, Optional, Set

import structlog

from quotapool.api.claim import CLAIM_KIND, RELEASE_LABEL, Claim
from quotapool.api.meta import NameUID
from quotapool.api.pool import POOL_KIND, Pool
from quotapool.controllers.claim_controller import binding_conditions, disassociated_condition
from quotapool.coordination.mutator import PoolMutator, PoolPass
from quotapool.monitoring.metrics import PoolRecorder
from quotapool.resources.projection import NamespaceProjector
from quotapool.storage.interface import NotFoundError, VersionedStore
from quotapool.storage.resolvers import NamespaceResolver


logger = structlog.get_logger(__name__)


class PoolReconciler:
    """Runs the full pass over one pool."""

    def __init__(
        self,
        store: VersionedStore,
        mutator: PoolMutator,
        resolver: NamespaceResolver,
        projector: NamespaceProjector,
        recorder: Optional[PoolRecorder] = None
    ):
        self.store = store
        self.mutator = mutator
        self.resolver = resolver
        self.projector = projector
        self.recorder = recorder

    async def reconcile(self, name: str) -> Optional[PoolPass]:
        try:
            pool = await self.store.get(POOL_KIND, name)
        except NotFoundError:
            if self.recorder:
                self.recorder.forget(name)
            return None

        if pool.is_deleting():
            await self._finalize(pool)
            return None

        namespaces = await self.resolver.resolve(pool)
        members = {ns.name for ns in namespaces if ns.is_active()}

        assigned = await self._assigned_claims(pool)
        claims = [
            claim for claim in assigned
            if (claim.namespace or "") in members and not claim.is_released()
        ]

        pool_pass = await self.mutator.reconcile_claims(pool.name, claims, namespaces)
        pool = pool_pass.pool

        await self._release(pool, pool_pass, {claim.uid: claim for claim in assigned})
        await self._write_claim_statuses(pool_pass)

        await self.projector.prune(pool, pool_pass.departed_namespaces)
        await self.projector.sync(pool, pool.status.namespaces)

        if self.recorder:
            self.recorder.record(pool)
        return pool_pass

    async def _assigned_claims(self, pool: Pool) -> List[Claim]:
        """Claims assigned to this pool instance, oldest first."""
        claims = [
            claim for claim in await self.store.list(CLAIM_KIND)
            if claim.is_assigned_to(pool) and not claim.is_deleting()
        ]
        return sorted(claims, key=lambda claim: claim.sort_key())

    async def _release(
        self,
        pool: Pool,
        pool_pass: PoolPass,
        assigned: Dict[str, Claim]
    ) -> None:
        """Disassociate (or delete) the claims whose ledger entries were dropped.

        Claims carrying the release label are unbound even if they never made
        it into the ledger, so the label does not linger.
        """
        targets: Dict[str, Claim] = {}
        for namespace, item in pool_pass.released:
            claim = assigned.get(item.uid)
            if claim is None:
                logger.debug("released_claim_gone", pool=pool.name, namespace=namespace, claim=item.name)
                continue
            targets[claim.uid] = claim
        for claim in assigned.values():
            if claim.is_released():
                targets.setdefault(claim.uid, claim)

        for claim in targets.values():
            namespace = claim.namespace

            if pool.spec.config.delete_bound_resources and not claim.is_released():
                await self._delete_claim(claim)
                continue

            await self.mutator.write_claim_status(
                claim,
                [disassociated_condition()],
                pool_ref=NameUID(),
                allocation={},
                remove_labels=[RELEASE_LABEL],
            )
            logger.info("claim_disassociated", pool=pool.name, namespace=namespace, claim=claim.name)

    async def _write_claim_statuses(self, pool_pass: PoolPass) -> None:
        for result in pool_pass.results:
            claim = result.request.claim
            if claim is None:
                continue
            await self.mutator.write_claim_status(
                claim,
                binding_conditions(result),
                allocation=dict(result.request.requested) if result.success else {},
            )

    async def _delete_claim(self, claim: Claim) -> None:
        try:
            await self.store.delete(CLAIM_KIND, claim.name, claim.namespace)
        except NotFoundError:
            return
        logger.info("claim_deleted_with_pool_binding", namespace=claim.namespace, claim=claim.name)

    async def _finalize(self, pool: Pool) -> None:
        """Unbind every claim, remove projected quotas, then delete the pool."""
        for claim in await self._assigned_claims(pool):
            if pool.spec.config.delete_bound_resources:
                await self._delete_claim(claim)
                continue
            await self.mutator.write_claim_status(
                claim,
                [disassociated_condition("Pool is being deleted")],
                pool_ref=NameUID(),
                allocation={},
            )

        namespaces: Set[str] = set(pool.status.namespaces) | set(pool.status.claims)
        await self.projector.prune(pool, sorted(namespaces))

        try:
            await self.store.delete(POOL_KIND, pool.name)
        except NotFoundError:
            pass

        if self.recorder:
            self.recorder.forget(pool.name)
        logger.info("pool_finalized", pool=pool.name)
