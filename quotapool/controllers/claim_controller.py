"""Claim lifecycle: assignment to a pool and, for unordered pools, binding."""

from typing import List, Optional

import structlog

from quotapool.api.claim import CLAIM_KIND, Claim
from quotapool.api.conditions import (
    ASSIGNED_CONDITION,
    BOUND_CONDITION,
    DISASSOCIATED_REASON,
    EXHAUSTED_CONDITION,
    FAILED_REASON,
    POOL_EXHAUSTED_REASON,
    QUEUE_EXHAUSTED_REASON,
    SUCCEEDED_REASON,
    Condition,
    ConditionStatus,
    new_condition,
)
from quotapool.api.meta import NameUID
from quotapool.api.pool import POOL_KIND, Pool
from quotapool.coordination.mutator import PoolMutator
from quotapool.errors import PoolUnavailableError
from quotapool.monitoring.metrics import ClaimRecorder
from quotapool.resources.allocation import AllocationResult
from quotapool.storage.interface import NotFoundError, VersionedStore


logger = structlog.get_logger(__name__)


def binding_conditions(result: AllocationResult) -> List[Condition]:
    """Bound and Exhausted conditions describing an admission outcome."""
    if result.success:
        return [
            new_condition(BOUND_CONDITION, ConditionStatus.TRUE, SUCCEEDED_REASON, "Claimed resources"),
            new_condition(EXHAUSTED_CONDITION, ConditionStatus.FALSE, SUCCEEDED_REASON),
        ]

    reason = QUEUE_EXHAUSTED_REASON if result.queued else POOL_EXHAUSTED_REASON
    return [
        new_condition(BOUND_CONDITION, ConditionStatus.FALSE, reason, result.reason),
        new_condition(EXHAUSTED_CONDITION, ConditionStatus.TRUE, reason, result.reason),
    ]


def disassociated_condition(message: str = "Claim is disassociated from the pool") -> Condition:
    return new_condition(BOUND_CONDITION, ConditionStatus.FALSE, DISASSOCIATED_REASON, message)


class ClaimReconciler:
    """Drives one claim towards its desired state."""

    def __init__(
        self,
        store: VersionedStore,
        mutator: PoolMutator,
        recorder: Optional[ClaimRecorder] = None
    ):
        self.store = store
        self.mutator = mutator
        self.recorder = recorder

    async def reconcile(self, namespace: str, name: str) -> Optional[Claim]:
        try:
            claim = await self.store.get(CLAIM_KIND, name, namespace)
        except NotFoundError:
            if self.recorder:
                self.recorder.forget(namespace, name)
            return None

        if claim.is_deleting():
            await self._finalize(claim)
            return None

        try:
            pool = await self._evaluate_pool(claim)
        except PoolUnavailableError as e:
            logger.info("claim_unassigned", namespace=namespace, claim=name, reason=str(e))
            conditions = [new_condition(ASSIGNED_CONDITION, ConditionStatus.FALSE, FAILED_REASON, str(e))]
            if claim.is_bound():
                conditions.append(disassociated_condition(str(e)))
            stored = await self.mutator.write_claim_status(
                claim,
                conditions,
                pool_ref=NameUID(),
                allocation={},
            )
            self._record(stored)
            return stored

        pool_ref = NameUID(name=pool.name, uid=pool.uid)
        conditions = [new_condition(ASSIGNED_CONDITION, ConditionStatus.TRUE, SUCCEEDED_REASON)]
        allocation = None

        if not pool.ordered:
            # Ordered pools bind in creation order during the pool pass
            claim.status.pool = pool_ref
            result = await self.mutator.add_claim(claim)
            conditions.extend(binding_conditions(result))
            allocation = dict(claim.spec.resource_claims) if result.success else {}

        stored = await self.mutator.write_claim_status(
            claim,
            conditions,
            pool_ref=pool_ref,
            allocation=allocation,
        )
        self._record(stored)
        return stored

    async def _evaluate_pool(self, claim: Claim) -> Pool:
        """The pool the claim may be assigned to, or PoolUnavailableError."""
        if not claim.spec.pool:
            raise PoolUnavailableError("no pool referenced")

        try:
            pool = await self.store.get(POOL_KIND, claim.spec.pool)
        except NotFoundError:
            raise PoolUnavailableError(f"pool {claim.spec.pool} not found") from None

        if pool.is_deleting():
            raise PoolUnavailableError(f"pool {pool.name} is being deleted")

        if not pool.has_namespace(claim.namespace or ""):
            raise PoolUnavailableError(f"pool {pool.name} does not select namespace {claim.namespace}")

        unmanaged = sorted(set(claim.spec.resource_claims) - set(pool.spec.quota.hard))
        if unmanaged:
            raise PoolUnavailableError(
                f"pool {pool.name} does not provide resources: {', '.join(unmanaged)}"
            )

        return pool

    async def _finalize(self, claim: Claim) -> None:
        """Release the claim's resources, then delete the object."""
        await self.mutator.remove_claim(claim)

        try:
            await self.store.delete(CLAIM_KIND, claim.name, claim.namespace)
        except NotFoundError:
            pass

        if self.recorder:
            self.recorder.forget(claim.namespace or "", claim.name)
        logger.info("claim_finalized", namespace=claim.namespace, claim=claim.name)

    def _record(self, claim: Optional[Claim]) -> None:
        if self.recorder and claim is not None:
            self.recorder.record(claim)
