"""Concurrent-safe mutation of a pool's claim ledger.

Every operation is a compare-and-swap loop over the stored pool: read the
current version, check admission (``_admit``), apply the ledger change and
recompute the derived totals (``_commit``), then write with the version that
was read. A conflicting write from another worker restarts the loop from a
fresh read, so admission is always decided against the version being
replaced.
"""

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import structlog

from quotapool.api.claim import CLAIM_KIND, Claim
from quotapool.api.conditions import Condition
from quotapool.api.meta import NameUID
from quotapool.api.namespace import Namespace
from quotapool.api.pool import POOL_KIND, ClaimItem, Pool
from quotapool.coordination.retry import RetryPolicy, compare_and_swap
from quotapool.resources.allocation import (
    AdmissionError,
    AdmissionPolicy,
    AllocationRequest,
    AllocationResult,
    can_claim,
    create_allocator,
    recalculate_available,
    recalculate_claimed,
)
from quotapool.resources.ledger import ClaimLedger
from quotapool.resources.requirements import ResourceList, resource_lists_equal
from quotapool.storage.interface import NotFoundError, VersionedStore


logger = structlog.get_logger(__name__)


@dataclass
class PoolPass:
    """Outcome of one full reconciliation pass over a pool."""
    pool: Pool
    results: List[AllocationResult] = field(default_factory=list)
    # Ledger entries dropped because their claim or namespace is gone
    released: List[Tuple[str, ClaimItem]] = field(default_factory=list)
    # Namespaces that were members before the pass and no longer are
    departed_namespaces: List[str] = field(default_factory=list)
    written: bool = False

    @property
    def granted(self) -> List[AllocationResult]:
        return [r for r in self.results if r.success]

    @property
    def rejected(self) -> List[AllocationResult]:
        return [r for r in self.results if not r.success]


def _pool_name_of(claim: Claim) -> str:
    return claim.status.pool.name or claim.spec.pool


class PoolMutator:
    """Applies claim additions, removals and full passes to stored pools."""

    def __init__(self, store: VersionedStore, retry_policy: Optional[RetryPolicy] = None):
        self.store = store
        self.retry_policy = retry_policy or RetryPolicy()

    async def _read_pool(self, name: str) -> Pool:
        return await self.store.get(POOL_KIND, name)

    async def _write_pool(self, pool: Pool) -> Pool:
        return await self.store.update(pool)

    async def _swap_pool(self, name: str, mutate) -> Tuple[Pool, bool]:
        return await compare_and_swap(
            read=lambda: self._read_pool(name),
            write=self._write_pool,
            mutate=mutate,
            policy=self.retry_policy,
            description=f"{POOL_KIND} {name}",
        )

    # Phases

    def _admit(
        self,
        pool: Pool,
        ledger: ClaimLedger,
        claim: Claim,
        policy: AdmissionPolicy
    ) -> List[AdmissionError]:
        """Check a claim against the pool version being replaced.

        The claim's own entry, if already recorded, is credited back first so
        re-adding an unchanged claim is admitted. An entry already recorded
        with the same amounts stays granted even if the pool has shrunk.
        """
        existing = ledger.get(claim.namespace or "", claim.uid)
        if existing is not None and resource_lists_equal(existing.claims, claim.spec.resource_claims):
            return []

        hard = pool.spec.quota.hard
        others = ledger.remove(claim.namespace or "", claim.uid)
        available = recalculate_available(hard, recalculate_claimed(hard, others))

        queue = pool.status.exhaustions if policy is AdmissionPolicy.ORDERED else None
        return can_claim(claim.spec.resource_claims, available, policy, queue)

    def _commit(self, pool: Pool, ledger: ClaimLedger) -> Pool:
        """Store the ledger and recompute every derived total from it."""
        hard = dict(pool.spec.quota.hard)
        claimed = recalculate_claimed(hard, ledger)

        pool.status.claims = ledger.to_status()
        pool.status.claim_count = ledger.count_claims()
        pool.status.allocation.hard = hard
        pool.status.allocation.claimed = claimed
        pool.status.allocation.available = recalculate_available(hard, claimed)
        return pool

    # Operations

    async def add_claim(
        self,
        claim: Claim,
        policy: Optional[AdmissionPolicy] = None
    ) -> AllocationResult:
        """Admit a claim into its pool and record it in the ledger.

        A rejected claim leaves the pool untouched. Exhaustions are not
        written here; they belong to the full pass.
        """
        request = AllocationRequest.from_claim(claim)
        outcome: Dict[str, List[AdmissionError]] = {}

        def mutate(pool: Pool) -> Optional[Pool]:
            effective = policy or AdmissionPolicy.for_pool(pool.ordered)
            ledger = ClaimLedger.from_status(pool.status.claims)

            errors = self._admit(pool, ledger, claim, effective)
            outcome["errors"] = errors
            if errors:
                return None

            before = pool.status.model_copy(deep=True)
            self._commit(pool, ledger.upsert(request.namespace, request.to_item()))
            if pool.status == before:
                return None
            return pool

        await self._swap_pool(_pool_name_of(claim), mutate)

        errors = outcome.get("errors", [])
        result = AllocationResult(request=request, success=not errors, errors=errors)
        if result.success:
            logger.info(
                "claim_admitted",
                pool=_pool_name_of(claim),
                namespace=request.namespace,
                claim=request.name,
            )
        else:
            logger.info(
                "claim_not_admitted",
                pool=_pool_name_of(claim),
                namespace=request.namespace,
                claim=request.name,
                reason=result.reason,
            )
        return result

    async def remove_claim(self, claim: Claim) -> bool:
        """Drop a claim from its pool's ledger. Returns whether it was recorded."""
        pool_name = _pool_name_of(claim)
        if not pool_name:
            return False

        namespace = claim.namespace or ""

        def mutate(pool: Pool) -> Optional[Pool]:
            ledger = ClaimLedger.from_status(pool.status.claims)
            if ledger.get(namespace, claim.uid) is None:
                return None
            return self._commit(pool, ledger.remove(namespace, claim.uid))

        try:
            _, written = await self._swap_pool(pool_name, mutate)
        except NotFoundError:
            return False

        if written:
            logger.info("claim_removed", pool=pool_name, namespace=namespace, claim=claim.name)
        return written

    async def reconcile_claims(
        self,
        pool_name: str,
        claims: Sequence[Claim],
        namespaces: Iterable[Namespace]
    ) -> PoolPass:
        """Run a full pass: membership, garbage collection and batch admission.

        ``claims`` are the live claims assigned to the pool. Ledger entries
        without a live claim in a member namespace are released; the rest
        are admitted in creation order with the pool's policy.
        """
        namespaces = list(namespaces)
        state: Dict[str, PoolPass] = {}

        def mutate(pool: Pool) -> Optional[Pool]:
            before = pool.status.model_copy(deep=True)
            previous_members = set(pool.status.namespaces)

            pool.assign_namespaces(namespaces)
            members = set(pool.status.namespaces)
            live = {
                claim.uid: claim
                for claim in claims
                if (claim.namespace or "") in members and not claim.is_deleting()
            }

            ledger = ClaimLedger.from_status(pool.status.claims)
            released: List[Tuple[str, ClaimItem]] = []
            for namespace, item in list(ledger.iter_items()):
                claim = live.get(item.uid)
                if claim is None or (claim.namespace or "") != namespace:
                    ledger = ledger.remove(namespace, item.uid)
                    released.append((namespace, item))

            allocator = create_allocator(
                AdmissionPolicy.for_pool(pool.ordered),
                pool.spec.quota.hard,
                ledger,
            )
            results = allocator.allocate_batch([AllocationRequest.from_claim(c) for c in live.values()])

            pool.status.exhaustions = dict(allocator.exhaustions)
            self._commit(pool, allocator.ledger)

            state["pass"] = PoolPass(
                pool=pool,
                results=results,
                released=released,
                departed_namespaces=sorted(previous_members - members),
            )
            if pool.status == before:
                return None
            return pool

        stored, written = await self._swap_pool(pool_name, mutate)

        pool_pass = state["pass"]
        pool_pass.pool = stored
        pool_pass.written = written

        logger.info(
            "pool_pass_completed",
            pool=pool_name,
            namespaces=stored.status.namespace_count,
            claims=stored.status.claim_count,
            granted=len(pool_pass.granted),
            rejected=len(pool_pass.rejected),
            released=len(pool_pass.released),
            written=written,
        )
        return pool_pass

    async def write_claim_status(
        self,
        claim: Claim,
        conditions: Iterable[Condition] = (),
        pool_ref: Optional[NameUID] = None,
        allocation: Optional[ResourceList] = None,
        remove_labels: Iterable[str] = ()
    ) -> Optional[Claim]:
        """Update a claim's status in its own compare-and-swap loop.

        ``pool_ref`` and ``allocation`` are left alone when ``None``. Returns
        the stored claim, or ``None`` if it no longer exists.
        """
        conditions = list(conditions)
        remove_labels = list(remove_labels)

        def mutate(current: Claim) -> Optional[Claim]:
            changed = False

            for condition in conditions:
                desired = condition.model_copy()
                desired.observed_generation = current.metadata.generation
                changed = current.status.conditions.update_by_type(desired) or changed

            if pool_ref is not None and current.status.pool != pool_ref:
                current.status.pool = pool_ref.model_copy()
                changed = True

            if allocation is not None and current.status.allocation != allocation:
                current.status.allocation = dict(allocation)
                changed = True

            for label in remove_labels:
                if current.metadata.labels.pop(label, None) is not None:
                    changed = True

            return current if changed else None

        try:
            stored, _ = await compare_and_swap(
                read=lambda: self.store.get(CLAIM_KIND, claim.name, claim.namespace),
                write=self.store.update,
                mutate=mutate,
                policy=self.retry_policy,
                description=f"{CLAIM_KIND} {claim.namespace}/{claim.name}",
            )
        except NotFoundError:
            logger.debug("claim_gone_before_status_write", namespace=claim.namespace, claim=claim.name)
            return None
        return stored
