"""
Tests for PoolMutator.

Tests cover:
- add_claim admission, rejection and idempotence
- remove_claim as the inverse of add_claim
- Admission against the version being replaced under concurrent writers
- reconcile_claims garbage collection, membership and queueing
- write_claim_status
"""

import asyncio

import pytest

from quotapool.api.claim import CLAIM_KIND, RELEASE_LABEL
from quotapool.api.conditions import BOUND_CONDITION, ConditionStatus, new_condition
from quotapool.api.meta import NameUID
from quotapool.api.namespace import NamespacePhase
from quotapool.api.pool import POOL_KIND, ClaimItem
from quotapool.coordination.mutator import PoolMutator
from quotapool.coordination.retry import RetryExhaustedError
from quotapool.resources.allocation import AdmissionPolicy, QueuedResourceError
from quotapool.storage.backends.memory import MemoryStore
from quotapool.storage.interface import ConflictError, NotFoundError

from conftest import make_claim, make_namespace, make_pool, q


class RacingStore(MemoryStore):
    """Runs a hook right before the next update, as a competing worker would."""

    def __init__(self):
        super().__init__()
        self.before_next_update = None

    async def update(self, obj):
        hook, self.before_next_update = self.before_next_update, None
        if hook is not None:
            await hook()
        return await super().update(obj)


# ============================================================================
# FIXTURES
# ============================================================================

@pytest.fixture
def mutator(store, fast_retry):
    return PoolMutator(store, fast_retry)


# ============================================================================
# ADD AND REMOVE TESTS
# ============================================================================

class TestAddClaim:
    """Test cases for PoolMutator.add_claim."""

    @pytest.mark.asyncio
    async def test_admits_and_records(self, store, mutator):
        """Test that an admitted claim lands in the ledger with updated totals."""
        await store.create(make_pool(hard={"cpu": "4"}))
        claim = make_claim("c1", claims={"cpu": "3"})

        result = await mutator.add_claim(claim)
        pool = await store.get(POOL_KIND, "shared")

        assert result.success
        assert pool.status.claim_count == 1
        assert pool.status.claims["ns-a"][0].uid == claim.uid
        assert pool.status.allocation.claimed == {"cpu": q("3")}
        assert pool.status.allocation.available == {"cpu": q("1")}

    @pytest.mark.asyncio
    async def test_rejection_leaves_pool_untouched(self, store, mutator):
        """Test that a claim exceeding availability writes nothing."""
        created = await store.create(make_pool(hard={"cpu": "4"}))

        result = await mutator.add_claim(make_claim("c1", claims={"cpu": "5"}))
        pool = await store.get(POOL_KIND, "shared")

        assert not result.success
        assert result.reason == "requested: cpu=5, available: cpu=4"
        assert pool.metadata.resource_version == created.metadata.resource_version
        assert pool.status.exhaustions == {}

    @pytest.mark.asyncio
    async def test_unknown_resource_rejected(self, store, mutator):
        """Test that a resource the pool does not offer is rejected."""
        await store.create(make_pool(hard={"cpu": "4"}))

        result = await mutator.add_claim(make_claim("c1", claims={"gpu": "1"}))

        assert not result.success
        assert result.reason == "requested: gpu=1, available: gpu=none"

    @pytest.mark.asyncio
    async def test_readding_is_idempotent(self, store, mutator):
        """Test that adding the same claim twice writes once."""
        await store.create(make_pool(hard={"cpu": "4"}))
        claim = make_claim("c1", claims={"cpu": "4"})

        await mutator.add_claim(claim)
        first = await store.get(POOL_KIND, "shared")
        result = await mutator.add_claim(claim)
        second = await store.get(POOL_KIND, "shared")

        assert result.success
        assert second.metadata.resource_version == first.metadata.resource_version
        assert second.status.claim_count == 1

    @pytest.mark.asyncio
    async def test_bound_claim_survives_shrunk_pool(self, store, mutator):
        """Test that an unchanged recorded claim stays admitted after hard shrinks."""
        await store.create(make_pool(hard={"cpu": "4"}))
        claim = make_claim("c1", claims={"cpu": "3"})
        await mutator.add_claim(claim)
        await store.apply(make_pool(hard={"cpu": "2"}))

        result = await mutator.add_claim(claim)

        assert result.success

    @pytest.mark.asyncio
    async def test_ordered_policy_respects_queue(self, store, mutator):
        """Test that a resource queued in exhaustions blocks ordered admission."""
        await store.create(make_pool(hard={"cpu": "4", "memory": "1Gi"}, ordered=True))
        await mutator.reconcile_claims(
            "shared",
            [make_claim("big", claims={"cpu": "8"})],
            [make_namespace("ns-a")],
        )

        result = await mutator.add_claim(make_claim("small", claims={"cpu": "1"}, age=5))
        other = await mutator.add_claim(make_claim("mem", claims={"memory": "512Mi"}, age=6))

        assert not result.success
        assert result.queued
        assert isinstance(result.errors[0], QueuedResourceError)
        assert other.success

    @pytest.mark.asyncio
    async def test_explicit_policy_overrides_pool(self, store, mutator):
        """Test that an explicit first-fit policy ignores the queue."""
        await store.create(make_pool(hard={"cpu": "4"}, ordered=True))
        await mutator.reconcile_claims(
            "shared",
            [make_claim("big", claims={"cpu": "8"})],
            [make_namespace("ns-a")],
        )

        result = await mutator.add_claim(
            make_claim("small", claims={"cpu": "1"}, age=5),
            AdmissionPolicy.FIRST_FIT,
        )

        assert result.success

    @pytest.mark.asyncio
    async def test_missing_pool(self, mutator):
        """Test adding a claim to a pool that does not exist."""
        with pytest.raises(NotFoundError):
            await mutator.add_claim(make_claim("c1"))


class TestRemoveClaim:
    """Test cases for PoolMutator.remove_claim."""

    @pytest.mark.asyncio
    async def test_remove_restores_totals(self, store, mutator):
        """Test that remove undoes add."""
        await store.create(make_pool(hard={"cpu": "4"}))
        before = (await store.get(POOL_KIND, "shared")).status.allocation
        claim = make_claim("c1", claims={"cpu": "3"})

        await mutator.add_claim(claim)
        removed = await mutator.remove_claim(claim)
        pool = await store.get(POOL_KIND, "shared")

        assert removed is True
        assert pool.status.claim_count == 0
        assert pool.status.claims == {}
        assert pool.status.allocation.available == {"cpu": q("4")}
        assert before.available == {}

    @pytest.mark.asyncio
    async def test_remove_unrecorded(self, store, mutator):
        """Test removing a claim that was never recorded."""
        await store.create(make_pool())

        assert await mutator.remove_claim(make_claim("c1")) is False

    @pytest.mark.asyncio
    async def test_remove_from_missing_pool(self, mutator):
        """Test that a missing pool is not an error on removal."""
        assert await mutator.remove_claim(make_claim("c1")) is False

    @pytest.mark.asyncio
    async def test_remove_uses_status_pool(self, store, mutator):
        """Test that the bound pool wins over the requested pool."""
        await store.create(make_pool(name="bound"))
        claim = make_claim("c1", pool="bound")
        await mutator.add_claim(claim)

        claim.spec.pool = "other"
        claim.status.pool = NameUID(name="bound", uid="x")

        assert await mutator.remove_claim(claim) is True


# ============================================================================
# CONCURRENCY TESTS
# ============================================================================

class TestConcurrentWriters:
    """Admission must be decided against the version being replaced."""

    @pytest.mark.asyncio
    async def test_competing_writer_takes_capacity(self, fast_retry):
        """Test that a conflicting write forces a fresh admission check."""
        store = RacingStore()
        await store.create(make_pool(hard={"cpu": "4"}))
        mutator = PoolMutator(store, fast_retry)
        rival = make_claim("rival", claims={"cpu": "3"})

        store.before_next_update = lambda: PoolMutator(store, fast_retry).add_claim(rival)
        result = await mutator.add_claim(make_claim("late", claims={"cpu": "3"}, age=1))
        pool = await store.get(POOL_KIND, "shared")

        assert not result.success
        assert pool.status.claim_count == 1
        assert pool.status.claims["ns-a"][0].name == "rival"
        assert pool.status.allocation.available == {"cpu": q("1")}

    @pytest.mark.asyncio
    async def test_parallel_adds_never_overcommit(self, store, mutator):
        """Test that racing claims are granted only up to capacity."""
        await store.create(make_pool(hard={"cpu": "4"}))
        claims = [make_claim(f"c{i}", claims={"cpu": "1"}, age=i) for i in range(6)]

        results = await asyncio.gather(*(mutator.add_claim(c) for c in claims))
        pool = await store.get(POOL_KIND, "shared")

        assert sum(1 for r in results if r.success) == 4
        assert pool.status.claim_count == 4
        assert pool.status.allocation.available == {"cpu": q("0")}

    @pytest.mark.asyncio
    async def test_persistent_conflicts_exhaust(self, fast_retry):
        """Test that endless conflicts surface as RetryExhaustedError."""
        store = MemoryStore()
        await store.create(make_pool())

        async def always_conflict(obj):
            raise ConflictError("stale")

        store.update = always_conflict
        mutator = PoolMutator(store, fast_retry)

        with pytest.raises(RetryExhaustedError):
            await mutator.add_claim(make_claim("c1"))


# ============================================================================
# FULL PASS TESTS
# ============================================================================

class TestReconcileClaims:
    """Test cases for PoolMutator.reconcile_claims."""

    @pytest.mark.asyncio
    async def test_first_fit_batch(self, store, mutator):
        """Test oldest-first admission where later small claims still fit."""
        await store.create(make_pool(hard={"cpu": "4"}))
        claims = [
            make_claim("a", claims={"cpu": "3"}, age=0),
            make_claim("b", claims={"cpu": "2"}, age=1),
            make_claim("c", claims={"cpu": "1"}, age=2),
        ]

        pool_pass = await mutator.reconcile_claims("shared", claims, [make_namespace("ns-a")])

        assert [r.request.name for r in pool_pass.granted] == ["a", "c"]
        assert [r.request.name for r in pool_pass.rejected] == ["b"]
        assert pool_pass.written
        assert pool_pass.pool.status.exhaustions["cpu"].available == q("1")
        assert pool_pass.pool.status.exhaustions["cpu"].requesting == q("2")

    @pytest.mark.asyncio
    async def test_ordered_batch_queues(self, store, mutator):
        """Test that a rejected claim blocks later claims for the same resource."""
        await store.create(make_pool(hard={"cpu": "4"}, ordered=True))
        claims = [
            make_claim("c", claims={"cpu": "1"}, age=2),
            make_claim("a", claims={"cpu": "3"}, age=0),
            make_claim("b", claims={"cpu": "2"}, age=1),
        ]

        pool_pass = await mutator.reconcile_claims("shared", claims, [make_namespace("ns-a")])

        assert [r.request.name for r in pool_pass.results] == ["a", "b", "c"]
        assert [r.request.name for r in pool_pass.granted] == ["a"]
        assert pool_pass.results[2].queued

    @pytest.mark.asyncio
    async def test_membership_recorded(self, store, mutator):
        """Test that only active namespaces become members."""
        await store.create(make_pool())
        leaving = make_namespace("ns-z")
        leaving.status.phase = NamespacePhase.TERMINATING

        pool_pass = await mutator.reconcile_claims(
            "shared", [], [make_namespace("ns-b"), make_namespace("ns-a"), leaving]
        )

        assert pool_pass.pool.status.namespaces == ["ns-a", "ns-b"]
        assert pool_pass.pool.status.namespace_count == 2

    @pytest.mark.asyncio
    async def test_gc_releases_missing_claims_and_departed_namespaces(self, store, mutator):
        """Test that stale ledger entries and departed namespaces are dropped."""
        await store.create(make_pool(hard={"cpu": "4"}))
        kept = make_claim("kept", namespace="ns-a", claims={"cpu": "1"})
        gone = make_claim("gone", namespace="ns-a", claims={"cpu": "1"})
        moved = make_claim("moved", namespace="ns-b", claims={"cpu": "1"})
        await mutator.reconcile_claims(
            "shared", [kept, gone, moved], [make_namespace("ns-a"), make_namespace("ns-b")]
        )

        pool_pass = await mutator.reconcile_claims("shared", [kept, moved], [make_namespace("ns-a")])
        pool = pool_pass.pool

        assert sorted(item.name for _, item in pool_pass.released) == ["gone", "moved"]
        assert pool_pass.departed_namespaces == ["ns-b"]
        assert pool.status.claim_count == 1
        assert pool.status.allocation.claimed == {"cpu": q("1")}

    @pytest.mark.asyncio
    async def test_deleting_claims_released(self, store, mutator):
        """Test that a terminating claim loses its ledger entry."""
        await store.create(make_pool())
        claim = make_claim("c1")
        await mutator.reconcile_claims("shared", [claim], [make_namespace("ns-a")])

        claim.metadata.deletion_timestamp = claim.metadata.creation_timestamp
        pool_pass = await mutator.reconcile_claims("shared", [claim], [make_namespace("ns-a")])

        assert [item.name for _, item in pool_pass.released] == ["c1"]
        assert pool_pass.pool.status.claim_count == 0

    @pytest.mark.asyncio
    async def test_unchanged_pass_does_not_write(self, store, mutator):
        """Test that a converged pool is not rewritten."""
        await store.create(make_pool())
        claims = [make_claim("c1")]
        namespaces = [make_namespace("ns-a")]

        first = await mutator.reconcile_claims("shared", claims, namespaces)
        second = await mutator.reconcile_claims("shared", claims, namespaces)

        assert first.written
        assert not second.written
        assert second.pool.metadata.resource_version == first.pool.metadata.resource_version

    @pytest.mark.asyncio
    async def test_exhaustions_cleared_when_capacity_returns(self, store, mutator):
        """Test that the pass recomputes exhaustions from scratch."""
        await store.create(make_pool(hard={"cpu": "2"}))
        big = make_claim("big", claims={"cpu": "3"})
        namespaces = [make_namespace("ns-a")]
        await mutator.reconcile_claims("shared", [big], namespaces)

        await store.apply(make_pool(hard={"cpu": "4"}))
        pool_pass = await mutator.reconcile_claims("shared", [big], namespaces)

        assert pool_pass.pool.status.exhaustions == {}
        assert pool_pass.granted[0].request.name == "big"

    @pytest.mark.asyncio
    async def test_resized_claim_cannot_overcommit(self, store, mutator):
        """Test that growing a bound claim past the hard limit keeps its old grant."""
        await store.create(make_pool(hard={"cpu": "2"}))
        claim = make_claim("c1", claims={"cpu": "1"})
        namespaces = [make_namespace("ns-a")]
        await mutator.reconcile_claims("shared", [claim], namespaces)

        resized = claim.model_copy(deep=True)
        resized.spec.resource_claims = {"cpu": q("5")}
        pool_pass = await mutator.reconcile_claims("shared", [resized], namespaces)

        assert [r.request.name for r in pool_pass.rejected] == ["c1"]
        assert pool_pass.pool.status.claims["ns-a"][0].claims == {"cpu": q("1")}
        assert pool_pass.pool.status.allocation.available == {"cpu": q("1")}

    @pytest.mark.asyncio
    async def test_orphaned_ledger_entry_released(self, store, mutator):
        """Test that an entry with no live claim is released from its bucket."""
        pool = make_pool(hard={"cpu": "4"})
        pool.status.claims = {"ns-a": [ClaimItem(uid="orphan", name="orphan", claims={"cpu": q("1")})]}
        await store.create(pool)

        pool_pass = await mutator.reconcile_claims("shared", [], [make_namespace("ns-a")])

        assert pool_pass.released[0][0] == "ns-a"
        assert pool_pass.pool.status.claims == {}


# ============================================================================
# CLAIM STATUS TESTS
# ============================================================================

class TestWriteClaimStatus:
    """Test cases for PoolMutator.write_claim_status."""

    @pytest.mark.asyncio
    async def test_writes_conditions_and_binding(self, store, mutator):
        """Test setting conditions, pool reference and allocation."""
        claim = await store.create(make_claim("c1"))
        bound = new_condition(BOUND_CONDITION, ConditionStatus.TRUE, "Succeeded", "Claimed resources")

        stored = await mutator.write_claim_status(
            claim,
            [bound],
            pool_ref=NameUID(name="shared", uid="pool-uid"),
            allocation={"cpu": q("1")},
        )

        assert stored.status.conditions.is_true(BOUND_CONDITION)
        assert stored.status.conditions[0].observed_generation == claim.metadata.generation
        assert stored.status.pool.uid == "pool-uid"
        assert stored.status.allocation == {"cpu": q("1")}

    @pytest.mark.asyncio
    async def test_unchanged_status_not_rewritten(self, store, mutator):
        """Test that an identical status does not bump the version."""
        claim = await store.create(make_claim("c1"))
        bound = new_condition(BOUND_CONDITION, ConditionStatus.TRUE, "Succeeded")

        first = await mutator.write_claim_status(claim, [bound])
        second = await mutator.write_claim_status(claim, [bound])

        assert second.metadata.resource_version == first.metadata.resource_version

    @pytest.mark.asyncio
    async def test_removes_labels(self, store, mutator):
        """Test that requested labels are dropped."""
        claim = make_claim("c1")
        claim.metadata.labels[RELEASE_LABEL] = "true"
        await store.create(claim)

        stored = await mutator.write_claim_status(claim, remove_labels=[RELEASE_LABEL])

        assert RELEASE_LABEL not in stored.metadata.labels

    @pytest.mark.asyncio
    async def test_missing_claim(self, store, mutator):
        """Test that a deleted claim yields None."""
        assert await mutator.write_claim_status(make_claim("c1")) is None
        with pytest.raises(NotFoundError):
            await store.get(CLAIM_KIND, "c1", "ns-a")
