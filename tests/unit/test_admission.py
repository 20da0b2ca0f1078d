"""
Tests for the admission hooks.

Tests cover:
- Zero defaults added to pools that ask for them
- Negative quantity validation for pools and claims
- Frozen pool and amounts of bound claims
- Deletion of bound claims
"""

from quotapool.admission.hooks import (
    mutate_pool,
    validate_claim_create,
    validate_claim_delete,
    validate_claim_update,
    validate_pool,
)
from quotapool.api.conditions import BOUND_CONDITION, ConditionStatus, new_condition
from quotapool.api.meta import NameUID

from conftest import make_claim, make_pool, q


def bound_claim(**kwargs):
    claim = make_claim("c1", **kwargs)
    claim.status.pool = NameUID(name="shared", uid="pool-uid")
    claim.status.conditions.update_by_type(
        new_condition(BOUND_CONDITION, ConditionStatus.TRUE, "Succeeded")
    )
    return claim


# ============================================================================
# POOL HOOK TESTS
# ============================================================================

class TestPoolHooks:
    """Test cases for pool admission."""

    def test_defaults_zero_fills_missing(self):
        """Test that every hard resource gets a default."""
        pool = make_pool(hard={"cpu": "4", "memory": "8Gi"}, defaults={"cpu": "500m"}, defaults_zero=True)

        response = mutate_pool(pool)

        assert response.allowed
        assert response.patched.spec.defaults == {"cpu": q("500m"), "memory": q("0")}
        assert pool.spec.defaults == {"cpu": q("500m")}

    def test_defaults_zero_disabled(self):
        """Test that pools without the flag are left alone."""
        response = mutate_pool(make_pool(hard={"cpu": "4"}))

        assert response.allowed
        assert response.patched is None

    def test_defaults_already_complete(self):
        """Test that no patch is produced when nothing is missing."""
        pool = make_pool(hard={"cpu": "4"}, defaults={"cpu": "1"}, defaults_zero=True)

        assert mutate_pool(pool).patched is None

    def test_negative_hard_denied(self):
        """Test that negative limits are rejected."""
        response = validate_pool(make_pool(hard={"cpu": "-1", "memory": "1Gi"}))

        assert not response.allowed
        assert response.message == "quota.hard must not be negative: cpu=-1"

    def test_negative_defaults_denied(self):
        """Test that negative defaults are rejected."""
        response = validate_pool(make_pool(defaults={"memory": "-1Gi"}))

        assert not response.allowed
        assert response.message == "defaults must not be negative: memory=-1Gi"

    def test_valid_pool(self):
        """Test a well-formed pool."""
        assert validate_pool(make_pool()).allowed


# ============================================================================
# CLAIM HOOK TESTS
# ============================================================================

class TestClaimHooks:
    """Test cases for claim admission."""

    def test_create_requires_pool(self):
        """Test that a claim must name a pool."""
        response = validate_claim_create(make_claim("c1", pool=""))

        assert not response.allowed
        assert response.message == "claim must reference a pool"

    def test_create_negative_denied(self):
        """Test that negative claims are rejected."""
        response = validate_claim_create(make_claim("c1", claims={"cpu": "-500m"}))

        assert not response.allowed
        assert response.message == "claim must not be negative: cpu=-500m"

    def test_update_unbound_claim(self):
        """Test that an unbound claim may change freely."""
        old = make_claim("c1")
        new = make_claim("c1", pool="other", claims={"cpu": "2"})

        assert validate_claim_update(old, new).allowed

    def test_update_bound_pool_frozen(self):
        """Test that a bound claim cannot move to another pool."""
        response = validate_claim_update(bound_claim(), make_claim("c1", pool="other"))

        assert not response.allowed
        assert response.message == "cannot change the pool of a claim bound to shared; release it first"

    def test_update_bound_amounts_frozen(self):
        """Test that a bound claim cannot change its amounts."""
        response = validate_claim_update(bound_claim(), make_claim("c1", claims={"cpu": "2"}))

        assert not response.allowed
        assert "amounts" in response.message

    def test_update_bound_equivalent_amounts(self):
        """Test that rewriting an amount in another notation is allowed."""
        old = bound_claim(claims={"cpu": "1"})
        new = make_claim("c1", claims={"cpu": "1000m"})

        assert validate_claim_update(old, new).allowed

    def test_delete_bound_denied(self):
        """Test that bound claims must be released before deletion."""
        response = validate_claim_delete(bound_claim())

        assert not response.allowed
        assert response.message == "claim is bound to pool shared; release it before deleting"

    def test_delete_unbound_allowed(self):
        """Test deleting a claim that holds nothing."""
        assert validate_claim_delete(make_claim("c1")).allowed
