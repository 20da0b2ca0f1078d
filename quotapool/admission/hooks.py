"""Admission checks applied before pools and claims are persisted.

Each hook returns an :class:`AdmissionResponse`; mutating hooks carry the
patched object, validating hooks only allow or deny.
"""

from dataclasses import dataclass
from typing import Mapping, Optional

from quotapool.api.claim import Claim
from quotapool.api.meta import Resource
from quotapool.api.pool import Pool
from quotapool.resources.quantity import Quantity
from quotapool.resources.requirements import negative_resources, resource_lists_equal


@dataclass
class AdmissionResponse:
    allowed: bool
    message: str = ""
    patched: Optional[Resource] = None

    @classmethod
    def allow(cls, patched: Optional[Resource] = None) -> "AdmissionResponse":
        return cls(allowed=True, patched=patched)

    @classmethod
    def deny(cls, message: str) -> "AdmissionResponse":
        return cls(allowed=False, message=message)


def _describe_negative(field: str, resources: Mapping[str, Quantity]) -> Optional[str]:
    negative = negative_resources(resources)
    if not negative:
        return None
    listed = ", ".join(f"{name}={negative[name]}" for name in sorted(negative))
    return f"{field} must not be negative: {listed}"


def mutate_pool(pool: Pool) -> AdmissionResponse:
    """Give every hard resource without a default a zero default, if configured."""
    if not pool.spec.config.defaults_zero:
        return AdmissionResponse.allow()

    missing = [name for name in pool.spec.quota.hard if name not in pool.spec.defaults]
    if not missing:
        return AdmissionResponse.allow()

    patched = pool.model_copy(deep=True)
    for name in missing:
        patched.spec.defaults[name] = Quantity.zero()
    return AdmissionResponse.allow(patched)


def validate_pool(pool: Pool) -> AdmissionResponse:
    for field, resources in (("quota.hard", pool.spec.quota.hard), ("defaults", pool.spec.defaults)):
        message = _describe_negative(field, resources)
        if message:
            return AdmissionResponse.deny(message)
    return AdmissionResponse.allow()


def validate_claim_create(claim: Claim) -> AdmissionResponse:
    if not claim.spec.pool:
        return AdmissionResponse.deny("claim must reference a pool")

    message = _describe_negative("claim", claim.spec.resource_claims)
    if message:
        return AdmissionResponse.deny(message)
    return AdmissionResponse.allow()


def validate_claim_update(old: Claim, new: Claim) -> AdmissionResponse:
    """A bound claim's pool and amounts are frozen until it is released."""
    if old.is_bound():
        if old.spec.pool != new.spec.pool:
            return AdmissionResponse.deny(
                f"cannot change the pool of a claim bound to {old.status.pool.name}; release it first"
            )
        if not resource_lists_equal(old.spec.resource_claims, new.spec.resource_claims):
            return AdmissionResponse.deny(
                f"cannot change the amounts of a claim bound to {old.status.pool.name}; release it first"
            )
    return validate_claim_create(new)


def validate_claim_delete(claim: Claim) -> AdmissionResponse:
    if claim.is_bound():
        return AdmissionResponse.deny(
            f"claim is bound to pool {claim.status.pool.name}; release it before deleting"
        )
    return AdmissionResponse.allow()
