"""Claim admission and pool accounting.

The module-level functions are pure: they derive claimed and available
amounts from a ledger snapshot and check a request against availability
without touching any state. The allocator classes apply those functions
to a batch of pending claims within a single pool pass.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, ClassVar, Dict, List, Mapping, Optional, Sequence, Tuple

import structlog

from quotapool.api.claim import Claim
from quotapool.api.meta import utcnow
from quotapool.api.pool import ClaimItem, PoolExhaustion
from quotapool.errors import QuotaPoolError
from quotapool.resources.ledger import ClaimLedger
from quotapool.resources.quantity import Quantity
from quotapool.resources.requirements import ResourceList, add_resource_lists, resource_lists_equal


logger = structlog.get_logger(__name__)


class AdmissionPolicy(Enum):
    """How pending claims compete for pool capacity."""
    FIRST_FIT = "first_fit"  # Any claim that fits is granted
    ORDERED = "ordered"  # A queued claim blocks later claims on the same resource

    @classmethod
    def for_pool(cls, ordered_queue: bool) -> "AdmissionPolicy":
        return cls.ORDERED if ordered_queue else cls.FIRST_FIT


class AdmissionError(QuotaPoolError):
    """A single resource a claim could not be granted."""

    def __init__(self, resource: str, requested: Quantity, message: str):
        super().__init__(message)
        self.resource = resource
        self.requested = requested


class InsufficientResourceError(AdmissionError):
    """The pool lacks capacity for the requested amount."""

    def __init__(self, resource: str, requested: Quantity, available: Optional[Quantity]):
        shown = "none" if available is None else str(available)
        super().__init__(
            resource,
            requested,
            f"requested: {resource}={requested}, available: {resource}={shown}",
        )
        self.available = available


class QueuedResourceError(AdmissionError):
    """An earlier claim is already waiting for this resource."""

    def __init__(self, resource: str, requested: Quantity, queued: Quantity):
        super().__init__(
            resource,
            requested,
            f"requested: {resource}={requested}, queued: {resource}={queued}",
        )
        self.queued = queued


# Pure accounting functions

def recalculate_claimed(hard: Mapping[str, Quantity], ledger: ClaimLedger) -> ResourceList:
    """Sum every ledger entry for each resource declared in ``hard``."""
    claimed: ResourceList = {name: Quantity.zero() for name in hard}

    for _, item in ledger.iter_items():
        for name, amount in item.claims.items():
            if name not in claimed:
                continue
            claimed[name] = claimed[name] + amount

    return claimed


def recalculate_available(
    hard: Mapping[str, Quantity],
    claimed: Mapping[str, Quantity]
) -> ResourceList:
    """``hard - claimed`` per resource. Not floored: negative means overcommitted."""
    return {
        name: limit - claimed.get(name, Quantity.zero())
        for name, limit in hard.items()
    }


def clamp_available(available: Mapping[str, Quantity]) -> ResourceList:
    """Display-only view of availability with negatives shown as zero."""
    return {
        name: amount if amount.sign() >= 0 else Quantity.zero()
        for name, amount in available.items()
    }


def can_claim(
    requested: Mapping[str, Quantity],
    available: Mapping[str, Quantity],
    policy: AdmissionPolicy = AdmissionPolicy.FIRST_FIT,
    queue: Optional[Mapping[str, PoolExhaustion]] = None
) -> List[AdmissionError]:
    """Check a request against availability, reporting every violated resource.

    Under the ordered policy a resource present in ``queue`` is refused
    even if it would fit, since an earlier claim is waiting for it. A
    queued request is not capacity-checked on its other resources.
    """
    if policy is AdmissionPolicy.ORDERED and queue:
        queued: List[AdmissionError] = [
            QueuedResourceError(name, requested[name], queue[name].requesting)
            for name in sorted(requested)
            if name in queue
        ]
        if queued:
            return queued

    errors: List[AdmissionError] = []

    for name in sorted(requested):
        amount = requested[name]
        free = available.get(name)
        if free is None or free.is_zero() or free.cmp(amount) < 0:
            errors.append(InsufficientResourceError(name, amount, free))

    return errors


def get_namespace_claims(
    ledger: ClaimLedger,
    namespace: str
) -> Tuple[Dict[str, ClaimItem], ResourceList]:
    """Claims of one namespace keyed by UID, and their per-resource sum."""
    claims: Dict[str, ClaimItem] = {}
    claimed: ResourceList = {}

    for item in ledger.bucket(namespace):
        claimed = add_resource_lists(claimed, item.claims)
        claims[str(item.uid)] = item

    return claims, claimed


def get_claimed_by_namespace(ledger: ClaimLedger) -> Dict[str, ResourceList]:
    """Per-namespace resource sums for the whole ledger."""
    return {namespace: get_namespace_claims(ledger, namespace)[1] for namespace in ledger}


def merge_exhaustion(
    exhaustions: Dict[str, PoolExhaustion],
    error: InsufficientResourceError
) -> None:
    """Add a rejected request to the pass's exhaustion record.

    The first rejection fixes the observed availability; later ones only
    add to the total being requested.
    """
    current = exhaustions.get(error.resource)
    if current is None:
        exhaustions[error.resource] = PoolExhaustion(
            available=error.available if error.available is not None else Quantity.zero(),
            requesting=error.requested,
        )
        return

    exhaustions[error.resource] = PoolExhaustion(
        available=current.available,
        requesting=current.requesting + error.requested,
    )


# Batch allocation

@dataclass
class AllocationRequest:
    """A claim waiting to be admitted into a pool."""
    namespace: str
    uid: str
    name: str
    requested: ResourceList
    created: datetime = field(default_factory=utcnow)
    claim: Optional[Claim] = None

    @classmethod
    def from_claim(cls, claim: Claim) -> "AllocationRequest":
        return cls(
            namespace=claim.metadata.namespace or "",
            uid=claim.metadata.uid,
            name=claim.metadata.name,
            requested=dict(claim.spec.resource_claims),
            created=claim.metadata.creation_timestamp,
            claim=claim,
        )

    def sort_key(self) -> Tuple[datetime, str, str]:
        return (self.created, self.name, self.namespace)

    def to_item(self) -> ClaimItem:
        return ClaimItem(uid=self.uid, name=self.name, claims=dict(self.requested))


@dataclass
class AllocationResult:
    """Outcome of admitting one request."""
    request: AllocationRequest
    success: bool
    errors: List[AdmissionError] = field(default_factory=list)
    timestamp: datetime = field(default_factory=utcnow)

    @property
    def queued(self) -> bool:
        return any(isinstance(e, QueuedResourceError) for e in self.errors)

    @property
    def reason(self) -> Optional[str]:
        if not self.errors:
            return None
        return "; ".join(str(e) for e in self.errors)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "namespace": self.request.namespace,
            "name": self.request.name,
            "uid": self.request.uid,
            "success": self.success,
            "queued": self.queued,
            "reason": self.reason,
            "timestamp": self.timestamp.isoformat(),
        }


class ResourceAllocator(ABC):
    """Admits requests against an in-memory snapshot of a pool.

    The allocator owns a working copy of the ledger and keeps claimed and
    available amounts recomputed from it after every grant.
    """

    policy: ClassVar[AdmissionPolicy]

    def __init__(
        self,
        hard: Mapping[str, Quantity],
        ledger: Optional[ClaimLedger] = None
    ):
        self.hard: ResourceList = dict(hard)
        self.ledger = ledger if ledger is not None else ClaimLedger()
        self.exhaustions: Dict[str, PoolExhaustion] = {}
        self._recalculate()

    @abstractmethod
    def check(
        self,
        request: AllocationRequest,
        available: Mapping[str, Quantity]
    ) -> List[AdmissionError]:
        """Admission errors for a request under this allocator's policy."""
        pass

    def get_allocation_order(
        self,
        requests: Sequence[AllocationRequest]
    ) -> List[AllocationRequest]:
        """Oldest first; name and namespace break ties."""
        return sorted(requests, key=lambda r: r.sort_key())

    def allocate(self, request: AllocationRequest) -> AllocationResult:
        existing = self.ledger.get(request.namespace, request.uid)
        if existing is not None and resource_lists_equal(existing.claims, request.requested):
            # Already bound at these amounts; stays granted even if hard shrank
            return AllocationResult(request=request, success=True)

        available = self.available
        if existing is not None:
            # A resized claim is checked with its own entry credited back
            others = self.ledger.remove(request.namespace, request.uid)
            available = recalculate_available(self.hard, recalculate_claimed(self.hard, others))

        errors = self.check(request, available)
        if errors:
            for error in errors:
                if isinstance(error, InsufficientResourceError):
                    merge_exhaustion(self.exhaustions, error)

            logger.debug(
                "claim_rejected",
                namespace=request.namespace,
                claim=request.name,
                policy=self.policy.value,
                errors=[str(e) for e in errors],
            )
            return AllocationResult(request=request, success=False, errors=errors)

        self._grant(request)
        logger.debug(
            "claim_granted",
            namespace=request.namespace,
            claim=request.name,
            policy=self.policy.value,
        )
        return AllocationResult(request=request, success=True)

    def allocate_batch(
        self,
        requests: Sequence[AllocationRequest]
    ) -> List[AllocationResult]:
        return [self.allocate(request) for request in self.get_allocation_order(requests)]

    def _grant(self, request: AllocationRequest) -> None:
        self.ledger = self.ledger.upsert(request.namespace, request.to_item())
        self._recalculate()

    def _recalculate(self) -> None:
        self.claimed = recalculate_claimed(self.hard, self.ledger)
        self.available = recalculate_available(self.hard, self.claimed)


class FirstFitAllocator(ResourceAllocator):
    """Grants any request that fits the current availability."""

    policy = AdmissionPolicy.FIRST_FIT

    def check(
        self,
        request: AllocationRequest,
        available: Mapping[str, Quantity]
    ) -> List[AdmissionError]:
        return can_claim(request.requested, available, self.policy)


class OrderedAllocator(ResourceAllocator):
    """Respects creation order.

    Once a request is rejected for lack of capacity, every later request
    asking for the same resource is queued behind it, even if it would fit.
    Requests for other resources are still admitted first-fit.
    """

    policy = AdmissionPolicy.ORDERED

    def check(
        self,
        request: AllocationRequest,
        available: Mapping[str, Quantity]
    ) -> List[AdmissionError]:
        return can_claim(request.requested, available, self.policy, queue=self.exhaustions)


def create_allocator(
    policy: AdmissionPolicy,
    hard: Mapping[str, Quantity],
    ledger: Optional[ClaimLedger] = None
) -> ResourceAllocator:
    """Create an allocator for the given policy."""
    allocators = {
        AdmissionPolicy.FIRST_FIT: FirstFitAllocator,
        AdmissionPolicy.ORDERED: OrderedAllocator,
    }

    allocator_class = allocators.get(policy, FirstFitAllocator)
    return allocator_class(hard, ledger)
