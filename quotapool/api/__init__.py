"""Persisted object models."""

from quotapool.api.meta import ObjectMeta, NameUID, Resource, API_VERSION
from quotapool.api.conditions import (
    Condition,
    ConditionList,
    ConditionStatus,
    ASSIGNED_CONDITION,
    BOUND_CONDITION,
    EXHAUSTED_CONDITION,
)
from quotapool.api.pool import (
    Pool,
    PoolSpec,
    PoolConfig,
    PoolStatus,
    PoolAllocation,
    PoolExhaustion,
    QuotaSpec,
    ClaimItem,
    NamespaceSelector,
)
from quotapool.api.claim import Claim, ClaimSpec, ClaimStatus
from quotapool.api.namespace import Namespace, NamespacePhase, ResourceQuota
from quotapool.api.registry import Scheme, build_scheme

__all__ = [
    # Meta
    "ObjectMeta",
    "NameUID",
    "Resource",
    "API_VERSION",

    # Conditions
    "Condition",
    "ConditionList",
    "ConditionStatus",
    "ASSIGNED_CONDITION",
    "BOUND_CONDITION",
    "EXHAUSTED_CONDITION",

    # Pool
    "Pool",
    "PoolSpec",
    "PoolConfig",
    "PoolStatus",
    "PoolAllocation",
    "PoolExhaustion",
    "QuotaSpec",
    "ClaimItem",
    "NamespaceSelector",

    # Claim
    "Claim",
    "ClaimSpec",
    "ClaimStatus",

    # Native objects
    "Namespace",
    "NamespacePhase",
    "ResourceQuota",

    # Registry
    "Scheme",
    "build_scheme",
]
