"""ResourcePool: a cluster-scoped quota shared by a set of namespaces."""

from typing import TYPE_CHECKING, Dict, Iterable, List, Literal, Mapping

from pydantic import Field

from quotapool.api.meta import ApiModel, Resource
from quotapool.resources.quantity import Quantity

if TYPE_CHECKING:
    from quotapool.api.namespace import Namespace


POOL_KIND = "ResourcePool"
POOL_LABEL = "quotapool.io/pool"


class NamespaceSelector(ApiModel):
    """Selects namespaces whose labels contain every ``matchLabels`` pair."""
    match_labels: Dict[str, str] = Field(default_factory=dict, alias="matchLabels")

    def matches(self, labels: Mapping[str, str]) -> bool:
        return all(labels.get(key) == value for key, value in self.match_labels.items())


class QuotaSpec(ApiModel):
    hard: Dict[str, Quantity] = Field(default_factory=dict)
    scopes: List[str] = Field(default_factory=list)


class PoolConfig(ApiModel):
    # Every hard resource without a default is given a zero default
    defaults_zero: bool = Field(default=False, alias="defaultsZero")
    # Claims are admitted in creation order; a queued claim blocks later ones
    ordered_queue: bool = Field(default=False, alias="orderedQueue")
    # Bound claims are deleted together with the pool instead of disassociated
    delete_bound_resources: bool = Field(default=False, alias="deleteBoundResources")


class PoolSpec(ApiModel):
    selectors: List[NamespaceSelector] = Field(default_factory=list)
    quota: QuotaSpec = Field(default_factory=QuotaSpec)
    defaults: Dict[str, Quantity] = Field(default_factory=dict)
    config: PoolConfig = Field(default_factory=PoolConfig)


class ClaimItem(ApiModel):
    """One claim's granted amounts, as recorded in the pool ledger."""
    uid: str
    name: str = ""
    claims: Dict[str, Quantity] = Field(default_factory=dict)


class PoolAllocation(ApiModel):
    hard: Dict[str, Quantity] = Field(default_factory=dict)
    claimed: Dict[str, Quantity] = Field(default_factory=dict, alias="used")
    available: Dict[str, Quantity] = Field(default_factory=dict)


class PoolExhaustion(ApiModel):
    """A resource the pool could not satisfy during the last pass."""
    available: Quantity = Field(default_factory=Quantity.zero)
    requesting: Quantity = Field(default_factory=Quantity.zero)


class PoolStatus(ApiModel):
    namespace_count: int = Field(default=0, alias="namespaceCount")
    claim_count: int = Field(default=0, alias="claimCount")
    namespaces: List[str] = Field(default_factory=list)
    claims: Dict[str, List[ClaimItem]] = Field(default_factory=dict)
    allocation: PoolAllocation = Field(default_factory=PoolAllocation)
    exhaustions: Dict[str, PoolExhaustion] = Field(default_factory=dict)


class Pool(Resource):
    kind: Literal["ResourcePool"] = POOL_KIND
    spec: PoolSpec = Field(default_factory=PoolSpec)
    status: PoolStatus = Field(default_factory=PoolStatus)

    @property
    def ordered(self) -> bool:
        return self.spec.config.ordered_queue

    @property
    def quota_name(self) -> str:
        """Name of the ResourceQuota projected into every member namespace."""
        return f"pool-{self.metadata.name}"

    def has_namespace(self, namespace: str) -> bool:
        return namespace in self.status.namespaces

    def assign_namespaces(self, namespaces: Iterable["Namespace"]) -> None:
        """Record the active, non-terminating member namespaces, sorted."""
        names = sorted({ns.name for ns in namespaces if ns.is_active()})
        self.status.namespaces = names
        self.status.namespace_count = len(names)

