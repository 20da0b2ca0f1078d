"""ResourcePoolClaim: a namespaced request for part of a pool's quota."""

from typing import ClassVar, Dict, Literal, Optional

from pydantic import Field, computed_field

from quotapool.api.conditions import (
    BOUND_CONDITION,
    Condition,
    ConditionList,
)
from quotapool.api.meta import ApiModel, NameUID, Resource
from quotapool.resources.quantity import Quantity


CLAIM_KIND = "ResourcePoolClaim"
# Set to "true" to have the pool pass unbind the claim and requeue it
RELEASE_LABEL = "quotapool.io/release"


class ClaimSpec(ApiModel):
    pool: str = ""
    resource_claims: Dict[str, Quantity] = Field(default_factory=dict, alias="claim")


class ClaimStatus(ApiModel):
    pool: NameUID = Field(default_factory=NameUID)
    conditions: ConditionList = Field(default_factory=ConditionList)
    allocation: Dict[str, Quantity] = Field(default_factory=dict)

    @computed_field
    @property
    def condition(self) -> Optional[Condition]:
        """Deprecated single condition, projected from ``conditions``."""
        return self.conditions.latest()


class Claim(Resource):
    namespaced: ClassVar[bool] = True

    kind: Literal["ResourcePoolClaim"] = CLAIM_KIND
    spec: ClaimSpec = Field(default_factory=ClaimSpec)
    status: ClaimStatus = Field(default_factory=ClaimStatus)

    def is_assigned_to(self, pool: Resource) -> bool:
        return self.status.pool.uid == pool.uid

    def is_bound(self) -> bool:
        return (
            not self.status.pool.is_empty()
            and self.status.conditions.is_true(BOUND_CONDITION)
        )

    def is_released(self) -> bool:
        return self.metadata.labels.get(RELEASE_LABEL) == "true"
