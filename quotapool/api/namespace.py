"""Native cluster objects the engine reads (Namespace) and writes (ResourceQuota)."""

from enum import Enum
from typing import ClassVar, Dict, List, Literal

from pydantic import Field

from quotapool.api.meta import ApiModel, Resource
from quotapool.resources.quantity import Quantity


NAMESPACE_KIND = "Namespace"
RESOURCE_QUOTA_KIND = "ResourceQuota"


class NamespacePhase(str, Enum):
    ACTIVE = "Active"
    TERMINATING = "Terminating"


class NamespaceStatus(ApiModel):
    phase: NamespacePhase = NamespacePhase.ACTIVE


class Namespace(Resource):
    kind: Literal["Namespace"] = NAMESPACE_KIND
    status: NamespaceStatus = Field(default_factory=NamespaceStatus)

    def is_active(self) -> bool:
        return self.status.phase == NamespacePhase.ACTIVE and not self.is_deleting()


class ResourceQuotaSpec(ApiModel):
    hard: Dict[str, Quantity] = Field(default_factory=dict)
    scopes: List[str] = Field(default_factory=list)


class ResourceQuota(Resource):
    namespaced: ClassVar[bool] = True

    kind: Literal["ResourceQuota"] = RESOURCE_QUOTA_KIND
    spec: ResourceQuotaSpec = Field(default_factory=ResourceQuotaSpec)
