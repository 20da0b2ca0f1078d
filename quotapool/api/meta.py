"""Object metadata shared by all persisted kinds."""

import uuid
from datetime import datetime, timezone
from typing import Any, ClassVar, Dict, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field


API_VERSION = "quotapool.io/v1"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ApiModel(BaseModel):
    """Base for every wire model: camelCase aliases, snake_case attributes."""

    model_config = ConfigDict(populate_by_name=True, validate_assignment=False)

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json", exclude_none=True)


class ObjectMeta(ApiModel):
    """Identity, concurrency token and lifecycle timestamps of an object."""
    name: str
    namespace: Optional[str] = None
    uid: str = Field(default_factory=lambda: str(uuid.uuid4()))
    resource_version: Optional[str] = Field(default=None, alias="resourceVersion")
    generation: int = 1
    creation_timestamp: datetime = Field(default_factory=utcnow, alias="creationTimestamp")
    deletion_timestamp: Optional[datetime] = Field(default=None, alias="deletionTimestamp")
    labels: Dict[str, str] = Field(default_factory=dict)


class NameUID(ApiModel):
    """Back-reference to another object by name and UID."""
    name: str = ""
    uid: str = ""

    def is_empty(self) -> bool:
        return not self.uid


class Resource(ApiModel):
    """A persisted, versioned object."""

    namespaced: ClassVar[bool] = False

    api_version: str = Field(default=API_VERSION, alias="apiVersion")
    kind: str = ""
    metadata: ObjectMeta

    @property
    def name(self) -> str:
        return self.metadata.name

    @property
    def namespace(self) -> Optional[str]:
        return self.metadata.namespace

    @property
    def uid(self) -> str:
        return self.metadata.uid

    def is_deleting(self) -> bool:
        return self.metadata.deletion_timestamp is not None

    def sort_key(self) -> Tuple[datetime, str, str]:
        """Creation order, with name then namespace as tiebreakers."""
        return (
            self.metadata.creation_timestamp,
            self.metadata.name,
            self.metadata.namespace or "",
        )
