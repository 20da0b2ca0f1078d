"""Versioned object store interface."""

from abc import ABC, abstractmethod
from typing import List, Optional

from quotapool.api.meta import Resource, utcnow
from quotapool.errors import QuotaPoolError, TransientError


class StorageError(QuotaPoolError):
    """Base class for storage errors."""
    pass


class NotFoundError(StorageError):
    """Raised when an object does not exist."""
    pass


class AlreadyExistsError(StorageError):
    """Raised when creating an object that already exists."""
    pass


class ConflictError(StorageError, TransientError):
    """Raised when a write carries a stale resource version."""
    pass


def describe(kind: str, name: str, namespace: Optional[str] = None) -> str:
    return f"{kind} {namespace}/{name}" if namespace else f"{kind} {name}"


class VersionedStore(ABC):
    """Abstract base class for object stores with optimistic concurrency.

    Every object returned carries ``metadata.resource_version``; ``update``
    only succeeds if that token still matches the stored one.
    """

    @abstractmethod
    async def initialize(self) -> None:
        """Initialize the store."""
        pass

    @abstractmethod
    async def close(self) -> None:
        """Close the store."""
        pass

    @abstractmethod
    async def get(self, kind: str, name: str, namespace: Optional[str] = None) -> Resource:
        """Read one object. Raises NotFoundError."""
        pass

    @abstractmethod
    async def list(self, kind: str, namespace: Optional[str] = None) -> List[Resource]:
        """List objects of a kind, optionally within one namespace."""
        pass

    @abstractmethod
    async def create(self, obj: Resource) -> Resource:
        """Create an object. Raises AlreadyExistsError."""
        pass

    @abstractmethod
    async def update(self, obj: Resource) -> Resource:
        """Replace an object. Raises ConflictError when the version is stale."""
        pass

    @abstractmethod
    async def delete(self, kind: str, name: str, namespace: Optional[str] = None) -> None:
        """Delete an object. Raises NotFoundError."""
        pass

    async def apply(self, obj: Resource) -> Resource:
        """Create the object, or overwrite its spec keeping the stored status."""
        try:
            current = await self.get(obj.kind, obj.metadata.name, obj.metadata.namespace)
        except NotFoundError:
            return await self.create(obj)

        desired = obj.model_copy(deep=True)
        desired.metadata.uid = current.metadata.uid
        desired.metadata.creation_timestamp = current.metadata.creation_timestamp
        desired.metadata.resource_version = current.metadata.resource_version
        desired.metadata.generation = current.metadata.generation + 1
        if hasattr(current, "status"):
            desired.status = current.status
        return await self.update(desired)

    async def mark_deleted(self, kind: str, name: str, namespace: Optional[str] = None) -> Resource:
        """Flag an object as terminating; controllers finalize the deletion."""
        current = await self.get(kind, name, namespace)
        if current.metadata.deletion_timestamp is None:
            current.metadata.deletion_timestamp = utcnow()
            current = await self.update(current)
        return current
