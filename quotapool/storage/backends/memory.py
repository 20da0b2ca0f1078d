"""In-process storage backend."""

import asyncio
from typing import Dict, List, Optional, Tuple

from quotapool.api.meta import Resource
from quotapool.storage.interface import (
    AlreadyExistsError,
    ConflictError,
    NotFoundError,
    VersionedStore,
    describe,
)


_Key = Tuple[str, str, str]


class MemoryStore(VersionedStore):
    """Dictionary-backed store.

    Objects are deep-copied on the way in and out so callers never share
    mutable state with the store. Versions come from a single counter.
    """

    def __init__(self):
        self._objects: Dict[_Key, Resource] = {}
        self._revision = 0
        self._lock = asyncio.Lock()

    async def initialize(self) -> None:
        pass

    async def close(self) -> None:
        pass

    def _next_version(self) -> str:
        self._revision += 1
        return str(self._revision)

    @staticmethod
    def _key(kind: str, name: str, namespace: Optional[str]) -> _Key:
        return (kind, namespace or "", name)

    async def get(self, kind: str, name: str, namespace: Optional[str] = None) -> Resource:
        async with self._lock:
            obj = self._objects.get(self._key(kind, name, namespace))
            if obj is None:
                raise NotFoundError(f"{describe(kind, name, namespace)} not found")
            return obj.model_copy(deep=True)

    async def list(self, kind: str, namespace: Optional[str] = None) -> List[Resource]:
        async with self._lock:
            return [
                obj.model_copy(deep=True)
                for (obj_kind, obj_namespace, _), obj in sorted(self._objects.items(), key=lambda entry: entry[0])
                if obj_kind == kind and (namespace is None or obj_namespace == namespace)
            ]

    async def create(self, obj: Resource) -> Resource:
        key = self._key(obj.kind, obj.metadata.name, obj.metadata.namespace)
        async with self._lock:
            if key in self._objects:
                raise AlreadyExistsError(f"{describe(obj.kind, obj.metadata.name, obj.metadata.namespace)} already exists")
            stored = obj.model_copy(deep=True)
            stored.metadata.resource_version = self._next_version()
            self._objects[key] = stored
            return stored.model_copy(deep=True)

    async def update(self, obj: Resource) -> Resource:
        key = self._key(obj.kind, obj.metadata.name, obj.metadata.namespace)
        async with self._lock:
            current = self._objects.get(key)
            if current is None:
                raise NotFoundError(f"{describe(obj.kind, obj.metadata.name, obj.metadata.namespace)} not found")
            if current.metadata.resource_version != obj.metadata.resource_version:
                raise ConflictError(
                    f"{describe(obj.kind, obj.metadata.name, obj.metadata.namespace)} was modified: "
                    f"expected version {obj.metadata.resource_version}, "
                    f"stored {current.metadata.resource_version}"
                )
            stored = obj.model_copy(deep=True)
            stored.metadata.resource_version = self._next_version()
            self._objects[key] = stored
            return stored.model_copy(deep=True)

    async def delete(self, kind: str, name: str, namespace: Optional[str] = None) -> None:
        async with self._lock:
            if self._objects.pop(self._key(kind, name, namespace), None) is None:
                raise NotFoundError(f"{describe(kind, name, namespace)} not found")
