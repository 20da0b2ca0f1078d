"""Versioned object storage."""

from quotapool.storage.interface import (
    VersionedStore,
    StorageError,
    NotFoundError,
    AlreadyExistsError,
    ConflictError,
)
from quotapool.storage.resolvers import (
    NamespaceResolver,
    StoreNamespaceResolver,
    StoreQuotaWriter,
    select_namespaces,
)

__all__ = [
    "VersionedStore",
    "StorageError",
    "NotFoundError",
    "AlreadyExistsError",
    "ConflictError",
    "NamespaceResolver",
    "StoreNamespaceResolver",
    "StoreQuotaWriter",
    "select_namespaces",
]
