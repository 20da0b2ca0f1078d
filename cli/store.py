"""Store access shared by the CLI commands."""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import click

from quotapool.api.registry import Scheme, build_scheme
from quotapool.storage.backends.sqlite import SQLiteStore


KIND_ALIASES = {
    "pool": "ResourcePool",
    "pools": "ResourcePool",
    "resourcepool": "ResourcePool",
    "resourcepools": "ResourcePool",
    "claim": "ResourcePoolClaim",
    "claims": "ResourcePoolClaim",
    "resourcepoolclaim": "ResourcePoolClaim",
    "resourcepoolclaims": "ResourcePoolClaim",
    "ns": "Namespace",
    "namespace": "Namespace",
    "namespaces": "Namespace",
    "quota": "ResourceQuota",
    "quotas": "ResourceQuota",
    "resourcequota": "ResourceQuota",
    "resourcequotas": "ResourceQuota",
}


def resolve_kind(kind: str, scheme: Scheme) -> str:
    resolved = KIND_ALIASES.get(kind.lower(), kind)
    if resolved not in scheme.kinds:
        raise click.BadParameter(f"unknown kind: {kind}", param_hint="KIND")
    return resolved


@asynccontextmanager
async def open_store(database_url: str, scheme: Optional[Scheme] = None) -> AsyncIterator[SQLiteStore]:
    store = SQLiteStore(database_url, scheme or build_scheme())
    await store.initialize()
    try:
        yield store
    finally:
        await store.close()


def run(coro):
    """Run a coroutine from a synchronous click command."""
    return asyncio.run(coro)
