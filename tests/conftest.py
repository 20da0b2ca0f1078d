"""
Pytest configuration and fixtures for the quota pool engine.
"""

import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

# Add the project root to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

import pytest

from quotapool.api.claim import Claim, ClaimSpec
from quotapool.api.meta import ObjectMeta
from quotapool.api.namespace import Namespace
from quotapool.api.pool import NamespaceSelector, Pool, PoolConfig, PoolSpec, QuotaSpec
from quotapool.api.registry import build_scheme
from quotapool.coordination.retry import RetryPolicy
from quotapool.resources.quantity import Quantity
from quotapool.resources.requirements import parse_resource_list
from quotapool.storage.backends.memory import MemoryStore


EPOCH = datetime(2024, 1, 1, tzinfo=timezone.utc)


def q(value) -> Quantity:
    """Shorthand for parsing a quantity in assertions."""
    return Quantity.parse(value)


def make_pool(
    name: str = "shared",
    hard=None,
    defaults=None,
    team: str = "blue",
    ordered: bool = False,
    defaults_zero: bool = False,
    delete_bound: bool = False
) -> Pool:
    return Pool(
        metadata=ObjectMeta(name=name, creation_timestamp=EPOCH),
        spec=PoolSpec(
            selectors=[NamespaceSelector(match_labels={"team": team})],
            quota=QuotaSpec(hard=parse_resource_list(hard or {"cpu": "4"})),
            defaults=parse_resource_list(defaults or {}),
            config=PoolConfig(
                ordered_queue=ordered,
                defaults_zero=defaults_zero,
                delete_bound_resources=delete_bound,
            ),
        ),
    )


def make_claim(
    name: str,
    namespace: str = "ns-a",
    pool: str = "shared",
    claims=None,
    age: int = 0
) -> Claim:
    """A claim created ``age`` seconds after the epoch."""
    return Claim(
        metadata=ObjectMeta(
            name=name,
            namespace=namespace,
            creation_timestamp=EPOCH + timedelta(seconds=age),
        ),
        spec=ClaimSpec(pool=pool, resource_claims=parse_resource_list(claims or {"cpu": "1"})),
    )


def make_namespace(name: str, team: str = "blue") -> Namespace:
    return Namespace(metadata=ObjectMeta(name=name, labels={"team": team}))


@pytest.fixture
def scheme():
    return build_scheme()


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def fast_retry():
    """Retry policy that does not sleep noticeably."""
    return RetryPolicy(max_retries=4, initial_delay=0.0001, exponential_base=2.0, jitter=False)
