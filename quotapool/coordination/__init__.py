"""Optimistic concurrency for pool and claim writes."""

from quotapool.coordination.retry import RetryPolicy, RetryExhaustedError, compare_and_swap
from quotapool.coordination.mutator import PoolMutator, PoolPass

__all__ = [
    "RetryPolicy",
    "RetryExhaustedError",
    "compare_and_swap",
    "PoolMutator",
    "PoolPass",
]
