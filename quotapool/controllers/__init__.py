"""Reconciliation controllers for pools and claims."""

from quotapool.controllers.claim_controller import ClaimReconciler
from quotapool.controllers.pool_controller import PoolReconciler
from quotapool.controllers.manager import ControllerManager, SweepReport

__all__ = [
    "ClaimReconciler",
    "PoolReconciler",
    "ControllerManager",
    "SweepReport",
]
