"""Admission hooks for pools and claims."""

from quotapool.admission.hooks import (
    AdmissionResponse,
    mutate_pool,
    validate_pool,
    validate_claim_create,
    validate_claim_update,
    validate_claim_delete,
)

__all__ = [
    "AdmissionResponse",
    "mutate_pool",
    "validate_pool",
    "validate_claim_create",
    "validate_claim_update",
    "validate_claim_delete",
]
