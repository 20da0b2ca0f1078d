"""Exception hierarchy shared across the quota pool engine."""


class QuotaPoolError(Exception):
    """Base class for all quota pool errors."""
    pass


class TransientError(QuotaPoolError):
    """Raised for failures that should be retried by the reconciliation driver."""
    pass


class InvalidObjectError(QuotaPoolError, ValueError):
    """Raised when a persisted object is malformed."""
    pass


class PoolUnavailableError(QuotaPoolError):
    """Raised when a claim cannot be assigned to the pool it references."""
    pass
