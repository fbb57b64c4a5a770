"""Exception types shared across the engine."""

_QUOTA_MARKERS = ("quota", "billing", "exceeded", "payment")


class QuotaExceededError(Exception):
    """Raised when a remote capability refuses work for quota or billing reasons."""


class CapabilityUnavailableError(Exception):
    """Raised when an optional capability is called while unavailable."""


class UnknownConceptError(KeyError):
    """Raised when an edge references a concept node that does not exist."""


def is_quota_error(exc: BaseException) -> bool:
    """True for quota/billing-class failures, which are expected and not actionable."""
    if isinstance(exc, QuotaExceededError):
        return True
    message = str(exc).lower()
    return any(marker in message for marker in _QUOTA_MARKERS)


__all__ = [
    "QuotaExceededError",
    "CapabilityUnavailableError",
    "UnknownConceptError",
    "is_quota_error",
]
