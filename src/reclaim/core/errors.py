"""Exception taxonomy shared by the inventory, coordinator and engine layers."""

from __future__ import annotations


class ReclaimError(RuntimeError):
    """Base class for runner-reclaim failures."""


class ProviderError(ReclaimError):
    """Raised when an EC2 call (describe or terminate) fails."""


class CoordinatorError(ReclaimError):
    """Raised when a GitHub API call fails."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class CoordinatorAuthError(CoordinatorError):
    """Raised when app credentials or installation lookup fail."""


class DeregistrationError(CoordinatorError):
    """Raised when GitHub rejects a runner delete, usually because it picked up a job."""


class ScopeError(ReclaimError, ValueError):
    """Raised when an instance's tags cannot be turned into an owner scope."""
