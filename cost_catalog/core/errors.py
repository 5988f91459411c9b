"""
Error taxonomy for cost resolution.

Each failure mode of the catalog has its own exception type so callers can
tell a client mistake from an operator misconfiguration or a store outage.
"""

from typing import Optional


class CostCatalogError(Exception):
    """Base class for all catalog errors."""


class NotFoundError(CostCatalogError):
    """The referenced name or provider has no record satisfying the query."""


class UnconfiguredError(CostCatalogError):
    """A cost name resolves to a provider that has no active plan.

    This is an operator defect, not a client error.
    """

    def __init__(self, message: str, provider: Optional[str] = None):
        super().__init__(message)
        self.provider = provider


class ConflictError(CostCatalogError):
    """An append collided with an existing unique key."""


class InvalidArgumentError(CostCatalogError):
    """Malformed cost value or missing required field."""


class UnauthorizedError(CostCatalogError):
    """A write was attempted without the privileged credential."""


class StoreUnavailableError(CostCatalogError):
    """The backing store could not be reached. Safe to retry."""
