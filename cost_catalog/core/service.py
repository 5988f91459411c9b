"""
Cost catalog service.

The contract consumed by request layers such as the CLI. Reads are open;
writes (appends, deletes and seeding) require the admin key.
"""

from datetime import datetime
from typing import List, Optional, Tuple

from cost_catalog.config.loader import CatalogSettings, SeedCatalog
from cost_catalog.demo.seed import seed_catalog
from cost_catalog.storage.models import PlanRecord, PriceRecord, ResolvedPrice
from cost_catalog.storage.repository import PlanRegistry, PriceCatalog

from .auth import require_admin_key
from .clock import resolve_as_of
from .errors import NotFoundError
from .pricing import CostInput
from .resolver import Resolver


class CostService:
    """Price and plan operations over one catalog store."""

    def __init__(
        self,
        plans: PlanRegistry,
        prices: PriceCatalog,
        admin_api_key: Optional[str] = None
    ):
        self.plans = plans
        self.prices = prices
        self.resolver = Resolver(plans, prices)
        self._admin_api_key = admin_api_key

    @classmethod
    def from_settings(cls, settings: CatalogSettings) -> "CostService":
        """Build a service over the store named in settings."""
        return cls(
            plans=PlanRegistry(settings.db, settings.db_timeout),
            prices=PriceCatalog(settings.db, settings.db_timeout),
            admin_api_key=settings.admin_key,
        )

    # Prices

    def list_current_prices(self, as_of: Optional[datetime] = None) -> List[ResolvedPrice]:
        """Effective price of every resolvable name; empty if none."""
        return self.resolver.resolve_all(as_of)

    def get_current_price(self, name: str, as_of: Optional[datetime] = None) -> ResolvedPrice:
        """Effective price of one name.

        Raises:
            NotFoundError: Unknown name or no price under the active plan
            UnconfiguredError: The name's provider has no active plan
        """
        return self.resolver.resolve_one(name, as_of)

    def get_price_history(self, name: str) -> List[PriceRecord]:
        return self.prices.history(name)

    def get_plan_options(self, name: str, as_of: Optional[datetime] = None) -> List[PriceRecord]:
        return self.prices.plan_options(name, resolve_as_of(as_of))

    def append_price(
        self,
        api_key: Optional[str],
        name: str,
        provider: str,
        plan_tier: str,
        billing_cycle: str,
        cost_per_unit: CostInput,
        effective_from: Optional[datetime] = None
    ) -> PriceRecord:
        """Append a price point.

        Raises:
            UnauthorizedError: If api_key is not the admin key
            InvalidArgumentError: If the cost is malformed or a field is missing
            ConflictError: If the plan already has a price at effective_from
        """
        require_admin_key(api_key, self._admin_api_key)
        return self.prices.append_price(
            name, provider, plan_tier, billing_cycle, cost_per_unit, effective_from
        )

    def delete_prices(self, api_key: Optional[str], name: str) -> int:
        """Delete every price point of a name.

        Returns:
            Number of rows deleted

        Raises:
            UnauthorizedError: If api_key is not the admin key
            NotFoundError: If the name had no rows
        """
        require_admin_key(api_key, self._admin_api_key)
        deleted = self.prices.delete_all(name)
        if deleted == 0:
            raise NotFoundError(f"Provider cost '{name}' not found")
        return deleted

    # Plans

    def list_current_plans(self, as_of: Optional[datetime] = None) -> List[PlanRecord]:
        """Active plan of every provider, ordered by provider."""
        plan_map = self.plans.all_current_plans(resolve_as_of(as_of))
        return [plan_map[provider] for provider in sorted(plan_map)]

    def get_current_plan(self, provider: str, as_of: Optional[datetime] = None) -> PlanRecord:
        """Active plan of one provider.

        Raises:
            NotFoundError: If the provider has no plan effective at as_of
        """
        plan = self.plans.current_plan(provider, resolve_as_of(as_of))
        if plan is None:
            raise NotFoundError(f"No platform plan configured for provider '{provider}'")
        return plan

    def get_plan_history(self, provider: str) -> List[PlanRecord]:
        return self.plans.history(provider)

    def append_plan(
        self,
        api_key: Optional[str],
        provider: str,
        plan_tier: str,
        billing_cycle: str,
        effective_from: Optional[datetime] = None
    ) -> PlanRecord:
        """Append a plan assignment for a provider.

        Raises:
            UnauthorizedError: If api_key is not the admin key
            InvalidArgumentError: If a field is missing
            ConflictError: If the provider already has a plan at effective_from
        """
        require_admin_key(api_key, self._admin_api_key)
        return self.plans.append_plan(provider, plan_tier, billing_cycle, effective_from)

    # Bulk

    def seed(self, api_key: Optional[str], catalog: SeedCatalog) -> Tuple[int, int]:
        """Append a seed catalog, skipping entries that already exist.

        Returns:
            (plans added, prices added)

        Raises:
            UnauthorizedError: If api_key is not the admin key
        """
        require_admin_key(api_key, self._admin_api_key)
        return seed_catalog(catalog, self.plans, self.prices)
