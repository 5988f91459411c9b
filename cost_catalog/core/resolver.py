"""
Effective price resolution.

Combines the plan registry and the price catalog to answer "what does one
unit of this item cost right now":

1. Find the provider that owns the cost name
2. Find the plan that provider is on at the query time
3. Find the latest price for the name under exactly that plan

A name can be priced under several plans at once. Only the row matching the
provider's active plan is the answer, so "latest row per name" is not
enough; it must be the latest row within the active-plan subset.
"""

import logging
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from cost_catalog.storage.models import PlanRecord, PriceRecord, ResolvedPrice
from cost_catalog.storage.repository import PlanRegistry, PriceCatalog

from .clock import resolve_as_of
from .errors import NotFoundError, UnconfiguredError
from .versioning import latest_per_key

logger = logging.getLogger(__name__)


def select_active_prices(
    candidates: Iterable[PriceRecord],
    plan_map: Dict[str, PlanRecord],
    owners: Optional[Dict[str, str]] = None
) -> List[ResolvedPrice]:
    """Pick one price per name under each provider's active plan.

    Args:
        candidates: Price rows ordered by (name, effective_from desc), all
            already effective at the query time
        plan_map: Active plan per provider at the same query time
        owners: Owning provider per name. When given, rows of any other
            provider are ignored; otherwise each row counts for its own
            provider.

    Returns:
        At most one ResolvedPrice per name. Names whose provider has no
        active plan, or that have no row under it, are left out.
    """
    def on_active_plan(row: PriceRecord) -> bool:
        if owners is not None and owners.get(row.name) != row.provider:
            return False
        plan = plan_map.get(row.provider)
        return plan is not None and row.plan_key == plan.plan_key

    matching = (row for row in candidates if on_active_plan(row))
    return [ResolvedPrice.from_record(row) for row in latest_per_key(matching, key=lambda r: r.name)]


class Resolver:
    """Stateless composition of a PlanRegistry and a PriceCatalog."""

    def __init__(self, plans: PlanRegistry, prices: PriceCatalog):
        self.plans = plans
        self.prices = prices

    def resolve_one(self, name: str, as_of: Optional[datetime] = None) -> ResolvedPrice:
        """Resolve the effective unit price of one cost name.

        Args:
            name: Cost name
            as_of: Query time (defaults to now)

        Returns:
            ResolvedPrice under the provider's active plan

        Raises:
            NotFoundError: If the name is unknown, or has no price under the
                provider's active plan
            UnconfiguredError: If the provider has no active plan at as_of
        """
        as_of = resolve_as_of(as_of)

        provider = self.prices.provider_of(name)
        if provider is None:
            raise NotFoundError(f"No such cost name '{name}'")

        plan = self.plans.current_plan(provider, as_of)
        if plan is None:
            logger.warning(
                "No active plan for provider '%s' (cost name '%s') as of %s",
                provider, name, as_of.isoformat()
            )
            raise UnconfiguredError(
                f"No active plan for provider '{provider}'", provider=provider
            )

        price = self.prices.current_price(
            name, plan.plan_tier, plan.billing_cycle, as_of, provider=provider
        )
        if price is None:
            raise NotFoundError(
                f"No price for '{name}' under active plan "
                f"'{plan.plan_tier}/{plan.billing_cycle}'"
            )

        return ResolvedPrice.from_record(price)

    def resolve_all(self, as_of: Optional[datetime] = None) -> List[ResolvedPrice]:
        """Resolve the effective unit price of every resolvable cost name.

        Names that cannot be resolved are skipped rather than failing the
        whole listing. Each name is resolved under its owning provider, as in
        :meth:`resolve_one`.
        """
        as_of = resolve_as_of(as_of)
        plan_map = self.plans.all_current_plans(as_of)
        return select_active_prices(
            self.prices.current_candidates(as_of), plan_map, owners=self.prices.owners()
        )
