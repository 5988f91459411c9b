"""
Seed catalog loading.

Appends the plans and prices of a seed catalog. Entries that already exist
are skipped, so seeding is safe to repeat.
"""

import logging
from pathlib import Path
from typing import Tuple

from cost_catalog.config.loader import SeedCatalog
from cost_catalog.core.errors import ConflictError
from cost_catalog.storage.repository import PlanRegistry, PriceCatalog

logger = logging.getLogger(__name__)

DEFAULT_SEED_PATH = Path(__file__).with_name("seed_catalog.yaml")


def seed_catalog(
    seed: SeedCatalog,
    plans: PlanRegistry,
    prices: PriceCatalog
) -> Tuple[int, int]:
    """Append every entry of a seed catalog.

    Args:
        seed: Validated seed catalog
        plans: Plan registry to append to
        prices: Price catalog to append to

    Returns:
        (plans added, prices added)
    """
    plans_added = 0
    for plan in seed.plans:
        try:
            plans.append_plan(plan.provider, plan.plan_tier, plan.billing_cycle, plan.effective_from)
            plans_added += 1
        except ConflictError:
            logger.debug("Seed plan already present: %s", plan.provider)

    prices_added = 0
    for price in seed.prices:
        try:
            prices.append_price(
                price.name,
                price.provider,
                price.plan_tier,
                price.billing_cycle,
                price.cost_per_unit,
                price.effective_from,
            )
            prices_added += 1
        except ConflictError:
            logger.debug("Seed price already present: %s", price.name)

    logger.info({
        "event": "seed_complete",
        "plans_added": plans_added,
        "plans_total": len(seed.plans),
        "prices_added": prices_added,
        "prices_total": len(seed.prices),
    })
    return plans_added, prices_added
