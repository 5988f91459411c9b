"""
Data models for storage layer.

Defines the versioned plan and price records and the resolved price view.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Tuple

from cost_catalog.core.pricing import format_cost


@dataclass(frozen=True)
class PlanRecord:
    """Which commercial plan a provider is on, as of a point in time.

    Records are append-only. For one provider they form a timeline where
    the current record is the one with the latest effective_from not after
    the query time.
    """
    provider: str
    plan_tier: str
    billing_cycle: str
    effective_from: datetime
    created_at: datetime

    @property
    def plan_key(self) -> Tuple[str, str]:
        """(plan_tier, billing_cycle) pair identifying the plan."""
        return (self.plan_tier, self.billing_cycle)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "provider": self.provider,
            "plan_tier": self.plan_tier,
            "billing_cycle": self.billing_cycle,
            "effective_from": self.effective_from.isoformat(),
            "created_at": self.created_at.isoformat(),
        }


@dataclass(frozen=True)
class PriceRecord:
    """Cost of one unit of a named item under one plan, as of a point in time.

    cost_per_unit is in US cents. Rows for one name may exist under several
    plans at once; each (name, plan_tier, billing_cycle) has its own timeline.
    """
    name: str
    provider: str
    plan_tier: str
    billing_cycle: str
    cost_per_unit: Decimal
    effective_from: datetime
    created_at: datetime

    @property
    def plan_key(self) -> Tuple[str, str]:
        """(plan_tier, billing_cycle) pair this price belongs to."""
        return (self.plan_tier, self.billing_cycle)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "provider": self.provider,
            "plan_tier": self.plan_tier,
            "billing_cycle": self.billing_cycle,
            "cost_per_unit": format_cost(self.cost_per_unit),
            "effective_from": self.effective_from.isoformat(),
            "created_at": self.created_at.isoformat(),
        }


@dataclass(frozen=True)
class ResolvedPrice:
    """Effective unit price for a name under its provider's active plan."""
    name: str
    cost_per_unit: Decimal
    provider: str
    effective_from: datetime

    @classmethod
    def from_record(cls, record: PriceRecord) -> "ResolvedPrice":
        return cls(
            name=record.name,
            cost_per_unit=record.cost_per_unit,
            provider=record.provider,
            effective_from=record.effective_from,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "cost_per_unit": format_cost(self.cost_per_unit),
            "provider": self.provider,
            "effective_from": self.effective_from.isoformat(),
        }
