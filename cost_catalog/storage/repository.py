"""
Repository pattern for data access.

Two append-only, time-versioned tables: the plan registry (which plan each
provider is on) and the price catalog (what each named item costs under a
plan). Uniqueness on (key, effective_from) is enforced by the store, so two
concurrent appends for the same instant cannot both succeed.
"""

import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from decimal import Decimal
from typing import Dict, Iterator, List, Optional

from cost_catalog.core.clock import from_store, to_store, utc_now
from cost_catalog.core.errors import (
    ConflictError,
    InvalidArgumentError,
    NotFoundError,
    StoreUnavailableError,
)
from cost_catalog.core.pricing import CostInput, format_cost, parse_cost
from cost_catalog.core.versioning import latest_per_key

from .db import DEFAULT_DB_PATH, DEFAULT_TIMEOUT, get_connection
from .models import PlanRecord, PriceRecord

logger = logging.getLogger(__name__)

_PLAN_COLUMNS = "provider, plan_tier, billing_cycle, effective_from, created_at"
_PRICE_COLUMNS = (
    "name, provider, plan_tier, billing_cycle, cost_per_unit, effective_from, created_at"
)

_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS platform_plans (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        provider TEXT NOT NULL,
        plan_tier TEXT NOT NULL,
        billing_cycle TEXT NOT NULL,
        effective_from TEXT NOT NULL,
        created_at TEXT NOT NULL,
        UNIQUE (provider, effective_from)
    )
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_platform_plans_provider_effective
        ON platform_plans (provider, effective_from DESC)
    """,
    """
    CREATE TABLE IF NOT EXISTS providers_costs (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL,
        provider TEXT NOT NULL,
        plan_tier TEXT NOT NULL,
        billing_cycle TEXT NOT NULL,
        cost_per_unit TEXT NOT NULL,
        effective_from TEXT NOT NULL,
        created_at TEXT NOT NULL,
        UNIQUE (name, plan_tier, billing_cycle, effective_from)
    )
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_providers_costs_name
        ON providers_costs (name)
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_providers_costs_name_effective
        ON providers_costs (name, effective_from DESC)
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_providers_costs_plan_effective
        ON providers_costs (name, plan_tier, billing_cycle, effective_from DESC)
    """,
)


def initialize_schema(db_path: str = DEFAULT_DB_PATH, timeout: float = DEFAULT_TIMEOUT) -> None:
    """Create the plan and price tables and their indexes if missing.

    Both tables are append-only ledgers. The only removal ever performed is
    the bulk delete of a cost name's whole timeline.

    Args:
        db_path: Path to SQLite database file
        timeout: Seconds to wait on a locked database

    Raises:
        StoreUnavailableError: If the database cannot be opened or written
    """
    with _connect(db_path, timeout) as conn:
        for statement in _SCHEMA:
            conn.execute(statement)
        conn.commit()
    logger.info("Schema initialized at %s", db_path)


@contextmanager
def _connect(db_path: str, timeout: float) -> Iterator[sqlite3.Connection]:
    """Open a connection for one operation, mapping store failures to StoreUnavailableError.

    IntegrityError is handled by the appends before it reaches here.
    """
    try:
        conn = get_connection(db_path, timeout)
    except sqlite3.DatabaseError as e:
        raise StoreUnavailableError(f"Cannot open database {db_path}: {e}") from e
    try:
        yield conn
    except sqlite3.DatabaseError as e:
        conn.rollback()
        raise StoreUnavailableError(f"Database error: {e}") from e
    finally:
        conn.close()


def _require(**fields: Optional[str]) -> None:
    """Reject missing or blank string fields before any write."""
    for field_name, value in fields.items():
        if not isinstance(value, str) or not value.strip():
            raise InvalidArgumentError(f"{field_name} is required and cannot be empty")


def _row_to_plan(row: tuple) -> PlanRecord:
    return PlanRecord(
        provider=row[0],
        plan_tier=row[1],
        billing_cycle=row[2],
        effective_from=from_store(row[3]),
        created_at=from_store(row[4]),
    )


def _row_to_price(row: tuple) -> PriceRecord:
    return PriceRecord(
        name=row[0],
        provider=row[1],
        plan_tier=row[2],
        billing_cycle=row[3],
        cost_per_unit=Decimal(row[4]),
        effective_from=from_store(row[5]),
        created_at=from_store(row[6]),
    )


class PlanRegistry:
    """Time-versioned record of the active plan per provider."""

    def __init__(self, db_path: str = DEFAULT_DB_PATH, timeout: float = DEFAULT_TIMEOUT):
        """Initialize the registry with a database path.

        Args:
            db_path: Path to SQLite database file
            timeout: Seconds to wait on a locked database
        """
        self.db_path = db_path
        self.timeout = timeout

    def append_plan(
        self,
        provider: str,
        plan_tier: str,
        billing_cycle: str,
        effective_from: Optional[datetime] = None
    ) -> PlanRecord:
        """Append a plan assignment for a provider.

        Args:
            provider: Provider key
            plan_tier: Plan tier, e.g. "basic"
            billing_cycle: Billing cycle, e.g. "monthly"
            effective_from: When the plan takes effect (defaults to now)

        Returns:
            The created PlanRecord

        Raises:
            InvalidArgumentError: If a field is missing
            ConflictError: If the provider already has a plan at effective_from
        """
        _require(provider=provider, plan_tier=plan_tier, billing_cycle=billing_cycle)

        created_at = utc_now()
        record = PlanRecord(
            provider=provider,
            plan_tier=plan_tier,
            billing_cycle=billing_cycle,
            effective_from=from_store(to_store(effective_from or created_at)),
            created_at=from_store(to_store(created_at)),
        )

        with _connect(self.db_path, self.timeout) as conn:
            try:
                conn.execute(
                    f"INSERT INTO platform_plans ({_PLAN_COLUMNS}) VALUES (?, ?, ?, ?, ?)",
                    (
                        record.provider,
                        record.plan_tier,
                        record.billing_cycle,
                        to_store(record.effective_from),
                        to_store(record.created_at),
                    ),
                )
                conn.commit()
            except sqlite3.IntegrityError as e:
                conn.rollback()
                raise ConflictError(
                    f"Platform plan for provider '{provider}' and effective_from "
                    f"{record.effective_from.isoformat()} already exists"
                ) from e

        logger.info({
            "event": "plan_appended",
            "provider": provider,
            "plan": f"{plan_tier}/{billing_cycle}",
            "effective_from": record.effective_from.isoformat(),
        })
        return record

    def current_plan(self, provider: str, as_of: datetime) -> Optional[PlanRecord]:
        """Get the plan in effect for a provider at as_of.

        Returns:
            Record with the greatest effective_from <= as_of, or None
        """
        with _connect(self.db_path, self.timeout) as conn:
            row = conn.execute(
                f"""
                SELECT {_PLAN_COLUMNS} FROM platform_plans
                WHERE provider = ? AND effective_from <= ?
                ORDER BY effective_from DESC
                LIMIT 1
                """,
                (provider, to_store(as_of)),
            ).fetchone()
        return _row_to_plan(row) if row else None

    def all_current_plans(self, as_of: datetime) -> Dict[str, PlanRecord]:
        """Get the plan in effect at as_of for every provider that has one."""
        with _connect(self.db_path, self.timeout) as conn:
            rows = conn.execute(
                f"""
                SELECT {_PLAN_COLUMNS} FROM platform_plans
                WHERE effective_from <= ?
                ORDER BY provider, effective_from DESC
                """,
                (to_store(as_of),),
            ).fetchall()
        plans = latest_per_key((_row_to_plan(row) for row in rows), key=lambda p: p.provider)
        return {plan.provider: plan for plan in plans}

    def history(self, provider: str) -> List[PlanRecord]:
        """Get every plan record for a provider, newest first.

        Raises:
            NotFoundError: If the provider has no records at all
        """
        with _connect(self.db_path, self.timeout) as conn:
            rows = conn.execute(
                f"""
                SELECT {_PLAN_COLUMNS} FROM platform_plans
                WHERE provider = ?
                ORDER BY effective_from DESC, id DESC
                """,
                (provider,),
            ).fetchall()
        if not rows:
            raise NotFoundError(f"No platform plan configured for provider '{provider}'")
        return [_row_to_plan(row) for row in rows]


class PriceCatalog:
    """Time-versioned unit prices per (name, plan_tier, billing_cycle)."""

    def __init__(self, db_path: str = DEFAULT_DB_PATH, timeout: float = DEFAULT_TIMEOUT):
        """Initialize the catalog with a database path.

        Args:
            db_path: Path to SQLite database file
            timeout: Seconds to wait on a locked database
        """
        self.db_path = db_path
        self.timeout = timeout

    def append_price(
        self,
        name: str,
        provider: str,
        plan_tier: str,
        billing_cycle: str,
        cost_per_unit: CostInput,
        effective_from: Optional[datetime] = None
    ) -> PriceRecord:
        """Append a price point for a named item under one plan.

        Back-dated points are accepted into history as long as they do not
        collide exactly with an existing effective_from for the same plan.

        Args:
            name: Cost name, e.g. "anthropic-sonnet-4.5-tokens-input"
            provider: Provider owning the name
            plan_tier: Plan tier the price applies to
            billing_cycle: Billing cycle the price applies to
            cost_per_unit: Non-negative decimal cost in US cents
            effective_from: When the price takes effect (defaults to now)

        Returns:
            The created PriceRecord

        Raises:
            InvalidArgumentError: If the cost is malformed or a field is missing
            ConflictError: If the plan already has a price at effective_from
        """
        _require(name=name, provider=provider, plan_tier=plan_tier, billing_cycle=billing_cycle)
        cost = parse_cost(cost_per_unit)

        created_at = utc_now()
        record = PriceRecord(
            name=name,
            provider=provider,
            plan_tier=plan_tier,
            billing_cycle=billing_cycle,
            cost_per_unit=cost,
            effective_from=from_store(to_store(effective_from or created_at)),
            created_at=from_store(to_store(created_at)),
        )

        with _connect(self.db_path, self.timeout) as conn:
            try:
                conn.execute(
                    f"INSERT INTO providers_costs ({_PRICE_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?)",
                    (
                        record.name,
                        record.provider,
                        record.plan_tier,
                        record.billing_cycle,
                        format_cost(record.cost_per_unit),
                        to_store(record.effective_from),
                        to_store(record.created_at),
                    ),
                )
                conn.commit()
            except sqlite3.IntegrityError as e:
                conn.rollback()
                raise ConflictError(
                    f"Provider cost '{name}' on plan '{plan_tier}/{billing_cycle}' with "
                    f"effective_from {record.effective_from.isoformat()} already exists"
                ) from e

        logger.info({
            "event": "price_appended",
            "name": name,
            "provider": provider,
            "plan": f"{plan_tier}/{billing_cycle}",
            "cost_per_unit": format_cost(cost),
            "effective_from": record.effective_from.isoformat(),
        })
        return record

    def current_price(
        self,
        name: str,
        plan_tier: str,
        billing_cycle: str,
        as_of: datetime,
        provider: Optional[str] = None
    ) -> Optional[PriceRecord]:
        """Get the price in effect at as_of for exactly this name and plan.

        Args:
            provider: Only consider rows of this provider when given
        """
        query = f"""
            SELECT {_PRICE_COLUMNS} FROM providers_costs
            WHERE name = ? AND plan_tier = ? AND billing_cycle = ?
              AND effective_from <= ?
        """
        params = [name, plan_tier, billing_cycle, to_store(as_of)]
        if provider is not None:
            query += " AND provider = ?"
            params.append(provider)
        query += " ORDER BY effective_from DESC, id DESC LIMIT 1"

        with _connect(self.db_path, self.timeout) as conn:
            row = conn.execute(query, params).fetchone()
        return _row_to_price(row) if row else None

    def history(self, name: str) -> List[PriceRecord]:
        """Get every price point for a name across all plans, newest first.

        Raises:
            NotFoundError: If the name has never had a price
        """
        with _connect(self.db_path, self.timeout) as conn:
            rows = conn.execute(
                f"""
                SELECT {_PRICE_COLUMNS} FROM providers_costs
                WHERE name = ?
                ORDER BY effective_from DESC, id DESC
                """,
                (name,),
            ).fetchall()
        if not rows:
            raise NotFoundError(f"Provider cost '{name}' not found")
        return [_row_to_price(row) for row in rows]

    def plan_options(self, name: str, as_of: datetime) -> List[PriceRecord]:
        """Get the latest price at as_of for each plan a name is priced under.

        Returns:
            One record per (plan_tier, billing_cycle), ordered by plan

        Raises:
            NotFoundError: If the name has no price effective at as_of
        """
        with _connect(self.db_path, self.timeout) as conn:
            rows = conn.execute(
                f"""
                SELECT {_PRICE_COLUMNS} FROM providers_costs
                WHERE name = ? AND effective_from <= ?
                ORDER BY plan_tier, billing_cycle, effective_from DESC, id DESC
                """,
                (name, to_store(as_of)),
            ).fetchall()
        if not rows:
            raise NotFoundError(f"Provider cost '{name}' not found")
        return list(latest_per_key((_row_to_price(row) for row in rows), key=lambda p: p.plan_key))

    def current_candidates(self, as_of: datetime) -> List[PriceRecord]:
        """Get every price effective at as_of, ordered by name then newest first."""
        with _connect(self.db_path, self.timeout) as conn:
            rows = conn.execute(
                f"""
                SELECT {_PRICE_COLUMNS} FROM providers_costs
                WHERE effective_from <= ?
                ORDER BY name, effective_from DESC, id DESC
                """,
                (to_store(as_of),),
            ).fetchall()
        return [_row_to_price(row) for row in rows]

    def delete_all(self, name: str) -> int:
        """Delete a name's whole price timeline across all plans.

        Returns:
            Number of rows removed; 0 if the name did not exist
        """
        with _connect(self.db_path, self.timeout) as conn:
            cursor = conn.execute("DELETE FROM providers_costs WHERE name = ?", (name,))
            conn.commit()
            deleted = cursor.rowcount

        if deleted:
            logger.info({"event": "prices_deleted", "name": name, "rows": deleted})
        return deleted

    def provider_of(self, name: str) -> Optional[str]:
        """Get the provider owning a name, or None if the name is unknown.

        The owner is the provider of the name's latest row; among rows with
        the same effective_from the last inserted wins.
        """
        with _connect(self.db_path, self.timeout) as conn:
            row = conn.execute(
                """
                SELECT provider FROM providers_costs
                WHERE name = ?
                ORDER BY effective_from DESC, id DESC
                LIMIT 1
                """,
                (name,),
            ).fetchone()
        return row[0] if row else None

    def owners(self) -> Dict[str, str]:
        """Get the owning provider of every name, as :meth:`provider_of` picks it."""
        with _connect(self.db_path, self.timeout) as conn:
            rows = conn.execute(
                """
                SELECT name, provider FROM providers_costs
                ORDER BY name, effective_from DESC, id DESC
                """
            ).fetchall()
        return dict(latest_per_key(rows, key=lambda row: row[0]))
