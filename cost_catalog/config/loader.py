"""
Configuration management and loading.

Handles runtime settings from environment variables and seed catalogs from
YAML files.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional

import yaml
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from cost_catalog.core.clock import normalize_timestamp, parse_timestamp
from cost_catalog.core.errors import InvalidArgumentError
from cost_catalog.core.pricing import parse_cost
from cost_catalog.storage.db import DEFAULT_DB_PATH, DEFAULT_TIMEOUT

ENV_PREFIX = "COST_CATALOG_"

_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


class LogFormat(Enum):
    """Output format for log records."""
    PLAIN = "plain"
    JSON = "json"


class CatalogSettings(BaseSettings):
    """Runtime settings for the catalog.

    Each field is read from ``COST_CATALOG_<FIELD>``, e.g. ``COST_CATALOG_DB``
    or ``COST_CATALOG_ADMIN_KEY``. Empty variables count as unset.
    """
    model_config = SettingsConfigDict(
        env_prefix=ENV_PREFIX, env_ignore_empty=True, extra="ignore", frozen=True
    )

    db: str = DEFAULT_DB_PATH
    admin_key: Optional[str] = Field(default=None, repr=False)
    log_level: str = "WARNING"
    log_format: LogFormat = LogFormat.PLAIN
    db_timeout: float = DEFAULT_TIMEOUT

    @field_validator("db")
    @classmethod
    def _check_db(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("db cannot be empty")
        return value

    @field_validator("log_level", mode="before")
    @classmethod
    def _check_log_level(cls, value) -> str:
        level = str(value).strip().upper()
        if level not in _LOG_LEVELS:
            raise ValueError(f"log_level must be one of: {sorted(_LOG_LEVELS)}")
        return level

    @field_validator("log_format", mode="before")
    @classmethod
    def _check_log_format(cls, value) -> LogFormat:
        if isinstance(value, LogFormat):
            return value
        try:
            return LogFormat(str(value).strip().lower())
        except ValueError:
            valid_formats = [fmt.value for fmt in LogFormat]
            raise ValueError(f"log_format must be one of: {valid_formats}")

    @field_validator("db_timeout")
    @classmethod
    def _check_db_timeout(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("db_timeout must be > 0")
        return value


def load_settings() -> CatalogSettings:
    """Load settings from ``COST_CATALOG_*`` environment variables.

    Returns:
        Validated CatalogSettings

    Raises:
        pydantic.ValidationError: If a variable holds an invalid value (a
            ValueError subclass)
    """
    return CatalogSettings()


@dataclass(frozen=True)
class SeedPlan:
    """Plan assignment entry of a seed catalog."""
    provider: str
    plan_tier: str
    billing_cycle: str
    effective_from: datetime


@dataclass(frozen=True)
class SeedPrice:
    """Price point entry of a seed catalog."""
    name: str
    provider: str
    plan_tier: str
    billing_cycle: str
    cost_per_unit: str
    effective_from: datetime


@dataclass(frozen=True)
class SeedCatalog:
    """Complete seed catalog."""
    plans: List[SeedPlan]
    prices: List[SeedPrice]


_PLAN_KEYS = {"provider", "plan_tier", "billing_cycle", "effective_from"}
_PRICE_KEYS = {"name", "provider", "plan_tier", "billing_cycle", "cost_per_unit", "effective_from"}


def load_seed_catalog(path: str) -> SeedCatalog:
    """Load and validate a seed catalog from a YAML file.

    Strict validation ensures a typo in a seed file cannot silently publish
    a wrong price.

    Args:
        path: Path to YAML seed file

    Returns:
        Validated SeedCatalog

    Raises:
        FileNotFoundError: If seed file doesn't exist
        yaml.YAMLError: If YAML is invalid
        ValueError: If the catalog is invalid
    """
    seed_path = Path(path)
    if not seed_path.exists():
        raise FileNotFoundError(f"Seed catalog file not found: {path}")

    with open(seed_path, 'r', encoding='utf-8') as f:
        try:
            raw_seed = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise yaml.YAMLError(f"Invalid YAML in seed file {path}: {e}")

    if not raw_seed:
        raise ValueError("Seed catalog file is empty")
    if not isinstance(raw_seed, dict):
        raise ValueError("Seed catalog must be a dictionary")

    allowed_top_keys = {'plans', 'prices'}
    unknown_keys = set(raw_seed.keys()) - allowed_top_keys
    if unknown_keys:
        raise ValueError(f"Unknown seed catalog keys: {unknown_keys}")

    plans_data = raw_seed.get('plans') or []
    if not isinstance(plans_data, list):
        raise ValueError("'plans' must be a list")

    prices_data = raw_seed.get('prices') or []
    if not isinstance(prices_data, list):
        raise ValueError("'prices' must be a list")

    plans = []
    for i, entry in enumerate(plans_data):
        fields = _parse_entry(entry, _PLAN_KEYS, f"plans[{i}]")
        plans.append(SeedPlan(**fields))

    prices = []
    for i, entry in enumerate(prices_data):
        fields = _parse_entry(entry, _PRICE_KEYS, f"prices[{i}]")
        prices.append(SeedPrice(**fields))

    return SeedCatalog(plans=plans, prices=prices)


def _parse_entry(data: Dict, required_keys: set, path: str) -> Dict:
    """Parse and validate one seed entry.

    Args:
        data: Raw entry from YAML
        required_keys: Keys the entry must have, and the only ones allowed
        path: Path for error messages

    Returns:
        Field values ready for the seed dataclass

    Raises:
        ValueError: If the entry is invalid
    """
    if not isinstance(data, dict):
        raise ValueError(f"{path} must be a dictionary")

    unknown_keys = set(data.keys()) - required_keys
    if unknown_keys:
        raise ValueError(f"Unknown keys in {path}: {unknown_keys}")

    missing_keys = required_keys - set(data.keys())
    if missing_keys:
        raise ValueError(f"Missing required keys in {path}: {sorted(missing_keys)}")

    fields = {}
    for key in required_keys:
        value = data[key]
        if key == 'effective_from':
            fields[key] = _parse_effective_from(value, path)
        elif key == 'cost_per_unit':
            # Quoted strings keep every digit; YAML floats are accepted but lossy
            if isinstance(value, bool) or not isinstance(value, (str, int, float)):
                raise ValueError(f"'cost_per_unit' in {path} must be a string or number")
            try:
                parse_cost(value)
            except InvalidArgumentError as e:
                raise ValueError(f"'cost_per_unit' in {path}: {e}")
            fields[key] = str(value)
        else:
            if not isinstance(value, str) or not value.strip():
                raise ValueError(f"'{key}' in {path} must be a non-empty string")
            fields[key] = value

    return fields


def _parse_effective_from(value, path: str) -> datetime:
    # YAML turns unquoted timestamps into datetime (or date) objects
    if isinstance(value, datetime):
        return normalize_timestamp(value)
    if hasattr(value, 'isoformat'):
        value = value.isoformat()
    if not isinstance(value, str):
        raise ValueError(f"'effective_from' in {path} must be a timestamp")
    try:
        return parse_timestamp(value)
    except InvalidArgumentError as e:
        raise ValueError(f"'effective_from' in {path}: {e}")
