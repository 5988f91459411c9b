"""
Unit cost parsing and formatting.

Costs are US cents per unit held as Decimal with a fixed scale of 10
fractional digits, enough for sub-cent token prices. Floats are never used
between parsing and output.
"""

from decimal import Decimal, InvalidOperation
from typing import Union

from .errors import InvalidArgumentError

COST_SCALE = 10
COST_QUANTUM = Decimal(1).scaleb(-COST_SCALE)  # 0.0000000001

CostInput = Union[str, int, float, Decimal]


def parse_cost(value: CostInput) -> Decimal:
    """Parse a caller-supplied unit cost.

    Args:
        value: Cost as a string, int, float or Decimal

    Returns:
        Non-negative Decimal quantized to COST_SCALE fractional digits

    Raises:
        InvalidArgumentError: If the value is missing, not a finite decimal,
            negative, or has more fractional digits than COST_SCALE
    """
    if value is None or isinstance(value, bool):
        raise InvalidArgumentError("cost_per_unit is required")

    if isinstance(value, float):
        # repr of a float is its shortest round-tripping decimal form
        value = repr(value)

    try:
        cost = Decimal(value.strip() if isinstance(value, str) else value)
    except (InvalidOperation, ValueError, TypeError):
        raise InvalidArgumentError(f"cost_per_unit is not a decimal: {value!r}")

    if not cost.is_finite():
        raise InvalidArgumentError(f"cost_per_unit must be finite: {value!r}")
    if cost < 0:
        raise InvalidArgumentError(f"cost_per_unit must be >= 0: {value!r}")

    try:
        quantized = cost.quantize(COST_QUANTUM)
    except InvalidOperation:
        raise InvalidArgumentError(f"cost_per_unit is too large: {value!r}")
    if quantized != cost:
        raise InvalidArgumentError(
            f"cost_per_unit has more than {COST_SCALE} fractional digits: {value!r}"
        )

    return quantized


def format_cost(cost: Decimal) -> str:
    """Render a cost with exactly COST_SCALE fractional digits."""
    return format(cost.quantize(COST_QUANTUM), "f")
