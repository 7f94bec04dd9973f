# Overview: Pure variance arithmetic shared by count writes, reads and dashboards.

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from .models.enums import MovementType

# |difference| above this is a real discrepancy; below it is rounding noise.
DIFFERENCE_EPSILON = Decimal("0.01")

# Scale of the Numeric(18, 4) count columns.
AMOUNT_SCALE = Decimal("0.0001")
MAX_AMOUNT = Decimal("1e14")

_ZERO = Decimal("0")


@dataclass(frozen=True)
class Variance:
    """
    Derived reconciliation figures for one count.

    difference is None while no physical quantity is registered.
    """
    difference: Decimal | None
    total_cost: Decimal
    movement_type: MovementType
    has_difference: bool

    @property
    def signed_difference(self) -> Decimal:
        return self.difference if self.difference is not None else _ZERO


def to_decimal(value) -> Decimal:
    """Coerce ints, floats, strings and Decimals to Decimal; raises ValueError otherwise."""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool) or value is None:
        raise ValueError(f"not a number: {value!r}")
    try:
        # str() keeps 10.005 as typed instead of its binary float expansion
        return Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValueError(f"not a number: {value!r}")


def quantize_amount(value) -> Decimal:
    """Round to the stored column scale so written and re-read figures are identical."""
    amount = to_decimal(value)
    if not amount.is_finite():
        raise ValueError(f"not a number: {value!r}")
    try:
        return amount.quantize(AMOUNT_SCALE, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        raise ValueError(f"out of range: {value!r}")


def compute_variance(calculated_stock, physical_quantity, unit_cost) -> Variance:
    stock = quantize_amount(calculated_stock if calculated_stock is not None else 0)
    cost = quantize_amount(unit_cost if unit_cost is not None else 0)

    if physical_quantity is None:
        return Variance(
            difference=None,
            total_cost=_ZERO,
            movement_type=MovementType.STOCK_CUADRADO,
            has_difference=False,
        )

    difference = quantize_amount(physical_quantity) - stock
    if difference > 0:
        movement = MovementType.AJUSTE_POSITIVO
    elif difference < 0:
        movement = MovementType.AJUSTE_NEGATIVO
    else:
        movement = MovementType.STOCK_CUADRADO

    return Variance(
        difference=difference,
        total_cost=quantize_amount(difference * cost),
        movement_type=movement,
        has_difference=abs(difference) > DIFFERENCE_EPSILON,
    )
