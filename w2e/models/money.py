"""Money type shared by every ledger model."""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Annotated, Any

from bson.decimal128 import Decimal128
from pydantic import BeforeValidator

QUANTUM = Decimal("0.000001")
# Upper bound for any single amount; keeps every value well inside Decimal128.
MAX_AMOUNT = Decimal("1000000000000")


class AmountOutOfRange(ValueError):
    """Amount is not a finite number within +/- MAX_AMOUNT."""


def quantize(value: Decimal | int | str) -> Decimal:
    """Round to the ledger precision (6 places, half-up). Raises AmountOutOfRange."""
    try:
        d = Decimal(value)
    except (InvalidOperation, TypeError, ValueError) as e:
        raise AmountOutOfRange(f"Not a number: {value!r}") from e
    if not d.is_finite() or abs(d) > MAX_AMOUNT:
        raise AmountOutOfRange(f"Amount out of range: {value}")
    return d.quantize(QUANTUM, rounding=ROUND_HALF_UP)


def _coerce(v: Any) -> Any:
    # Mongo hands back Decimal128; floats go through str to avoid binary noise.
    if isinstance(v, Decimal128):
        return v.to_decimal()
    if isinstance(v, float):
        return Decimal(str(v))
    return v


Money = Annotated[Decimal, BeforeValidator(_coerce)]

ZERO = Decimal("0")
