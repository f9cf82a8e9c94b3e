"""
Money calculator for quote totals.

Pure functions over ``Decimal``; no database access.

    subtotal       = Σ quantity × unit_price
    taxable_amount = Σ quantity × unit_price   (taxable items only; default taxable)
    tax_amount     = round(taxable_amount × tax_rate)
    total          = round(subtotal + tax_amount − discount_amount)

Rounding is ROUND_HALF_UP to cents and is applied to the aggregates only,
never to individual line items. ``total`` is built from the rounded subtotal
and tax so the published figures always add up.

Inputs are limited to the scale the quote tables store (quantity and unit
price to 2 places, tax rate to 4), so totals recomputed from stored rows
match the totals computed at write time.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Iterable

from fieldops.core.exceptions import ValidationError

CENT = Decimal("0.01")
ZERO = Decimal("0")
ONE = Decimal("1")

AMOUNT_PLACES = 2
RATE_PLACES = 4


def to_decimal(value: Any, field: str) -> Decimal:
    """Coerce ints, strings and Decimals; floats go through ``str`` first."""
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, bool) or value is None:
        raise ValidationError(f"{field} must be a number", details={field: value})
    else:
        try:
            result = Decimal(str(value))
        except (InvalidOperation, ValueError):
            raise ValidationError(f"{field} must be a number", details={field: value}) from None
    if not result.is_finite():
        raise ValidationError(f"{field} must be finite", details={field: str(value)})
    return result


def round_cents(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def check_places(value: Decimal, places: int, field: str) -> Decimal:
    """Reject *value* if it carries more than *places* significant decimals."""
    if value.normalize().as_tuple().exponent < -places:
        raise ValidationError(
            f"{field} allows at most {places} decimal places",
            details={field: str(value)},
        )
    return value


def tax_rate_value(value: Any) -> Decimal:
    """Validate a tax rate as a fraction: 0 <= rate <= 1, at most 4 places."""
    rate = to_decimal(ZERO if value is None else value, "tax_rate")
    if rate < ZERO:
        raise ValidationError("tax_rate cannot be negative", details={"tax_rate": str(rate)})
    if rate > ONE:
        raise ValidationError("tax_rate cannot exceed 1", details={"tax_rate": str(rate)})
    return check_places(rate, RATE_PLACES, "tax_rate")


@dataclass(frozen=True)
class LineAmount:
    quantity: Decimal
    unit_price: Decimal
    is_taxable: bool = True

    @property
    def total(self) -> Decimal:
        return self.quantity * self.unit_price


@dataclass(frozen=True)
class QuoteTotals:
    subtotal: Decimal
    taxable_amount: Decimal
    tax_amount: Decimal
    discount_amount: Decimal
    total: Decimal

    def to_dict(self) -> dict:
        return {
            "subtotal": str(self.subtotal),
            "taxable_amount": str(self.taxable_amount),
            "tax_amount": str(self.tax_amount),
            "discount_amount": str(self.discount_amount),
            "total": str(self.total),
        }


def line_amount(item: Any, index: int = 0) -> LineAmount:
    """Build a validated LineAmount from a dict or an object with the same attributes."""
    if isinstance(item, LineAmount):
        return item
    if isinstance(item, dict):
        quantity = item.get("quantity")
        unit_price = item.get("unit_price")
        is_taxable = item.get("is_taxable")
    else:
        quantity = getattr(item, "quantity", None)
        unit_price = getattr(item, "unit_price", None)
        is_taxable = getattr(item, "is_taxable", None)

    qty = check_places(to_decimal(quantity, f"line_items[{index}].quantity"),
                       AMOUNT_PLACES, f"line_items[{index}].quantity")
    price = check_places(to_decimal(unit_price, f"line_items[{index}].unit_price"),
                         AMOUNT_PLACES, f"line_items[{index}].unit_price")
    if qty <= ZERO:
        raise ValidationError(
            "Line item quantity must be positive",
            details={f"line_items[{index}].quantity": str(qty)},
        )
    if price < ZERO:
        raise ValidationError(
            "Line item unit price cannot be negative",
            details={f"line_items[{index}].unit_price": str(price)},
        )
    return LineAmount(qty, price, True if is_taxable is None else bool(is_taxable))


def compute_totals(
    items: Iterable[Any],
    tax_rate: Any = ZERO,
    discount_amount: Any = ZERO,
) -> QuoteTotals:
    """Compute quote totals. Result is independent of item ordering."""
    rate = tax_rate_value(tax_rate)
    discount = to_decimal(discount_amount if discount_amount is not None else ZERO, "discount_amount")
    if discount < ZERO:
        raise ValidationError(
            "discount_amount cannot be negative",
            details={"discount_amount": str(discount)},
        )

    lines = [line_amount(item, i) for i, item in enumerate(items)]
    subtotal = sum((line.total for line in lines), ZERO)
    taxable = sum((line.total for line in lines if line.is_taxable), ZERO)

    subtotal_r = round_cents(subtotal)
    tax_r = round_cents(taxable * rate)
    discount_r = round_cents(discount)
    total_r = round_cents(subtotal_r + tax_r - discount_r)

    return QuoteTotals(
        subtotal=subtotal_r,
        taxable_amount=round_cents(taxable),
        tax_amount=tax_r,
        discount_amount=discount_r,
        total=total_r,
    )
