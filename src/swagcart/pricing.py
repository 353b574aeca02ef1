"""Tiered unit pricing and quantity bounds.

Everything here is a pure function of its arguments.  Two notions of
"current tier" coexist on purpose:

* :func:`best_unit_price` charges the *cheapest* eligible tier, whatever
  its threshold ("most discount wins").
* :func:`applicable_break` reports the eligible tier with the *highest*
  threshold, which is what a price table display highlights.

For monotonic tables the two agree.  :func:`validate_price_breaks` lets
callers reject tables where they would not.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import Protocol

from swagcart._constants import HARD_MAX_QUANTITY
from swagcart.exceptions import CartCapacityError, PriceTableError
from swagcart.models.product import PriceBreak, Product


class QuantityBounded(Protocol):
    """Anything carrying the product fields that bound a line quantity."""

    @property
    def stock(self) -> int | None: ...

    @property
    def min_quantity(self) -> int | None: ...

    @property
    def max_quantity(self) -> int | None: ...


@dataclass(frozen=True, slots=True)
class QuantityLimits:
    minimum: int
    maximum: int

    @property
    def is_satisfiable(self) -> bool:
        return self.maximum >= self.minimum

    def clamp(self, quantity: int) -> int:
        return max(self.minimum, min(self.maximum, quantity))

    def require(self, quantity: int) -> int:
        """Return *quantity* unchanged or raise :class:`CartCapacityError`."""
        allowed = self.clamp(quantity)
        if allowed != quantity or not self.is_satisfiable:
            raise CartCapacityError(
                f"quantity {quantity} outside allowed range [{self.minimum}, {self.maximum}]",
                requested=quantity,
                allowed=allowed,
            )
        return quantity


@dataclass(frozen=True, slots=True)
class PriceQuote:
    """Price breakdown for a quantity of one product."""

    quantity: int
    unit_price: float
    total: float
    base_total: float
    discount_percent: float
    applied_break: PriceBreak | None


def best_unit_price(quantity: int, base_price: float, breaks: Iterable[PriceBreak] | None) -> float:
    """Return the lowest price among breaks with ``min_qty <= quantity``.

    Falls back to *base_price* when no break is eligible.  The table does
    not need to be sorted or monotonic.
    """
    eligible = [b.price for b in breaks or () if b.min_qty <= quantity]
    if not eligible:
        return base_price
    return min(eligible)


def applicable_break(quantity: int, breaks: Iterable[PriceBreak] | None) -> PriceBreak | None:
    """Return the eligible break with the highest ``min_qty``, or ``None``."""
    best: PriceBreak | None = None
    for b in breaks or ():
        if b.min_qty > quantity:
            continue
        if best is None or b.min_qty > best.min_qty:
            best = b
    return best


def lowest_price_break(breaks: Iterable[PriceBreak] | None) -> PriceBreak | None:
    """Return the cheapest tier overall (the "from" price of a product)."""
    cheapest: PriceBreak | None = None
    for b in breaks or ():
        if cheapest is None or b.price < cheapest.price:
            cheapest = b
    return cheapest


def is_monotonic(breaks: Sequence[PriceBreak] | None) -> bool:
    """True when price never rises as ``min_qty`` grows and thresholds are unique."""
    ordered = sorted(breaks or (), key=lambda b: b.min_qty)
    for previous, current in zip(ordered, ordered[1:]):
        if current.min_qty == previous.min_qty or current.price > previous.price:
            return False
    return True


def validate_price_breaks(breaks: Sequence[PriceBreak] | None, *, product_id: int | None = None) -> None:
    """Raise :class:`PriceTableError` unless the table is monotonic."""
    if is_monotonic(breaks):
        return
    tiers = ", ".join(f"{b.min_qty}@{b.price:g}" for b in sorted(breaks or (), key=lambda b: b.min_qty))
    raise PriceTableError(
        f"price breaks must be non-increasing in price with unique thresholds: {tiers}",
        product_id=product_id,
    )


def quantity_limits(item: QuantityBounded, ceiling: int = HARD_MAX_QUANTITY) -> QuantityLimits:
    """Return the allowed ``[minimum, maximum]`` quantity range for *item*.

    The maximum is the tightest of stock, a positive product maximum and
    *ceiling*.  Zero stock yields a maximum of 0, i.e. an unsatisfiable
    range.
    """
    minimum = max(1, item.min_quantity or 1)
    maximum = ceiling
    if item.max_quantity is not None and item.max_quantity > 0:
        maximum = min(maximum, item.max_quantity)
    if item.stock is not None:
        maximum = min(maximum, item.stock)
    return QuantityLimits(minimum=minimum, maximum=max(0, maximum))


def quote(product: Product, quantity: int) -> PriceQuote:
    """Price *quantity* units of *product* against its price table."""
    unit = best_unit_price(quantity, product.base_price, product.price_breaks)
    total = unit * quantity
    base_total = product.base_price * quantity
    discount = ((base_total - total) / base_total) * 100 if base_total > 0 else 0.0
    return PriceQuote(
        quantity=quantity,
        unit_price=unit,
        total=total,
        base_total=base_total,
        discount_percent=discount,
        applied_break=applicable_break(quantity, product.price_breaks),
    )
