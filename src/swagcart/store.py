"""Authoritative in-memory cart state.

This is the only component allowed to mutate cart lines.  Persistence
and cross-tab reconciliation observe it through change listeners and feed
it through :meth:`CartStore.replace`; neither patches lines directly.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass
from enum import StrEnum

from swagcart._constants import HARD_MAX_QUANTITY
from swagcart.models.cart import CartLine, VariantKey
from swagcart.models.product import Product
from swagcart.pricing import best_unit_price, quantity_limits

_logger = logging.getLogger(__name__)


class ChangeSource(StrEnum):
    LOCAL = "local"
    LOAD = "load"
    SYNC = "sync"


class CartOutcome(StrEnum):
    ADDED = "added"
    MERGED = "merged"
    UPDATED = "updated"
    REMOVED = "removed"
    CLEARED = "cleared"
    UNAVAILABLE = "unavailable"
    NOOP = "noop"


@dataclass(frozen=True, slots=True)
class CartResult:
    """Outcome of a cart command, for the caller to present.

    ``adjusted`` is set whenever the requested quantity had to be clamped
    into the allowed range.
    """

    outcome: CartOutcome
    key: VariantKey | None = None
    quantity: int = 0
    requested: int = 0
    adjusted: bool = False

    @property
    def changed(self) -> bool:
        return self.outcome not in (CartOutcome.UNAVAILABLE, CartOutcome.NOOP)


@dataclass(frozen=True, slots=True)
class CartChange:
    source: ChangeSource
    items: tuple[CartLine, ...]


CartListener = Callable[[CartChange], None]


def _price_line(line: CartLine, quantity: int) -> CartLine:
    if line.unit_price_override is not None:
        unit = line.unit_price_override
    else:
        unit = best_unit_price(quantity, line.base_price, line.price_breaks)
    return line.model_copy(update={"quantity": quantity, "unit_price": unit})


class CartStore:
    """Ordered collection of cart lines, unique by :class:`VariantKey`.

    Every mutation runs to completion synchronously, and reads made right
    after a mutation observe it.  ``count`` and ``subtotal`` are derived
    on every read.
    """

    def __init__(
        self,
        *,
        quantity_ceiling: int = HARD_MAX_QUANTITY,
        lines: Iterable[CartLine] = (),
    ) -> None:
        self._ceiling = quantity_ceiling
        self._lines: dict[VariantKey, CartLine] = {}
        self._listeners: list[CartListener] = []
        for line in lines:
            self._lines.setdefault(line.key, line)

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    @property
    def items(self) -> tuple[CartLine, ...]:
        return tuple(self._lines.values())

    @property
    def count(self) -> int:
        return sum(line.quantity for line in self._lines.values())

    @property
    def subtotal(self) -> float:
        return sum((line.total_price for line in self._lines.values()), 0.0)

    def get(self, key: VariantKey) -> CartLine | None:
        return self._lines.get(key)

    def __len__(self) -> int:
        return len(self._lines)

    def __iter__(self) -> Iterator[CartLine]:
        return iter(self.items)

    def __contains__(self, key: object) -> bool:
        return key in self._lines

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------

    def subscribe(self, listener: CartListener) -> Callable[[], None]:
        """Register *listener* for every change; returns an unsubscribe callable."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _notify(self, source: ChangeSource) -> None:
        change = CartChange(source=source, items=self.items)
        for listener in list(self._listeners):
            try:
                listener(change)
            except Exception:
                _logger.warning("Cart listener failed source=%s", source, exc_info=True)

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def add(
        self,
        product: Product,
        quantity: int,
        *,
        color: str | None = None,
        size: str | None = None,
        override_unit_price: float | None = None,
    ) -> CartResult:
        """Add *quantity* of a product variant, merging into an existing line.

        The quantity is clamped into the product's allowed range; a merged
        line is re-clamped after summing.  An unavailable product, a
        non-positive request or a negative or non-finite price override leaves
        the cart untouched.
        """
        key = VariantKey(product.id, color, size)
        if quantity <= 0:
            return CartResult(CartOutcome.NOOP, key, requested=quantity)
        if override_unit_price is not None and not (math.isfinite(override_unit_price) and override_unit_price >= 0):
            _logger.debug("Ignoring add with invalid unit price override key=%s override=%r", key, override_unit_price)
            return CartResult(CartOutcome.NOOP, key, requested=quantity)

        limits = quantity_limits(product, self._ceiling)
        if not product.is_available or not limits.is_satisfiable:
            _logger.debug("Variant unavailable key=%s limits=%s", key, limits)
            return CartResult(CartOutcome.UNAVAILABLE, key, requested=quantity)

        existing = self._lines.get(key)
        wanted = quantity if existing is None else existing.quantity + quantity
        clamped = limits.clamp(wanted)

        if override_unit_price is not None:
            unit = override_unit_price
        else:
            unit = best_unit_price(clamped, product.base_price, product.price_breaks)

        # Assigning an existing key keeps its display position.
        self._lines[key] = CartLine.from_product(
            product,
            quantity=clamped,
            unit_price=unit,
            color=key.color,
            size=key.size,
            unit_price_override=override_unit_price,
        )
        outcome = CartOutcome.ADDED if existing is None else CartOutcome.MERGED

        self._notify(ChangeSource.LOCAL)
        return CartResult(outcome, key, quantity=clamped, requested=quantity, adjusted=clamped != wanted)

    def update(self, key: VariantKey, quantity: int) -> CartResult:
        """Set a line's quantity to an absolute value.

        The value is clamped to ``[0, effective max]``; 0 removes the line.
        A positive value below the line's minimum is raised to it.
        """
        line = self._lines.get(key)
        if line is None:
            return CartResult(CartOutcome.NOOP, key, requested=quantity)

        limits = quantity_limits(line, self._ceiling)
        clamped = max(0, min(limits.maximum, quantity))
        if clamped > 0:
            clamped = max(clamped, limits.minimum)
        if clamped <= 0 or not limits.is_satisfiable:
            del self._lines[key]
            self._notify(ChangeSource.LOCAL)
            return CartResult(CartOutcome.REMOVED, key, requested=quantity, adjusted=quantity != 0)

        updated = _price_line(line, clamped)
        adjusted = clamped != quantity
        if updated == line:
            return CartResult(CartOutcome.NOOP, key, quantity=clamped, requested=quantity, adjusted=adjusted)

        self._lines[key] = updated
        self._notify(ChangeSource.LOCAL)
        return CartResult(CartOutcome.UPDATED, key, quantity=clamped, requested=quantity, adjusted=adjusted)

    def remove(self, key: VariantKey) -> CartResult:
        if self._lines.pop(key, None) is None:
            return CartResult(CartOutcome.NOOP, key)
        self._notify(ChangeSource.LOCAL)
        return CartResult(CartOutcome.REMOVED, key)

    def clear(self) -> CartResult:
        self._lines.clear()
        self._notify(ChangeSource.LOCAL)
        return CartResult(CartOutcome.CLEARED)

    def replace(self, lines: Iterable[CartLine], *, source: ChangeSource) -> None:
        """Swap the whole state for *lines* (first line wins per key)."""
        fresh: dict[VariantKey, CartLine] = {}
        for line in lines:
            fresh.setdefault(line.key, line)
        self._lines = fresh
        self._notify(source)
