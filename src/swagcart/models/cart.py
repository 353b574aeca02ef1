"""Cart line, variant identity and persisted envelope models."""

from __future__ import annotations

import functools
from dataclasses import dataclass
from typing import ClassVar

from pydantic import Field, computed_field

from swagcart.models._base import CartBaseModel
from swagcart.models.product import PriceBreak, Product


@functools.total_ordering
@dataclass(frozen=True, slots=True)
class VariantKey:
    """Identity of a cart line: product id plus optional colour and size.

    Blank colour/size values normalise to ``None`` so ``""`` and "not
    selected" are the same variant.  Ordering is by product id, then
    colour, then size, with ``None`` sorting first.
    """

    product_id: int
    color: str | None = None
    size: str | None = None

    def __post_init__(self) -> None:
        if self.color is not None and not self.color.strip():
            object.__setattr__(self, "color", None)
        if self.size is not None and not self.size.strip():
            object.__setattr__(self, "size", None)

    def _sort_tuple(self) -> tuple[int, bool, str, bool, str]:
        return (
            self.product_id,
            self.color is not None,
            self.color or "",
            self.size is not None,
            self.size or "",
        )

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, VariantKey):
            return NotImplemented
        return self._sort_tuple() < other._sort_tuple()

    def __str__(self) -> str:
        parts = [str(self.product_id)]
        if self.color is not None:
            parts.append(f"color={self.color!r}")
        if self.size is not None:
            parts.append(f"size={self.size!r}")
        return "/".join(parts)


class CartLine(CartBaseModel):
    """One selected product variant in the cart.

    Product identity fields are a snapshot taken when the line was added
    (or last merged).  ``total_price`` is always derived from
    ``unit_price`` and ``quantity``; an incoming ``totalPrice`` key is
    ignored on validation.
    """

    id: int
    name: str = ""
    sku: str = ""
    base_price: float = Field(ge=0)
    stock: int | None = Field(default=None, ge=0)
    min_quantity: int | None = None
    max_quantity: int | None = None
    price_breaks: tuple[PriceBreak, ...] = ()
    category: str | None = None
    supplier: str | None = None
    quantity: int = Field(ge=1)
    selected_color: str | None = None
    selected_size: str | None = None
    unit_price: float = Field(ge=0)
    unit_price_override: float | None = Field(default=None, ge=0)
    """Explicit unit price supplied at add-time; wins over the price table."""

    @computed_field(alias="totalPrice")  # type: ignore[prop-decorator]
    @property
    def total_price(self) -> float:
        return self.unit_price * self.quantity

    @property
    def key(self) -> VariantKey:
        return VariantKey(self.id, self.selected_color, self.selected_size)

    @classmethod
    def from_product(
        cls,
        product: Product,
        *,
        quantity: int,
        unit_price: float,
        color: str | None = None,
        size: str | None = None,
        unit_price_override: float | None = None,
    ) -> CartLine:
        """Snapshot *product* into a new line."""
        return cls(
            id=product.id,
            name=product.name,
            sku=product.sku,
            base_price=product.base_price,
            stock=product.stock,
            min_quantity=product.min_quantity,
            max_quantity=product.max_quantity,
            price_breaks=product.price_breaks,
            category=product.category,
            supplier=product.supplier,
            quantity=quantity,
            selected_color=color,
            selected_size=size,
            unit_price=unit_price,
            unit_price_override=unit_price_override,
        )


class PersistedEnvelope(CartBaseModel):
    """Versioned wrapper around persisted cart items."""

    _KEY_ALIASES: ClassVar[dict[str, str]] = {"version": "v"}

    v: int = Field(alias="v")
    items: list[CartLine] = Field(default_factory=list)
