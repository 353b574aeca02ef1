"""Catalog product and price-break models."""

from __future__ import annotations

from enum import StrEnum
from typing import ClassVar

from pydantic import Field

from swagcart.models._base import CartBaseModel


class ProductStatus(StrEnum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    PENDING = "pending"

    @classmethod
    def _missing_(cls, value: object) -> ProductStatus:
        # Unknown catalog statuses are never sellable.
        return cls.INACTIVE


class PriceBreak(CartBaseModel):
    """A quantity threshold at which a (usually lower) unit price applies."""

    _KEY_ALIASES: ClassVar[dict[str, str]] = {"discountPercent": "discount"}

    min_qty: int = Field(ge=0)
    """Minimum line quantity for this tier to be eligible."""
    price: float = Field(ge=0)
    """Unit price when the tier applies."""
    discount_percent: float | None = Field(default=None, alias="discount")
    """Catalog-advertised discount, informational only."""


class Product(CartBaseModel):
    """An immutable catalog record supplied by the catalog provider."""

    id: int
    name: str = ""
    sku: str = ""
    base_price: float = Field(ge=0)
    """Unit price when no price break is eligible."""
    stock: int | None = Field(default=None, ge=0)
    """Units available; ``None`` when the catalog does not track stock."""
    min_quantity: int | None = None
    max_quantity: int | None = None
    price_breaks: tuple[PriceBreak, ...] = ()
    status: ProductStatus = ProductStatus.ACTIVE
    category: str | None = None
    supplier: str | None = None
    colors: tuple[str, ...] = ()
    sizes: tuple[str, ...] = ()

    @property
    def is_available(self) -> bool:
        """Whether the product can be added to a cart at all."""
        return self.status == ProductStatus.ACTIVE and (self.stock is None or self.stock > 0)
