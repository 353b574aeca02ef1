"""Data models for products, cart lines and the persisted envelope."""

from swagcart.models._base import CartBaseModel
from swagcart.models.cart import CartLine, PersistedEnvelope, VariantKey
from swagcart.models.product import PriceBreak, Product, ProductStatus

__all__ = [
    "CartBaseModel",
    "CartLine",
    "PersistedEnvelope",
    "PriceBreak",
    "Product",
    "ProductStatus",
    "VariantKey",
]
