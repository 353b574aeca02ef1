"""swagcart - Cart and tiered pricing state engine with durable, multi-tab storage."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("swagcart")
except PackageNotFoundError:
    __version__ = "0+local"
from swagcart.catalog import CatalogClient, ProductCatalog
from swagcart.config import CartConfig
from swagcart.engine import CartEngine, build_storage
from swagcart.exceptions import (
    CartCapacityError,
    CartConfigError,
    CartError,
    CartStorageError,
    CartTransportError,
    CartValidationError,
    PriceTableError,
)
from swagcart.models import CartLine, PersistedEnvelope, PriceBreak, Product, ProductStatus, VariantKey
from swagcart.persistence import PersistenceAdapter
from swagcart.pricing import (
    PriceQuote,
    QuantityLimits,
    applicable_break,
    best_unit_price,
    lowest_price_break,
    quantity_limits,
    quote,
)
from swagcart.storage import BroadcastStorage, FileStorage, MemoryStorage, SharedMemoryStorage, StorageEvent
from swagcart.store import CartChange, CartOutcome, CartResult, CartStore, ChangeSource
from swagcart.sync import CrossTabSync

__all__ = [
    "__version__",
    "BroadcastStorage",
    "CartCapacityError",
    "CartChange",
    "CartConfig",
    "CartConfigError",
    "CartEngine",
    "CartError",
    "CartLine",
    "CartOutcome",
    "CartResult",
    "CartStorageError",
    "CartStore",
    "CartTransportError",
    "CartValidationError",
    "CatalogClient",
    "ChangeSource",
    "CrossTabSync",
    "FileStorage",
    "MemoryStorage",
    "PersistedEnvelope",
    "PersistenceAdapter",
    "PriceBreak",
    "PriceQuote",
    "PriceTableError",
    "Product",
    "ProductCatalog",
    "ProductStatus",
    "QuantityLimits",
    "SharedMemoryStorage",
    "StorageEvent",
    "VariantKey",
    "applicable_break",
    "best_unit_price",
    "build_storage",
    "lowest_price_break",
    "quantity_limits",
    "quote",
]
