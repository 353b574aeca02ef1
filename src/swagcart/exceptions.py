"""Custom exception hierarchy for swagcart.

Only programming errors (misconfiguration, using an engine before it is
started) escape the public cart operations.  Data and storage anomalies are
recovered inside the engine by clamping, dropping records or no-ops.
"""

from __future__ import annotations


class CartError(Exception):
    """Base exception for all swagcart errors."""


class CartConfigError(CartError):
    """Invalid or missing configuration."""


class CartValidationError(CartError):
    """A persisted or incoming record failed structural validation.

    Recovered locally: the offending record is dropped during load.
    """


class PriceTableError(CartValidationError):
    """A product's price-break table is not monotonically non-increasing."""

    def __init__(self, message: str, *, product_id: int | None = None) -> None:
        self.product_id = product_id
        super().__init__(message)


class CartCapacityError(CartError):
    """Requested quantity outside the allowed bounds.

    The store never raises this; it clamps and reports the adjustment in
    :class:`~swagcart.store.CartResult`.  It exists for collaborators that
    prefer to surface the condition explicitly.
    """

    def __init__(self, message: str, *, requested: int, allowed: int) -> None:
        self.requested = requested
        self.allowed = allowed
        super().__init__(message)


class CartStorageError(CartError):
    """Read or write failure at the durability layer (e.g. quota exceeded)."""

    def __init__(self, message: str, *, key: str = "") -> None:
        self.key = key
        super().__init__(message)


class CartTransportError(CartError):
    """HTTP-level failure while fetching catalog data."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        url: str = "",
    ) -> None:
        self.status_code = status_code
        self.url = url
        super().__init__(message)
