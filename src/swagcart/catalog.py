"""Catalog provider: immutable product records for the cart engine."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Iterator, Mapping
from typing import Any

import aiohttp
from pydantic import ValidationError

from swagcart._logfmt import summarize_for_log
from swagcart.config import CartConfig
from swagcart.exceptions import CartConfigError, CartTransportError
from swagcart.models.product import Product
from swagcart.pricing import is_monotonic, validate_price_breaks

_logger = logging.getLogger(__name__)


class ProductCatalog:
    """Read-only id → :class:`Product` lookup.

    Products whose price breaks are not monotonically non-increasing are
    flagged in the log, or rejected with :class:`PriceTableError` when
    *strict_price_tables* is set.  Duplicate ids keep the first record.
    """

    def __init__(self, products: Iterable[Product], *, strict_price_tables: bool = False) -> None:
        by_id: dict[int, Product] = {}
        for product in products:
            if strict_price_tables:
                validate_price_breaks(product.price_breaks, product_id=product.id)
            elif not is_monotonic(product.price_breaks):
                _logger.warning(
                    "Product %s (%s) has a non-monotonic price table; cheapest eligible tier will be charged",
                    product.id,
                    product.sku,
                )
            by_id.setdefault(product.id, product)
        self._products: Mapping[int, Product] = by_id

    def get(self, product_id: int) -> Product | None:
        return self._products.get(product_id)

    def __getitem__(self, product_id: int) -> Product:
        return self._products[product_id]

    def __contains__(self, product_id: object) -> bool:
        return product_id in self._products

    def __iter__(self) -> Iterator[Product]:
        return iter(self._products.values())

    def __len__(self) -> int:
        return len(self._products)


def parse_products(data: Any, *, strict_price_tables: bool = False) -> ProductCatalog:
    """Build a catalog from a decoded JSON listing.

    Accepts a bare array or ``{"products": [...]}``.  Records that fail
    validation are skipped.
    """
    if isinstance(data, dict):
        data = data.get("products")
    if not isinstance(data, list):
        raise CartTransportError("Catalog listing is not an array of products")

    products: list[Product] = []
    for index, record in enumerate(data):
        try:
            product = Product.model_validate(record)
        except ValidationError as exc:
            _logger.debug(
                "Skipping catalog record #%d: %d error(s) record=%s",
                index,
                exc.error_count(),
                summarize_for_log(record),
            )
            continue
        if strict_price_tables and not is_monotonic(product.price_breaks):
            _logger.debug("Skipping catalog record #%d: non-monotonic price table", index)
            continue
        products.append(product)
    return ProductCatalog(products, strict_price_tables=strict_price_tables)


class CatalogClient:
    """Async client fetching the product listing over HTTP.

    Usage::

        async with CatalogClient(config) as client:
            catalog = await client.fetch_products()
    """

    def __init__(self, config: CartConfig, *, session: aiohttp.ClientSession | None = None) -> None:
        self._config = config
        self._external_session = session is not None
        self._http_session = session

    async def __aenter__(self) -> CatalogClient:
        if self._http_session is None:
            self._http_session = aiohttp.ClientSession()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        if not self._external_session and self._http_session is not None:
            await self._http_session.close()
            self._http_session = None

    async def fetch_products(self) -> ProductCatalog:
        """GET the configured catalog URL and parse it.

        Raises
        ------
        CartConfigError
            No ``catalog_url`` is configured.
        CartTransportError
            Network failure, non-200 status or a body that is not a listing.
        """
        url = self._config.catalog_url
        if not url:
            raise CartConfigError("catalog_url is not configured")
        if self._http_session is None:
            raise CartTransportError("Client not initialized. Use 'async with CatalogClient(...) as client:'")

        _logger.debug("GET %s", url)
        try:
            async with self._http_session.get(url, headers={"accept": "application/json"}) as resp:
                text = await resp.text()
                if resp.status != 200:
                    raise CartTransportError(
                        f"HTTP {resp.status} from {url}: {text[:200]}",
                        status_code=resp.status,
                        url=url,
                    )
        except CartTransportError:
            raise
        except aiohttp.ClientError as exc:
            raise CartTransportError(f"Request to {url} failed: {exc}", url=url) from exc

        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            raise CartTransportError(f"Invalid JSON from {url}: {text[:200]}", url=url) from exc

        return parse_products(data, strict_price_tables=self._config.strict_price_tables)
