"""Validated snapshot loading and debounced snapshot saving.

Two on-storage shapes are readable:

* version 1 (legacy): a bare JSON array of line records;
* version 2: ``{"v": 2, "items": [...]}`` (``"version"`` is accepted too).

Only version 2 is written.  Legacy data is migrated in memory on read and
rewritten by the next natural save.  Every record goes through the same
validation whether it comes from startup or from another tab: malformed
records are dropped, quantities are clamped, prices are re-derived.
"""

from __future__ import annotations

import asyncio
import json
import logging
import math
from collections.abc import Callable, Iterable
from typing import Any

from pydantic import ValidationError

from swagcart._constants import (
    FORMAT_VERSION,
    HARD_MAX_QUANTITY,
    LEGACY_FORMAT_VERSION,
    SAVE_DEBOUNCE_SECONDS,
    STORAGE_KEY,
)
from swagcart._logfmt import summarize_for_log
from swagcart.exceptions import CartStorageError, CartValidationError
from swagcart.models.cart import CartLine, PersistedEnvelope, VariantKey
from swagcart.pricing import best_unit_price, quantity_limits
from swagcart.storage import StorageBackend

_logger = logging.getLogger(__name__)

StorageErrorCallback = Callable[[CartStorageError], None]

_REQUIRED_NUMERIC_FIELDS = ("id", "basePrice", "quantity")


def _is_number(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value)


def extract_records(data: Any) -> tuple[int, list[Any]] | None:
    """Return ``(format_version, records)`` for a decoded payload, or ``None``."""
    if isinstance(data, list):
        return LEGACY_FORMAT_VERSION, data
    if not isinstance(data, dict):
        return None
    version = data.get("v", data.get("version"))
    items = data.get("items")
    if not _is_number(version) or not isinstance(items, list):
        return None
    return int(version), items


def restore_line(record: Any, *, quantity_ceiling: int = HARD_MAX_QUANTITY) -> CartLine:
    """Validate one stored record and rebuild a consistent :class:`CartLine`.

    ``unitPrice`` and ``totalPrice`` in the record are never trusted: the
    unit price is re-derived from the record's price table (or its
    explicit override) for the clamped quantity.

    Raises
    ------
    CartValidationError
        The record is not line-shaped or cannot be made consistent.
    """
    if not isinstance(record, dict):
        raise CartValidationError(f"record is not an object: {type(record).__name__}")
    for field in _REQUIRED_NUMERIC_FIELDS:
        if not _is_number(record.get(field)):
            raise CartValidationError(f"record field {field!r} is not numeric")

    quantity = record["quantity"]
    if quantity <= 0 or (isinstance(quantity, float) and not quantity.is_integer()):
        raise CartValidationError(f"record quantity is not a positive integer: {quantity!r}")

    candidate = {k: v for k, v in record.items() if k not in ("unitPrice", "totalPrice")}
    candidate["quantity"] = int(quantity)
    candidate["unitPrice"] = 0.0
    try:
        line = CartLine.model_validate(candidate)
    except ValidationError as exc:
        raise CartValidationError(f"record failed validation: {exc.error_count()} error(s)") from exc

    limits = quantity_limits(line, quantity_ceiling)
    if not limits.is_satisfiable:
        raise CartValidationError(f"record for product {line.id} has no valid quantity range")
    clamped = limits.clamp(line.quantity)

    if line.unit_price_override is not None:
        unit = line.unit_price_override
    else:
        unit = best_unit_price(clamped, line.base_price, line.price_breaks)

    stored_unit = record.get("unitPrice")
    if not _is_number(stored_unit) or not math.isclose(stored_unit, unit, rel_tol=1e-9, abs_tol=1e-9):
        _logger.debug("Re-derived unit price for product %s: stored=%r derived=%s", line.id, stored_unit, unit)

    return line.model_copy(update={"quantity": clamped, "unit_price": unit})


class PersistenceAdapter:
    """Load and save cart snapshots under a single storage key.

    ``save`` is debounced on the running event loop: each call replaces the
    pending snapshot and restarts the delay, so a burst of mutations costs
    one trailing write.  Storage failures are logged and reported to
    ``on_error``; they never propagate.
    """

    def __init__(
        self,
        storage: StorageBackend,
        *,
        key: str = STORAGE_KEY,
        debounce: float = SAVE_DEBOUNCE_SECONDS,
        quantity_ceiling: int = HARD_MAX_QUANTITY,
        on_error: StorageErrorCallback | None = None,
    ) -> None:
        self._storage = storage
        self._key = key
        self._debounce = debounce
        self._ceiling = quantity_ceiling
        self._on_error = on_error
        self._pending: str | None = None
        self._handle: asyncio.TimerHandle | None = None

    @property
    def key(self) -> str:
        return self._key

    @property
    def pending(self) -> bool:
        """Whether a snapshot is waiting to be written."""
        return self._pending is not None

    # ------------------------------------------------------------------
    # Load
    # ------------------------------------------------------------------

    def read_raw(self) -> str | None:
        try:
            return self._storage.get_item(self._key)
        except (CartStorageError, OSError) as exc:
            self._report(exc)
            return None

    def load(self) -> list[CartLine]:
        """Read and validate the stored snapshot; ``[]`` when absent or unusable."""
        return self.parse(self.read_raw())

    def parse(self, raw: str | None) -> list[CartLine]:
        """Validate a raw stored value without touching storage."""
        if raw is None or not raw.strip():
            return []
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            _logger.debug("Stored cart is not JSON key=%s raw=%s", self._key, summarize_for_log(raw))
            return []

        extracted = extract_records(data)
        if extracted is None:
            _logger.debug("Stored cart has an unknown shape key=%s raw=%s", self._key, summarize_for_log(data))
            return []
        version, records = extracted
        if version > FORMAT_VERSION:
            _logger.debug("Reading cart format v%s with v%s reader", version, FORMAT_VERSION)

        lines: list[CartLine] = []
        seen: set[VariantKey] = set()
        for index, record in enumerate(records):
            try:
                line = restore_line(record, quantity_ceiling=self._ceiling)
            except CartValidationError as exc:
                _logger.debug("Dropping stored cart record #%d: %s record=%s", index, exc, summarize_for_log(record))
                continue
            if line.key in seen:
                _logger.debug("Dropping duplicate stored cart record #%d key=%s", index, line.key)
                continue
            seen.add(line.key)
            lines.append(line)
        return lines

    # ------------------------------------------------------------------
    # Save
    # ------------------------------------------------------------------

    @staticmethod
    def serialize(lines: Iterable[CartLine]) -> str:
        envelope = PersistedEnvelope(v=FORMAT_VERSION, items=list(lines))
        return envelope.model_dump_json(by_alias=True, exclude_none=True)

    def save(self, lines: Iterable[CartLine]) -> None:
        """Schedule a debounced write of *lines*.

        Without a running event loop the snapshot is written immediately.
        """
        self._pending = self.serialize(lines)
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self.flush()
            return
        if self._handle is not None:
            self._handle.cancel()
        self._handle = loop.call_later(self._debounce, self._on_timer)

    def flush(self) -> bool:
        """Write the pending snapshot now; ``True`` when a write succeeded."""
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        payload = self._pending
        self._pending = None
        if payload is None:
            return False
        return self._write(payload)

    def cancel(self) -> None:
        """Drop the pending snapshot without writing it."""
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        if self._pending is not None:
            _logger.debug("Cancelled pending cart write key=%s", self._key)
        self._pending = None

    def close(self) -> None:
        self.cancel()

    def _on_timer(self) -> None:
        self._handle = None
        self.flush()

    def _write(self, payload: str) -> bool:
        try:
            self._storage.set_item(self._key, payload)
        except (CartStorageError, OSError) as exc:
            self._report(exc)
            return False
        _logger.debug("Cart snapshot written key=%s bytes=%d", self._key, len(payload))
        return True

    def _report(self, exc: Exception) -> None:
        error = exc if isinstance(exc, CartStorageError) else CartStorageError(str(exc), key=self._key)
        _logger.warning("Cart storage failure key=%s: %s", self._key, error)
        if self._on_error is None:
            return
        try:
            self._on_error(error)
        except Exception:
            _logger.debug("Storage error callback failed", exc_info=True)
