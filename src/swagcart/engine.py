"""Cart engine facade: one store, its persistence and its cross-tab sync."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Any

from swagcart._mqtt import MqttStorageChannel
from swagcart.config import CartConfig
from swagcart.exceptions import CartError, CartStorageError
from swagcart.models.cart import CartLine, VariantKey
from swagcart.models.product import Product
from swagcart.persistence import PersistenceAdapter
from swagcart.pricing import PriceQuote, quote
from swagcart.storage import BroadcastStorage, FileStorage, MemoryStorage, SharedMemoryStorage, StorageBackend
from swagcart.store import CartChange, CartResult, CartStore, ChangeSource
from swagcart.sync import CrossTabSync

_logger = logging.getLogger(__name__)


OwnedStorage = MemoryStorage | FileStorage | BroadcastStorage


def build_storage(config: CartConfig) -> tuple[OwnedStorage, MqttStorageChannel | None]:
    """Pick the storage backend described by *config*.

    Returns the backend and, when MQTT announcements are enabled, the
    channel that still has to be started on an event loop.
    """
    inner: MemoryStorage | FileStorage
    if config.storage_dir:
        inner = FileStorage(config.storage_dir)
    else:
        inner = SharedMemoryStorage().tab()
    if not config.mqtt_enabled:
        return inner, None
    channel = MqttStorageChannel.from_config(config)
    return BroadcastStorage(inner, channel), channel


class CartEngine:
    """Cart state engine for one tab.

    Usage::

        async with CartEngine(config, storage=storage) as cart:
            cart.add(product, 5, color="navy")
            print(cart.count, cart.subtotal)

    The snapshot is loaded on start, every local mutation schedules a
    debounced save, and writes from other tabs sharing *storage* are
    reconciled automatically.  Closing the engine cancels any pending
    write.
    """

    def __init__(
        self,
        config: CartConfig | None = None,
        *,
        storage: StorageBackend | None = None,
        on_change: Callable[[CartChange], None] | None = None,
        on_storage_error: Callable[[CartStorageError], None] | None = None,
        on_reconcile: Callable[[tuple[CartLine, ...]], None] | None = None,
    ) -> None:
        self._config = config or CartConfig()
        self._channel: MqttStorageChannel | None = None
        # Backends built here are released on close; caller-supplied ones are not.
        self._owned_storage: OwnedStorage | None = None
        if storage is None:
            self._owned_storage, self._channel = build_storage(self._config)
            storage = self._owned_storage
        self._storage = storage
        self._store = CartStore(quantity_ceiling=self._config.quantity_ceiling)
        self._adapter = PersistenceAdapter(
            storage,
            key=self._config.storage_key,
            debounce=self._config.save_debounce,
            quantity_ceiling=self._config.quantity_ceiling,
            on_error=on_storage_error,
        )
        self._sync = CrossTabSync(storage, self._adapter, self._store, on_reconcile=on_reconcile)
        self._on_change = on_change
        self._unsubscribers: list[Callable[[], None]] = []
        self._started = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> CartEngine:
        loop = asyncio.get_running_loop()
        if self._channel is not None:
            try:
                await loop.run_in_executor(None, self._channel.start, loop)
            except Exception:
                # Local cart keeps working; other processes just won't hear about writes.
                _logger.warning("MQTT storage channel startup failed", exc_info=True)
        self.start()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        self.close()
        channel = self._channel
        if channel is not None and channel.is_running:
            await asyncio.get_running_loop().run_in_executor(None, channel.stop)

    def start(self) -> None:
        """Load the stored snapshot and begin persisting and syncing."""
        if self._started:
            return
        self._unsubscribers.append(self._store.subscribe(self._on_store_change))
        if self._on_change is not None:
            self._unsubscribers.append(self._store.subscribe(self._on_change))
        self._store.replace(self._adapter.load(), source=ChangeSource.LOAD)
        self._sync.start()
        self._started = True
        _logger.debug("Cart engine started key=%s lines=%d", self._adapter.key, len(self._store))

    def close(self) -> None:
        """Stop syncing and drop any pending write.

        A backend the engine built from its config is released as well.
        """
        if not self._started:
            return
        self._started = False
        self._sync.stop()
        self._adapter.close()
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()
        if self._owned_storage is not None:
            self._owned_storage.close()

    @property
    def is_started(self) -> bool:
        return self._started

    def _require_started(self) -> CartStore:
        if not self._started:
            raise CartError("Engine not started. Use 'async with CartEngine(...) as cart:' or call start()")
        return self._store

    def _on_store_change(self, change: CartChange) -> None:
        # Loaded and reconciled state already matches storage.
        if change.source == ChangeSource.LOCAL:
            self._adapter.save(change.items)

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
        return self._require_started().add(
            product,
            quantity,
            color=color,
            size=size,
            override_unit_price=override_unit_price,
        )

    def update(self, key: VariantKey, quantity: int) -> CartResult:
        return self._require_started().update(key, quantity)

    def remove(self, key: VariantKey) -> CartResult:
        return self._require_started().remove(key)

    def clear(self) -> CartResult:
        return self._require_started().clear()

    def flush(self) -> bool:
        """Write any pending snapshot immediately."""
        return self._adapter.flush()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @property
    def store(self) -> CartStore:
        return self._store

    @property
    def items(self) -> tuple[CartLine, ...]:
        return self._store.items

    @property
    def count(self) -> int:
        return self._store.count

    @property
    def subtotal(self) -> float:
        return self._store.subtotal

    @property
    def save_pending(self) -> bool:
        return self._adapter.pending

    @staticmethod
    def quote(product: Product, quantity: int) -> PriceQuote:
        return quote(product, quantity)
