"""Tests for cross-tab reconciliation."""

from __future__ import annotations

import asyncio
from collections.abc import Callable

import pytest

from swagcart.config import CartConfig
from swagcart.engine import CartEngine
from swagcart.models.cart import CartLine, VariantKey
from swagcart.models.product import PriceBreak, Product
from swagcart.persistence import PersistenceAdapter
from swagcart.storage import MemoryStorage, SharedMemoryStorage, StorageEvent, StorageListener
from swagcart.store import CartChange, CartStore, ChangeSource
from swagcart.sync import CrossTabSync

KEY = "swag_cart_v1"

MUG = Product(
    id=1,
    name="Mug",
    sku="MUG-1",
    base_price=1000,
    stock=100,
    price_breaks=(PriceBreak(min_qty=5, price=950), PriceBreak(min_qty=10, price=900)),
)
CAP = Product(id=2, name="Cap", sku="CAP-1", base_price=500, stock=20)


class _CountingStorage:
    """Wrap a tab view and count the writes made through it."""

    def __init__(self, inner: MemoryStorage) -> None:
        self._inner = inner
        self.writes = 0

    def get_item(self, key: str) -> str | None:
        return self._inner.get_item(key)

    def set_item(self, key: str, value: str) -> None:
        self.writes += 1
        self._inner.set_item(key, value)

    def remove_item(self, key: str) -> None:
        self.writes += 1
        self._inner.remove_item(key)

    def subscribe(self, listener: StorageListener) -> Callable[[], None]:
        return self._inner.subscribe(listener)


async def _drain() -> None:
    for _ in range(3):
        await asyncio.sleep(0)


def _config() -> CartConfig:
    return CartConfig(save_debounce=0.01)


# ------------------------------------------------------------------
# CrossTabSync in isolation
# ------------------------------------------------------------------


class TestHandleEvent:
    def _setup(self) -> tuple[MemoryStorage, CrossTabSync, CartStore, PersistenceAdapter]:
        area = SharedMemoryStorage()
        view = area.tab()
        adapter = PersistenceAdapter(view, key=KEY)
        store = CartStore()
        sync = CrossTabSync(view, adapter, store)
        sync.start()
        return view, sync, store, adapter

    def test_other_keys_are_ignored(self) -> None:
        _, sync, store, _ = self._setup()
        assert not sync.handle_event(StorageEvent(key="other", new_value="[]", origin="x"))
        assert len(store) == 0

    def test_identical_state_is_ignored(self) -> None:
        _, sync, store, _ = self._setup()
        changes: list[CartChange] = []
        store.subscribe(changes.append)

        assert not sync.handle_event(StorageEvent(key=KEY, new_value='{"v":2,"items":[]}', origin="x"))
        assert changes == []

    def test_external_write_replaces_local_state(self) -> None:
        view, sync, store, _ = self._setup()
        other_store = CartStore()
        other_store.add(MUG, 6, color="navy")
        payload = PersistenceAdapter.serialize(other_store.items)
        # Written through the same view, so only the explicit event below is delivered.
        view.set_item(KEY, payload)

        changes: list[CartChange] = []
        store.subscribe(changes.append)
        assert sync.handle_event(StorageEvent(key=KEY, new_value=payload, origin="x"))

        assert store.items == other_store.items
        assert [c.source for c in changes] == [ChangeSource.SYNC]

    def test_storage_cleared_empties_cart(self) -> None:
        _, sync, store, _ = self._setup()
        store.add(CAP, 2)
        assert sync.handle_event(StorageEvent(key=None, new_value=None, origin="x"))
        assert len(store) == 0

    def test_stopped_sync_ignores_events(self) -> None:
        _, sync, store, _ = self._setup()
        store.add(CAP, 2)
        sync.stop()
        assert not sync.is_running
        assert not sync.handle_event(StorageEvent(key=None, new_value=None, origin="x"))
        assert len(store) == 1

    def test_reconcile_callback_receives_new_items(self) -> None:
        area = SharedMemoryStorage()
        view = area.tab()
        adapter = PersistenceAdapter(view, key=KEY)
        store = CartStore()
        seen: list[tuple[CartLine, ...]] = []
        sync = CrossTabSync(view, adapter, store, on_reconcile=seen.append)
        sync.start()

        other = CartStore()
        other.add(CAP, 3)
        view.set_item(KEY, PersistenceAdapter.serialize(other.items))
        sync.handle_event(StorageEvent(key=KEY, new_value=view.get_item(KEY), origin="x"))

        assert seen == [other.items]

    def test_failing_reconcile_callback_is_contained(self) -> None:
        area = SharedMemoryStorage()
        view = area.tab()
        adapter = PersistenceAdapter(view, key=KEY)
        store = CartStore()

        def _boom(_items: tuple[CartLine, ...]) -> None:
            raise RuntimeError("ui failure")

        sync = CrossTabSync(view, adapter, store, on_reconcile=_boom)
        sync.start()
        store.add(CAP, 1)
        assert sync.handle_event(StorageEvent(key=None, new_value=None, origin="x"))
        assert len(store) == 0


# ------------------------------------------------------------------
# Two engines sharing one storage area
# ------------------------------------------------------------------


class TestTwoTabs:
    @pytest.mark.asyncio
    async def test_second_tab_converges_without_writing(self) -> None:
        area = SharedMemoryStorage()
        storage_b = _CountingStorage(area.tab())

        async with CartEngine(_config(), storage=area.tab()) as tab_a, CartEngine(
            _config(), storage=storage_b
        ) as tab_b:
            tab_a.add(MUG, 5, color="navy", size="M")
            tab_a.flush()
            await _drain()

            assert tab_b.count == 5
            assert tab_b.subtotal == 4750
            assert tab_b.items == tab_a.items
            assert not tab_b.save_pending

            await asyncio.sleep(0.05)
            assert storage_b.writes == 0

    @pytest.mark.asyncio
    async def test_reconcile_cancels_pending_local_write(self) -> None:
        area = SharedMemoryStorage()
        async with CartEngine(CartConfig(save_debounce=10), storage=area.tab()) as tab_a, CartEngine(
            CartConfig(save_debounce=10), storage=area.tab()
        ) as tab_b:
            tab_b.add(CAP, 2)
            assert tab_b.save_pending

            tab_a.add(MUG, 10)
            tab_a.flush()
            await _drain()

            assert not tab_b.save_pending
            assert tab_b.items == tab_a.items
            assert VariantKey(2) not in tab_b.store

    @pytest.mark.asyncio
    async def test_clear_in_one_tab_empties_the_other(self) -> None:
        area = SharedMemoryStorage()
        async with CartEngine(_config(), storage=area.tab()) as tab_a, CartEngine(
            _config(), storage=area.tab()
        ) as tab_b:
            tab_a.add(CAP, 4)
            tab_a.flush()
            await _drain()
            assert tab_b.count == 4

            tab_a.clear()
            tab_a.flush()
            await _drain()
            assert tab_b.count == 0

    @pytest.mark.asyncio
    async def test_subsequent_local_edit_in_reconciled_tab_persists(self) -> None:
        area = SharedMemoryStorage()
        async with CartEngine(_config(), storage=area.tab()) as tab_a, CartEngine(
            _config(), storage=area.tab()
        ) as tab_b:
            tab_a.add(MUG, 5)
            tab_a.flush()
            await _drain()

            tab_b.update(VariantKey(1), 12)
            tab_b.flush()
            await _drain()

            assert tab_a.count == 12
            assert tab_a.items[0].unit_price == 900
