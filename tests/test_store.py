"""Tests for the authoritative cart store."""

from __future__ import annotations

import pytest

from swagcart.models.cart import VariantKey
from swagcart.models.product import PriceBreak, Product, ProductStatus
from swagcart.pricing import best_unit_price
from swagcart.store import CartChange, CartOutcome, CartStore, ChangeSource


def _product(**overrides: object) -> Product:
    values: dict[str, object] = {
        "id": 1,
        "name": "Mug",
        "sku": "MUG-1",
        "base_price": 1000,
        "stock": 50,
        "price_breaks": (PriceBreak(min_qty=5, price=950), PriceBreak(min_qty=8, price=920)),
    }
    values.update(overrides)
    return Product(**values)  # type: ignore[arg-type]


def _assert_invariants(store: CartStore) -> None:
    keys = [line.key for line in store.items]
    assert len(keys) == len(set(keys))
    for line in store.items:
        assert line.quantity >= max(1, line.min_quantity or 1)
        if line.stock is not None:
            assert line.quantity <= line.stock
        if line.unit_price_override is None:
            assert line.unit_price == best_unit_price(line.quantity, line.base_price, line.price_breaks)
        assert line.total_price == line.unit_price * line.quantity
    assert store.count == sum(line.quantity for line in store.items)
    assert store.subtotal == pytest.approx(sum(line.unit_price * line.quantity for line in store.items))


class TestAdd:
    def test_same_variant_merges_and_reprices(self) -> None:
        store = CartStore()
        product = _product()

        first = store.add(product, 5)
        second = store.add(product, 3)

        assert first.outcome == CartOutcome.ADDED
        assert second.outcome == CartOutcome.MERGED
        assert len(store) == 1
        line = store.items[0]
        assert line.quantity == 8
        assert line.unit_price == best_unit_price(8, 1000, product.price_breaks) == 920
        _assert_invariants(store)

    def test_different_variants_are_separate_lines(self) -> None:
        store = CartStore()
        product = _product()
        store.add(product, 2, color="navy", size="M")
        store.add(product, 2, color="navy", size="L")
        store.add(product, 2, color="red", size="M")
        store.add(product, 2)

        assert len(store) == 4
        assert store.count == 8
        _assert_invariants(store)

    def test_quantity_clamped_to_stock(self) -> None:
        store = CartStore()
        result = store.add(_product(stock=50), 60)

        assert result.adjusted
        assert result.quantity == 50
        assert store.items[0].quantity == 50

    def test_merge_is_reclamped(self) -> None:
        store = CartStore()
        product = _product(stock=50)
        store.add(product, 45)
        result = store.add(product, 10)

        assert result.outcome == CartOutcome.MERGED
        assert result.adjusted
        assert store.items[0].quantity == 50

    def test_quantity_raised_to_minimum(self) -> None:
        store = CartStore()
        result = store.add(_product(min_quantity=10), 2)

        assert result.adjusted
        assert store.items[0].quantity == 10

    def test_ceiling_applies(self) -> None:
        store = CartStore(quantity_ceiling=20)
        store.add(_product(stock=None), 500)
        assert store.items[0].quantity == 20

    @pytest.mark.parametrize("quantity", [0, -3])
    def test_non_positive_request_is_noop(self, quantity: int) -> None:
        store = CartStore()
        result = store.add(_product(), quantity)
        assert result.outcome == CartOutcome.NOOP
        assert len(store) == 0

    def test_out_of_stock_is_unavailable(self) -> None:
        store = CartStore()
        result = store.add(_product(stock=0), 1)
        assert result.outcome == CartOutcome.UNAVAILABLE
        assert not result.changed
        assert len(store) == 0

    def test_inactive_product_is_unavailable(self) -> None:
        store = CartStore()
        assert store.add(_product(status=ProductStatus.INACTIVE), 1).outcome == CartOutcome.UNAVAILABLE

    def test_minimum_above_stock_is_unavailable(self) -> None:
        store = CartStore()
        assert store.add(_product(stock=3, min_quantity=5), 5).outcome == CartOutcome.UNAVAILABLE

    def test_override_price_used_for_new_and_merged_lines(self) -> None:
        store = CartStore()
        product = _product()
        store.add(product, 2, override_unit_price=500)
        assert store.items[0].unit_price == 500

        store.add(product, 10, override_unit_price=500)
        line = store.items[0]
        assert line.quantity == 12
        assert line.unit_price == 500
        assert line.total_price == 6000

    @pytest.mark.parametrize("override", [-5.0, float("nan"), float("inf")])
    def test_invalid_override_is_noop(self, override: float) -> None:
        store = CartStore()
        product = _product()
        store.add(product, 2)
        changes: list[CartChange] = []
        store.subscribe(changes.append)

        result = store.add(product, 3, override_unit_price=override)

        assert result.outcome == CartOutcome.NOOP
        assert not result.changed
        assert changes == []
        assert store.items[0].quantity == 2
        _assert_invariants(store)

    def test_merge_without_override_reprices_from_table(self) -> None:
        store = CartStore()
        product = _product()
        store.add(product, 2, override_unit_price=500)
        store.add(product, 1)

        line = store.items[0]
        assert line.unit_price_override is None
        assert line.unit_price == 1000

    def test_merge_keeps_display_order(self) -> None:
        store = CartStore()
        mug = _product()
        cap = _product(id=2, sku="CAP")
        store.add(mug, 1)
        store.add(cap, 1)
        store.add(mug, 1)

        assert [line.id for line in store.items] == [1, 2]


class TestUpdate:
    def test_sets_absolute_quantity(self) -> None:
        store = CartStore()
        product = _product()
        store.add(product, 5)
        key = VariantKey(1)

        result = store.update(key, 2)

        assert result.outcome == CartOutcome.UPDATED
        line = store.get(key)
        assert line is not None
        assert line.quantity == 2
        assert line.unit_price == 1000
        _assert_invariants(store)

    def test_zero_removes_then_remove_is_noop(self) -> None:
        store = CartStore()
        store.add(_product(), 5)
        key = VariantKey(1)

        assert store.update(key, 0).outcome == CartOutcome.REMOVED
        assert key not in store
        assert store.remove(key).outcome == CartOutcome.NOOP

    def test_negative_removes_as_adjusted(self) -> None:
        store = CartStore()
        store.add(_product(), 5)
        result = store.update(VariantKey(1), -4)
        assert result.outcome == CartOutcome.REMOVED
        assert result.adjusted
        assert len(store) == 0

    def test_clamped_to_line_stock(self) -> None:
        store = CartStore()
        store.add(_product(stock=50), 5)
        result = store.update(VariantKey(1), 80)

        assert result.adjusted
        assert result.quantity == 50

    def test_positive_value_below_minimum_is_raised(self) -> None:
        store = CartStore()
        store.add(_product(min_quantity=10), 20)
        result = store.update(VariantKey(1), 3)

        assert result.adjusted
        assert store.items[0].quantity == 10
        _assert_invariants(store)

    def test_unknown_key_is_noop(self) -> None:
        store = CartStore()
        store.add(_product(), 5)
        assert store.update(VariantKey(1, "red"), 3).outcome == CartOutcome.NOOP
        assert store.count == 5

    def test_same_quantity_is_noop(self) -> None:
        store = CartStore()
        store.add(_product(), 5)
        assert store.update(VariantKey(1), 5).outcome == CartOutcome.NOOP

    def test_override_survives_update(self) -> None:
        store = CartStore()
        store.add(_product(), 2, override_unit_price=300)
        store.update(VariantKey(1), 9)

        line = store.items[0]
        assert line.unit_price == 300
        assert line.total_price == 2700


class TestRemoveAndClear:
    def test_remove_only_matching_variant(self) -> None:
        store = CartStore()
        product = _product()
        store.add(product, 1, color="navy")
        store.add(product, 1, color="red")

        assert store.remove(VariantKey(1, "navy")).outcome == CartOutcome.REMOVED
        assert [line.selected_color for line in store.items] == ["red"]

    def test_clear_empties_unconditionally(self) -> None:
        store = CartStore()
        store.add(_product(), 3)
        store.add(_product(id=2), 4)

        assert store.clear().outcome == CartOutcome.CLEARED
        assert len(store) == 0
        assert store.count == 0
        assert store.subtotal == 0
        assert store.clear().outcome == CartOutcome.CLEARED


class TestDerivedTotals:
    def test_count_and_subtotal_follow_lines(self) -> None:
        store = CartStore()
        store.add(_product(), 8)
        store.add(_product(id=2, base_price=300, price_breaks=()), 3)

        assert store.count == 11
        assert store.subtotal == 8 * 920 + 3 * 300

        store.update(VariantKey(2), 1)
        assert store.count == 9
        assert store.subtotal == 8 * 920 + 300


class TestListeners:
    def test_local_mutations_notify(self) -> None:
        store = CartStore()
        changes: list[CartChange] = []
        store.subscribe(changes.append)

        store.add(_product(), 2)
        store.update(VariantKey(1), 3)
        store.remove(VariantKey(1))
        store.clear()

        assert [c.source for c in changes] == [ChangeSource.LOCAL] * 4
        assert changes[0].items[0].quantity == 2

    def test_noops_do_not_notify(self) -> None:
        store = CartStore()
        changes: list[CartChange] = []
        store.subscribe(changes.append)

        store.add(_product(stock=0), 1)
        store.update(VariantKey(1), 3)
        store.remove(VariantKey(1))

        assert changes == []

    def test_replace_reports_its_source(self) -> None:
        store = CartStore()
        other = CartStore()
        other.add(_product(), 4)
        changes: list[CartChange] = []
        store.subscribe(changes.append)

        store.replace(other.items, source=ChangeSource.SYNC)

        assert store.items == other.items
        assert changes[-1].source == ChangeSource.SYNC

    def test_failing_listener_does_not_break_mutation(self) -> None:
        store = CartStore()

        def _boom(_change: CartChange) -> None:
            raise RuntimeError("listener failure")

        store.subscribe(_boom)
        result = store.add(_product(), 2)

        assert result.outcome == CartOutcome.ADDED
        assert store.count == 2

    def test_unsubscribe(self) -> None:
        store = CartStore()
        changes: list[CartChange] = []
        unsubscribe = store.subscribe(changes.append)
        unsubscribe()
        store.add(_product(), 1)
        assert changes == []
