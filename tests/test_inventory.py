"""Tests for the nested stock model and version-checked product writes."""

import pytest

from errors import (
    ColorNotFoundError,
    ConcurrentModificationError,
    InsufficientStockError,
    ProductNotFoundError,
    SizeNotFoundError,
    ValidationError,
)
from inventory import decrease_stock, find_variant, increase_stock, recompute_totals
from schemas import Product, Review

from conftest import make_product_payload


def stock_sum(product):
    return sum(s.stock for c in product.colors for s in c.sizes)


class TestFindVariant:
    def test_finds_exact_variant(self, product):
        assert find_variant(product, "Black", "10").stock == 4

    def test_color_match_is_case_sensitive(self, product):
        with pytest.raises(ColorNotFoundError) as exc:
            find_variant(product, "black", "9")
        assert "Air Max 270" in str(exc.value)

    def test_missing_size(self, product):
        with pytest.raises(SizeNotFoundError) as exc:
            find_variant(product, "White", "10")
        assert str(exc.value) == "Size 10 not available for Air Max 270 in White"


class TestInMemoryMutation:
    def test_decrease(self, product):
        decrease_stock(product, "Black", "9", 3)
        assert find_variant(product, "Black", "9").stock == 2
        assert product.sold_count == 3
        assert product.total_stock == 8

    def test_decrease_whole_stock(self, product):
        decrease_stock(product, "Black", "9", 5)
        assert find_variant(product, "Black", "9").stock == 0

    def test_insufficient_stock_leaves_product_untouched(self, product):
        with pytest.raises(InsufficientStockError) as exc:
            decrease_stock(product, "Black", "9", 6)
        assert exc.value.available == 5
        assert find_variant(product, "Black", "9").stock == 5
        assert product.sold_count == 0

    def test_rejects_non_positive_quantity(self, product):
        with pytest.raises(ValidationError):
            decrease_stock(product, "Black", "9", 0)

    def test_increase_has_no_upper_bound(self, product):
        increase_stock(product, "White", "9", 1000)
        assert find_variant(product, "White", "9").stock == 1002
        assert product.total_stock == stock_sum(product)

    def test_increase_can_restore_sold_count(self, product):
        decrease_stock(product, "Black", "9", 2)
        increase_stock(product, "Black", "9", 2, restore_sold=True)
        assert product.sold_count == 0
        assert find_variant(product, "Black", "9").stock == 5


class TestRecomputeTotals:
    def test_total_stock_ignores_stale_value(self):
        product = Product.model_validate(make_product_payload(total_stock=999))
        recompute_totals(product)
        assert product.total_stock == 11

    def test_rating_aggregates(self):
        product = Product.model_validate(make_product_payload())
        product.reviews = [
            Review(user_id="a", user_name="A", rating=5, comment="Great"),
            Review(user_id="b", user_name="B", rating=4, comment="Good"),
            Review(user_id="c", user_name="C", rating=4, comment="Fine"),
        ]
        recompute_totals(product)
        assert product.average_rating == 4.3
        assert product.total_reviews == 3

    def test_no_reviews(self):
        product = Product.model_validate(make_product_payload(average_rating=4.0, total_reviews=2))
        recompute_totals(product)
        assert product.average_rating == 0
        assert product.total_reviews == 0


class TestInventoryStore:
    def test_insert_computes_total_stock(self, product):
        assert product.total_stock == 11
        assert product.version == 1

    def test_get_unknown_product(self, inventory):
        with pytest.raises(ProductNotFoundError):
            inventory.get("64b7f0000000000000000000")

    def test_malformed_id_is_not_found(self, inventory):
        with pytest.raises(ProductNotFoundError):
            inventory.get("not-an-id")

    def test_decrease_persists(self, inventory, product):
        inventory.decrease_stock(product.id, "Black", "9", 3)
        stored = inventory.get(product.id)
        assert find_variant(stored, "Black", "9").stock == 2
        assert stored.sold_count == 3
        assert stored.total_stock == stock_sum(stored) == 8
        assert stored.version == 2

    def test_failed_decrease_does_not_write(self, inventory, product):
        with pytest.raises(InsufficientStockError):
            inventory.decrease_stock(product.id, "White", "9", 3)
        stored = inventory.get(product.id)
        assert find_variant(stored, "White", "9").stock == 2
        assert stored.version == 1

    def test_stale_save_is_rejected(self, inventory, product):
        first = inventory.get(product.id)
        second = inventory.get(product.id)
        decrease_stock(first, "Black", "9", 1)
        inventory.save(first)
        decrease_stock(second, "Black", "9", 1)
        with pytest.raises(ConcurrentModificationError):
            inventory.save(second)
        assert find_variant(inventory.get(product.id), "Black", "9").stock == 4

    def test_decrease_rechecks_stock_after_conflict(self, inventory, product, monkeypatch):
        original_save = inventory.save
        raced = []

        def racing_save(p):
            if not raced:
                raced.append(True)
                # Another worker takes 4 units between our read and our write
                other = inventory.get(p.id)
                decrease_stock(other, "Black", "9", 4)
                original_save(other)
            return original_save(p)

        monkeypatch.setattr(inventory, "save", racing_save)
        with pytest.raises(InsufficientStockError) as exc:
            inventory.decrease_stock(product.id, "Black", "9", 3)
        assert exc.value.available == 1
        stored = inventory.get(product.id)
        assert find_variant(stored, "Black", "9").stock == 1
        assert stored.sold_count == 4

    def test_gives_up_after_max_attempts(self, inventory, product, monkeypatch):
        def always_conflicts(p):
            raise ConcurrentModificationError(p.id)

        monkeypatch.setattr(inventory, "save", always_conflicts)
        with pytest.raises(ConcurrentModificationError):
            inventory.decrease_stock(product.id, "Black", "9", 1)

    def test_set_stock(self, inventory, product):
        updated = inventory.set_stock(product.id, "White", "9", 12)
        assert find_variant(updated, "White", "9").stock == 12
        assert updated.total_stock == 21

    def test_set_negative_stock_rejected(self, inventory, product):
        with pytest.raises(ValidationError):
            inventory.set_stock(product.id, "White", "9", -1)

    def test_adjust_stock(self, inventory, product):
        updated = inventory.adjust_stock(product.id, "Black", "10", -4)
        assert find_variant(updated, "Black", "10").stock == 0

    def test_adjust_below_zero_rejected(self, inventory, product):
        with pytest.raises(ValidationError, match="Stock cannot be negative"):
            inventory.adjust_stock(product.id, "Black", "10", -5)
        assert find_variant(inventory.get(product.id), "Black", "10").stock == 4

    def test_delete(self, inventory, product):
        inventory.delete(product.id)
        with pytest.raises(ProductNotFoundError):
            inventory.get(product.id)
        with pytest.raises(ProductNotFoundError):
            inventory.delete(product.id)

    def test_document_without_version_can_be_saved(self, database, inventory):
        doc = Product.model_validate(make_product_payload()).to_document()
        doc.pop("version")
        product_id = str(database.collection("product").insert_one(doc).inserted_id)
        inventory.decrease_stock(product_id, "Black", "9", 1)
        assert inventory.get(product_id).version == 1
