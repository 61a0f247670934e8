"""Product -> Color -> Size stock model and its persistence.

The module-level functions mutate an in-memory ``Product``. ``InventoryStore``
persists products with a version check: every write is a conditional replace
on the version that was read, so two writers racing on the same product can
never both succeed. Stock mutations re-read, re-check and retry on conflict.
"""

import logging
import threading
from collections import defaultdict
from contextlib import contextmanager
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, Optional

from pymongo.errors import PyMongoError

from database import Database, to_object_id, to_str_id, utcnow
from errors import (
    ColorNotFoundError,
    ConcurrentModificationError,
    InsufficientStockError,
    ProductNotFoundError,
    SizeNotFoundError,
    StorageError,
    ValidationError,
)
from schemas import Product, SizeStock

logger = logging.getLogger(__name__)

PRODUCT_COLLECTION = "product"
MAX_WRITE_ATTEMPTS = 5


def find_variant(product: Product, color_name: str, size_label: str) -> SizeStock:
    """Exact, case-sensitive lookup of one (color, size) stock record."""
    color = next((c for c in product.colors if c.name == color_name), None)
    if color is None:
        raise ColorNotFoundError(product.name, color_name)
    size = next((s for s in color.sizes if s.size == str(size_label)), None)
    if size is None:
        raise SizeNotFoundError(product.name, color_name, str(size_label))
    return size


def recompute_totals(product: Product) -> Product:
    """Derive total_stock and rating aggregates from the embedded arrays."""
    product.total_stock = sum(s.stock for c in product.colors for s in c.sizes)
    if product.reviews:
        avg = Decimal(sum(r.rating for r in product.reviews)) / len(product.reviews)
        product.average_rating = float(avg.quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))
        product.total_reviews = len(product.reviews)
    else:
        product.average_rating = 0
        product.total_reviews = 0
    return product


def decrease_stock(product: Product, color_name: str, size_label: str, quantity: int) -> Product:
    if quantity < 1:
        raise ValidationError("Quantity must be at least 1")
    variant = find_variant(product, color_name, size_label)
    if quantity > variant.stock:
        raise InsufficientStockError(product.name, color_name, str(size_label), variant.stock)
    variant.stock -= quantity
    product.sold_count += quantity
    return recompute_totals(product)


def increase_stock(
    product: Product, color_name: str, size_label: str, quantity: int, restore_sold: bool = False
) -> Product:
    """Put units back. With ``restore_sold`` the units also come off sold_count."""
    if quantity < 1:
        raise ValidationError("Quantity must be at least 1")
    variant = find_variant(product, color_name, size_label)
    variant.stock += quantity
    if restore_sold:
        product.sold_count = max(0, product.sold_count - quantity)
    return recompute_totals(product)


class InventoryStore:
    """Repository for products with version-checked writes."""

    def __init__(self, database: Database, max_attempts: int = MAX_WRITE_ATTEMPTS):
        self.database = database
        self.collection = database.collection(PRODUCT_COLLECTION)
        self.max_attempts = max_attempts
        self._locks: Dict[str, threading.Lock] = defaultdict(threading.Lock)
        self._locks_guard = threading.Lock()

    @contextmanager
    def _product_lock(self, product_id: str):
        with self._locks_guard:
            lock = self._locks[product_id]
        with lock:
            yield

    def find(self, product_id: str) -> Optional[Product]:
        oid = to_object_id(product_id)
        if oid is None:
            return None
        try:
            doc = self.collection.find_one({"_id": oid})
        except PyMongoError as e:
            logger.exception("Reading product %s failed", product_id)
            raise StorageError("Could not read product") from e
        if doc is None:
            return None
        return Product.model_validate(to_str_id(doc))

    def get(self, product_id: str) -> Product:
        product = self.find(product_id)
        if product is None:
            raise ProductNotFoundError(product_id)
        return product

    def insert(self, product: Product) -> Product:
        recompute_totals(product)
        product.version = 1
        product.id = self.database.create_document(PRODUCT_COLLECTION, product.to_document())
        return self.get(product.id)

    def save(self, product: Product) -> Product:
        """Write back a product read earlier; fails if someone else wrote in between."""
        recompute_totals(product)
        expected = product.version
        doc = product.to_document()
        doc["version"] = expected + 1
        doc["updated_at"] = utcnow()

        # Documents written outside this store may lack a version
        version_filter = expected if expected else {"$in": [0, None]}
        try:
            result = self.collection.replace_one(
                {"_id": to_object_id(product.id), "version": version_filter}, doc
            )
        except PyMongoError as e:
            logger.exception("Saving product %s failed", product.id)
            raise StorageError("Could not save product") from e
        if result.matched_count == 0:
            raise ConcurrentModificationError(product.id)
        product.version = expected + 1
        product.updated_at = doc["updated_at"]
        return product

    def delete(self, product_id: str) -> None:
        oid = to_object_id(product_id)
        try:
            result = self.collection.delete_one({"_id": oid}) if oid else None
        except PyMongoError as e:
            raise StorageError("Could not delete product") from e
        if result is None or result.deleted_count == 0:
            raise ProductNotFoundError(product_id)

    def mutate(self, product_id: str, change) -> Product:
        """Apply ``change(product)`` and save, retrying on version conflicts.

        ``change`` runs against a fresh read on every attempt, so any checks it
        makes (stock sufficiency, non-negative results) see current data.
        """
        with self._product_lock(product_id):
            for attempt in range(1, self.max_attempts + 1):
                product = self.get(product_id)
                change(product)
                try:
                    return self.save(product)
                except ConcurrentModificationError:
                    logger.info(
                        "Version conflict on product %s (attempt %d/%d)",
                        product_id, attempt, self.max_attempts,
                    )
        logger.error("Giving up on product %s after %d attempts", product_id, self.max_attempts)
        raise ConcurrentModificationError(product_id)

    def decrease_stock(self, product_id: str, color_name: str, size_label: str, quantity: int) -> Product:
        return self.mutate(
            product_id, lambda p: decrease_stock(p, color_name, size_label, quantity)
        )

    def increase_stock(
        self, product_id: str, color_name: str, size_label: str, quantity: int, restore_sold: bool = False
    ) -> Product:
        return self.mutate(
            product_id, lambda p: increase_stock(p, color_name, size_label, quantity, restore_sold)
        )

    def set_stock(self, product_id: str, color_name: str, size_label: str, stock: int) -> Product:
        if stock < 0:
            raise ValidationError("Stock must be a non-negative number")

        def change(product: Product):
            find_variant(product, color_name, size_label).stock = stock

        return self.mutate(product_id, change)

    def adjust_stock(self, product_id: str, color_name: str, size_label: str, delta: int) -> Product:
        def change(product: Product):
            variant = find_variant(product, color_name, size_label)
            if variant.stock + delta < 0:
                raise ValidationError("Stock cannot be negative")
            variant.stock += delta

        return self.mutate(product_id, change)
