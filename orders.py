"""Order placement.

Turns a checkout request into a persisted order. Every line is resolved and
checked against current stock before any inventory is touched; the stock is
then taken line by line with version-checked writes, and anything already
taken is put back (in reverse order) if a later line or the order insert
fails. A failed placement leaves inventory exactly as it found it.
"""

import logging
from collections import defaultdict
from datetime import timedelta
from typing import Dict, List, Optional, Tuple

from pymongo.errors import PyMongoError

import pricing
from database import Database, to_object_id, to_str_id, utcnow
from errors import (
    EmptyCartError,
    InsufficientStockError,
    MissingShippingAddressError,
    OrderNotFoundError,
    StorageError,
)
from inventory import InventoryStore, find_variant
from schemas import (
    Order,
    OrderItem,
    OrderItemRequest,
    OrderStatus,
    Principal,
    Product,
    ShippingAddress,
    StatusEntry,
)

logger = logging.getLogger(__name__)

ORDER_COLLECTION = "order"
ESTIMATED_DELIVERY_DAYS = 7


def load_order(database: Database, order_id: str) -> Order:
    oid = to_object_id(order_id)
    if oid is None:
        raise OrderNotFoundError(order_id)
    try:
        doc = database.collection(ORDER_COLLECTION).find_one({"_id": oid})
    except PyMongoError as e:
        logger.exception("Reading order %s failed", order_id)
        raise StorageError("Could not read order") from e
    if doc is None:
        raise OrderNotFoundError(order_id)
    return Order.model_validate(to_str_id(doc))


class OrderAssembler:
    def __init__(self, database: Database, inventory: Optional[InventoryStore] = None):
        self.database = database
        self.inventory = inventory or InventoryStore(database)

    def place_order(
        self,
        principal: Principal,
        requested_items: List[OrderItemRequest],
        shipping_address: Optional[ShippingAddress],
        payment_method: str,
        customer_notes: Optional[str] = None,
    ) -> Order:
        if not requested_items:
            raise EmptyCartError()
        if shipping_address is None:
            raise MissingShippingAddressError()
        missing = shipping_address.missing_fields()
        if missing:
            raise MissingShippingAddressError(missing)

        items = self._resolve_items(requested_items)

        subtotal = pricing.order_subtotal(items)
        shipping = pricing.shipping_cost(subtotal)
        tax = pricing.tax(subtotal)
        total = pricing.total(subtotal, tax, shipping)

        now = utcnow()
        order = Order(
            user_id=principal.user_id,
            user_name=principal.name,
            user_email=principal.email or "",
            items=items,
            shipping_address=shipping_address,
            subtotal=pricing.to_float(subtotal),
            tax=pricing.to_float(tax),
            shipping_cost=pricing.to_float(shipping),
            total_amount=pricing.to_float(total),
            payment_method=payment_method,
            order_status=OrderStatus.PENDING,
            status_history=[StatusEntry(status=OrderStatus.PENDING, timestamp=now, note="Order placed")],
            estimated_delivery_date=now + timedelta(days=ESTIMATED_DELIVERY_DAYS),
            customer_notes=customer_notes,
        )

        reserved = self._reserve(items)
        try:
            order_id = self.database.create_document(ORDER_COLLECTION, order.to_document())
        except Exception:
            self._release(reserved)
            raise

        logger.info(
            "Order %s placed by user %s: %d item(s), total %s",
            order_id, principal.user_id, len(items), order.total_amount,
        )
        return load_order(self.database, order_id)

    def _resolve_items(self, requested_items: List[OrderItemRequest]) -> List[OrderItem]:
        """Snapshot every line in request order; raises on the first bad line."""
        products: Dict[str, Product] = {}
        wanted: Dict[Tuple[str, str, str], int] = defaultdict(int)
        items: List[OrderItem] = []

        for line in requested_items:
            product = products.get(line.product_id)
            if product is None:
                product = self.inventory.get(line.product_id)
                products[line.product_id] = product

            variant = find_variant(product, line.color, line.size)
            # The same variant may appear on several lines of one cart
            key = (product.id, line.color, line.size)
            wanted[key] += line.quantity
            if wanted[key] > variant.stock:
                raise InsufficientStockError(product.name, line.color, line.size, variant.stock)

            price = pricing.final_price(product)
            items.append(
                OrderItem(
                    product_id=product.id,
                    product_name=product.name,
                    product_image=product.main_image,
                    brand=product.brand,
                    color=line.color,
                    size=line.size,
                    price_at_purchase=pricing.to_float(price),
                    quantity=line.quantity,
                    subtotal=pricing.to_float(pricing.line_subtotal(price, line.quantity)),
                )
            )
        return items

    def _reserve(self, items: List[OrderItem]) -> List[OrderItem]:
        taken: List[OrderItem] = []
        try:
            for item in items:
                self.inventory.decrease_stock(item.product_id, item.color, item.size, item.quantity)
                taken.append(item)
        except Exception as e:
            logger.warning(
                "Stock reservation failed after %d of %d line(s): %s", len(taken), len(items), e
            )
            self._release(taken)
            raise
        return taken

    def _release(self, taken: List[OrderItem]):
        for item in reversed(taken):
            try:
                self.inventory.increase_stock(
                    item.product_id, item.color, item.size, item.quantity, restore_sold=True
                )
            except Exception:
                logger.exception(
                    "Could not return %d x %s (%s, size %s) to stock",
                    item.quantity, item.product_name, item.color, item.size,
                )
        if taken:
            logger.info("Returned %d reserved line(s) to stock", len(taken))
