"""Order status lifecycle: status changes, delivery, cancellation, reads.

Pending -> Processing -> Shipped -> Delivered, with Cancelled reachable from
Pending or Processing. Delivered and Cancelled are terminal. Every change
appends to ``status_history``; nothing is ever removed from it.
"""

import logging
import math
from typing import List, Optional

from pymongo.errors import PyMongoError

from auth import ensure_elevated, ensure_owner_or_elevated
from database import Database, to_object_id, to_str_id, utcnow
from errors import (
    AuthorizationError,
    InvalidStatusTransitionError,
    NotCancellableError,
    NotFoundError,
    StorageError,
    StoreError,
    ValidationError,
)
from inventory import InventoryStore
from orders import ORDER_COLLECTION, load_order
from schemas import Order, OrderItem, OrderStatus, PaymentStatus, Principal, StatusEntry

logger = logging.getLogger(__name__)

CANCELLABLE = (OrderStatus.PENDING.value, OrderStatus.PROCESSING.value)

TRANSITIONS = {
    OrderStatus.PENDING: {OrderStatus.PROCESSING, OrderStatus.CANCELLED},
    OrderStatus.PROCESSING: {OrderStatus.SHIPPED, OrderStatus.CANCELLED},
    OrderStatus.SHIPPED: {OrderStatus.DELIVERED},
    OrderStatus.DELIVERED: set(),
    OrderStatus.CANCELLED: set(),
}


class OrderLifecycle:
    def __init__(
        self,
        database: Database,
        inventory: Optional[InventoryStore] = None,
        strict_transitions: bool = False,
    ):
        self.database = database
        self.collection = database.collection(ORDER_COLLECTION)
        self.inventory = inventory or InventoryStore(database)
        self.strict_transitions = strict_transitions

    # --- reads ---

    def get_order(self, order_id: str, actor: Principal) -> Order:
        order = load_order(self.database, order_id)
        ensure_owner_or_elevated(actor, order.user_id, "view")
        return order

    def list_my_orders(self, actor: Principal) -> List[Order]:
        docs = self.database.get_documents(
            ORDER_COLLECTION, {"user_id": actor.user_id}, sort=[("created_at", -1)]
        )
        return [Order.model_validate(to_str_id(d)) for d in docs]

    def list_orders(
        self, actor: Principal, status: Optional[str] = None, page: int = 1, limit: int = 20
    ) -> dict:
        ensure_elevated(actor)
        if page < 1 or limit < 1:
            raise ValidationError("page and limit must be positive")
        query = {}
        if status:
            try:
                query["order_status"] = OrderStatus(status).value
            except ValueError:
                raise ValidationError(f"Unknown order status: {status}")
        docs = self.database.get_documents(
            ORDER_COLLECTION, query, limit=limit, sort=[("created_at", -1)], skip=(page - 1) * limit
        )
        total = self.database.count_documents(ORDER_COLLECTION, query)
        return {
            "orders": [Order.model_validate(to_str_id(d)) for d in docs],
            "total": total,
            "page": page,
            "pages": math.ceil(total / limit),
        }

    # --- writes ---

    def update_status(
        self,
        order_id: str,
        new_status: OrderStatus,
        actor: Principal,
        note: Optional[str] = None,
        tracking_number: Optional[str] = None,
        admin_notes: Optional[str] = None,
    ) -> Order:
        ensure_elevated(actor)
        new_status = OrderStatus(new_status)
        order = load_order(self.database, order_id)
        current = OrderStatus(order.order_status)

        if self.strict_transitions and new_status not in TRANSITIONS[current]:
            raise InvalidStatusTransitionError(current.value, new_status.value)

        # Cancelling always goes through stock restoration
        if new_status == OrderStatus.CANCELLED:
            return self._cancel(order, note or f"Cancelled by {actor.role}")

        extra = {}
        if tracking_number is not None:
            extra["tracking_number"] = tracking_number
        if admin_notes is not None:
            extra["admin_notes"] = admin_notes
        if new_status == OrderStatus.DELIVERED:
            extra.update(self._delivery_fields())

        self._apply_status(order, new_status, note, extra)
        logger.info("Order %s: %s -> %s by %s", order.id, current.value, new_status.value, actor.user_id)
        return load_order(self.database, order.id)

    def mark_delivered(self, order_id: str, actor: Principal, note: Optional[str] = None) -> Order:
        ensure_elevated(actor)
        order = load_order(self.database, order_id)
        current = OrderStatus(order.order_status)
        if self.strict_transitions and OrderStatus.DELIVERED not in TRANSITIONS[current]:
            raise InvalidStatusTransitionError(current.value, OrderStatus.DELIVERED.value)
        self._apply_status(order, OrderStatus.DELIVERED, note, self._delivery_fields())
        logger.info("Order %s delivered", order.id)
        return load_order(self.database, order.id)

    def cancel_order(self, order_id: str, actor: Principal, reason: str = "Cancelled by user") -> Order:
        order = load_order(self.database, order_id)
        if order.user_id != actor.user_id:
            raise AuthorizationError("Not authorized to cancel this order")
        return self._cancel(order, reason)

    # --- internals ---

    @staticmethod
    def _delivery_fields() -> dict:
        return {
            "actual_delivery_date": utcnow(),
            "payment_status": PaymentStatus.COMPLETED.value,
        }

    @staticmethod
    def _history_entry(status: OrderStatus, note: Optional[str]) -> dict:
        return StatusEntry(status=status, timestamp=utcnow(), note=note).model_dump()

    def _apply_status(self, order: Order, new_status: OrderStatus, note: Optional[str], extra: dict):
        now = utcnow()
        update = {
            "$set": {"order_status": new_status.value, "updated_at": now, **extra},
            "$push": {"status_history": self._history_entry(new_status, note)},
        }
        try:
            # Conditional on the status we read so concurrent changes are not lost
            result = self.collection.update_one(
                {"_id": to_object_id(order.id), "order_status": order.order_status}, update
            )
        except PyMongoError as e:
            logger.exception("Updating order %s failed", order.id)
            raise StorageError("Could not update order") from e
        if result.matched_count == 0:
            raise StorageError("Order was modified concurrently, please retry")

    def _cancel(self, order: Order, reason: str) -> Order:
        if order.order_status not in CANCELLABLE:
            raise NotCancellableError(order.order_status)

        update = {
            "$set": {"order_status": OrderStatus.CANCELLED.value, "updated_at": utcnow()},
            "$push": {"status_history": self._history_entry(OrderStatus.CANCELLED, reason)},
        }
        try:
            # Claim the cancellation first; only one caller can win it
            result = self.collection.update_one(
                {"_id": to_object_id(order.id), "order_status": {"$in": list(CANCELLABLE)}}, update
            )
        except PyMongoError as e:
            logger.exception("Cancelling order %s failed", order.id)
            raise StorageError("Could not cancel order") from e
        if result.matched_count == 0:
            current = load_order(self.database, order.id)
            raise NotCancellableError(current.order_status)

        restored: List[OrderItem] = []
        for item in order.items:
            try:
                self.inventory.increase_stock(
                    item.product_id, item.color, item.size, item.quantity, restore_sold=True
                )
            except NotFoundError as e:
                logger.warning("Order %s: stock for %s not restored: %s", order.id, item.product_name, e)
                continue
            except Exception:
                logger.exception("Order %s: restoring stock for %s failed", order.id, item.product_name)
                self._undo_cancel(order, restored)
                raise
            restored.append(item)

        logger.info("Order %s cancelled (%s)", order.id, reason)
        return load_order(self.database, order.id)

    def _undo_cancel(self, order: Order, restored: List[OrderItem]):
        """Take back the units already returned and reopen the order."""
        for item in reversed(restored):
            try:
                self.inventory.decrease_stock(item.product_id, item.color, item.size, item.quantity)
            except StoreError:
                logger.exception(
                    "Order %s: could not take back %d x %s (%s, size %s)",
                    order.id, item.quantity, item.product_name, item.color, item.size,
                )

        previous = OrderStatus(order.order_status)
        update = {
            "$set": {"order_status": previous.value, "updated_at": utcnow()},
            "$push": {"status_history": self._history_entry(previous, "Cancellation failed, order reopened")},
        }
        try:
            self.collection.update_one(
                {"_id": to_object_id(order.id), "order_status": OrderStatus.CANCELLED.value}, update
            )
        except PyMongoError:
            logger.exception("Order %s: could not reopen after failed cancellation", order.id)
        else:
            logger.warning("Order %s reopened as %s after failed cancellation", order.id, previous.value)
