"""Pricing, tax and shipping.

All arithmetic is done on ``Decimal`` and rounded half away from zero to cents.
Values leave this module as ``Decimal``; callers convert with ``to_float`` at the
storage/JSON boundary.
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Union

Number = Union[Decimal, float, int, str]

CENTS = Decimal("0.01")
TAX_RATE = Decimal("0.08")
FREE_SHIPPING_THRESHOLD = Decimal("100")
FLAT_SHIPPING = Decimal("10")


def to_decimal(value: Number) -> Decimal:
    if isinstance(value, Decimal):
        return value
    # str() keeps 19.99 as 19.99 instead of its binary expansion
    return Decimal(str(value))


def round_money(value: Number) -> Decimal:
    return to_decimal(value).quantize(CENTS, rounding=ROUND_HALF_UP)


def to_float(value: Number) -> float:
    return float(round_money(value))


def final_price(product) -> Decimal:
    """Price after discount, rounded to cents."""
    price = to_decimal(product.price)
    discount = to_decimal(product.discount_percentage)
    if discount > 0:
        price = price * (1 - discount / 100)
    return round_money(price)


def line_subtotal(price_at_purchase: Number, quantity: int) -> Decimal:
    return round_money(to_decimal(price_at_purchase) * quantity)


def order_subtotal(items: Iterable) -> Decimal:
    """Sum of line subtotals; items need ``price_at_purchase`` and ``quantity``."""
    return round_money(
        sum((line_subtotal(i.price_at_purchase, i.quantity) for i in items), Decimal("0"))
    )


def shipping_cost(subtotal: Number) -> Decimal:
    # Free shipping at or above the threshold, flat rate below it
    if to_decimal(subtotal) >= FREE_SHIPPING_THRESHOLD:
        return Decimal("0.00")
    return round_money(FLAT_SHIPPING)


def tax(subtotal: Number) -> Decimal:
    return round_money(to_decimal(subtotal) * TAX_RATE)


def total(subtotal: Number, tax_amount: Number, shipping: Number) -> Decimal:
    return round_money(to_decimal(subtotal) + to_decimal(tax_amount) + to_decimal(shipping))


def quote(items: Iterable) -> dict:
    """Subtotal, shipping, tax and total for items with ``price`` and ``quantity``."""
    subtotal = round_money(
        sum((line_subtotal(i.price, i.quantity) for i in items), Decimal("0"))
    )
    shipping = shipping_cost(subtotal)
    tax_amount = tax(subtotal)
    return {
        "subtotal": to_float(subtotal),
        "shipping": to_float(shipping),
        "tax": to_float(tax_amount),
        "total": to_float(total(subtotal, tax_amount, shipping)),
    }
