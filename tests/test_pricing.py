"""Tests for pricing, tax and shipping."""

from decimal import Decimal
from types import SimpleNamespace

import pricing


def item(price, quantity):
    return SimpleNamespace(price_at_purchase=price, quantity=quantity)


class TestFinalPrice:
    def test_discount_applied(self):
        product = SimpleNamespace(price=150, discount_percentage=10)
        assert pricing.final_price(product) == Decimal("135.00")

    def test_no_discount(self):
        product = SimpleNamespace(price=59.99, discount_percentage=0)
        assert pricing.final_price(product) == Decimal("59.99")

    def test_rounds_to_cents_half_up(self):
        # 129.99 * 0.85 = 110.4915
        product = SimpleNamespace(price=129.99, discount_percentage=15)
        assert pricing.final_price(product) == Decimal("110.49")

    def test_full_discount(self):
        product = SimpleNamespace(price=80, discount_percentage=100)
        assert pricing.final_price(product) == Decimal("0.00")


class TestTotals:
    def test_line_subtotal(self):
        assert pricing.line_subtotal(19.99, 3) == Decimal("59.97")

    def test_order_subtotal_has_no_float_drift(self):
        items = [item(0.1, 1), item(0.2, 1)]
        assert pricing.order_subtotal(items) == Decimal("0.30")

    def test_below_free_shipping_threshold(self):
        subtotal = Decimal("40")
        shipping = pricing.shipping_cost(subtotal)
        tax = pricing.tax(subtotal)
        assert shipping == Decimal("10.00")
        assert tax == Decimal("3.20")
        assert pricing.total(subtotal, tax, shipping) == Decimal("53.20")

    def test_above_free_shipping_threshold(self):
        subtotal = Decimal("120")
        shipping = pricing.shipping_cost(subtotal)
        tax = pricing.tax(subtotal)
        assert shipping == Decimal("0")
        assert tax == Decimal("9.60")
        assert pricing.total(subtotal, tax, shipping) == Decimal("129.60")

    def test_threshold_is_inclusive(self):
        assert pricing.shipping_cost(100) == Decimal("0")
        assert pricing.shipping_cost(Decimal("99.99")) == Decimal("10.00")

    def test_tax_rounds_half_up(self):
        # 0.0625 * 0.08 -> 0.005 rounds up
        assert pricing.tax(Decimal("0.0625")) == Decimal("0.01")
        assert pricing.tax(Decimal("10.06")) == Decimal("0.80")


class TestQuote:
    def test_quote(self):
        items = [SimpleNamespace(price=12.5, quantity=2), SimpleNamespace(price=15, quantity=1)]
        assert pricing.quote(items) == {
            "subtotal": 40.0,
            "shipping": 10.0,
            "tax": 3.2,
            "total": 53.2,
        }
