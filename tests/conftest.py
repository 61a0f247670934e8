"""Pytest fixtures for the shoe store tests."""

import mongomock
import pytest

from database import Database
from inventory import InventoryStore
from lifecycle import OrderLifecycle
from orders import OrderAssembler
from schemas import OrderItemRequest, Principal, Product, ShippingAddress


def make_product_payload(**overrides) -> dict:
    payload = {
        "name": "Air Max 270",
        "description": "Visible Max Air cushioning in the heel for all-day comfort.",
        "brand": "Nike",
        "category": "Running",
        "price": 150,
        "discount_percentage": 10,
        "main_image": "https://img.example.com/airmax.jpg",
        "gender": "Men",
        "tags": ["running", "cushioned"],
        "colors": [
            {
                "name": "Black",
                "hex_code": "#000000",
                "sizes": [{"size": "9", "stock": 5}, {"size": "10", "stock": 4}],
            },
            {
                "name": "White",
                "hex_code": "#FFFFFF",
                "sizes": [{"size": "9", "stock": 2}],
            },
        ],
    }
    payload.update(overrides)
    return payload


def line(product, color="Black", size="9", quantity=1) -> OrderItemRequest:
    return OrderItemRequest(product_id=product.id, color=color, size=size, quantity=quantity)


@pytest.fixture
def database():
    """A Database backed by an in-memory mongomock client."""
    db = Database(mongomock.MongoClient(), "shoestore_test")
    yield db
    db.close()


@pytest.fixture
def inventory(database):
    return InventoryStore(database)


@pytest.fixture
def assembler(database, inventory):
    return OrderAssembler(database, inventory)


@pytest.fixture
def lifecycle(database, inventory):
    return OrderLifecycle(database, inventory)


@pytest.fixture
def product(inventory):
    """Air Max 270: $150 at 10% off, Black/9 has 5 in stock."""
    return inventory.insert(Product.model_validate(make_product_payload()))


@pytest.fixture
def cheap_product(inventory):
    """$20 canvas shoe without discount, Red/8 has 10 in stock."""
    return inventory.insert(
        Product.model_validate(
            make_product_payload(
                name="Chuck Taylor All Star",
                brand="Converse",
                category="Casual",
                price=20,
                discount_percentage=0,
                gender="Unisex",
                colors=[{"name": "Red", "hex_code": "#C8102E", "sizes": [{"size": "8", "stock": 10}]}],
            )
        )
    )


@pytest.fixture
def customer():
    return Principal(user_id="user-1", name="John Doe", email="john@example.com")


@pytest.fixture
def other_customer():
    return Principal(user_id="user-2", name="Jane Smith", email="jane@example.com")


@pytest.fixture
def admin():
    return Principal(user_id="admin-1", name="Admin User", email="admin@example.com", role="admin")


@pytest.fixture
def seller():
    return Principal(user_id="seller-1", name="Shop Seller", email="seller@example.com", role="seller")


@pytest.fixture
def address():
    return ShippingAddress(
        street="456 User Avenue",
        city="Los Angeles",
        state="CA",
        zip_code="90001",
        phone_number="+1-555-0101",
    )


@pytest.fixture
def place(assembler, customer, address):
    """Place an order for ``customer`` with the default address."""

    def _place(*lines, principal=None, payment_method="Credit Card"):
        return assembler.place_order(principal or customer, list(lines), address, payment_method)

    return _place
