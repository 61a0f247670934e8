"""Demo catalog, inserted only when the product collection is empty."""

import logging

from database import Database
from errors import StoreError
from inventory import PRODUCT_COLLECTION, InventoryStore
from schemas import Product

logger = logging.getLogger(__name__)


def _sizes(stock_by_size: dict) -> list:
    return [{"size": size, "stock": stock} for size, stock in stock_by_size.items()]


def _seed_payload():
    return [
        {
            "name": "Air Max 270",
            "description": "Visible Max Air cushioning in the heel for all-day comfort on the run.",
            "brand": "Nike",
            "category": "Running",
            "price": 150,
            "discount_percentage": 10,
            "main_image": "https://images.unsplash.com/photo-1542291026-7eec264c27ff",
            "gender": "Men",
            "is_featured": True,
            "tags": ["comfortable", "cushioned", "running"],
            "colors": [
                {
                    "name": "Black",
                    "hex_code": "#000000",
                    "image_url": "https://images.unsplash.com/photo-1542291026-7eec264c27ff",
                    "sizes": _sizes({"8": 15, "9": 20, "10": 18, "11": 12}),
                },
                {
                    "name": "White",
                    "hex_code": "#FFFFFF",
                    "image_url": "https://images.unsplash.com/photo-1549298916-b41d501d3772",
                    "sizes": _sizes({"8": 10, "9": 15, "10": 20, "11": 8}),
                },
            ],
        },
        {
            "name": "Ultraboost 22",
            "description": "Responsive Boost midsole with a Primeknit upper that adapts to your stride.",
            "brand": "Adidas",
            "category": "Running",
            "price": 190,
            "discount_percentage": 15,
            "main_image": "https://images.unsplash.com/photo-1608231387042-66d1773070a5",
            "gender": "Unisex",
            "is_featured": True,
            "tags": ["boost", "running", "primeknit"],
            "colors": [
                {
                    "name": "Core Black",
                    "hex_code": "#1A1A1A",
                    "sizes": _sizes({"7": 8, "8": 12, "9": 14, "10": 10}),
                },
            ],
        },
        {
            "name": "Chuck Taylor All Star",
            "description": "The classic canvas high-top, unchanged where it matters for a century.",
            "brand": "Converse",
            "category": "Casual",
            "price": 60,
            "main_image": "https://images.unsplash.com/photo-1607522370275-f14206abe5d3",
            "gender": "Unisex",
            "tags": ["classic", "canvas"],
            "colors": [
                {
                    "name": "Red",
                    "hex_code": "#C8102E",
                    "sizes": _sizes({"6": 10, "7": 10, "8": 10, "9": 10}),
                },
                {
                    "name": "Navy",
                    "hex_code": "#1F2A44",
                    "sizes": _sizes({"8": 6, "9": 3, "10": 0}),
                },
            ],
        },
    ]


def ensure_seeded(database: Database) -> dict:
    created = {"products": 0}
    if database is None:
        return created
    inventory = InventoryStore(database)
    try:
        if database.count_documents(PRODUCT_COLLECTION) == 0:
            for payload in _seed_payload():
                inventory.insert(Product.model_validate(payload))
                created["products"] += 1
            logger.info("Seeded %d demo products", created["products"])
    except StoreError:
        # Best-effort; a failed seed must not stop the API from starting
        logger.exception("Seeding demo catalog failed")
    return created
