"""Catalog reads and admin writes for products.

Listing, filtering and pagination are plain MongoDB queries. Writes go through
``InventoryStore`` so derived totals are recomputed and versions checked.
"""

import logging
import math
import re
from typing import List, Optional

from pydantic import ValidationError as PydanticValidationError

from database import Database, to_str_id
from errors import ValidationError
from inventory import PRODUCT_COLLECTION, InventoryStore
from schemas import ColorVariant, Principal, Product, ProductCreate, ProductUpdate, Review, SizeStock

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 12
SORTABLE_FIELDS = {"price", "name", "average_rating", "created_at", "sold_count", "total_stock"}


class CatalogService:
    def __init__(self, database: Database, inventory: Optional[InventoryStore] = None):
        self.database = database
        self.inventory = inventory or InventoryStore(database)

    def find_product_by_id(self, product_id: str) -> Product:
        return self.inventory.get(product_id)

    def list_products(
        self,
        search: Optional[str] = None,
        brand: Optional[str] = None,
        category: Optional[str] = None,
        gender: Optional[str] = None,
        min_price: Optional[float] = None,
        max_price: Optional[float] = None,
        featured: bool = False,
        sort_by: Optional[str] = None,
        order: str = "asc",
        page: int = 1,
        limit: int = DEFAULT_PAGE_SIZE,
    ) -> dict:
        if page < 1 or limit < 1:
            raise ValidationError("page and limit must be positive")

        query: dict = {"is_active": True}
        if search:
            pattern = {"$regex": re.escape(search), "$options": "i"}
            query["$or"] = [{"name": pattern}, {"brand": pattern}, {"tags": pattern}]
        if brand:
            query["brand"] = brand
        if category:
            query["category"] = category
        if gender:
            query["gender"] = gender
        if min_price is not None or max_price is not None:
            query["price"] = {}
            if min_price is not None:
                query["price"]["$gte"] = min_price
            if max_price is not None:
                query["price"]["$lte"] = max_price
        if featured:
            query["is_featured"] = True

        if sort_by:
            if sort_by not in SORTABLE_FIELDS:
                raise ValidationError(f"Cannot sort by {sort_by}")
            sort = [(sort_by, -1 if order == "desc" else 1)]
        else:
            sort = [("created_at", -1)]

        docs = self.database.get_documents(
            PRODUCT_COLLECTION, query, limit=limit, sort=sort, skip=(page - 1) * limit
        )
        total = self.database.count_documents(PRODUCT_COLLECTION, query)
        return {
            "products": [Product.model_validate(to_str_id(d)) for d in docs],
            "total": total,
            "page": page,
            "pages": math.ceil(total / limit),
        }

    def featured_products(self, limit: int = 8) -> List[Product]:
        docs = self.database.get_documents(
            PRODUCT_COLLECTION,
            {"is_active": True, "is_featured": True},
            limit=limit,
            sort=[("average_rating", -1)],
        )
        return [Product.model_validate(to_str_id(d)) for d in docs]

    def create_product(self, payload: ProductCreate) -> Product:
        data = payload.model_dump()
        if not data["colors"]:
            # Admin forms may create the product before real colorways exist
            data["colors"] = [
                ColorVariant(
                    name="Default",
                    hex_code="#000000",
                    image_url=payload.main_image,
                    sizes=[SizeStock(size="6", stock=0)],
                ).model_dump()
            ]
        try:
            product = Product.model_validate(data)
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid product: {e.errors()[0]['msg']}")
        product = self.inventory.insert(product)
        logger.info("Product %s created: %s", product.id, product.name)
        return product

    def update_product(self, product_id: str, changes: ProductUpdate) -> Product:
        updates = changes.model_dump(exclude_unset=True)

        def apply(product: Product):
            merged = product.model_dump()
            merged.update(updates)
            try:
                validated = Product.model_validate(merged)
            except PydanticValidationError as e:
                raise ValidationError(f"Invalid product update: {e.errors()[0]['msg']}")
            for field in updates:
                setattr(product, field, getattr(validated, field))

        product = self.inventory.mutate(product_id, apply)
        logger.info("Product %s updated: %s", product_id, ", ".join(sorted(updates)) or "no changes")
        return product

    def delete_product(self, product_id: str) -> None:
        self.inventory.delete(product_id)
        logger.info("Product %s deleted", product_id)

    def add_review(self, product_id: str, principal: Principal, rating: int, comment: str) -> Product:
        def apply(product: Product):
            if any(r.user_id == principal.user_id for r in product.reviews):
                raise ValidationError("You have already reviewed this product")
            product.reviews.append(
                Review(user_id=principal.user_id, user_name=principal.name or "Anonymous",
                       rating=rating, comment=comment)
            )

        return self.inventory.mutate(product_id, apply)
