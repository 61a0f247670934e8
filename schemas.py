"""
Database Schemas for the Stride Shoe Store

Each top-level Pydantic model represents a MongoDB collection. The collection
name is the lowercase class name: Product -> "product", Order -> "order".
Embedded models (colors, sizes, reviews, order items, address) live inside
their parent document.

Use these models in your API for validation before writing to MongoDB.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, computed_field, model_validator

import pricing


def _now() -> datetime:
    return datetime.now(timezone.utc)


Brand = Literal["Nike", "Adidas", "Puma", "Reebok", "New Balance", "Converse", "Vans", "Under Armour"]
Category = Literal["Running", "Basketball", "Casual", "Training", "Soccer", "Tennis", "Walking"]
Gender = Literal["Men", "Women", "Unisex", "Kids"]
SizeLabel = Literal["5", "6", "7", "8", "9", "10", "11", "12", "13", "14"]
PaymentMethod = Literal["Credit Card", "Debit Card", "PayPal", "Cash on Delivery"]


class OrderStatus(str, Enum):
    PENDING = "Pending"
    PROCESSING = "Processing"
    SHIPPED = "Shipped"
    DELIVERED = "Delivered"
    CANCELLED = "Cancelled"


class PaymentStatus(str, Enum):
    PENDING = "Pending"
    COMPLETED = "Completed"
    FAILED = "Failed"
    REFUNDED = "Refunded"


# -----------------
# Product (catalog)
# -----------------

class SizeStock(BaseModel):
    size: SizeLabel = Field(..., description="Shoe size label")
    stock: int = Field(0, ge=0, description="Units on hand for this size")


class ColorVariant(BaseModel):
    name: str = Field(..., min_length=1, description="Color name, unique within the product")
    hex_code: str = Field(..., pattern=r"^#[A-Fa-f0-9]{6}$", description="Hex color, e.g. '#000000'")
    image_url: Optional[str] = Field(None, description="Image for this colorway")
    sizes: List[SizeStock] = Field(..., min_length=1)

    @model_validator(mode="after")
    def _unique_sizes(self):
        labels = [s.size for s in self.sizes]
        if len(labels) != len(set(labels)):
            raise ValueError(f"Duplicate size in color {self.name}")
        return self


class Review(BaseModel):
    user_id: str
    user_name: str = Field(..., description="Reviewer name snapshot")
    rating: int = Field(..., ge=1, le=5)
    comment: str = Field(..., min_length=1, max_length=500)
    created_at: datetime = Field(default_factory=_now)


class Product(BaseModel):
    id: Optional[str] = None
    name: str = Field(..., min_length=3, max_length=100)
    description: str = Field(..., min_length=10, max_length=2000)
    brand: Brand
    category: Category
    price: float = Field(..., ge=0, le=10000, description="Base price in USD")
    discount_percentage: float = Field(0, ge=0, le=100)
    colors: List[ColorVariant] = Field(..., min_length=1)
    main_image: str
    additional_images: List[str] = []
    gender: Gender
    reviews: List[Review] = []
    average_rating: float = Field(0, ge=0, le=5)
    total_reviews: int = Field(0, ge=0)
    total_stock: int = Field(0, ge=0)
    sold_count: int = Field(0, ge=0)
    is_featured: bool = False
    is_active: bool = True
    tags: List[str] = []
    version: int = Field(0, ge=0, description="Optimistic concurrency counter")
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @model_validator(mode="after")
    def _unique_colors(self):
        names = [c.name for c in self.colors]
        if len(names) != len(set(names)):
            raise ValueError("Color names must be unique within a product")
        return self

    @computed_field
    @property
    def final_price(self) -> float:
        return float(pricing.final_price(self))

    @computed_field
    @property
    def in_stock(self) -> bool:
        return self.total_stock > 0

    def to_document(self) -> dict:
        return self.model_dump(exclude={"id", "final_price", "in_stock"})


# ------------
# Order Models
# ------------

class OrderItem(BaseModel):
    """What the customer saw and paid for, frozen at order time."""

    model_config = ConfigDict(frozen=True)

    product_id: str = Field(..., description="Referenced product _id (string)")
    product_name: str
    product_image: str
    brand: str
    color: str
    size: str
    price_at_purchase: float = Field(..., ge=0, description="Unit price charged")
    quantity: int = Field(..., ge=1)
    subtotal: float = Field(..., ge=0)


class ShippingAddress(BaseModel):
    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    street: str = ""
    city: str = ""
    state: str = ""
    zip_code: str = ""
    country: str = "USA"
    phone_number: str = ""

    def missing_fields(self) -> List[str]:
        required = ("street", "city", "state", "zip_code", "country", "phone_number")
        return [name for name in required if not getattr(self, name)]


class StatusEntry(BaseModel):
    status: OrderStatus
    timestamp: datetime = Field(default_factory=_now)
    note: Optional[str] = None

    model_config = ConfigDict(use_enum_values=True, validate_default=True)


class Order(BaseModel):
    model_config = ConfigDict(use_enum_values=True, validate_default=True)

    id: Optional[str] = None
    user_id: str
    user_name: str
    user_email: str
    items: List[OrderItem] = Field(..., min_length=1)
    shipping_address: ShippingAddress
    subtotal: float = Field(..., ge=0)
    tax: float = Field(0, ge=0)
    shipping_cost: float = Field(0, ge=0)
    total_amount: float = Field(..., ge=0)
    payment_method: PaymentMethod
    payment_status: PaymentStatus = PaymentStatus.PENDING
    order_status: OrderStatus = OrderStatus.PENDING
    status_history: List[StatusEntry] = []
    tracking_number: Optional[str] = None
    estimated_delivery_date: Optional[datetime] = None
    actual_delivery_date: Optional[datetime] = None
    customer_notes: Optional[str] = Field(None, max_length=500)
    admin_notes: Optional[str] = Field(None, max_length=500)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @computed_field
    @property
    def total_items(self) -> int:
        return sum(item.quantity for item in self.items)

    @computed_field
    @property
    def can_be_cancelled(self) -> bool:
        return self.order_status in (OrderStatus.PENDING, OrderStatus.PROCESSING)

    def to_document(self) -> dict:
        return self.model_dump(exclude={"id", "total_items", "can_be_cancelled"})


# -----------------
# Request payloads
# -----------------

class OrderItemRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    product_id: str = Field(..., alias="product", description="Product id")
    color: str
    size: str
    quantity: int = Field(..., ge=1)


class PlaceOrderRequest(BaseModel):
    items: List[OrderItemRequest] = []
    shipping_address: Optional[ShippingAddress] = None
    payment_method: PaymentMethod
    customer_notes: Optional[str] = Field(None, max_length=500)


class StatusUpdateRequest(BaseModel):
    status: OrderStatus
    note: Optional[str] = None
    tracking_number: Optional[str] = None
    admin_notes: Optional[str] = Field(None, max_length=500)


class StockUpdateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    color: str = Field(..., alias="colorName")
    size: str
    stock: Optional[int] = Field(None, description="Absolute stock to set")
    quantity: Optional[int] = Field(None, description="Signed stock increment")


class ReviewRequest(BaseModel):
    rating: int = Field(..., ge=1, le=5)
    comment: str = Field(..., min_length=1, max_length=500)


class ProductCreate(BaseModel):
    name: str = Field(..., min_length=3, max_length=100)
    description: str = Field(..., min_length=10, max_length=2000)
    brand: Brand
    category: Category
    price: float = Field(..., ge=0, le=10000)
    discount_percentage: float = Field(0, ge=0, le=100)
    colors: List[ColorVariant] = []
    main_image: str
    additional_images: List[str] = []
    gender: Gender
    is_featured: bool = False
    is_active: bool = True
    tags: List[str] = []


class ProductUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    brand: Optional[Brand] = None
    category: Optional[Category] = None
    price: Optional[float] = None
    discount_percentage: Optional[float] = None
    colors: Optional[List[ColorVariant]] = None
    main_image: Optional[str] = None
    additional_images: Optional[List[str]] = None
    gender: Optional[Gender] = None
    is_featured: Optional[bool] = None
    is_active: Optional[bool] = None
    tags: Optional[List[str]] = None


class QuoteItem(BaseModel):
    product_id: Optional[str] = None
    price: float = Field(..., ge=0)
    quantity: int = Field(..., ge=1)


class QuoteRequest(BaseModel):
    items: List[QuoteItem]


class Principal(BaseModel):
    """Authenticated caller as forwarded by the auth gateway."""

    user_id: str
    name: str = ""
    email: Optional[EmailStr] = None
    role: Literal["user", "admin", "seller"] = "user"

    @property
    def is_elevated(self) -> bool:
        return self.role in ("admin", "seller")
