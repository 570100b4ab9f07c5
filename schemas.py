"""
Database Schemas for the Home Decor Storefront

Each Pydantic model below corresponds to a MongoDB collection.
The collection name is the lowercase class name (e.g., Order -> "order").
Request bodies live next to the collection they write to.
"""
from datetime import datetime
from typing import Annotated, Any, Dict, List, Optional, Literal, Union, get_args

from pydantic import BaseModel, Field, EmailStr

OrderStatus = Literal["pending", "confirmed", "shipped", "delivered", "cancelled"]
PaymentStatus = Literal["pending", "paid", "failed", "refunded"]
NotificationKind = Literal["order_confirmation", "order_status_update"]

ORDER_STATUSES = get_args(OrderStatus)
PAYMENT_STATUSES = get_args(PaymentStatus)


# ============ Admin ==========
class Admin(BaseModel):
    email: EmailStr = Field(..., description="Unique login email")
    password_hash: str = Field(..., description="BCrypt password hash")
    role: str = "admin"
    last_login: Optional[datetime] = None


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class ChangePasswordRequest(BaseModel):
    email: EmailStr
    password: str
    new_password: str = Field(..., min_length=6)


# ============ Category ==========
class Category(BaseModel):
    name: str = Field(..., description="Category name, unique case-insensitively")
    hero_image: str
    description: str = ""
    is_active: bool = True
    display_order: int = 0


class CategoryCreate(Category):
    pass


class CategoryUpdate(BaseModel):
    name: Optional[str] = None
    hero_image: Optional[str] = None
    description: Optional[str] = None
    is_active: Optional[bool] = None
    display_order: Optional[int] = None


class CategoryIdRef(BaseModel):
    kind: Literal["id"] = "id"
    id: str


class LegacyCategoryRef(BaseModel):
    """Free-text category name from before categories were their own collection."""
    kind: Literal["legacy"] = "legacy"
    name: str


CategoryRef = Annotated[Union[CategoryIdRef, LegacyCategoryRef], Field(discriminator="kind")]


# ============ Product ==========
class Product(BaseModel):
    name: str
    description: str
    price: float = Field(..., ge=0)
    stock: int = Field(..., ge=0)
    category: CategoryRef
    category_name: str = Field(..., description="Denormalized category display name")
    images: List[str] = []
    is_active: bool = True
    discount: float = Field(0, ge=0, le=100)
    sku: Optional[str] = None
    specifications: Dict[str, Any] = {}
    rating: float = 0.0
    review_count: int = 0


class ProductCreate(BaseModel):
    name: str
    description: str
    price: float = Field(..., ge=0)
    category: str = Field(..., description="Category name")
    images: List[str] = []
    stock: int = Field(..., ge=0)
    is_active: bool = True
    discount: float = Field(0, ge=0, le=100)
    sku: Optional[str] = None
    specifications: Dict[str, Any] = {}


class ProductUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    price: Optional[float] = Field(None, ge=0)
    category: Optional[str] = None
    images: Optional[List[str]] = None
    stock: Optional[int] = Field(None, ge=0)
    is_active: Optional[bool] = None
    discount: Optional[float] = Field(None, ge=0, le=100)
    sku: Optional[str] = None
    specifications: Optional[Dict[str, Any]] = None


# ============ Order ==========
class OrderItem(BaseModel):
    product_id: str
    quantity: int = Field(..., ge=1)
    price: float = Field(..., ge=0, description="Unit price at order time")
    name: str = Field(..., description="Product name at order time")


class ShippingAddress(BaseModel):
    first_name: str
    last_name: str
    address: str
    city: str
    state: str
    zip_code: str
    phone: str


class Order(BaseModel):
    order_number: str = Field(..., description="Human-friendly order number")
    customer_email: EmailStr
    customer_name: str
    items: List[OrderItem]
    total_amount: float = Field(..., ge=0)
    shipping_address: ShippingAddress
    status: OrderStatus = "pending"
    payment_status: PaymentStatus = "pending"
    payment_method: str = "cash"
    payment_phone: Optional[str] = None
    transaction_id: Optional[str] = None
    notes: Optional[str] = None
    tracking_number: Optional[str] = None
    confirmed_at: Optional[datetime] = None
    shipped_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None


class OrderCreate(BaseModel):
    customer_email: EmailStr
    customer_name: str
    items: List[OrderItem] = Field(..., min_length=1)
    total_amount: float = Field(..., ge=0)
    shipping_address: ShippingAddress
    payment_method: Optional[str] = None
    payment_phone: Optional[str] = None
    transaction_id: Optional[str] = None
    notes: Optional[str] = None


class OrderUpdate(BaseModel):
    status: Optional[OrderStatus] = None
    payment_status: Optional[PaymentStatus] = None
    tracking_number: Optional[str] = None
    notes: Optional[str] = None


# ============ Review ==========
class Review(BaseModel):
    content: str = Field(..., min_length=1)
    author: str = Field(..., min_length=1)
    location: str = Field(..., min_length=1)
    rating: int = Field(..., ge=1, le=5)
    is_active: bool = True
    is_featured: bool = False
    display_order: int = Field(0, ge=0)


class ReviewCreate(Review):
    pass


class ReviewUpdate(BaseModel):
    content: Optional[str] = Field(None, min_length=1)
    author: Optional[str] = Field(None, min_length=1)
    location: Optional[str] = Field(None, min_length=1)
    rating: Optional[int] = Field(None, ge=1, le=5)
    is_active: Optional[bool] = None
    is_featured: Optional[bool] = None
    display_order: Optional[int] = Field(None, ge=0)


# ============ Notification outbox ==========
class Notification(BaseModel):
    kind: NotificationKind
    order_id: str
    recipient: EmailStr
    previous_status: Optional[str] = None
    status: Literal["pending", "sent", "failed"] = "pending"
    attempts: int = 0
    next_attempt_at: datetime
    last_error: Optional[str] = None
    sent_at: Optional[datetime] = None
"""
Notes:
- Define new collections by creating new Pydantic classes in this file.
- Stored order items are snapshots; editing a product never rewrites old orders.
"""
