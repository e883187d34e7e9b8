"""
Request/response schemas for the BuyNow API

Field names are snake_case in Python and camelCase on the wire; snake_case
is accepted on input as well.

Groups:
- auth: register, login, refresh, tokens, user
- catalog: category, brand, product
- cart
- orders
- config / user administration
"""
from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from pydantic.alias_generators import to_camel

from models import Role


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class MessageResponse(CamelModel):
    message: str


# Auth

class RegisterRequest(CamelModel):
    email: EmailStr = Field(..., description="Login email, unique per account")
    password: str = Field(..., min_length=6, description="Plain password, at least 6 characters")
    name: str = Field(..., min_length=1, max_length=255)
    phone: Optional[str] = Field(None, max_length=20)


class LoginRequest(CamelModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class RefreshTokenRequest(CamelModel):
    refresh_token: str = Field(..., min_length=1)


class LogoutRequest(CamelModel):
    refresh_token: Optional[str] = None


class ChangePasswordRequest(CamelModel):
    current_password: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=6)


class TokenPair(CamelModel):
    access_token: str
    refresh_token: str
    expires_at: datetime


class UserOut(CamelModel):
    id: int
    email: str
    name: str
    role: Role
    phone: Optional[str] = None
    department: Optional[str] = None
    is_active: bool
    last_login_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


class AuthResponse(CamelModel):
    user: UserOut
    tokens: TokenPair


# Catalog

class CategoryRequest(CamelModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=1000)
    image_url: Optional[str] = Field(None, max_length=500)
    is_active: bool = True
    sort_order: int = 0


class CategoryOut(CamelModel):
    id: int
    name: str
    description: Optional[str] = None
    image_url: Optional[str] = None
    is_active: bool
    sort_order: int
    product_count: int = Field(0, description="Active products in this category")
    created_at: datetime
    updated_at: datetime


class BrandRequest(CamelModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    logo_url: Optional[str] = Field(None, max_length=500)
    is_active: bool = True
    sort_order: int = 0


class BrandOut(CamelModel):
    id: int
    name: str
    description: Optional[str] = None
    logo_url: Optional[str] = None
    is_active: bool
    sort_order: int
    product_count: int = 0
    created_at: datetime
    updated_at: datetime


class ProductRequest(CamelModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=2000)
    price: float = Field(..., gt=0, description="Price in store currency")
    discount_price: Optional[float] = Field(None, gt=0, description="Sale price; used instead of price when set")
    category_id: int
    brand: Optional[str] = Field(None, max_length=100)
    brand_id: Optional[int] = None
    sku: Optional[str] = Field(None, max_length=100)
    stock: int = Field(..., ge=0, description="Units in stock")
    image_url: Optional[str] = Field(None, max_length=500)
    is_active: bool = True
    is_featured: bool = False


class ProductOut(CamelModel):
    id: int
    name: str
    description: Optional[str] = None
    price: float
    discount_price: Optional[float] = None
    category_id: int
    category_name: str
    brand: Optional[str] = None
    brand_id: Optional[int] = None
    sku: Optional[str] = None
    stock: int
    image_url: Optional[str] = None
    is_active: bool
    is_featured: bool
    created_at: datetime
    updated_at: datetime
    created_by_id: int
    created_by_name: str


class ProductListResponse(CamelModel):
    products: List[ProductOut]
    total_count: int
    page: int
    page_size: int
    total_pages: int


# Cart

class AddToCartRequest(CamelModel):
    product_id: int
    quantity: int = Field(..., ge=1)


class UpdateCartItemRequest(CamelModel):
    quantity: int = Field(..., ge=1)


class CartItemOut(CamelModel):
    id: int
    product_id: int
    product_name: str
    product_image_url: Optional[str] = None
    product_price: float
    product_discount_price: Optional[float] = None
    quantity: int
    total_price: float
    available_stock: int
    created_at: datetime
    updated_at: datetime


class CartSummary(CamelModel):
    items: List[CartItemOut] = Field(default_factory=list)
    total_items: int = 0
    sub_total: float = 0
    tax: float = 0
    total: float = 0


# Orders

class CreateOrderRequest(CamelModel):
    shipping_name: str = Field(..., min_length=1, max_length=255)
    shipping_address: str = Field(..., min_length=1, max_length=500)
    shipping_address2: Optional[str] = Field(None, max_length=500)
    shipping_city: str = Field(..., min_length=1, max_length=100)
    shipping_state: str = Field(..., min_length=1, max_length=100)
    shipping_zip: str = Field(..., min_length=1, max_length=20)
    shipping_country: str = Field(..., min_length=1, max_length=100)
    notes: Optional[str] = Field(None, max_length=1000)
    payment_id: str = Field(..., min_length=1, description="Payment id captured by the client")


class UpdateOrderStatusRequest(CamelModel):
    status: str = Field(..., min_length=1, max_length=50)
    notes: Optional[str] = Field(None, max_length=1000)


class OrderItemOut(CamelModel):
    id: int
    product_id: int
    product_name: str
    product_image_url: Optional[str] = None
    quantity: int
    unit_price: float
    total_price: float


class OrderOut(CamelModel):
    id: int
    order_number: str
    user_id: int
    user_name: str
    user_email: str
    total_amount: float
    status: str
    payment_id: Optional[str] = None
    payment_status: Optional[str] = None
    shipping_name: str
    shipping_address: str
    shipping_address2: Optional[str] = None
    shipping_city: str
    shipping_state: str
    shipping_zip: str
    shipping_country: str
    notes: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    order_items: List[OrderItemOut] = Field(default_factory=list)


class OrderListResponse(CamelModel):
    orders: List[OrderOut]
    total_count: int
    page: int
    page_size: int
    total_pages: int


# Config

class ConfigValueRequest(CamelModel):
    value: str
    description: Optional[str] = Field(None, max_length=500)


ConfigMap = Dict[str, str]


# User administration

class UserUpdateRequest(CamelModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    phone: Optional[str] = Field(None, max_length=20)
    department: Optional[str] = Field(None, max_length=100)
    role: Optional[Role] = None
    is_active: Optional[bool] = None

    @field_validator("role", mode="before")
    @classmethod
    def normalize_role(cls, v):
        if v is None:
            return v
        return Role.parse(v)
