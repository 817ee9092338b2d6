"""Request bodies accepted by the JSON API.

Field names are camelCase on the wire (the mobile client sends ``firstName``,
``addressLine1``...); ``populate_by_name`` keeps snake_case accepted too.
"""
from __future__ import annotations

from decimal import Decimal
from typing import Literal, Optional

from flask import request
from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from pydantic.alias_generators import to_camel


MAX_CART_QUANTITY = 10


class ApiModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
        extra="ignore",
    )


def parse_body(model: type[ApiModel], data: dict | None = None):
    """Validate the JSON body (or ``data``) against ``model``; raises pydantic.ValidationError."""
    payload = request.get_json(silent=True) if data is None else data
    if not isinstance(payload, dict):
        payload = {}
    return model.model_validate(payload)


# ---------------------------------------------------------------- auth

class RegisterRequest(ApiModel):
    email: EmailStr
    password: str = Field(min_length=6)
    first_name: str = Field(min_length=1, max_length=80)
    last_name: str = Field(min_length=1, max_length=80)
    phone: Optional[str] = Field(default=None, max_length=32)

    @field_validator("email")
    @classmethod
    def _lower_email(cls, v: str) -> str:
        return v.lower()


class LoginRequest(ApiModel):
    email: EmailStr
    password: str = Field(min_length=1)

    @field_validator("email")
    @classmethod
    def _lower_email(cls, v: str) -> str:
        return v.lower()


# ---------------------------------------------------------------- addresses

class AddressRequest(ApiModel):
    full_name: str = Field(min_length=1, max_length=160)
    phone: str = Field(min_length=10, max_length=32)
    address_line1: str = Field(min_length=1, max_length=255)
    address_line2: Optional[str] = Field(default=None, max_length=255)
    city: str = Field(min_length=1, max_length=120)
    state: str = Field(min_length=1, max_length=120)
    zip_code: str = Field(min_length=5, max_length=20)
    country: str = Field(default="USA", max_length=80)
    is_default: bool = False


class AddressUpdateRequest(ApiModel):
    full_name: Optional[str] = Field(default=None, min_length=1, max_length=160)
    phone: Optional[str] = Field(default=None, min_length=10, max_length=32)
    address_line1: Optional[str] = Field(default=None, min_length=1, max_length=255)
    address_line2: Optional[str] = Field(default=None, max_length=255)
    city: Optional[str] = Field(default=None, min_length=1, max_length=120)
    state: Optional[str] = Field(default=None, min_length=1, max_length=120)
    zip_code: Optional[str] = Field(default=None, min_length=5, max_length=20)
    country: Optional[str] = Field(default=None, max_length=80)
    is_default: Optional[bool] = None


# ---------------------------------------------------------------- catalog

class ProductRequest(ApiModel):
    name: str = Field(min_length=1, max_length=200)
    style_code: str = Field(min_length=1, max_length=64)
    description: str = Field(min_length=1)
    price: Decimal = Field(gt=0, max_digits=12, decimal_places=2)
    stock: int = Field(ge=0)
    category_id: int
    materials: list[str] = Field(default_factory=list)
    dimensions: Optional[str] = Field(default=None, max_length=200)
    care_instructions: Optional[str] = None
    images: list[str] = Field(default_factory=list)
    is_active: bool = True
    is_featured: bool = False


class ProductUpdateRequest(ApiModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    style_code: Optional[str] = Field(default=None, min_length=1, max_length=64)
    description: Optional[str] = Field(default=None, min_length=1)
    price: Optional[Decimal] = Field(default=None, gt=0, max_digits=12, decimal_places=2)
    stock: Optional[int] = Field(default=None, ge=0)
    category_id: Optional[int] = None
    materials: Optional[list[str]] = None
    dimensions: Optional[str] = Field(default=None, max_length=200)
    care_instructions: Optional[str] = None
    images: Optional[list[str]] = None
    is_active: Optional[bool] = None
    is_featured: Optional[bool] = None


class CategoryRequest(ApiModel):
    name: str = Field(min_length=1, max_length=120)
    slug: str = Field(min_length=1, max_length=140, pattern=r"^[a-z0-9]+(?:-[a-z0-9]+)*$")
    description: Optional[str] = None
    image_url: Optional[str] = Field(default=None, max_length=1024)
    order: int = 0


# ---------------------------------------------------------------- cart / wishlist

class CartAddRequest(ApiModel):
    product_id: int
    quantity: int = Field(default=1, ge=1, le=MAX_CART_QUANTITY)


class CartSyncLine(ApiModel):
    product_id: int
    quantity: int = Field(ge=1)


class CartSyncRequest(ApiModel):
    items: list[CartSyncLine] = Field(default_factory=list)


class WishlistToggleRequest(ApiModel):
    product_id: int


# ---------------------------------------------------------------- orders

class OrderLineRequest(ApiModel):
    product_id: int
    quantity: int = Field(gt=0)


class CreateOrderRequest(ApiModel):
    address_id: int
    items: list[OrderLineRequest] = Field(min_length=1)
    payment_method: Literal["stripe", "razorpay", "dodo"]

    @field_validator("payment_method", mode="before")
    @classmethod
    def _lower_method(cls, v):
        return v.strip().lower() if isinstance(v, str) else v


class OrderStatusUpdateRequest(ApiModel):
    status: Literal["PLACED", "CONFIRMED", "PROCESSING", "SHIPPED", "DELIVERED", "CANCELLED", "REFUNDED"]
    notes: Optional[str] = Field(default=None, max_length=2000)
    tracking_number: Optional[str] = Field(default=None, max_length=120)
    carrier: Optional[str] = Field(default=None, max_length=80)

    @field_validator("status", mode="before")
    @classmethod
    def _upper_status(cls, v):
        return v.strip().upper() if isinstance(v, str) else v


# ---------------------------------------------------------------- payments

class OrderRefRequest(ApiModel):
    order_id: int


class RazorpayVerifyRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore")

    razorpay_order_id: str = Field(min_length=1)
    razorpay_payment_id: str = Field(min_length=1)
    razorpay_signature: str = Field(min_length=1)


# ---------------------------------------------------------------- notifications

class DeviceRegisterRequest(ApiModel):
    token: str = Field(min_length=1, max_length=512)
    platform: Literal["ios", "android", "web"] = "android"


class PushSendRequest(ApiModel):
    title: str = Field(min_length=1, max_length=200)
    body: str = Field(min_length=1, max_length=1000)
    user_id: Optional[int] = None
    broadcast: bool = False
    data: dict[str, str] = Field(default_factory=dict)
