from myzo.models.user import User, UserRole
from myzo.models.refresh_token import RefreshToken
from myzo.models.category import Category
from myzo.models.product import Product
from myzo.models.address import Address
from myzo.models.cart_item import CartItem
from myzo.models.wishlist_item import WishlistItem
from myzo.models.device_token import DeviceToken
from myzo.models.order import (
    Order,
    OrderItem,
    OrderStatusHistory,
    OrderStatus,
    PaymentStatus,
    PaymentMethod,
)
from myzo.models.webhook_event import WebhookEvent
from myzo.models.idempotency_key import IdempotencyKey

__all__ = [
    "User",
    "UserRole",
    "RefreshToken",
    "Category",
    "Product",
    "Address",
    "CartItem",
    "WishlistItem",
    "DeviceToken",
    "Order",
    "OrderItem",
    "OrderStatusHistory",
    "OrderStatus",
    "PaymentStatus",
    "PaymentMethod",
    "WebhookEvent",
    "IdempotencyKey",
]
