"""
Domain enums shared by services, routes and ORM defaults.
"""

from enum import Enum


class UserRole(str, Enum):
    CUSTOMER = "customer"
    ADMIN = "admin"


class OrderStatus(str, Enum):
    PENDING_PAYMENT = "pending_payment"
    CONFIRMED = "confirmed"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class PaymentMethod(str, Enum):
    COD = "cod"
    RAZORPAY = "razorpay"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"


class CancelledBy(str, Enum):
    ADMIN = "admin"
    CUSTOMER = "customer"
    SYSTEM = "system"


class StockMovementType(str, Enum):
    SALE = "sale"
    CANCELLATION = "cancellation"
    MANUAL_ADJUSTMENT = "manual_adjustment"
    RETURN = "return"
    PAYMENT_FAILED = "payment_failed"


class CouponType(str, Enum):
    FLAT = "flat"
    PERCENT = "percent"


class FilterType(str, Enum):
    CATEGORY = "category"
    PRICE_RANGE = "priceRange"
    SIZE = "size"
    COLOR = "color"
    MATERIAL = "material"


class NotificationType(str, Enum):
    ORDER_PLACED = "order_placed"
    ORDER_SHIPPED = "order_shipped"
    ORDER_DELIVERED = "order_delivered"
    ORDER_CANCELLED = "order_cancelled"
    PRICE_DROP = "price_drop"
    BACK_IN_STOCK = "back_in_stock"
    PROMOTION = "promotion"
    NEW_ARRIVAL = "new_arrival"
    REVIEW_REPLY = "review_reply"
    SYSTEM = "system"


class NotificationTarget(str, Enum):
    ALL = "all"
    CUSTOMERS = "customers"
    USERS = "users"


class BannerLinkType(str, Enum):
    NONE = "none"
    URL = "url"
    PRODUCT = "product"
    CATEGORY = "category"
    SCREEN = "screen"


class BannerPlatform(str, Enum):
    APP = "app"
    WEB = "web"
    BOTH = "both"


class AnalyticsEventType(str, Enum):
    PAGE_VIEW = "page_view"
    PRODUCT_VIEW = "product_view"
    ADD_TO_CART = "add_to_cart"
    CHECKOUT_STARTED = "checkout_started"
    PURCHASE = "purchase"


class WebhookStatus(str, Enum):
    PENDING = "pending"
    PROCESSED = "processed"
    FAILED = "failed"


class ContactStatus(str, Enum):
    NEW = "new"
    READ = "read"
    RESOLVED = "resolved"
