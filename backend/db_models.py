"""
SQLAlchemy ORM models for the Radeo Storefront API.

Tables:
    users                 — customers and admins
    addresses             — saved address book per customer
    wishlist_items        — saved products per customer
    categories            — admin-managed storefront categories
    products              — catalog entries (aggregate stock + override flag)
    product_sizes         — per-size stock rows
    stock_movements       — append-only inventory ledger
    cart_items            — one row per user/product/size
    orders                — purchases with payment, shipping, cancellation data
    order_items           — line items (price/name snapshot)
    shipment_events       — carrier tracking history per order
    order_counters        — per-day sequence for display order ids
    coupons               — discount codes
    filters               — storefront filter facets
    reviews, review_votes — product reviews and helpful votes
    app_banners           — home/app carousel banners
    notifications         — per-user inbox
    notification_history  — admin broadcast log
    site_settings         — CMS key/value settings (+ setting_audit_logs)
    analytics_events      — storefront funnel events
    webhook_logs          — idempotency log for provider webhooks
    contact_messages      — storefront contact form inbox
"""
from datetime import datetime

from sqlalchemy import (
    JSON, Column, Integer, String, Float, Boolean, DateTime, Text, ForeignKey,
    UniqueConstraint, Index,
)
from sqlalchemy.orm import relationship

from database import Base


class User(Base):
    """Storefront customers and back-office admins."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    name = Column(String(120), nullable=False)
    phone = Column(String(20), nullable=True)
    password_hash = Column(String(255), nullable=False)
    role = Column(String(20), nullable=False, default="customer")  # "customer" | "admin"
    is_blocked = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)


class Address(Base):
    """Saved delivery address; at most one per user is the default."""
    __tablename__ = "addresses"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(120), nullable=False)
    phone = Column(String(20), nullable=False)
    line1 = Column(String(255), nullable=False)
    line2 = Column(String(255), nullable=True)
    city = Column(String(100), nullable=False)
    state = Column(String(100), nullable=False)
    pincode = Column(String(6), nullable=False)
    country = Column(String(60), nullable=False, default="India")
    is_default = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


# ════════════════════════════════════════════════════════════════════
# Catalog & Inventory
# ════════════════════════════════════════════════════════════════════

class Product(Base):
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(200), nullable=False)
    slug = Column(String(200), unique=True, nullable=False, index=True)
    description = Column(Text, nullable=False, default="")
    specifications = Column(Text, nullable=False, default="")
    material_and_care = Column(Text, nullable=False, default="")
    shipping_and_returns = Column(Text, nullable=False, default="")
    category = Column(String(100), nullable=False, index=True)
    brand = Column(String(100), nullable=True)
    sku = Column(String(100), nullable=True)
    price = Column(Float, nullable=False)
    compare_price = Column(Float, nullable=True)
    stock = Column(Integer, nullable=False, default=0)  # aggregate; equals size sum when sizes exist
    colors = Column(JSON, nullable=False, default=list)
    tags = Column(JSON, nullable=False, default=list)
    images = Column(JSON, nullable=False, default=list)  # [{url, key, is_primary, order}]
    is_active = Column(Boolean, nullable=False, default=True, index=True)
    is_out_of_stock = Column(Boolean, nullable=False, default=False)  # manual override
    featured = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    sizes = relationship(
        "ProductSize",
        back_populates="product",
        lazy="selectin",
        cascade="all, delete-orphan",
        order_by="ProductSize.id",
    )


class ProductSize(Base):
    __tablename__ = "product_sizes"

    id = Column(Integer, primary_key=True, autoincrement=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False, index=True)
    size = Column(String(20), nullable=False)
    stock = Column(Integer, nullable=False, default=0)

    product = relationship("Product", back_populates="sizes")

    __table_args__ = (
        UniqueConstraint("product_id", "size", name="uq_product_size"),
    )


class StockMovement(Base):
    """
    Append-only inventory ledger.

    quantity is the signed delta applied to stock: a sale of 2 pairs is -2,
    a cancellation restoring them is +2. Rows are never updated or deleted.
    """
    __tablename__ = "stock_movements"

    id = Column(Integer, primary_key=True, autoincrement=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False, index=True)
    type = Column(String(30), nullable=False)  # sale | cancellation | manual_adjustment | return | payment_failed
    quantity = Column(Integer, nullable=False)
    size = Column(String(20), nullable=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=True, index=True)
    order_code = Column(String(30), nullable=True)
    performed_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    note = Column(Text, nullable=False, default="")
    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        Index("ix_stock_movements_product_created", "product_id", "created_at"),
        Index("ix_stock_movements_type_created", "type", "created_at"),
    )


class CartItem(Base):
    __tablename__ = "cart_items"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)
    size = Column(String(20), nullable=False)
    quantity = Column(Integer, nullable=False, default=1)
    added_at = Column(DateTime, default=datetime.utcnow)

    product = relationship("Product", lazy="selectin")

    __table_args__ = (
        UniqueConstraint("user_id", "product_id", "size", name="uq_cart_user_product_size"),
    )


class WishlistItem(Base):
    __tablename__ = "wishlist_items"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id", ondelete="CASCADE"), nullable=False)
    added_at = Column(DateTime, default=datetime.utcnow)

    product = relationship("Product", lazy="selectin")

    __table_args__ = (
        UniqueConstraint("user_id", "product_id", name="uq_wishlist_user_product"),
    )


class Category(Base):
    """Storefront category; products reference it by slug in Product.category."""
    __tablename__ = "categories"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(100), unique=True, nullable=False)
    slug = Column(String(100), unique=True, nullable=False, index=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)


# ════════════════════════════════════════════════════════════════════
# Orders & Shipping
# ════════════════════════════════════════════════════════════════════

class Order(Base):
    """
    A purchase. Status moves pending_payment → confirmed → processing →
    shipped → delivered, or to cancelled from any non-terminal state.
    Orders are never deleted.
    """
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, autoincrement=True)
    display_order_id = Column(String(30), unique=True, nullable=False, index=True)  # ORD-YYMMDD-####
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    status = Column(String(30), nullable=False, default="pending_payment", index=True)

    # Shipping address
    ship_name = Column(String(120), nullable=False)
    ship_phone = Column(String(20), nullable=False)
    ship_line1 = Column(String(255), nullable=False)
    ship_line2 = Column(String(255), nullable=True)
    ship_city = Column(String(100), nullable=False)
    ship_state = Column(String(100), nullable=False)
    ship_pincode = Column(String(10), nullable=False)

    # Payment sub-record
    payment_method = Column(String(20), nullable=False, default="cod")  # cod | razorpay
    payment_status = Column(String(20), nullable=False, default="pending")  # pending | paid | failed | refunded
    payment_transaction_id = Column(String(100), nullable=True)
    payment_gateway_order_id = Column(String(100), nullable=True, index=True)
    payment_refund_id = Column(String(100), nullable=True)

    # Shipping sub-record (Shiprocket + manual fields)
    shiprocket_order_id = Column(String(50), nullable=True)
    shipment_id = Column(String(50), nullable=True)
    awb_code = Column(String(50), nullable=True, index=True)
    courier_name = Column(String(100), nullable=True)
    courier_company_id = Column(Integer, nullable=True)
    label_url = Column(Text, nullable=True)
    manifest_url = Column(Text, nullable=True)
    tracking_url = Column(Text, nullable=True)
    lifecycle_status = Column(String(50), nullable=True)
    estimated_delivery_date = Column(DateTime, nullable=True)
    shipment_created_at = Column(DateTime, nullable=True)
    pickup_scheduled_at = Column(DateTime, nullable=True)
    manual_courier = Column(String(100), nullable=True)
    manual_tracking_id = Column(String(100), nullable=True)

    # Totals
    subtotal = Column(Float, nullable=False, default=0.0)
    discount = Column(Float, nullable=False, default=0.0)
    shipping_cost = Column(Float, nullable=False, default=0.0)
    total = Column(Float, nullable=False, default=0.0)
    coupon_code = Column(String(50), nullable=True, index=True)

    # Cancellation sub-record
    cancel_reason = Column(Text, nullable=True)
    cancelled_by = Column(String(20), nullable=True)  # admin | customer | system
    cancelled_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    user = relationship("User", lazy="selectin")
    items = relationship(
        "OrderItem",
        back_populates="order",
        lazy="selectin",
        cascade="all, delete-orphan",
        order_by="OrderItem.id",
    )
    shipment_events = relationship(
        "ShipmentEvent",
        back_populates="order",
        lazy="selectin",
        cascade="all, delete-orphan",
        order_by="ShipmentEvent.occurred_at",
    )

    __table_args__ = (
        Index("ix_orders_user_created", "user_id", "created_at"),
        Index("ix_orders_status_created", "status", "created_at"),
    )


class OrderItem(Base):
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False, index=True)
    name = Column(String(200), nullable=False)
    category = Column(String(100), nullable=True)
    size = Column(String(20), nullable=True)
    color = Column(String(50), nullable=True)
    quantity = Column(Integer, nullable=False, default=1)
    price = Column(Float, nullable=False, default=0.0)

    order = relationship("Order", back_populates="items")


class ShipmentEvent(Base):
    """One carrier scan / status update in an order's tracking history."""
    __tablename__ = "shipment_events"

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)
    status = Column(String(100), nullable=False)
    activity = Column(Text, nullable=True)
    location = Column(String(200), nullable=True)
    occurred_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    order = relationship("Order", back_populates="shipment_events")


class OrderCounter(Base):
    """Per-day counter keyed "orders-YYMMDD" for display order ids."""
    __tablename__ = "order_counters"

    id = Column(String(30), primary_key=True)
    seq = Column(Integer, nullable=False, default=0)


# ════════════════════════════════════════════════════════════════════
# Promotions & Storefront Content
# ════════════════════════════════════════════════════════════════════

class Coupon(Base):
    __tablename__ = "coupons"

    id = Column(Integer, primary_key=True, autoincrement=True)
    code = Column(String(50), unique=True, nullable=False, index=True)
    type = Column(String(20), nullable=False)  # flat | percent
    value = Column(Float, nullable=False)
    max_discount = Column(Float, nullable=True)  # cap for percent coupons
    min_order = Column(Float, nullable=False, default=0.0)
    valid_from = Column(DateTime, nullable=False, default=datetime.utcnow)
    expiry = Column(DateTime, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    usage_limit = Column(Integer, nullable=True)  # null => unlimited
    per_user_limit = Column(Integer, nullable=True)
    used_count = Column(Integer, nullable=False, default=0)
    first_order_only = Column(Boolean, nullable=False, default=False)
    applicable_categories = Column(JSON, nullable=False, default=list)  # empty => all
    description = Column(Text, nullable=False, default="")
    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class Filter(Base):
    __tablename__ = "filters"

    id = Column(Integer, primary_key=True, autoincrement=True)
    type = Column(String(20), nullable=False, index=True)  # category | priceRange | size | color | material
    name = Column(String(100), nullable=False)
    value = Column(String(100), nullable=False)
    display_order = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)
    min_price = Column(Float, nullable=False, default=0.0)
    max_price = Column(Float, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)


class Review(Base):
    __tablename__ = "reviews"

    id = Column(Integer, primary_key=True, autoincrement=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    rating = Column(Integer, nullable=False)
    title = Column(String(200), nullable=False)
    comment = Column(Text, nullable=False)
    photos = Column(JSON, nullable=False, default=list)
    verified_purchase = Column(Boolean, nullable=False, default=False)
    is_hidden = Column(Boolean, nullable=False, default=False, index=True)
    admin_notes = Column(Text, nullable=True)
    admin_reply = Column(Text, nullable=True)
    replied_at = Column(DateTime, nullable=True)
    helpful_votes = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    user = relationship("User", lazy="selectin")

    __table_args__ = (
        UniqueConstraint("product_id", "user_id", name="uq_review_product_user"),
    )


class ReviewVote(Base):
    __tablename__ = "review_votes"

    id = Column(Integer, primary_key=True, autoincrement=True)
    review_id = Column(Integer, ForeignKey("reviews.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("review_id", "user_id", name="uq_review_vote"),
    )


class AppBanner(Base):
    __tablename__ = "app_banners"

    id = Column(Integer, primary_key=True, autoincrement=True)
    image_url = Column(Text, nullable=False)
    image_key = Column(String(255), nullable=False, default="")
    blurhash = Column(String(100), nullable=False, default="")
    link_type = Column(String(20), nullable=False, default="none")  # none | url | product | category | screen
    link_value = Column(String(255), nullable=False, default="")
    title = Column(String(200), nullable=False, default="")
    subtitle = Column(String(255), nullable=False, default="")
    is_active = Column(Boolean, nullable=False, default=True)
    order = Column(Integer, nullable=False, default=0)
    platform = Column(String(10), nullable=False, default="both")  # app | web | both
    start_date = Column(DateTime, nullable=True)
    end_date = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        Index("ix_app_banners_active_platform_order", "is_active", "platform", "order"),
    )


# ════════════════════════════════════════════════════════════════════
# Notifications
# ════════════════════════════════════════════════════════════════════

class Notification(Base):
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    title = Column(String(200), nullable=False)
    body = Column(Text, nullable=False)
    type = Column(String(30), nullable=False, default="system")
    data = Column(JSON, nullable=False, default=dict)  # app navigates with this on tap
    image_url = Column(Text, nullable=False, default="")
    is_read = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        Index("ix_notifications_user_read_created", "user_id", "is_read", "created_at"),
    )


class NotificationHistory(Base):
    """One row per admin send, regardless of recipient count."""
    __tablename__ = "notification_history"

    id = Column(Integer, primary_key=True, autoincrement=True)
    title = Column(String(200), nullable=False)
    body = Column(Text, nullable=False)
    type = Column(String(30), nullable=False, default="promotion")
    target = Column(String(20), nullable=False)  # all | customers | users
    recipient_count = Column(Integer, nullable=False, default=0)
    data = Column(JSON, nullable=False, default=dict)
    image_url = Column(Text, nullable=False, default="")
    sent_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)


# ════════════════════════════════════════════════════════════════════
# CMS Settings
# ════════════════════════════════════════════════════════════════════

class SiteSetting(Base):
    __tablename__ = "site_settings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    key = Column(String(100), unique=True, nullable=False, index=True)
    category = Column(String(50), nullable=False, index=True)
    value = Column(JSON, nullable=True)
    is_public = Column(Boolean, nullable=False, default=True)
    version = Column(Integer, nullable=False, default=1)
    updated_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class SettingAuditLog(Base):
    __tablename__ = "setting_audit_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    key = Column(String(100), nullable=False, index=True)
    old_value = Column(JSON, nullable=True)
    new_value = Column(JSON, nullable=True)
    version = Column(Integer, nullable=False)
    changed_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)


# ════════════════════════════════════════════════════════════════════
# Analytics & Webhooks
# ════════════════════════════════════════════════════════════════════

class AnalyticsEvent(Base):
    __tablename__ = "analytics_events"

    id = Column(Integer, primary_key=True, autoincrement=True)
    event_type = Column(String(30), nullable=False)
    session_id = Column(String(100), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=True)
    path = Column(String(500), nullable=True)
    referrer = Column(String(500), nullable=True)
    device_type = Column(String(20), nullable=False, default="unknown")  # mobile | tablet | desktop | bot | unknown
    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        Index("ix_analytics_events_type_created", "event_type", "created_at"),
    )


class WebhookLog(Base):
    """
    Idempotency log for provider webhooks (Razorpay, Shiprocket).

    A processed event_id is never applied twice.
    """
    __tablename__ = "webhook_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    provider = Column(String(20), nullable=False)
    event_id = Column(String(200), unique=True, nullable=False, index=True)
    event_type = Column(String(50), nullable=False)
    status = Column(String(20), nullable=False, default="pending")
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=True)
    result = Column(Text, nullable=True)
    error = Column(Text, nullable=True)
    payload = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    processed_at = Column(DateTime, nullable=True)


class ContactMessage(Base):
    """Storefront contact form submissions, triaged by admins."""
    __tablename__ = "contact_messages"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(120), nullable=False)
    email = Column(String(200), nullable=False)
    subject = Column(String(200), nullable=False, default="")
    message = Column(Text, nullable=False)
    status = Column(String(20), nullable=False, default="new", index=True)  # new | read | resolved
    source = Column(String(30), nullable=False, default="website")
    user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
