"""
Domain constants used across services/routers.
"""

from domain.enums import OrderStatus, AnalyticsEventType

# Happy-path order lifecycle ("advance" walks this list)
ORDER_STATUS_FLOW = [
    OrderStatus.PENDING_PAYMENT.value,
    OrderStatus.CONFIRMED.value,
    OrderStatus.PROCESSING.value,
    OrderStatus.SHIPPED.value,
    OrderStatus.DELIVERED.value,
]

# Allowed next states; cancelled is reachable from every non-terminal state
ORDER_TRANSITIONS = {
    OrderStatus.PENDING_PAYMENT.value: [OrderStatus.CONFIRMED.value, OrderStatus.CANCELLED.value],
    OrderStatus.CONFIRMED.value: [OrderStatus.PROCESSING.value, OrderStatus.CANCELLED.value],
    OrderStatus.PROCESSING.value: [OrderStatus.SHIPPED.value, OrderStatus.CANCELLED.value],
    OrderStatus.SHIPPED.value: [OrderStatus.DELIVERED.value, OrderStatus.CANCELLED.value],
    OrderStatus.DELIVERED.value: [],
    OrderStatus.CANCELLED.value: [],
}

TERMINAL_ORDER_STATUSES = {OrderStatus.DELIVERED.value, OrderStatus.CANCELLED.value}

# Customers may cancel on their own only before the parcel leaves
CUSTOMER_CANCELLABLE_STATUSES = {
    OrderStatus.PENDING_PAYMENT.value,
    OrderStatus.CONFIRMED.value,
    OrderStatus.PROCESSING.value,
}

# Orders counted as revenue on dashboards
REVENUE_ORDER_STATUSES = [
    OrderStatus.CONFIRMED.value,
    OrderStatus.PROCESSING.value,
    OrderStatus.SHIPPED.value,
    OrderStatus.DELIVERED.value,
]

ORDER_DISPLAY_PREFIX = "ORD"
ORDER_DISPLAY_SEQ_BASE = 1000

FUNNEL_STEPS = [
    AnalyticsEventType.PAGE_VIEW.value,
    AnalyticsEventType.PRODUCT_VIEW.value,
    AnalyticsEventType.ADD_TO_CART.value,
    AnalyticsEventType.CHECKOUT_STARTED.value,
    AnalyticsEventType.PURCHASE.value,
]

MAX_REVIEW_PHOTOS = 2

# Size label stored on cart and order lines of products without size rows
UNSIZED_LABEL = "free"

# Shiprocket shipment states that mean the parcel is moving
SHIPROCKET_IN_TRANSIT_STATES = {
    "PICKED UP",
    "SHIPPED",
    "IN TRANSIT",
    "OUT FOR DELIVERY",
    "REACHED AT DESTINATION HUB",
}
SHIPROCKET_DELIVERED_STATES = {"DELIVERED"}
