"""
Order and carrier status vocabularies.

The store and the carrier spell cancellation differently ("cancelled" locally,
"canceled" at Melhor Envio). Both spellings are persisted as-is, so the two
vocabularies stay separate enums joined only through ORDER_STATUS_UPLIFT.
"""
from enum import Enum
from typing import Dict


class OrderStatus(str, Enum):
    """Local order lifecycle"""
    PAYMENT_PENDING = "payment_pending"
    PAYMENT_FAILED = "payment_failed"
    ABANDONED_CART = "abandoned_cart"
    PENDING = "pending"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    RETURN_REQUESTED = "return_requested"
    RETURN_APPROVED = "return_approved"
    RETURN_LABEL_GENERATED = "return_label_generated"
    RETURN_IN_TRANSIT = "return_in_transit"
    RETURN_RECEIVED = "return_received"
    RETURN_REJECTED = "return_rejected"


class CarrierStatus(str, Enum):
    """Shipment status as reported by Melhor Envio"""
    PENDING = "pending"
    RELEASED = "released"
    GENERATED = "generated"
    POSTED = "posted"
    IN_TRANSIT = "in_transit"
    DELIVERED = "delivered"
    CANCELED = "canceled"
    UNDELIVERED = "undelivered"
    EXPIRED = "expired"


# Carrier status -> order status the sync job lifts the order to
ORDER_STATUS_UPLIFT: Dict[str, OrderStatus] = {
    CarrierStatus.DELIVERED.value: OrderStatus.DELIVERED,
    CarrierStatus.POSTED.value: OrderStatus.SHIPPED,
    CarrierStatus.IN_TRANSIT.value: OrderStatus.SHIPPED,
    CarrierStatus.CANCELED.value: OrderStatus.CANCELLED,
}

# Position in the forward lifecycle; an uplift never moves an order to a lower rank
FORWARD_LIFECYCLE_RANK: Dict[str, int] = {
    OrderStatus.PAYMENT_PENDING.value: 0,
    OrderStatus.PAYMENT_FAILED.value: 0,
    OrderStatus.ABANDONED_CART.value: 0,
    OrderStatus.PENDING.value: 0,
    OrderStatus.PROCESSING.value: 1,
    OrderStatus.SHIPPED.value: 2,
    OrderStatus.DELIVERED.value: 3,
    OrderStatus.CANCELLED.value: 3,
}

RETURN_STATUSES = frozenset({
    OrderStatus.RETURN_REQUESTED.value,
    OrderStatus.RETURN_APPROVED.value,
    OrderStatus.RETURN_LABEL_GENERATED.value,
    OrderStatus.RETURN_IN_TRANSIT.value,
    OrderStatus.RETURN_RECEIVED.value,
    OrderStatus.RETURN_REJECTED.value,
})

# Shipment statuses after which the sync job stops polling
CARRIER_TERMINAL_STATUSES = (CarrierStatus.DELIVERED.value, CarrierStatus.CANCELED.value)

