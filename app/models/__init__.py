"""Database models for the Bricks fulfillment service"""

from app.models.order import (
    User,
    Address,
    Product,
    Order,
    OrderItem
)

from app.models.shipment import Shipment

from app.models.data_sync_status import DataSyncStatus

from app.models.status import (
    OrderStatus,
    CarrierStatus,
    ORDER_STATUS_UPLIFT
)

__all__ = [
    "User",
    "Address",
    "Product",
    "Order",
    "OrderItem",
    "Shipment",
    "DataSyncStatus",
    "OrderStatus",
    "CarrierStatus",
    "ORDER_STATUS_UPLIFT",
]
