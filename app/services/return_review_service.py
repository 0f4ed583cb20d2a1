"""
Customer return requests and their admin review.

delivered -> return_requested (customer) -> return_approved | return_rejected (admin)
"""
from typing import Any, Dict, Optional

from app.models.status import OrderStatus
from app.services.errors import (
    AccessDeniedError,
    MissingDataError,
    OrderNotFoundError,
    PreconditionError,
)
from app.services.shipment_repository import ShipmentRepository
from app.utils.logger import log

REJECTABLE_STATUSES = (
    OrderStatus.RETURN_REQUESTED.value,
    OrderStatus.RETURN_APPROVED.value,
)


class ReturnReviewService:
    def __init__(self, db=None, repository=None):
        self.repository = repository or ShipmentRepository(db)

    def _load_order(self, order_id: int):
        order = self.repository.get_order(order_id)
        if not order:
            raise OrderNotFoundError(f"Order #{order_id} not found")
        return order

    def request(self, order_id: int, user_id: Optional[int], reason: Optional[str] = None) -> Dict[str, Any]:
        """
        Open a return for a delivered order.

        When ``user_id`` is given the order must belong to that customer.
        The customer's reason is optional and kept on the order for review.
        """
        order = self._load_order(order_id)
        if user_id is not None and order.user_id != user_id:
            raise AccessDeniedError("Access denied")
        if order.status != OrderStatus.DELIVERED.value:
            raise PreconditionError(
                "Only delivered orders can be returned",
                details={"status": order.status},
            )

        reason = (reason or "").strip() or None
        self.repository.update_order(order.id, {
            "status": OrderStatus.RETURN_REQUESTED.value,
            "return_reason": reason,
            "return_rejection_reason": None,
        })
        log.info(f"Return requested for order #{order.id}: {reason or 'no reason given'}")
        return {
            "success": True,
            "message": "Return request sent. Waiting for administrator approval.",
            "order_id": order.id,
            "status": OrderStatus.RETURN_REQUESTED.value,
        }

    def approve(self, order_id: int) -> Dict[str, Any]:
        order = self._load_order(order_id)
        if order.status != OrderStatus.RETURN_REQUESTED.value:
            raise PreconditionError(
                "Only orders with a pending return request can be approved",
                details={"status": order.status},
            )

        self.repository.update_order(order.id, {"status": OrderStatus.RETURN_APPROVED.value})
        log.info(f"Return approved for order #{order.id}")
        return {
            "success": True,
            "message": "Return approved",
            "order_id": order.id,
            "status": OrderStatus.RETURN_APPROVED.value,
        }

    def reject(self, order_id: int, reason: Optional[str]) -> Dict[str, Any]:
        """Reject a requested (or approved, label not bought yet) return."""
        reason = (reason or "").strip()
        if not reason:
            raise MissingDataError("A rejection reason is required")

        order = self._load_order(order_id)
        if order.status not in REJECTABLE_STATUSES:
            raise PreconditionError(
                "Only pending or approved returns can be rejected",
                details={"status": order.status},
            )

        self.repository.update_order(order.id, {
            "status": OrderStatus.RETURN_REJECTED.value,
            "return_rejection_reason": reason,
        })
        log.info(f"Return rejected for order #{order.id}: {reason}")
        return {
            "success": True,
            "message": "Return rejected",
            "order_id": order.id,
            "status": OrderStatus.RETURN_REJECTED.value,
            "reason": reason,
        }
