"""
Persistence access for orders and shipments.

The sync job and the return-label workflow only go through this class, so
tests can swap it for an in-memory fake. Each write commits immediately:
one row per update. Only buying and voiding a return label touch two rows
in one commit.
"""
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session, joinedload, selectinload

from app.models.order import Order, OrderItem
from app.models.shipment import Shipment
from app.models.status import CARRIER_TERMINAL_STATUSES


@dataclass
class SyncCandidate:
    """Snapshot of the order + shipment fields the sync job diffs against."""
    order_id: int
    order_status: str
    order_tracking_code: Optional[str]
    shipment_id: int
    melhor_envio_id: str
    status: Optional[str]
    tracking_code: Optional[str] = None
    protocol: Optional[str] = None
    service_name: Optional[str] = None
    carrier: Optional[str] = None
    posted: bool = False
    posted_at: Optional[datetime] = None
    delivered: bool = False
    delivered_at: Optional[datetime] = None
    canceled: bool = False
    canceled_at: Optional[datetime] = None


def _candidate_from_row(shipment: Shipment, order: Order) -> SyncCandidate:
    return SyncCandidate(
        order_id=order.id,
        order_status=order.status,
        order_tracking_code=order.shipping_tracking_code,
        shipment_id=shipment.id,
        melhor_envio_id=shipment.melhor_envio_id,
        status=shipment.status,
        tracking_code=shipment.tracking_code,
        protocol=shipment.protocol,
        service_name=shipment.service_name,
        carrier=shipment.carrier,
        posted=bool(shipment.posted),
        posted_at=shipment.posted_at,
        delivered=bool(shipment.delivered),
        delivered_at=shipment.delivered_at,
        canceled=bool(shipment.canceled),
        canceled_at=shipment.canceled_at,
    )


class ShipmentRepository:
    """SQLAlchemy-backed order/shipment store"""

    def __init__(self, db: Session):
        self.db = db

    def list_sync_candidates(self) -> List[SyncCandidate]:
        """
        Shipments bought at the carrier that are not settled yet, newest order first.

        A shipment is settled once it is flagged delivered and its status is
        delivered or canceled.
        """
        rows = (
            self.db.query(Shipment, Order)
            .join(Order, Shipment.order_id == Order.id)
            .filter(
                Shipment.melhor_envio_id.isnot(None),
                or_(
                    Shipment.delivered.is_(False),
                    Shipment.status.notin_(CARRIER_TERMINAL_STATUSES),
                ),
            )
            .order_by(Order.id.desc(), Shipment.id.desc())
            .all()
        )
        return [_candidate_from_row(shipment, order) for shipment, order in rows]

    def update_shipment(self, shipment_id: int, changes: Dict[str, Any]) -> None:
        self._update(Shipment, shipment_id, changes)

    def update_order(self, order_id: int, changes: Dict[str, Any]) -> None:
        self._update(Order, order_id, changes)

    def _update(self, model, row_id: int, changes: Dict[str, Any]) -> None:
        try:
            self.db.query(model).filter(model.id == row_id).update(
                {**changes, "updated_at": datetime.utcnow()},
                synchronize_session=False,
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

    def get_order(self, order_id: int) -> Optional[Order]:
        """Order with customer, address, items (with products) and shipments loaded."""
        return (
            self.db.query(Order)
            .options(
                joinedload(Order.user),
                joinedload(Order.address),
                selectinload(Order.items).joinedload(OrderItem.product),
                selectinload(Order.shipments),
            )
            .filter(Order.id == order_id)
            .first()
        )

    def latest_shipment(self, order_id: int) -> Optional[Shipment]:
        return (
            self.db.query(Shipment)
            .filter(Shipment.order_id == order_id)
            .order_by(Shipment.created_at.desc(), Shipment.id.desc())
            .first()
        )

    def create_return_shipment(
        self,
        order_id: int,
        fields: Dict[str, Any],
        order_changes: Dict[str, Any],
    ) -> Shipment:
        """Insert the reverse shipment and update the order in one commit."""
        now = datetime.utcnow()
        shipment = Shipment(order_id=order_id, **fields)
        self.db.add(shipment)
        self.db.query(Order).filter(Order.id == order_id).update(
            {**order_changes, "updated_at": now},
            synchronize_session=False,
        )
        try:
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self.db.refresh(shipment)
        return shipment

    def void_return_shipment(
        self,
        order_id: int,
        shipment_id: int,
        shipment_changes: Dict[str, Any],
        order_changes: Dict[str, Any],
    ) -> None:
        """Mark a cancelled reverse shipment and roll the order back in one commit."""
        now = datetime.utcnow()
        self.db.query(Shipment).filter(Shipment.id == shipment_id).update(
            {**shipment_changes, "updated_at": now},
            synchronize_session=False,
        )
        self.db.query(Order).filter(Order.id == order_id).update(
            {**order_changes, "updated_at": now},
            synchronize_session=False,
        )
        try:
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise


def shipment_to_dict(shipment: Shipment) -> Dict[str, Any]:
    """JSON-friendly view of a shipment row"""

    def _iso(value):
        return value.isoformat() if value else None

    def _num(value):
        return float(value) if isinstance(value, Decimal) else value

    return {
        "id": shipment.id,
        "order_id": shipment.order_id,
        "melhor_envio_id": shipment.melhor_envio_id,
        "protocol": shipment.protocol,
        "tracking_code": shipment.tracking_code,
        "service_id": shipment.service_id,
        "service_name": shipment.service_name,
        "carrier": shipment.carrier,
        "status": shipment.status,
        "paid": shipment.paid,
        "posted": shipment.posted,
        "posted_at": _iso(shipment.posted_at),
        "delivered": shipment.delivered,
        "delivered_at": _iso(shipment.delivered_at),
        "canceled": shipment.canceled,
        "canceled_at": _iso(shipment.canceled_at),
        "label_url": shipment.label_url,
        "price": _num(shipment.price),
        "discount": _num(shipment.discount),
        "final_price": _num(shipment.final_price),
        "delivery_time": shipment.delivery_time,
        "created_at": _iso(shipment.created_at),
    }
