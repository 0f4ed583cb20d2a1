"""
Melhor Envio shipment model

Mirrors the carrier-side order. Milestone flags (posted / delivered /
canceled) only ever go from False to True; their timestamps are written on
that transition and never again.
"""
from sqlalchemy import Column, Integer, String, DateTime, Boolean, Numeric, ForeignKey, Text
from sqlalchemy.orm import relationship
from datetime import datetime
from app.models.base import Base


class Shipment(Base):
    __tablename__ = "shipments"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), index=True, nullable=False)

    # Carrier identifiers
    melhor_envio_id = Column(String, unique=True, index=True, nullable=True)
    protocol = Column(String, nullable=True)
    tracking_code = Column(String, index=True, nullable=True)

    # Service
    service_id = Column(Integer, nullable=True)
    service_name = Column(String, nullable=True)
    carrier = Column(String, nullable=True)  # Company name (Correios, Jadlog, ...)

    # Carrier status, free text in carrier vocabulary
    status = Column(String, index=True, nullable=False, default="pending")

    # Milestones
    paid = Column(Boolean, default=False, nullable=False)
    posted = Column(Boolean, default=False, nullable=False)
    posted_at = Column(DateTime(timezone=True), nullable=True)
    delivered = Column(Boolean, default=False, nullable=False)
    delivered_at = Column(DateTime(timezone=True), nullable=True)
    canceled = Column(Boolean, default=False, nullable=False)
    canceled_at = Column(DateTime(timezone=True), nullable=True)

    # Label
    label_url = Column(String, nullable=True)

    # Cost
    price = Column(Numeric(10, 2), nullable=True)
    discount = Column(Numeric(10, 2), default=0)
    final_price = Column(Numeric(10, 2), nullable=True)
    delivery_time = Column(Integer, nullable=True)  # Days, upper bound of delivery range

    error = Column(Text, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    order = relationship("Order", back_populates="shipments")
