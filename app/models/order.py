"""
Storefront order models

Orders are created by the checkout flow; this service only reads customers,
addresses and items, and mutates order status / tracking code.
"""
from sqlalchemy import Column, Integer, String, DateTime, Numeric, ForeignKey, Text
from sqlalchemy.orm import relationship
from datetime import datetime
from app.models.base import Base


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    email = Column(String, unique=True, index=True, nullable=False)
    cpf = Column(String, nullable=True)  # Tax document, required by the carrier
    phone = Column(String, nullable=True)
    role = Column(String, default="user")  # user, admin
    created_at = Column(DateTime, default=datetime.utcnow)


class Address(Base):
    __tablename__ = "addresses"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), index=True, nullable=True)
    recipient_name = Column(String, nullable=True)
    street = Column(String, nullable=False)
    number = Column(String, nullable=False)
    complement = Column(String, nullable=True)
    neighborhood = Column(String, nullable=False)
    city = Column(String, nullable=False)
    state = Column(String(2), nullable=False)  # UF
    cep = Column(String, nullable=False)


class Product(Base):
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    price = Column(Numeric(10, 2), nullable=False)


class Order(Base):
    """
    Customer order.

    ``status`` holds an OrderStatus value. ``shipments`` keeps every shipment
    bought for the order (forward delivery first, reverse logistics later);
    ``shipment`` is the most recent one.
    """
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), index=True, nullable=False)
    address_id = Column(Integer, ForeignKey("addresses.id"), nullable=True)

    status = Column(String, index=True, nullable=False, default="pending")
    shipping_tracking_code = Column(String, index=True, nullable=True)
    return_reason = Column(Text, nullable=True)  # Customer's reason for the return
    return_rejection_reason = Column(Text, nullable=True)  # Admin's reason when refused

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    user = relationship("User")
    address = relationship("Address")
    items = relationship("OrderItem", back_populates="order", order_by="OrderItem.id")
    shipments = relationship(
        "Shipment",
        back_populates="order",
        order_by="Shipment.id",
    )

    @property
    def shipment(self):
        return self.shipments[-1] if self.shipments else None


class OrderItem(Base):
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), index=True, nullable=False)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)
    quantity = Column(Integer, nullable=False, default=1)
    price = Column(Numeric(10, 2), nullable=False)  # Unit price paid

    order = relationship("Order", back_populates="items")
    product = relationship("Product")
