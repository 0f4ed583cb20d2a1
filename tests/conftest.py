from datetime import datetime, timedelta
from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import app.models  # noqa: F401  (registers every model on Base.metadata)
from app.models import Address, Order, OrderItem, Product, Shipment, User
from app.models.base import Base


@pytest.fixture
def session_factory():
    """Session factory bound to a fresh in-memory SQLite database."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    yield factory
    engine.dispose()


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def make_order(db):
    """Insert an order (customer, address, one item) with optional shipments."""
    counter = {"n": 0}

    def _make(order_id, status="processing", shipments=(), tracking_code=None):
        counter["n"] += 1
        n = counter["n"]
        user = User(name=f"Customer {n}", email=f"customer{n}@example.com", cpf="12345678909", phone="13999990000")
        product = Product(name=f"Brick Set {n}", price=Decimal("80.00"))
        address = Address(
            recipient_name=user.name, street="Rua das Flores", number="42",
            neighborhood="Gonzaga", city="Santos", state="SP", cep="11060-001",
        )
        order = Order(
            id=order_id, user=user, address=address, status=status,
            shipping_tracking_code=tracking_code,
            created_at=datetime(2024, 3, 1) + timedelta(minutes=order_id),
        )
        order.items = [OrderItem(product=product, quantity=1, price=Decimal("80.00"))]
        for fields in shipments:
            order.shipments.append(Shipment(**fields))
        db.add(order)
        db.commit()
        return order

    return _make
