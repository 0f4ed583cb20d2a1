"""
Return Label Service
Buys reverse-logistics shipping for an approved return.

Flow (each step feeds the next; nothing is written locally until the carrier
purchase has gone through):
  1. Quote the route customer -> return depot with options.reverse
  2. Put the chosen service in the Melhor Envio cart
  3. Check out (pays for the label, yields the protocol)
  4. Ask the carrier to generate the label
  5. Fetch the printable label URL (may not be ready yet; not fatal)
  6. Fetch the carrier order for its tracking code (not fatal either)
Then the reverse Shipment row is created and the order moves to
return_label_generated in a single commit.

A failure in steps 1-4 aborts the workflow with the order untouched, so the
caller can simply retry.

A label that has not been posted can be voided with cancel_label,
which puts the order back to return_approved.
"""
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional
import re

from app.config import get_settings
from app.connectors.melhor_envio_connector import ShippingQuote, get_melhor_envio_connector
from app.models.order import Order
from app.models.shipment import Shipment
from app.models.status import CarrierStatus, OrderStatus
from app.services.errors import (
    AccessDeniedError,
    CarrierApiError,
    MissingDataError,
    NoShippingOptionError,
    OrderNotFoundError,
    PreconditionError,
)
from app.services.shipment_repository import ShipmentRepository, shipment_to_dict
from app.utils.logger import log


@dataclass(frozen=True)
class PackageDimensions:
    width_cm: int
    height_cm: int
    length_cm: int
    weight_kg: Decimal


# Placeholder size used for every returned item; products carry no dimensions yet.
RETURN_PACKAGE_DIMENSIONS = PackageDimensions(
    width_cm=20,
    height_cm=10,
    length_cm=30,
    weight_kg=Decimal("0.3"),
)

PREFERRED_RETURN_SERVICE = "PAC"

RETURN_LABEL_INSTRUCTIONS = [
    "1. Download and print the label",
    "2. Stick the label on the package",
    "3. Drop the package off at a Correios or carrier agency",
    "4. Keep the posting receipt",
]


def only_digits(value: Optional[str]) -> str:
    return re.sub(r"\D", "", value or "")


@dataclass
class DepotAddress:
    """Merchant identity and address receiving returned parcels"""
    name: str
    phone: str
    email: str
    document: str
    address: str
    number: str
    complement: str
    district: str
    city: str
    state: str
    postal_code: str

    @classmethod
    def from_settings(cls, settings=None) -> "DepotAddress":
        settings = settings or get_settings()
        return cls(
            name=settings.company_name,
            phone=only_digits(settings.company_phone),
            email=settings.company_email,
            document=only_digits(settings.company_document),
            address=settings.company_address,
            number=settings.company_number,
            complement=settings.company_complement,
            district=settings.company_district,
            city=settings.company_city,
            state=settings.company_state,
            postal_code=only_digits(settings.company_cep),
        )

    def to_carrier_party(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "phone": self.phone,
            "email": self.email,
            "document": self.document,
            "address": self.address,
            "complement": self.complement,
            "number": self.number,
            "district": self.district,
            "city": self.city,
            "state_abbr": self.state,
            "country_id": "BR",
            "postal_code": self.postal_code,
        }


@dataclass
class ReturnLabelResult:
    success: bool
    shipment: Shipment
    label_url: Optional[str]
    tracking_code: Optional[str]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "message": "Return label generated",
            "shipment": shipment_to_dict(self.shipment),
            "label_url": self.label_url,
            "tracking_code": self.tracking_code,
        }


def _money(value) -> float:
    return float(Decimal(str(value or 0)).quantize(Decimal("0.01")))


def build_quote_products(order: Order) -> List[Dict[str, Any]]:
    """One quoted product line per order item, with placeholder dimensions."""
    dims = RETURN_PACKAGE_DIMENSIONS
    return [
        {
            "id": str(item.product_id),
            "width": dims.width_cm,
            "height": dims.height_cm,
            "length": dims.length_cm,
            "weight": float(dims.weight_kg),
            "insurance_value": _money(Decimal(str(item.price)) * item.quantity),
            "quantity": item.quantity,
        }
        for item in order.items
    ]


def build_quote_payload(order: Order, depot: DepotAddress) -> Dict[str, Any]:
    """Reverse quote: the customer ships back from the delivery address to the depot."""
    products = build_quote_products(order)
    return {
        "from": {"postal_code": only_digits(order.address.cep)},
        "to": {"postal_code": depot.postal_code},
        "products": products,
        "options": {
            "receipt": False,
            "own_hand": False,
            "reverse": True,
            "insurance_value": _money(sum(Decimal(str(p["insurance_value"])) for p in products)),
        },
    }


def select_quote(quotes: List[ShippingQuote]) -> ShippingQuote:
    """PAC when it is available, otherwise the first error-free quote."""
    for quote in quotes:
        if quote.available and quote.name == PREFERRED_RETURN_SERVICE:
            return quote
    for quote in quotes:
        if quote.available:
            return quote

    quote_errors = [f"{q.name}: {q.error or 'unavailable'}" for q in quotes]
    raise NoShippingOptionError(
        "No shipping service available for this return. Errors: " + "; ".join(quote_errors)
        if quote_errors else "No shipping service available for this return",
        quote_errors,
    )


def build_cart_payload(order: Order, quote: ShippingQuote, depot: DepotAddress) -> Dict[str, Any]:
    """Cart entry for the reverse shipment: one consolidated volume."""
    dims = RETURN_PACKAGE_DIMENSIONS
    address = order.address
    customer = order.user
    total_weight = sum(dims.weight_kg * item.quantity for item in order.items)
    insurance_value = sum(Decimal(str(item.price)) * item.quantity for item in order.items)

    return {
        "service": quote.id,
        "agency": None,
        "from": {
            "name": (customer.name if customer else None) or address.recipient_name or "",
            "phone": only_digits(customer.phone if customer else None),
            "email": customer.email if customer else "",
            "document": only_digits(customer.cpf if customer else None),
            "address": address.street,
            "complement": address.complement or "",
            "number": address.number,
            "district": address.neighborhood,
            "city": address.city,
            "state_abbr": address.state,
            "country_id": "BR",
            "postal_code": only_digits(address.cep),
        },
        "to": depot.to_carrier_party(),
        "products": [
            {
                "name": item.product.name if item.product else f"Product {item.product_id}",
                "quantity": item.quantity,
                "unitary_value": _money(item.price),
            }
            for item in order.items
        ],
        "volumes": [
            {
                "height": dims.height_cm,
                "width": dims.width_cm,
                "length": dims.length_cm,
                "weight": float(total_weight),
            }
        ],
        "options": {
            "insurance_value": _money(insurance_value),
            "receipt": False,
            "own_hand": False,
            "reverse": True,
            "non_commercial": False,
        },
    }


class ReturnLabelService:
    """Reverse-logistics label purchase and lookup"""

    def __init__(self, db=None, carrier=None, repository=None, depot: Optional[DepotAddress] = None):
        self.repository = repository or ShipmentRepository(db)
        self._carrier = carrier
        self.depot = depot or DepotAddress.from_settings()

    def _get_carrier(self):
        if self._carrier is None:
            self._carrier = get_melhor_envio_connector()
        return self._carrier

    def _load_order(self, order_id: int) -> Order:
        order = self.repository.get_order(order_id)
        if not order:
            raise OrderNotFoundError(f"Order #{order_id} not found")
        return order

    async def generate(self, order_id: int) -> ReturnLabelResult:
        """Buy and register the return label for an order in return_approved."""
        order = self._load_order(order_id)

        if order.status != OrderStatus.RETURN_APPROVED.value:
            raise PreconditionError(
                "Order is not approved for return",
                details={"status": order.status},
            )
        if order.address is None:
            raise MissingDataError(f"Order #{order_id} has no delivery address")
        if not order.items:
            raise MissingDataError(f"Order #{order_id} has no items to return")

        carrier = self._get_carrier()
        log.info(f"Generating return label for order #{order_id}")

        # 1. Reverse quote
        log.info("Step 1/6: quoting reverse shipping...")
        quotes = await self._step("Failed to quote return shipping",
                                  carrier.calculate_shipping(build_quote_payload(order, self.depot)))
        for quote in quotes:
            state = f"error: {quote.error}" if quote.error else f"R$ {quote.price}"
            log.info(f"  [{quote.id}] {quote.name} - {state}")
        selected = select_quote(quotes)
        log.info(f"Selected service {selected.name} (id {selected.id}) - R$ {selected.price}")

        # 2. Cart
        log.info("Step 2/6: adding return shipment to cart...")
        cart_entry = await self._step("Failed to add return shipment to cart",
                                      carrier.add_to_cart([build_cart_payload(order, selected, self.depot)]))
        log.info(f"Added to cart: {cart_entry.id}")

        # 3. Checkout
        log.info("Step 3/6: checking out...")
        checkout = await self._step("Failed to check out return shipment",
                                    carrier.checkout([cart_entry.id]))
        log.info(f"Checkout done, protocol {checkout.protocol}")

        # 4. Label generation
        log.info("Step 4/6: generating label...")
        await self._step("Failed to generate return label", carrier.generate_labels([cart_entry.id]))

        # 5. Print URL
        log.info("Step 5/6: fetching label print URL...")
        label_url = None
        try:
            label_url = await carrier.print_labels([cart_entry.id])
        except CarrierApiError as e:
            log.warning(f"Label print URL not available yet for {cart_entry.id}: {e.message}")
        log.info(f"Label URL: {label_url}")

        # 6. Carrier order details
        log.info("Step 6/6: fetching carrier order details...")
        tracking_code = None
        protocol = checkout.protocol
        try:
            details = await carrier.get_order(cart_entry.id)
            tracking_code = details.tracking
            protocol = protocol or details.protocol
        except CarrierApiError as e:
            log.warning(f"Could not fetch carrier order {cart_entry.id}: {e.message}")

        price = selected.price if selected.price is not None else Decimal("0")
        discount = selected.discount or Decimal("0")
        shipment_fields = {
            "melhor_envio_id": cart_entry.id,
            "protocol": protocol,
            "service_id": selected.id,
            "service_name": selected.name,
            "carrier": selected.company_name,
            "price": price,
            "discount": discount,
            "final_price": price - discount,
            "delivery_time": selected.delivery_range_max,
            "tracking_code": tracking_code,
            "status": CarrierStatus.PENDING.value,
            "label_url": label_url,
            "paid": False,
            "posted": False,
            "delivered": False,
            "canceled": False,
        }
        order_changes: Dict[str, Any] = {"status": OrderStatus.RETURN_LABEL_GENERATED.value}
        if tracking_code:
            order_changes["shipping_tracking_code"] = tracking_code

        shipment = self.repository.create_return_shipment(order.id, shipment_fields, order_changes)
        log.info(f"Return label generated for order #{order_id} (shipment #{shipment.id})")

        return ReturnLabelResult(
            success=True,
            shipment=shipment,
            label_url=label_url,
            tracking_code=tracking_code,
        )

    @staticmethod
    async def _step(failure_message: str, call):
        try:
            return await call
        except CarrierApiError as e:
            log.error(f"{failure_message}: {e.message}")
            raise CarrierApiError(
                f"{failure_message}: {e.message}",
                status_code=e.http_status,
                response_body=e.response_body,
            ) from e

    async def get_label(self, order_id: int, user_id: Optional[int] = None) -> Dict[str, Any]:
        """
        Return label details for the customer.

        When ``user_id`` is given the order must belong to that customer.
        When the label URL was not ready at purchase time, the carrier is
        asked again and the URL stored once it shows up.
        """
        order = self._load_order(order_id)
        if user_id is not None and order.user_id != user_id:
            raise AccessDeniedError("Access denied")

        if order.status != OrderStatus.RETURN_LABEL_GENERATED.value:
            if order.status == OrderStatus.RETURN_REQUESTED.value:
                reason = "Waiting for administrator approval"
            elif order.status == OrderStatus.RETURN_APPROVED.value:
                reason = "Approved, waiting for label generation"
            else:
                reason = "Order status does not allow downloading a return label"
            raise PreconditionError(
                "Return label not available yet",
                details={"status": order.status, "message": reason},
            )

        shipment = self.repository.latest_shipment(order.id)
        if shipment is None:
            raise OrderNotFoundError("Return label not found. Please contact support.")

        label_url = shipment.label_url
        if not label_url and shipment.melhor_envio_id:
            label_url = await self._refresh_label_url(shipment)
        if not label_url:
            raise OrderNotFoundError("Return label not found. Please contact support.")

        return {
            "success": True,
            "order_id": order.id,
            "label_url": label_url,
            "tracking_code": shipment.tracking_code or order.shipping_tracking_code,
            "protocol": shipment.protocol,
            "carrier": shipment.carrier,
            "service_name": shipment.service_name,
            "instructions": RETURN_LABEL_INSTRUCTIONS,
        }

    async def _refresh_label_url(self, shipment: Shipment) -> Optional[str]:
        try:
            label_url = await self._get_carrier().print_labels([shipment.melhor_envio_id])
        except CarrierApiError as e:
            log.warning(f"Label still unavailable for {shipment.melhor_envio_id}: {e.message}")
            return None
        if label_url:
            self.repository.update_shipment(shipment.id, {"label_url": label_url})
        return label_url

    async def cancel_label(self, order_id: int, reason: Optional[str] = None) -> Dict[str, Any]:
        """
        Void a bought return label that has not been posted yet.

        The carrier cancels the purchase; the reverse shipment is flagged
        canceled and the order goes back to return_approved, so a new label
        can be generated.
        """
        order = self._load_order(order_id)
        if order.status != OrderStatus.RETURN_LABEL_GENERATED.value:
            raise PreconditionError(
                "Order has no return label to cancel",
                details={"status": order.status},
            )

        shipment = self.repository.latest_shipment(order.id)
        if shipment is None or not shipment.melhor_envio_id:
            raise OrderNotFoundError("Return label not found. Please contact support.")
        if shipment.posted or shipment.canceled:
            raise PreconditionError(
                "Return label can no longer be cancelled",
                details={"posted": bool(shipment.posted), "canceled": bool(shipment.canceled)},
            )

        carrier = self._get_carrier()
        canceled = await self._step(
            "Failed to cancel return label",
            carrier.cancel_shipment(shipment.melhor_envio_id, reason),
        )
        if not canceled:
            log.error(f"Melhor Envio did not confirm cancellation of {shipment.melhor_envio_id}")
            raise CarrierApiError(f"Melhor Envio did not cancel return label {shipment.melhor_envio_id}")

        self.repository.void_return_shipment(
            order.id,
            shipment.id,
            {
                "canceled": True,
                "canceled_at": datetime.now(timezone.utc),
                "status": CarrierStatus.CANCELED.value,
            },
            {"status": OrderStatus.RETURN_APPROVED.value},
        )
        log.info(f"Return label {shipment.melhor_envio_id} cancelled for order #{order.id}")
        return {
            "success": True,
            "order_id": order.id,
            "shipment_id": shipment.id,
            "status": OrderStatus.RETURN_APPROVED.value,
        }
