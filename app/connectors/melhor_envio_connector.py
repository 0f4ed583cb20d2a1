"""
Melhor Envio carrier connector.
Talks to the Melhor Envio API v2 (sandbox or production).

API structure:
  - POST /me/shipment/calculate — quotes for a route + products
  - POST /me/cart               — queue a purchase, returns the carrier order id
  - POST /me/shipment/checkout  — pay for queued cart entries
  - POST /me/shipment/generate  — request label generation (async on their side)
  - POST /me/shipment/print     — printable label URL
  - GET  /me/orders/{id}        — carrier-side order state
  - GET  /me/shipment/tracking  — tracking events
  - POST /me/shipment/cancel    — cancel a purchased shipment

Every call raises CarrierApiError on transport failure, non-2xx response or
an unparseable body. Responses are normalised into the dataclasses below so
the sync job and the return-label workflow never handle raw carrier dicts.
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional, Union
import asyncio
import json

import aiohttp

from app.connectors.base_connector import BaseConnector
from app.config import get_settings
from app.services.errors import CarrierApiError, CarrierConfigError
from app.utils.logger import log

SANDBOX_BASE_URL = "https://sandbox.melhorenvio.com.br/api/v2"
PRODUCTION_BASE_URL = "https://melhorenvio.com.br/api/v2"


@dataclass
class CarrierOrderInfo:
    """Carrier-side view of a purchased shipment"""
    id: str
    status: Optional[str] = None
    tracking: Optional[str] = None
    protocol: Optional[str] = None
    service_name: Optional[str] = None
    company_name: Optional[str] = None
    posted_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    canceled_at: Optional[datetime] = None
    raw: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ShippingQuote:
    """One service option returned by /me/shipment/calculate"""
    id: Optional[int]
    name: str
    price: Optional[Decimal] = None
    discount: Decimal = Decimal("0")
    delivery_range_max: Optional[int] = None
    company_name: Optional[str] = None
    error: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict)

    @property
    def available(self) -> bool:
        return not self.error


@dataclass
class CartEntry:
    id: str
    raw: Dict[str, Any] = field(default_factory=dict)


@dataclass
class CheckoutResult:
    protocol: Optional[str]
    purchase_id: Optional[str] = None
    total: Optional[Decimal] = None
    raw: Dict[str, Any] = field(default_factory=dict)


def parse_carrier_datetime(value: Any) -> Optional[datetime]:
    """
    Parse a carrier timestamp into an aware datetime.

    Accepts ISO-8601 (with or without "Z") and the "YYYY-MM-DD HH:MM:SS"
    format the API uses for most fields. Naive values are taken as UTC.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            raise CarrierApiError(f"Malformed carrier timestamp: {value!r}")
    else:
        raise CarrierApiError(f"Malformed carrier timestamp: {value!r}")

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _to_decimal(value: Any) -> Optional[Decimal]:
    if value is None or value == "":
        return None
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None


def extract_error_message(body: Optional[str], fallback: str) -> str:
    """
    Most specific error message in a carrier error body.

    Validation failures look like
    ``{"message": "The given data was invalid.", "errors": {"to.document": ["..."]}}``;
    the first per-field message wins over the generic ``message``.
    """
    if not body:
        return fallback
    try:
        data = json.loads(body)
    except ValueError:
        return fallback
    if not isinstance(data, dict):
        return fallback

    errors = data.get("errors")
    if isinstance(errors, dict):
        for field_name, messages in errors.items():
            if isinstance(messages, list) and messages:
                return f"{field_name}: {messages[0]}"
            if isinstance(messages, str) and messages:
                return f"{field_name}: {messages}"
    if data.get("message"):
        return str(data["message"])
    if data.get("error"):
        return str(data["error"])
    if errors:
        return json.dumps(errors, ensure_ascii=False)
    return fallback


def normalize_order(data: Any) -> CarrierOrderInfo:
    """Build CarrierOrderInfo from a GET /me/orders/{id} payload."""
    if not isinstance(data, dict) or not data.get("id"):
        raise CarrierApiError(
            "Malformed order payload from carrier",
            response_body=json.dumps(data, default=str) if data is not None else None,
        )

    service = data.get("service") or {}
    company = (service.get("company") or {}) if isinstance(service, dict) else {}

    return CarrierOrderInfo(
        id=str(data["id"]),
        status=data.get("status"),
        tracking=data.get("tracking") or None,
        protocol=data.get("protocol") or None,
        service_name=service.get("name") if isinstance(service, dict) else data.get("service_name"),
        company_name=company.get("name") if isinstance(company, dict) else None,
        posted_at=parse_carrier_datetime(data.get("posted_at")),
        delivered_at=parse_carrier_datetime(data.get("delivered_at")),
        canceled_at=parse_carrier_datetime(data.get("canceled_at")),
        raw=data,
    )


def normalize_quote(data: Dict[str, Any]) -> ShippingQuote:
    """Build ShippingQuote from one element of the calculate response."""
    delivery_range = data.get("delivery_range") or {}
    company = data.get("company") or {}
    error = data.get("error")

    return ShippingQuote(
        id=data.get("id"),
        name=str(data.get("name") or ""),
        price=_to_decimal(data.get("price")),
        discount=_to_decimal(data.get("discount")) or Decimal("0"),
        delivery_range_max=delivery_range.get("max", data.get("delivery_time")),
        company_name=company.get("name"),
        error=str(error) if error else None,
        raw=data,
    )


def normalize_tracking(data: Dict[str, Any]) -> Dict[str, Any]:
    """Public view of one /me/shipment/tracking entry; timestamps stay as sent."""
    return {
        "code": data.get("tracking"),
        "status": data.get("status"),
        "protocol": data.get("protocol"),
        "created_at": data.get("created_at"),
        "paid_at": data.get("paid_at"),
        "posted_at": data.get("posted_at"),
        "delivered_at": data.get("delivered_at"),
        "canceled_at": data.get("canceled_at"),
        "events": data.get("tracking_events") or [],
    }


class MelhorEnvioConnector(BaseConnector):
    """Connector for the Melhor Envio shipping platform."""

    def __init__(
        self,
        token: str,
        sandbox: bool = False,
        user_agent: str = "Loja Bricks",
        timeout_seconds: float = 30.0,
    ):
        super().__init__("MelhorEnvio")
        if not token:
            raise CarrierConfigError("Melhor Envio token is not configured")
        self.base_url = SANDBOX_BASE_URL if sandbox else PRODUCTION_BASE_URL
        self.sandbox = sandbox
        self.timeout = aiohttp.ClientTimeout(total=timeout_seconds)
        self.headers = {
            "Accept": "application/json",
            "Content-Type": "application/json",
            "Authorization": f"Bearer {token}",
            "User-Agent": user_agent,
        }

    async def _request(
        self,
        method: str,
        path: str,
        payload: Any = None,
        params: Optional[Dict[str, Any]] = None,
        error_message: str = "Melhor Envio request failed",
    ) -> Any:
        """Send one request and return the decoded JSON body."""
        self._record_call()
        url = f"{self.base_url}{path}"
        try:
            async with aiohttp.ClientSession(timeout=self.timeout) as session:
                async with session.request(
                    method,
                    url,
                    headers=self.headers,
                    json=payload,
                    params=params,
                ) as response:
                    raw_body = await response.read()
                    charset = response.charset or "utf-8"
                    status = response.status
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            self._record_error()
            log.error(f"{self.name} {method} {path} transport error: {e}")
            raise CarrierApiError(f"{error_message}: {e}") from e

        try:
            body = raw_body.decode(charset)
        except (UnicodeDecodeError, LookupError) as e:
            self._record_error()
            undecoded = raw_body.decode("utf-8", errors="replace")
            log.error(f"{self.name} {method} {path} returned an undecodable body ({status})")
            raise CarrierApiError(
                f"{error_message}: undecodable response", status_code=status, response_body=undecoded
            ) from e

        if status >= 400:
            self._record_error()
            message = extract_error_message(body, error_message)
            log.error(f"{self.name} {method} {path} returned {status}: {body[:500]}")
            raise CarrierApiError(message, status_code=status, response_body=body)

        if not body:
            return None
        try:
            return json.loads(body)
        except ValueError as e:
            self._record_error()
            raise CarrierApiError(
                f"{error_message}: malformed response", status_code=status, response_body=body
            ) from e

    async def validate_connection(self) -> bool:
        """Check the token against GET /me."""
        try:
            await self._request("GET", "/me", error_message="Token validation failed")
            log.info("Connected to Melhor Envio API")
            return True
        except CarrierApiError as e:
            log.warning(f"Melhor Envio connection check failed: {e.message}")
            return False

    async def calculate_shipping(self, payload: Dict[str, Any]) -> List[ShippingQuote]:
        """Quote every available service for the route described in payload."""
        data = await self._request(
            "POST", "/me/shipment/calculate", payload=payload,
            error_message="Failed to calculate shipping",
        )
        if isinstance(data, dict):
            data = [data]
        if not isinstance(data, list):
            raise CarrierApiError("Malformed quote list from carrier", response_body=json.dumps(data))
        quotes = [normalize_quote(q) for q in data if isinstance(q, dict)]
        log.info(f"{len(quotes)} quotes returned by Melhor Envio")
        return quotes

    async def add_to_cart(self, payload: Union[Dict[str, Any], List[Dict[str, Any]]]) -> CartEntry:
        """
        Queue one purchase in the carrier cart.

        Callers may hand over the payload wrapped in a one-element list (the
        shape the rest of the API uses); the endpoint itself wants the bare
        object and answers with a bare object, occasionally with a list.
        """
        if isinstance(payload, list):
            if len(payload) != 1:
                raise ValueError("add_to_cart takes exactly one cart entry")
            payload = payload[0]

        data = await self._request(
            "POST", "/me/cart", payload=payload,
            error_message="Failed to add shipment to the Melhor Envio cart",
        )
        entry = data[0] if isinstance(data, list) and data else data
        if not isinstance(entry, dict) or not entry.get("id"):
            raise CarrierApiError(
                "Melhor Envio cart did not return an order id",
                response_body=json.dumps(data, default=str),
            )
        return CartEntry(id=str(entry["id"]), raw=entry)

    async def checkout(self, order_ids: List[str]) -> CheckoutResult:
        """Pay for the given cart entries."""
        data = await self._request(
            "POST", "/me/shipment/checkout", payload={"orders": list(order_ids)},
            error_message="Failed to check out shipping purchase",
        )
        purchase = data.get("purchase") if isinstance(data, dict) else None
        if not isinstance(purchase, dict):
            raise CarrierApiError(
                "Checkout response has no purchase",
                response_body=json.dumps(data, default=str),
            )
        return CheckoutResult(
            protocol=purchase.get("protocol"),
            purchase_id=str(purchase["id"]) if purchase.get("id") else None,
            total=_to_decimal(purchase.get("total")),
            raw=data,
        )

    async def generate_labels(self, order_ids: List[str]) -> Any:
        """Request label generation. Completion on the carrier side is asynchronous."""
        return await self._request(
            "POST", "/me/shipment/generate", payload={"orders": list(order_ids)},
            error_message="Failed to generate labels",
        )

    async def print_labels(self, order_ids: List[str], mode: str = "private") -> Optional[str]:
        """Printable label URL, or None while labels are not ready."""
        data = await self._request(
            "POST", "/me/shipment/print", payload={"mode": mode, "orders": list(order_ids)},
            error_message="Failed to fetch label print URL",
        )
        if isinstance(data, dict):
            return data.get("url") or None
        return None

    async def get_order(self, order_id: str) -> CarrierOrderInfo:
        """Current carrier-side state of a purchased shipment."""
        data = await self._request(
            "GET", f"/me/orders/{order_id}",
            error_message="Failed to fetch carrier order",
        )
        return normalize_order(data)

    async def track_shipment(self, code: str) -> Optional[Dict[str, Any]]:
        """
        Tracking record for one carrier order id or tracking code.

        The API keys its answer by the code that was asked for; None when the
        code is unknown to the carrier.
        """
        data = await self._request(
            "GET", "/me/shipment/tracking", params={"orders": code},
            error_message="Failed to track shipment",
        )
        tracking = data.get(code) if isinstance(data, dict) else None
        return tracking if isinstance(tracking, dict) and tracking else None

    async def cancel_shipment(self, order_id: str, reason: Optional[str] = None) -> bool:
        """Cancel a purchased shipment that has not been posted. True once the carrier confirms."""
        data = await self._request(
            "POST", "/me/shipment/cancel",
            payload={"order": {"id": order_id, "reason_id": "2", "description": reason or ""}},
            error_message="Failed to cancel shipment",
        )
        if isinstance(data, dict) and order_id in data:
            return bool((data[order_id] or {}).get("canceled"))
        return bool(isinstance(data, dict) and data.get("canceled"))


_connector: Optional[MelhorEnvioConnector] = None


def get_melhor_envio_connector() -> MelhorEnvioConnector:
    """Shared connector built from settings. Raises CarrierConfigError without a token."""
    global _connector
    if _connector is None:
        settings = get_settings()
        if not settings.melhor_envio_token:
            raise CarrierConfigError("MELHOR_ENVIO_TOKEN is not configured")
        _connector = MelhorEnvioConnector(
            token=settings.melhor_envio_token,
            sandbox=settings.melhor_envio_sandbox,
            user_agent=settings.melhor_envio_user_agent,
            timeout_seconds=settings.melhor_envio_timeout_seconds,
        )
    return _connector
