"""
Melhor Envio connector: payload normalisation and request/response adapters.

HTTP is stubbed by overriding ``_request``. The wire-level tests run the real
``_request`` against a local aiohttp server.
"""
import asyncio
import json
from datetime import datetime, timezone
from decimal import Decimal

import pytest
from aiohttp import test_utils, web

from app.connectors.melhor_envio_connector import (
    PRODUCTION_BASE_URL,
    SANDBOX_BASE_URL,
    MelhorEnvioConnector,
    extract_error_message,
    normalize_order,
    normalize_quote,
    parse_carrier_datetime,
)
from app.services.errors import CarrierApiError, CarrierConfigError
from app.utils.logger import _from_carrier


def _run(coro):
    """Run an async coroutine in a sync test."""
    return asyncio.run(coro)


class StubConnector(MelhorEnvioConnector):
    """Connector whose HTTP layer replays canned responses."""

    def __init__(self, responses, **kwargs):
        super().__init__(token="test-token", **kwargs)
        self.responses = list(responses)
        self.requests = []

    async def _request(self, method, path, payload=None, params=None, error_message=""):
        self.requests.append((method, path, payload, params))
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


# ────────────────────────────────────────────
# TIMESTAMPS
# ────────────────────────────────────────────


class TestParseCarrierDatetime:

    def test_zulu_suffix(self):
        assert parse_carrier_datetime("2024-03-01T10:00:00Z") == datetime(2024, 3, 1, 10, 0, tzinfo=timezone.utc)

    def test_space_separated_is_taken_as_utc(self):
        parsed = parse_carrier_datetime("2024-03-01 10:00:00")
        assert parsed == datetime(2024, 3, 1, 10, 0, tzinfo=timezone.utc)

    def test_offset_is_preserved(self):
        parsed = parse_carrier_datetime("2024-03-01T07:00:00-03:00")
        assert parsed == datetime(2024, 3, 1, 10, 0, tzinfo=timezone.utc)

    def test_empty_values(self):
        assert parse_carrier_datetime(None) is None
        assert parse_carrier_datetime("") is None

    def test_malformed_value_raises(self):
        with pytest.raises(CarrierApiError):
            parse_carrier_datetime("yesterday")


# ────────────────────────────────────────────
# ERROR MESSAGES
# ────────────────────────────────────────────


class TestExtractErrorMessage:

    def test_field_error_wins_over_generic_message(self):
        body = json.dumps({
            "message": "The given data was invalid.",
            "errors": {"to.document": ["O documento do destinatário é inválido."]},
        })
        assert extract_error_message(body, "fallback") == "to.document: O documento do destinatário é inválido."

    def test_message_then_error(self):
        assert extract_error_message(json.dumps({"message": "Unauthenticated."}), "x") == "Unauthenticated."
        assert extract_error_message(json.dumps({"error": "Saldo insuficiente"}), "x") == "Saldo insuficiente"

    def test_unparseable_body_uses_fallback(self):
        assert extract_error_message("<html>502</html>", "Failed to fetch") == "Failed to fetch"
        assert extract_error_message(None, "Failed to fetch") == "Failed to fetch"


# ────────────────────────────────────────────
# NORMALISATION
# ────────────────────────────────────────────


def test_normalize_order():
    info = normalize_order({
        "id": "ME123",
        "status": "posted",
        "tracking": "BR123456789",
        "protocol": "ORD-2024",
        "posted_at": "2024-03-01T10:00:00Z",
        "delivered_at": None,
        "service": {"name": "PAC", "company": {"name": "Correios"}},
    })
    assert info.id == "ME123"
    assert info.status == "posted"
    assert info.tracking == "BR123456789"
    assert info.service_name == "PAC"
    assert info.company_name == "Correios"
    assert info.posted_at == datetime(2024, 3, 1, 10, 0, tzinfo=timezone.utc)
    assert info.delivered_at is None


def test_normalize_order_rejects_payload_without_id():
    with pytest.raises(CarrierApiError):
        normalize_order({"status": "posted"})
    with pytest.raises(CarrierApiError):
        normalize_order(["not", "a", "dict"])


def test_normalize_quote():
    quote = normalize_quote({
        "id": 1, "name": "PAC", "price": "22.50", "discount": "2.00",
        "delivery_range": {"min": 5, "max": 9}, "company": {"name": "Correios"},
    })
    assert quote.price == Decimal("22.50")
    assert quote.discount == Decimal("2.00")
    assert quote.delivery_range_max == 9
    assert quote.available

    failed = normalize_quote({"id": 2, "name": "SEDEX", "error": "peso excede limite"})
    assert not failed.available
    assert failed.price is None


# ────────────────────────────────────────────
# CONNECTOR
# ────────────────────────────────────────────


def test_missing_token_is_a_config_error():
    with pytest.raises(CarrierConfigError):
        MelhorEnvioConnector(token="")


def test_sandbox_switches_base_url():
    assert MelhorEnvioConnector(token="t", sandbox=True).base_url == SANDBOX_BASE_URL
    assert MelhorEnvioConnector(token="t").base_url == PRODUCTION_BASE_URL


class TestCartAdapter:

    def test_array_wrapped_request_is_sent_bare(self):
        connector = StubConnector([{"id": "ME900", "protocol": "ORD-1"}])

        entry = _run(connector.add_to_cart([{"service": 2}]))

        assert entry.id == "ME900"
        method, path, payload, _ = connector.requests[0]
        assert (method, path) == ("POST", "/me/cart")
        assert payload == {"service": 2}

    def test_array_response_is_accepted(self):
        connector = StubConnector([[{"id": "ME901"}]])
        assert _run(connector.add_to_cart({"service": 2})).id == "ME901"

    def test_response_without_id_raises(self):
        connector = StubConnector([{"message": "ok"}])
        with pytest.raises(CarrierApiError):
            _run(connector.add_to_cart({"service": 2}))


def test_checkout_extracts_protocol():
    connector = StubConnector([{"purchase": {"id": "P1", "protocol": "PUR-2024", "total": 22.5}}])

    result = _run(connector.checkout(["ME900"]))

    assert result.protocol == "PUR-2024"
    assert result.total == Decimal("22.5")
    assert connector.requests[0][2] == {"orders": ["ME900"]}


def test_checkout_without_purchase_raises():
    connector = StubConnector([{"errors": []}])
    with pytest.raises(CarrierApiError):
        _run(connector.checkout(["ME900"]))


def test_print_labels_returns_url_or_none():
    connector = StubConnector([{"url": "https://labels.test/1.pdf"}, {}])
    assert _run(connector.print_labels(["ME900"])) == "https://labels.test/1.pdf"
    assert _run(connector.print_labels(["ME900"])) is None


def test_calculate_shipping_normalises_quotes():
    connector = StubConnector([[
        {"id": 1, "name": "SEDEX", "error": "peso excede limite"},
        {"id": 2, "name": "PAC", "price": "22.50", "delivery_range": {"max": 9}},
    ]])
    quotes = _run(connector.calculate_shipping({"from": {}, "to": {}}))
    assert [q.name for q in quotes] == ["SEDEX", "PAC"]
    assert quotes[1].price == Decimal("22.50")


def test_carrier_log_only_takes_connector_records():
    assert _from_carrier({"name": "app.connectors.melhor_envio_connector"})
    assert not _from_carrier({"name": "app.services.order_sync_service"})


def test_validate_connection_reports_failure_as_false():
    connector = StubConnector([CarrierApiError("Unauthenticated.", status_code=401)])
    assert _run(connector.validate_connection()) is False
    assert connector.get_status()["name"] == "MelhorEnvio"


def test_track_shipment_reads_entry_keyed_by_code():
    connector = StubConnector([{"BR123456789": {"tracking": "BR123456789", "status": "posted"}}])

    tracking = _run(connector.track_shipment("BR123456789"))

    assert tracking["status"] == "posted"
    assert connector.requests[0][3] == {"orders": "BR123456789"}


def test_track_shipment_unknown_code_is_none():
    connector = StubConnector([{}, []])
    assert _run(connector.track_shipment("BR000")) is None
    assert _run(connector.track_shipment("BR000")) is None


class TestCancelShipment:

    def test_keyed_confirmation(self):
        connector = StubConnector([{"ME900": {"canceled": True}}])

        assert _run(connector.cancel_shipment("ME900", "Return voided")) is True

        method, path, payload, _ = connector.requests[0]
        assert (method, path) == ("POST", "/me/shipment/cancel")
        assert payload["order"]["id"] == "ME900"
        assert payload["order"]["description"] == "Return voided"

    def test_flat_confirmation(self):
        assert _run(StubConnector([{"canceled": True}]).cancel_shipment("ME900")) is True

    def test_refusal(self):
        assert _run(StubConnector([{"ME900": {"canceled": False}}]).cancel_shipment("ME900")) is False


# ────────────────────────────────────────────
# WIRE LEVEL
# ────────────────────────────────────────────


async def _against_server(handler, call):
    """Run call(connector) with the connector pointed at a local server."""
    server_app = web.Application()
    server_app.router.add_route("*", "/{tail:.*}", handler)
    server = test_utils.TestServer(server_app)
    await server.start_server()
    try:
        connector = MelhorEnvioConnector(token="test-token")
        connector.base_url = str(server.make_url("")).rstrip("/")
        try:
            return await call(connector), connector
        except CarrierApiError as e:
            return e, connector
    finally:
        await server.close()


class TestWireLevel:

    def test_undecodable_body_is_a_carrier_error(self):
        async def handler(request):
            return web.Response(body=b'{"url": "\xff\xfe"}', content_type="application/json")

        result, connector = _run(_against_server(handler, lambda c: c.print_labels(["ME900"])))

        assert isinstance(result, CarrierApiError)
        assert "undecodable" in result.message
        assert result.http_status == 200
        assert result.response_body is not None
        assert connector.get_status()["error_count"] == 1

    def test_error_status_uses_carrier_message(self):
        async def handler(request):
            return web.json_response({"message": "Unauthenticated."}, status=401)

        result, _ = _run(_against_server(handler, lambda c: c.get_order("ME123")))

        assert isinstance(result, CarrierApiError)
        assert result.message == "Unauthenticated."
        assert result.http_status == 401

    def test_malformed_json_is_a_carrier_error(self):
        async def handler(request):
            return web.Response(text="<html>oops</html>", content_type="text/html")

        result, _ = _run(_against_server(handler, lambda c: c.print_labels(["ME900"])))

        assert isinstance(result, CarrierApiError)
        assert "malformed response" in result.message

    def test_json_body_is_decoded(self):
        async def handler(request):
            assert request.headers["Authorization"] == "Bearer test-token"
            return web.json_response({"url": "https://labels.test/1.pdf"})

        result, _ = _run(_against_server(handler, lambda c: c.print_labels(["ME900"])))

        assert result == "https://labels.test/1.pdf"
