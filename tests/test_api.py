"""
HTTP layer: routing, auth boundary and error mapping.

Services are swapped through FastAPI dependency overrides; the client is
not used as a context manager, so the lifespan (database + scheduler) does
not run.
"""
import base64
from datetime import datetime

import pytest
from fastapi.testclient import TestClient

from app.api import returns, shipping, sync
from app.api.auth import ADMIN_ROLE, CUSTOMER_ROLE, Principal, _require_admin, _require_authenticated
from app.config import get_settings
from app.main import app
from app.scheduler import get_order_sync_scheduler
from app.services.errors import AccessDeniedError, CarrierApiError, OrderNotFoundError, PreconditionError
from app.services.order_sync_service import SyncSummary

ADMIN = Principal(id=None, name="admin", role=ADMIN_ROLE)
CUSTOMER = Principal(id=1, name="Maria", role=CUSTOMER_ROLE)


class StubReviewService:
    requests = []

    def approve(self, order_id):
        if order_id == 404:
            raise OrderNotFoundError(f"Order #{order_id} not found")
        return {"success": True, "order_id": order_id, "status": "return_approved"}

    def reject(self, order_id, reason):
        return {"success": True, "order_id": order_id, "status": "return_rejected", "reason": reason}

    def request(self, order_id, user_id, reason=None):
        if user_id is not None and user_id != 1:
            raise AccessDeniedError("Access denied")
        self.requests.append((order_id, user_id, reason))
        return {"success": True, "order_id": order_id, "status": "return_requested"}


class StubLabelService:
    def __init__(self):
        self.label_requests = []

    async def generate(self, order_id):
        if order_id == 1:
            raise PreconditionError("Order is not approved for return", details={"status": "processing"})
        raise CarrierApiError("Failed to check out return shipment: Saldo insuficiente", status_code=422)

    async def cancel_label(self, order_id, reason=None):
        if order_id == 1:
            raise PreconditionError("Order has no return label to cancel", details={"status": "return_approved"})
        return {"success": True, "order_id": order_id, "status": "return_approved"}

    async def get_label(self, order_id, user_id=None):
        self.label_requests.append((order_id, user_id))
        return {"success": True, "order_id": order_id, "label_url": "https://labels.test/1.pdf"}


class StubTracker:
    async def track_shipment(self, code):
        if code == "BR000":
            return None
        if code == "BRDOWN":
            raise CarrierApiError("Failed to track shipment: Service Unavailable", status_code=503)
        return {
            "tracking": code, "status": "posted", "protocol": "ORD-1",
            "posted_at": "2024-03-01 10:00:00",
            "tracking_events": [{"status": "posted", "description": "Objeto postado"}],
        }


class StubScheduler:
    class service:
        is_running = False
        last_summary = None

    def __init__(self, summary):
        self.summary = summary

    async def run_now(self):
        return self.summary

    def get_scheduled_jobs(self):
        return [{"id": "order_sync_30min", "name": "Carrier Order Sync (every 30 min)", "next_run": None, "trigger": "cron[minute='*/30']"}]


@pytest.fixture
def label_service():
    return StubLabelService()


@pytest.fixture
def client(label_service):
    summary = SyncSummary(started_at=datetime(2024, 3, 1, 10), total=3, succeeded=2, updated=2, errors=1, failures=["order #2: boom"])
    StubReviewService.requests = []
    app.dependency_overrides[returns.get_return_review_service] = StubReviewService
    app.dependency_overrides[returns.get_return_label_service] = lambda: label_service
    app.dependency_overrides[get_order_sync_scheduler] = lambda: StubScheduler(summary)
    app.dependency_overrides[sync.get_recorded_sync_status] = lambda: {"sync_status": "partial"}
    app.dependency_overrides[shipping.get_carrier] = StubTracker
    yield TestClient(app)
    app.dependency_overrides.clear()


def _as(user):
    app.dependency_overrides[_require_authenticated] = lambda: user


# ────────────────────────────────────────────
# AUTH BOUNDARY
# ────────────────────────────────────────────


def test_health_is_open(client):
    assert client.get("/health").json()["status"] == "healthy"


def test_admin_routes_require_authentication(client):
    response = client.post("/admin/returns/approve", json={"order_id": 5})
    assert response.status_code == 401


def test_customers_cannot_use_admin_routes(client):
    _as(CUSTOMER)
    response = client.post("/admin/returns/approve", json={"order_id": 5})
    assert response.status_code == 403


def test_basic_auth_gate_grants_admin(client, monkeypatch):
    settings = get_settings()
    monkeypatch.setattr(settings, "dash_user", "ops")
    monkeypatch.setattr(settings, "dash_pass", "s3cret")

    assert client.get("/sync/jobs").status_code == 401

    token = base64.b64encode(b"ops:s3cret").decode()
    response = client.get("/sync/jobs", headers={"Authorization": f"Basic {token}"})
    assert response.status_code == 200
    assert response.json()["jobs"][0]["id"] == "order_sync_30min"


# ────────────────────────────────────────────
# RETURNS
# ────────────────────────────────────────────


def test_approve_return(client):
    app.dependency_overrides[_require_admin] = lambda: ADMIN
    response = client.post("/admin/returns/approve", json={"order_id": 5})
    assert response.status_code == 200
    assert response.json()["status"] == "return_approved"


def test_missing_order_maps_to_404(client):
    app.dependency_overrides[_require_admin] = lambda: ADMIN
    response = client.post("/admin/returns/approve", json={"order_id": 404})
    assert response.status_code == 404
    assert response.json()["detail"]["error"] == "Order #404 not found"


def test_reject_requires_reason_field(client):
    app.dependency_overrides[_require_admin] = lambda: ADMIN
    response = client.post("/admin/returns/reject", json={"order_id": 5})
    assert response.status_code == 422


def test_generate_label_precondition_maps_to_400(client):
    app.dependency_overrides[_require_admin] = lambda: ADMIN
    response = client.post("/admin/returns/generate-label", json={"order_id": 1})
    assert response.status_code == 400
    assert response.json()["detail"] == {
        "error": "Order is not approved for return",
        "details": {"status": "processing"},
    }


def test_generate_label_carrier_failure_maps_to_502(client):
    app.dependency_overrides[_require_admin] = lambda: ADMIN
    response = client.post("/admin/returns/generate-label", json={"order_id": 2})
    assert response.status_code == 502
    assert "Saldo insuficiente" in response.json()["detail"]["error"]


def test_customer_label_lookup_is_scoped_to_owner(client, label_service):
    _as(CUSTOMER)
    response = client.get("/orders/800/return-label")
    assert response.status_code == 200
    assert label_service.label_requests == [(800, 1)]


def test_admin_label_lookup_skips_ownership(client, label_service):
    _as(ADMIN)
    client.get("/orders/800/return-label")
    assert label_service.label_requests == [(800, None)]


# ────────────────────────────────────────────
# SYNC
# ────────────────────────────────────────────


def test_manual_sync_reports_counts(client):
    app.dependency_overrides[_require_admin] = lambda: ADMIN
    body = client.post("/sync/orders").json()
    assert body["success"] is True
    assert body["total"] == 3
    assert body["synchronized"] == 2
    assert body["errors"] == 1
    assert body["skipped"] is False


def test_sync_status(client):
    app.dependency_overrides[_require_admin] = lambda: ADMIN
    body = client.get("/sync/status").json()
    assert body["is_running"] is False
    assert body["status"] == {"sync_status": "partial"}
    assert body["last_run"] is None


# ────────────────────────────────────────────
# CUSTOMER RETURN REQUEST
# ────────────────────────────────────────────


def test_request_return_requires_authentication(client):
    response = client.post("/orders/800/request-return", json={"reason": "Wrong size"})
    assert response.status_code == 401
    assert StubReviewService.requests == []


def test_owner_requests_return(client):
    _as(CUSTOMER)
    response = client.post("/orders/800/request-return", json={"reason": "Wrong size"})
    assert response.status_code == 200
    assert response.json()["status"] == "return_requested"
    assert StubReviewService.requests == [(800, 1, "Wrong size")]


def test_request_return_for_someone_elses_order_is_403(client):
    _as(Principal(id=2, name="João", role=CUSTOMER_ROLE))
    response = client.post("/orders/800/request-return", json={})
    assert response.status_code == 403
    assert response.json()["detail"]["error"] == "Access denied"


# ────────────────────────────────────────────
# LABEL CANCELLATION
# ────────────────────────────────────────────


def test_cancel_label_is_admin_only(client):
    _as(CUSTOMER)
    assert client.post("/admin/returns/cancel-label", json={"order_id": 800}).status_code == 403


def test_cancel_label(client):
    app.dependency_overrides[_require_admin] = lambda: ADMIN
    response = client.post("/admin/returns/cancel-label", json={"order_id": 800, "reason": "Customer kept it"})
    assert response.status_code == 200
    assert response.json()["status"] == "return_approved"


def test_cancel_label_precondition_maps_to_400(client):
    app.dependency_overrides[_require_admin] = lambda: ADMIN
    response = client.post("/admin/returns/cancel-label", json={"order_id": 1})
    assert response.status_code == 400


# ────────────────────────────────────────────
# TRACKING
# ────────────────────────────────────────────


def test_tracking_is_public(client):
    response = client.get("/shipping/track/BR123456789")
    assert response.status_code == 200
    tracking = response.json()["tracking"]
    assert tracking["code"] == "BR123456789"
    assert tracking["status"] == "posted"
    assert tracking["posted_at"] == "2024-03-01 10:00:00"
    assert tracking["delivered_at"] is None
    assert tracking["events"][0]["description"] == "Objeto postado"


def test_unknown_tracking_code_is_404(client):
    response = client.get("/shipping/track/BR000")
    assert response.status_code == 404


def test_tracking_carrier_failure_maps_to_502(client):
    response = client.get("/shipping/track/BRDOWN")
    assert response.status_code == 502
    assert "Service Unavailable" in response.json()["detail"]["error"]
