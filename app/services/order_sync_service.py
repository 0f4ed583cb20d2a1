"""
Order Sync Service
Reconciles local shipments against Melhor Envio.

Each batch:
  1. Loads every shipment bought at the carrier that is not settled yet
  2. Fetches the carrier-side order for each one, newest order first
  3. Diffs carrier facts against the stored shipment and writes only what changed
  4. Lifts the order status (never lowers it) when the shipment changed
  5. Pauses between carrier calls so the API is not hammered

A failure on one shipment is logged and counted; the batch carries on.
Only one batch runs at a time per service instance: overlapping triggers are
dropped, not queued.
"""
import asyncio
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional

from app.config import get_settings
from app.connectors.melhor_envio_connector import CarrierOrderInfo, get_melhor_envio_connector
from app.models.base import SessionLocal
from app.models.status import (
    FORWARD_LIFECYCLE_RANK,
    ORDER_STATUS_UPLIFT,
    RETURN_STATUSES,
    CarrierStatus,
)
from app.services.shipment_repository import ShipmentRepository, SyncCandidate
from app.services.sync_status_service import update_data_sync_status
from app.utils.logger import log

settings = get_settings()


@dataclass
class SyncSummary:
    """Outcome of one reconciliation batch"""
    started_at: datetime
    finished_at: Optional[datetime] = None
    duration_seconds: float = 0.0
    total: int = 0
    succeeded: int = 0
    updated: int = 0
    errors: int = 0
    failures: List[str] = field(default_factory=list)
    skipped: bool = False
    error: Optional[str] = None  # Batch-wide failure

    @property
    def status(self) -> str:
        if self.skipped:
            return "skipped"
        if self.error or (self.errors and not self.succeeded):
            return "failed"
        if self.errors:
            return "partial"
        return "success"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "duration_seconds": round(self.duration_seconds, 2),
            "total": self.total,
            "succeeded": self.succeeded,
            "updated": self.updated,
            "errors": self.errors,
            "failures": self.failures,
            "skipped": self.skipped,
            "error": self.error,
        }


def compute_shipment_changes(candidate: SyncCandidate, info: CarrierOrderInfo) -> Dict[str, Any]:
    """
    Minimal set of shipment column updates implied by the carrier's view.

    Identity fields are only written when the carrier reports a value that
    differs. Milestone flags are only ever raised, with their timestamp set on
    the same write. An empty dict means the shipment is already in sync.
    """
    changes: Dict[str, Any] = {}

    if info.tracking and info.tracking != candidate.tracking_code:
        changes["tracking_code"] = info.tracking
    if info.protocol and info.protocol != candidate.protocol:
        changes["protocol"] = info.protocol
    if info.service_name and info.service_name != candidate.service_name:
        changes["service_name"] = info.service_name
    if info.company_name and info.company_name != candidate.carrier:
        changes["carrier"] = info.company_name

    if info.posted_at and not candidate.posted:
        changes["posted"] = True
        changes["posted_at"] = info.posted_at
    if info.delivered_at and not candidate.delivered:
        changes["delivered"] = True
        changes["delivered_at"] = info.delivered_at
    if info.canceled_at and not candidate.canceled:
        changes["canceled"] = True
        changes["canceled_at"] = info.canceled_at

    carrier_status = info.status or CarrierStatus.PENDING.value
    if carrier_status != candidate.status:
        changes["status"] = carrier_status

    return changes


def derive_order_status(current_status: Optional[str], carrier_status: Optional[str]) -> Optional[str]:
    """
    Order status the carrier status lifts the order to, or None to leave it.

    delivered -> delivered, posted/in_transit -> shipped, canceled -> cancelled.
    Orders already at or past the target rank in the forward lifecycle keep their
    status, and orders inside the return flow are never touched.
    """
    target = ORDER_STATUS_UPLIFT.get(carrier_status or "")
    if target is None:
        return None
    target_value = target.value
    if current_status == target_value:
        return None
    if current_status in RETURN_STATUSES:
        return None
    if FORWARD_LIFECYCLE_RANK[target_value] <= FORWARD_LIFECYCLE_RANK.get(current_status or "", 0):
        return None
    return target_value


def derive_order_changes(
    candidate: SyncCandidate,
    carrier_status: Optional[str],
    shipment_changes: Dict[str, Any],
) -> Dict[str, Any]:
    """Order column updates that follow a shipment change."""
    changes: Dict[str, Any] = {}

    new_tracking = shipment_changes.get("tracking_code")
    if new_tracking and new_tracking != candidate.order_tracking_code:
        changes["shipping_tracking_code"] = new_tracking

    new_status = derive_order_status(candidate.order_status, carrier_status)
    if new_status:
        changes["status"] = new_status

    return changes


class OrderSyncService:
    """
    Reconciliation engine for carrier shipments.

    Collaborators are injectable: ``carrier`` (defaults to the shared
    Melhor Envio connector, built lazily), ``session_factory`` and
    ``repository_cls`` for persistence, ``delay`` for the pause between
    carrier calls and ``status_recorder`` for sync health bookkeeping.
    """

    def __init__(
        self,
        carrier=None,
        session_factory: Callable = SessionLocal,
        repository_cls: Callable = ShipmentRepository,
        delay: Optional[Callable[[float], Awaitable[Any]]] = None,
        delay_seconds: Optional[float] = None,
        status_recorder: Optional[Callable[[SyncSummary], None]] = update_data_sync_status,
    ):
        self._carrier = carrier
        self._session_factory = session_factory
        self._repository_cls = repository_cls
        self._delay = delay or asyncio.sleep
        self.delay_seconds = settings.order_sync_delay_seconds if delay_seconds is None else delay_seconds
        self._status_recorder = status_recorder
        self._run_lock = threading.Lock()
        self.last_summary: Optional[SyncSummary] = None

    @property
    def is_running(self) -> bool:
        return self._run_lock.locked()

    def _get_carrier(self):
        if self._carrier is None:
            self._carrier = get_melhor_envio_connector()
        return self._carrier

    async def run(self) -> SyncSummary:
        """Run one reconciliation batch, or skip if one is already in flight."""
        if not self._run_lock.acquire(blocking=False):
            log.warning("Order sync already in progress, skipping this trigger")
            return SyncSummary(started_at=datetime.utcnow(), finished_at=datetime.utcnow(), skipped=True)

        summary = SyncSummary(started_at=datetime.utcnow())
        start = time.time()
        db = None
        try:
            log.info("Starting carrier order sync...")
            db = self._session_factory()
            repository = self._repository_cls(db)
            candidates = repository.list_sync_candidates()
            summary.total = len(candidates)

            if not candidates:
                log.info("No pending shipments to sync")
            else:
                log.info(f"{len(candidates)} shipment(s) to sync")
                await self._sync_all(repository, candidates, summary)

        except Exception as e:
            summary.error = str(e)
            log.error(f"Order sync failed: {str(e)}")
        finally:
            summary.finished_at = datetime.utcnow()
            summary.duration_seconds = time.time() - start
            if db is not None:
                db.close()
            self._run_lock.release()

        self._log_summary(summary)
        self._record(summary)
        self.last_summary = summary
        return summary

    async def _sync_all(self, repository, candidates: List[SyncCandidate], summary: SyncSummary) -> None:
        carrier = self._get_carrier()

        for index, candidate in enumerate(candidates):
            if index > 0:
                await self._delay(self.delay_seconds)

            try:
                changed = await self.sync_candidate(repository, carrier, candidate)
                summary.succeeded += 1
                if changed:
                    summary.updated += 1
            except Exception as e:
                summary.errors += 1
                summary.failures.append(f"order #{candidate.order_id}: {str(e)}")
                log.error(f"Failed to sync order #{candidate.order_id}: {str(e)}")

    async def sync_candidate(self, repository, carrier, candidate: SyncCandidate) -> bool:
        """Reconcile one shipment. Returns True when anything was written."""
        info = await carrier.get_order(candidate.melhor_envio_id)

        shipment_changes = compute_shipment_changes(candidate, info)
        if not shipment_changes:
            log.info(f"Order #{candidate.order_id} has no changes")
            return False

        repository.update_shipment(candidate.shipment_id, shipment_changes)

        order_changes = derive_order_changes(candidate, info.status, shipment_changes)
        if order_changes:
            repository.update_order(candidate.order_id, order_changes)

        log.info(
            f"Order #{candidate.order_id} updated - carrier status: {info.status} "
            f"(shipment: {', '.join(sorted(shipment_changes))}"
            f"{'; order: ' + ', '.join(sorted(order_changes)) if order_changes else ''})"
        )
        return True

    def _log_summary(self, summary: SyncSummary) -> None:
        log.info(
            f"Order sync finished in {summary.duration_seconds:.2f}s: "
            f"{summary.total} processed, {summary.succeeded} succeeded, "
            f"{summary.updated} updated, {summary.errors} errors"
        )

    def _record(self, summary: SyncSummary) -> None:
        if self._status_recorder is None:
            return
        try:
            self._status_recorder(summary)
        except Exception as e:
            log.warning(f"Could not record order sync status: {str(e)}")
