"""
Carrier order synchronization endpoints
"""
from fastapi import APIRouter, Depends
from typing import Optional

from app.api.auth import Principal, _require_admin
from app.scheduler import OrderSyncScheduler, get_order_sync_scheduler
from app.services.sync_status_service import get_data_sync_status
from app.utils.logger import log

router = APIRouter(prefix="/sync", tags=["sync"])


def get_recorded_sync_status() -> Optional[dict]:
    """Persisted outcome of the last order sync batch"""
    return get_data_sync_status()


@router.post("/orders")
async def sync_orders(
    admin: Principal = Depends(_require_admin),
    order_scheduler: OrderSyncScheduler = Depends(get_order_sync_scheduler),
):
    """
    Run one carrier order sync now.

    Shares the single-flight guard with the scheduled jobs: when a batch is
    already running this returns immediately with skipped=true.
    """
    summary = await order_scheduler.run_now()
    if summary.error:
        log.error(f"Manual order sync failed: {summary.error}")

    return {
        "success": summary.status in ("success", "partial", "skipped"),
        "total": summary.total,
        "synchronized": summary.updated,
        "errors": summary.errors,
        "skipped": summary.skipped,
        "failures": summary.failures,
        "error": summary.error,
        "duration_seconds": round(summary.duration_seconds, 2),
    }


@router.get("/status")
async def sync_status(
    admin: Principal = Depends(_require_admin),
    order_scheduler: OrderSyncScheduler = Depends(get_order_sync_scheduler),
    recorded: Optional[dict] = Depends(get_recorded_sync_status),
):
    """Last recorded batch outcome plus whether a batch is running right now."""
    last = order_scheduler.service.last_summary
    return {
        "is_running": order_scheduler.service.is_running,
        "status": recorded,
        "last_run": last.to_dict() if last else None,
    }


@router.get("/jobs")
async def sync_jobs(
    admin: Principal = Depends(_require_admin),
    order_scheduler: OrderSyncScheduler = Depends(get_order_sync_scheduler),
):
    """List scheduled order sync jobs"""
    return {"jobs": order_scheduler.get_scheduled_jobs()}
