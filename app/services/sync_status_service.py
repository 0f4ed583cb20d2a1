"""
Sync health bookkeeping for the carrier reconciliation job.
"""
from datetime import datetime
from typing import Any, Dict, Optional

from app.models.base import SessionLocal
from app.models.data_sync_status import DataSyncStatus
from app.utils.logger import log

ORDER_SYNC_SOURCE = "melhor_envio_orders"


def update_data_sync_status(summary, source: str = ORDER_SYNC_SOURCE, session_factory=SessionLocal) -> None:
    """
    Upsert the data_sync_status row for ``source`` from a batch summary.

    Skipped batches (another one was in flight) are not recorded.
    """
    if summary.skipped:
        return

    db = session_factory()
    try:
        status = db.query(DataSyncStatus).filter(
            DataSyncStatus.source_name == source
        ).first()

        if not status:
            status = DataSyncStatus(source_name=source, source_type="shipping")
            db.add(status)

        status.last_sync_attempt = summary.started_at
        status.sync_duration_seconds = summary.duration_seconds
        status.records_processed = summary.total
        status.records_synced = summary.updated
        status.records_failed = summary.errors
        status.health_issues = summary.failures[:20] or None

        batch_status = summary.status
        status.sync_status = batch_status

        if batch_status in ("success", "partial"):
            status.last_successful_sync = summary.finished_at or datetime.utcnow()
            status.error_count = 0
            status.first_error_at = None
            status.last_error = summary.failures[0] if summary.failures else None
            status.is_healthy = True
            status.health_score = 100 if batch_status == "success" else 80
        else:
            status.last_error = summary.error or (summary.failures[0] if summary.failures else None)
            status.error_count = (status.error_count or 0) + 1
            if not status.first_error_at:
                status.first_error_at = datetime.utcnow()

            # Degrade health based on consecutive failures
            if status.error_count >= 5:
                status.health_score = 0
                status.is_healthy = False
            elif status.error_count >= 3:
                status.health_score = 30
                status.is_healthy = False
            else:
                status.health_score = 60

        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def get_data_sync_status(source: str = ORDER_SYNC_SOURCE, session_factory=SessionLocal) -> Optional[Dict[str, Any]]:
    """Current status row as a dict, or None before the first batch."""
    db = session_factory()
    try:
        status = db.query(DataSyncStatus).filter(
            DataSyncStatus.source_name == source
        ).first()
        if not status:
            return None
        return {
            "source": status.source_name,
            "sync_status": status.sync_status,
            "last_sync_attempt": status.last_sync_attempt.isoformat() if status.last_sync_attempt else None,
            "last_successful_sync": status.last_successful_sync.isoformat() if status.last_successful_sync else None,
            "records_processed": status.records_processed,
            "records_synced": status.records_synced,
            "records_failed": status.records_failed,
            "duration_seconds": status.sync_duration_seconds,
            "last_error": status.last_error,
            "consecutive_errors": status.error_count,
            "is_healthy": status.is_healthy,
            "health_score": status.health_score,
        }
    finally:
        db.close()
