"""
Sync health bookkeeping

One row per sync source. Written after every carrier reconciliation batch so
the admin dashboard can show freshness and consecutive failures.
"""
from sqlalchemy import Column, Integer, String, Float, DateTime, JSON, Boolean, Text
from datetime import datetime

from app.models.base import Base


class DataSyncStatus(Base):
    """Last sync outcome for a data source"""
    __tablename__ = "data_sync_status"

    id = Column(Integer, primary_key=True, index=True)

    source_name = Column(String, unique=True, index=True)  # melhor_envio_orders
    source_type = Column(String)  # shipping

    # Sync status
    last_sync_attempt = Column(DateTime, index=True)
    last_successful_sync = Column(DateTime, index=True, nullable=True)
    sync_status = Column(String, index=True)  # success, partial, failed

    # Sync metrics
    records_processed = Column(Integer, default=0)
    records_synced = Column(Integer, default=0)
    records_failed = Column(Integer, default=0)
    sync_duration_seconds = Column(Float, nullable=True)

    # Error tracking
    last_error = Column(Text, nullable=True)
    error_count = Column(Integer, default=0)  # Consecutive failed batches
    first_error_at = Column(DateTime, nullable=True)

    # Health indicators
    is_healthy = Column(Boolean, default=True, index=True)
    health_score = Column(Integer, default=100)  # 0-100
    health_issues = Column(JSON, nullable=True)  # Per-order error messages of the last batch

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
