"""
Scheduler for the carrier order sync

Uses APScheduler to reconcile shipments with Melhor Envio on a fixed cadence.
"""
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.date import DateTrigger
from datetime import datetime, timedelta
from zoneinfo import ZoneInfo
import asyncio
import signal
from typing import Optional

from app.services.order_sync_service import OrderSyncService, SyncSummary
from app.models.base import dispose_engine
from app.config import get_settings
from app.utils.logger import log

settings = get_settings()

# Overlapping triggers are resolved by the sync service's own guard,
# so APScheduler must hand every trigger through.
JOB_MAX_INSTANCES = 10


class OrderSyncScheduler:
    """
    Periodic driver for OrderSyncService.

    Schedule (timezone from settings, America/Sao_Paulo by default):
    - Every 30 minutes, on the hour and half hour
    - Every hour on the hour (backup)
    - 08:00, 12:00, 18:00, 22:00 (peak hours)
    - Once, a few seconds after start
    """

    def __init__(self, service: Optional[OrderSyncService] = None, timezone: Optional[str] = None):
        self.timezone = ZoneInfo(timezone or settings.scheduler_timezone)
        self.service = service or OrderSyncService()
        self.scheduler = AsyncIOScheduler(timezone=self.timezone)
        self._configured = False

    async def sync_orders(self) -> SyncSummary:
        """Scheduled job body"""
        return await self.service.run()

    def configure(self):
        if self._configured:
            return

        # ── Regular cadence ──────────────────────────────────
        self.scheduler.add_job(
            self.sync_orders,
            trigger=CronTrigger(minute='*/30', timezone=self.timezone),
            id='order_sync_30min',
            name='Carrier Order Sync (every 30 min)',
            replace_existing=True,
            max_instances=JOB_MAX_INSTANCES
        )
        # Backup - hourly
        self.scheduler.add_job(
            self.sync_orders,
            trigger=CronTrigger(minute=0, timezone=self.timezone),
            id='order_sync_hourly',
            name='Carrier Order Sync (hourly backup)',
            replace_existing=True,
            max_instances=JOB_MAX_INSTANCES
        )

        # ── Peak hours ───────────────────────────────────────
        self.scheduler.add_job(
            self.sync_orders,
            trigger=CronTrigger(hour='8,12,18,22', minute=0, timezone=self.timezone),
            id='order_sync_peak',
            name='Carrier Order Sync (peak hours)',
            replace_existing=True,
            max_instances=JOB_MAX_INSTANCES
        )

        # ── Startup ──────────────────────────────────────────
        run_date = datetime.now(self.timezone) + timedelta(seconds=settings.order_sync_startup_delay_seconds)
        self.scheduler.add_job(
            self.sync_orders,
            trigger=DateTrigger(run_date=run_date, timezone=self.timezone),
            id='order_sync_startup',
            name='Carrier Order Sync (startup)',
            replace_existing=True,
            max_instances=JOB_MAX_INSTANCES
        )

        self._configured = True
        log.info(f"Order sync scheduler configured (timezone: {self.timezone.key})")

    def start(self):
        """Configure and start the scheduler; needs a running event loop."""
        self.configure()
        if not self.scheduler.running:
            self.scheduler.start()
        log.info("Order sync scheduler started")

    async def stop(self):
        """Shut the scheduler down and let the event loop apply it."""
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            # AsyncIOScheduler may defer shutdown to the next loop iteration
            await asyncio.sleep(0)
        log.info("Order sync scheduler stopped")

    async def run_now(self) -> SyncSummary:
        """Run one batch immediately, outside the schedule."""
        log.info("Manually triggering carrier order sync...")
        return await self.service.run()

    def get_scheduled_jobs(self) -> list:
        jobs = []

        for job in self.scheduler.get_jobs():
            # Pending jobs (scheduler not started) have no next run time yet
            next_run = getattr(job, 'next_run_time', None)

            jobs.append({
                'id': job.id,
                'name': job.name,
                'next_run': next_run.isoformat() if next_run else None,
                'trigger': str(job.trigger)
            })

        return jobs


_order_sync_scheduler: Optional[OrderSyncScheduler] = None


def get_order_sync_scheduler() -> OrderSyncScheduler:
    global _order_sync_scheduler
    if _order_sync_scheduler is None:
        _order_sync_scheduler = OrderSyncScheduler()
    return _order_sync_scheduler


async def run_forever(order_scheduler: OrderSyncScheduler):
    """Run the scheduler until SIGINT/SIGTERM, then shut down cleanly."""
    loop = asyncio.get_running_loop()
    stop_event = asyncio.Event()

    def _request_stop(signame: str):
        log.info(f"Received {signame}, shutting down scheduler...")
        stop_event.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, _request_stop, sig.name)

    order_scheduler.start()
    try:
        await stop_event.wait()
    finally:
        await order_scheduler.stop()
        dispose_engine()


# CLI

if __name__ == "__main__":
    import sys

    if len(sys.argv) < 2:
        print("Usage: python -m app.scheduler <command>")
        print("\nCommands:")
        print("  start   Start the scheduler (Ctrl+C to stop)")
        print("  sync    Run one order sync now")
        print("  list    List all scheduled jobs")
        sys.exit(1)

    command = sys.argv[1]

    if command == "start":
        print("Starting order sync scheduler...")
        asyncio.run(run_forever(get_order_sync_scheduler()))
        print("Scheduler stopped")
        sys.exit(0)

    elif command == "sync":
        summary = asyncio.run(get_order_sync_scheduler().run_now())
        dispose_engine()

        print(f"Status:    {summary.status}")
        print(f"Processed: {summary.total}")
        print(f"Succeeded: {summary.succeeded}")
        print(f"Updated:   {summary.updated}")
        print(f"Errors:    {summary.errors}")
        for failure in summary.failures:
            print(f"  - {failure}")
        if summary.error:
            print(f"Error:     {summary.error}")

        sys.exit(1 if summary.status == "failed" else 0)

    elif command == "list":
        print("\nScheduled Jobs:")
        print("-" * 80)

        order_scheduler = get_order_sync_scheduler()
        order_scheduler.configure()
        jobs = order_scheduler.get_scheduled_jobs()

        if not jobs:
            print("No jobs scheduled")
        else:
            for job in jobs:
                print(f"\nID:       {job['id']}")
                print(f"Name:     {job['name']}")
                print(f"Next Run: {job['next_run']}")
                print(f"Trigger:  {job['trigger']}")

    else:
        print(f"Unknown command: {command}")
        sys.exit(1)
