import logging
from datetime import datetime, timezone

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from mediathek.config import Settings, settings as default_settings
from mediathek.services.sync_controller import CatalogSyncController


logger = logging.getLogger(__name__)

JOB_ID = "catalog_sync_check"


class SyncScheduler:
    """Scheduler for periodic catalog update checks"""

    def __init__(self, controller: CatalogSyncController, config: Settings | None = None):
        self.controller = controller
        self.config = config or default_settings
        self.scheduler: AsyncIOScheduler | None = None

    async def _check_job(self) -> None:
        """Background job that runs one check cycle"""
        logger.info("Scheduled catalog check triggered")
        try:
            result = await self.controller.run_cycle()
            if result["status"] == "failed":
                logger.error(f"Scheduled check failed: {result['error']}")
        except Exception as e:
            logger.error(f"Exception in scheduled check: {e}", exc_info=True)

    def start(self, *, run_now: bool = True) -> None:
        """Start the scheduler with the check job, optionally checking right away"""
        if self.scheduler and self.scheduler.running:
            logger.warning("Scheduler already running")
            return

        try:
            trigger = CronTrigger.from_crontab(self.config.sync_check_cron)
        except (ValueError, KeyError) as exc:
            logger.error("Invalid cron expression '%s': %s", self.config.sync_check_cron, exc)
            raise

        self.scheduler = AsyncIOScheduler(timezone='UTC')
        self.scheduler.add_job(
            self._check_job,
            trigger=trigger,
            id=JOB_ID,
            max_instances=1,
            coalesce=True,
            misfire_grace_time=self.config.sync_check_misfire_grace_sec
        )
        if run_now:
            self.scheduler.add_job(
                self._check_job,
                trigger="date",
                run_date=datetime.now(timezone.utc),
                id=f"{JOB_ID}_startup",
            )

        self.scheduler.start()
        next_time = self.get_next_run_time()
        logger.info(
            "Scheduler started. Next check: %s",
            next_time.isoformat() if next_time else "unknown"
        )

    def shutdown(self) -> None:
        """Shutdown the scheduler"""
        if self.scheduler and self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Scheduler stopped")
        self.scheduler = None

    def is_running(self) -> bool:
        return bool(self.scheduler and self.scheduler.running)

    def get_next_run_time(self) -> datetime | None:
        """Get next scheduled check time"""
        if not self.scheduler:
            return None
        job = self.scheduler.get_job(JOB_ID)
        return job.next_run_time if job else None
