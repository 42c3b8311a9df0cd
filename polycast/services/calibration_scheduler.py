"""
Calibration Scheduler
=====================
Closes the feedback loop on a schedule.

- Weekly calibration: regenerate the calibration table from the last 90 days
  of settled predictions and publish it (default Sundays 03:00 UTC)
- Daily settlement: settle finished games when a result provider is wired
  in (04:00 UTC)

Stale tables are never inferred; regeneration only happens here or via run_now().
"""
import logging
from typing import List, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from polycast.config.settings import Settings, load_settings
from polycast.db.schemas.analytics_schemas import CalibrationBin, SettlementBatchSummary
from polycast.services.calibration_provider import CalibrationProvider
from polycast.services.performance_service import PerformanceService
from polycast.services.settlement_service import GameResultProvider, SettlementService

logger = logging.getLogger(__name__)


class CalibrationScheduler:
    """
    Manages scheduled calibration and settlement jobs
    """

    def __init__(
        self,
        provider: CalibrationProvider,
        performance: PerformanceService,
        settlement: Optional[SettlementService] = None,
        result_provider: Optional[GameResultProvider] = None,
        settings: Optional[Settings] = None,
        scheduler: Optional[AsyncIOScheduler] = None,
    ):
        self.provider = provider
        self.performance = performance
        self.settlement = settlement
        self.result_provider = result_provider
        self.settings = settings or load_settings()
        self.scheduler = scheduler or AsyncIOScheduler(timezone="UTC")

    def start(self):
        """Register jobs and start the scheduler (requires a running event loop)"""
        day = self.settings.calibration_day_of_week
        hour = self.settings.calibration_hour

        self.scheduler.add_job(
            func=self.run_calibration,
            trigger=CronTrigger(day_of_week=day, hour=hour, minute=0, timezone="UTC"),
            id="weekly_calibration",
            name="Weekly Calibration Job",
            replace_existing=True,
        )

        if self.settlement is not None and self.result_provider is not None:
            self.scheduler.add_job(
                func=self.run_settlement,
                trigger=CronTrigger(hour=4, minute=0, timezone="UTC"),
                id="daily_settlement",
                name="Daily Settlement Job",
                replace_existing=True,
            )

        self.scheduler.start()
        logger.info("✅ Calibration scheduler started")
        logger.info(f"  - Weekly calibration: {day} at {hour:02d}:00 UTC")
        if self.settlement is not None and self.result_provider is not None:
            logger.info("  - Daily settlement: every day at 04:00 UTC")

    def stop(self):
        self.scheduler.shutdown()
        logger.info("🛑 Calibration scheduler stopped")

    async def run_calibration(self) -> Optional[List[CalibrationBin]]:
        """Regenerate and publish the calibration table; job failures are logged."""
        logger.info("🔄 Running scheduled calibration")
        try:
            return await self.provider.refresh(self.performance)
        except Exception as e:
            logger.error(f"❌ Calibration job failed: {e}", exc_info=True)
            return None

    async def run_settlement(self) -> Optional[SettlementBatchSummary]:
        if self.settlement is None or self.result_provider is None:
            logger.warning("⚠️ Settlement job skipped: no result provider configured")
            return None

        logger.info("🔄 Running scheduled settlement")
        try:
            return await self.settlement.settle_pending(
                self.result_provider, batch_size=self.settings.settlement_batch_size
            )
        except Exception as e:
            logger.error(f"❌ Settlement job failed: {e}", exc_info=True)
            return None

    async def run_now(self) -> Optional[List[CalibrationBin]]:
        """Manually trigger calibration (for testing or ad-hoc runs)"""
        logger.info("🔧 Manual calibration trigger")
        return await self.run_calibration()
