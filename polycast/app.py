"""
Service wiring
Builds the ledger, settlement, analytics, calibration and pipeline services
around one store, and owns the scheduler lifecycle.
"""
import logging
from dataclasses import dataclass
from typing import Optional

from polycast.config.settings import Settings, engine_config_from_settings, load_settings
from polycast.db.prediction_store import PredictionStore, RedisPredictionStore
from polycast.services.calibration_provider import CalibrationProvider
from polycast.services.calibration_scheduler import CalibrationScheduler
from polycast.services.performance_service import PerformanceService
from polycast.services.prediction_ledger import PredictionLedger
from polycast.services.prediction_pipeline import PredictionPipeline, SmartMoneyProvider
from polycast.services.settlement_service import GameResultProvider, SettlementService

logger = logging.getLogger(__name__)


@dataclass
class PolycastServices:
    store: PredictionStore
    ledger: PredictionLedger
    settlement: SettlementService
    performance: PerformanceService
    calibration: CalibrationProvider
    pipeline: PredictionPipeline
    scheduler: CalibrationScheduler

    def start(self):
        self.scheduler.start()

    def stop(self):
        self.scheduler.stop()


async def create_services(
    settings: Optional[Settings] = None,
    store: Optional[PredictionStore] = None,
    result_provider: Optional[GameResultProvider] = None,
    smart_money: Optional[SmartMoneyProvider] = None,
) -> PolycastServices:
    """Wire everything and load the currently published calibration table."""
    settings = settings or load_settings()
    config = engine_config_from_settings(settings)
    store = store or RedisPredictionStore.from_settings(settings)

    ledger = PredictionLedger(store, config)
    settlement = SettlementService(ledger, config)
    performance = PerformanceService(ledger, config)
    calibration = CalibrationProvider(store)
    await calibration.load()

    services = PolycastServices(
        store=store,
        ledger=ledger,
        settlement=settlement,
        performance=performance,
        calibration=calibration,
        pipeline=PredictionPipeline(ledger, calibration, smart_money, config),
        scheduler=CalibrationScheduler(calibration, performance, settlement, result_provider, settings),
    )
    logger.info(f"✅ Services ready (model {config.model_version})")
    return services
