"""
Calibration Provider
Holds the currently published calibration table and republishes it on refresh.

The table starts empty (no correction) until one has been published.
"""
import json
import logging
from typing import List, Optional, Sequence, Tuple

from pydantic import ValidationError
from redis.exceptions import RedisError

from polycast.db.prediction_store import PredictionStore
from polycast.db.schemas.analytics_schemas import CalibrationBin
from polycast.services.errors import LedgerUnavailableError
from polycast.services.performance_service import PerformanceService

logger = logging.getLogger(__name__)

CALIBRATION_KEY = "calibration:table"


class CalibrationProvider:
    def __init__(self, store: PredictionStore, key: str = CALIBRATION_KEY):
        self.store = store
        self.key = key
        self._table: Tuple[CalibrationBin, ...] = ()

    @property
    def table(self) -> Tuple[CalibrationBin, ...]:
        return self._table

    async def load(self) -> Tuple[CalibrationBin, ...]:
        """Read the published table; keep the current one if the store is unreadable."""
        try:
            raw = await self.store.get(self.key)
        except RedisError as e:
            logger.warning(f"⚠️ Calibration table unavailable, keeping current: {e}")
            return self._table

        if raw is None:
            return self._table

        try:
            self._table = tuple(CalibrationBin.model_validate(b) for b in json.loads(raw))
        except (ValueError, ValidationError) as e:
            logger.warning(f"⚠️ Ignoring malformed calibration table: {e}")
            return self._table

        logger.info(f"📊 Loaded calibration table ({len(self._table)} bins)")
        return self._table

    async def publish(self, bins: Sequence[CalibrationBin]) -> None:
        """
        Persist bins (no TTL) and make them current.

        Raises:
            LedgerUnavailableError: the table could not be written
        """
        payload = json.dumps([b.to_dict() for b in bins])
        try:
            await self.store.set(self.key, payload, ttl_seconds=None)
        except RedisError as e:
            raise LedgerUnavailableError("Could not publish calibration table") from e

        self._table = tuple(bins)
        logger.info(f"✅ Published calibration table ({len(self._table)} bins)")

    async def refresh(self, performance: PerformanceService) -> Optional[List[CalibrationBin]]:
        """Regenerate from settled history and publish; None when nothing was generated."""
        bins = await performance.generate_calibration_table()
        if not bins:
            logger.warning("⚠️ Calibration regeneration produced no bins, keeping current table")
            return None
        await self.publish(bins)
        return bins
