"""
Prediction Pipeline
===================
engine -> decision matrix -> PredictionRecord -> ledger

The engine reads the currently published calibration table. The decision
matrix only runs when a smart-money provider is wired in.
"""
import logging
from dataclasses import dataclass
from typing import Optional, Protocol

from polycast.config.engine_config import DEFAULT_ENGINE_CONFIG, EngineConfig
from polycast.core.decision_matrix import generate_investment_signal
from polycast.core.prediction_engine import generate_prediction
from polycast.db.schemas.analytics_schemas import (
    InvestmentDecision,
    MatchInputs,
    PredictionRecord,
    PredictionResult,
    SmartMoneySignal,
)
from polycast.services.calibration_provider import CalibrationProvider
from polycast.services.prediction_ledger import PredictionLedger
from polycast.utils.timezone import now_ms

logger = logging.getLogger(__name__)


class SmartMoneyProvider(Protocol):
    async def get_signal(self, market_id: str) -> Optional[SmartMoneySignal]: ...


@dataclass
class PipelineOutcome:
    prediction: PredictionResult
    record: PredictionRecord
    decision: Optional[InvestmentDecision] = None


def build_record(
    market_id: str,
    inputs: MatchInputs,
    prediction: PredictionResult,
    timestamp_ms: int,
    game_date: Optional[str] = None,
    volume_usd: Optional[float] = None,
) -> PredictionRecord:
    return PredictionRecord(
        market_id=market_id,
        team_a=inputs.team_a,
        team_b=inputs.team_b,
        predicted_probability_a=prediction.team_a_probability,
        market_odds_a=inputs.market_odds.yes,
        market_odds_b=inputs.market_odds.no,
        confidence=prediction.confidence,
        timestamp=timestamp_ms,
        model_version=prediction.model_version,
        game_date=game_date,
        is_team_a_home=inputs.is_team_a_home,
        factors=prediction.factors,
        volume_usd=volume_usd,
    )


class PredictionPipeline:
    def __init__(
        self,
        ledger: PredictionLedger,
        calibration: CalibrationProvider,
        smart_money: Optional[SmartMoneyProvider] = None,
        config: EngineConfig = DEFAULT_ENGINE_CONFIG,
    ):
        self.ledger = ledger
        self.calibration = calibration
        self.smart_money = smart_money
        self.config = config

    async def _smart_money_signal(self, market_id: str) -> Optional[SmartMoneySignal]:
        try:
            return await self.smart_money.get_signal(market_id)
        except Exception as e:
            logger.warning(f"⚠️ Smart money unavailable for {market_id}, treating as neutral: {e}")
            return None

    async def run(
        self,
        market_id: str,
        inputs: MatchInputs,
        game_date: Optional[str] = None,
        volume_usd: Optional[float] = None,
    ) -> PipelineOutcome:
        """
        Predict, classify and record one market.

        Raises:
            LedgerUnavailableError: the record could not be saved
        """
        prediction = generate_prediction(inputs, self.calibration.table, self.config)

        decision = None
        if self.smart_money is not None:
            signal = await self._smart_money_signal(market_id)
            decision = generate_investment_signal(
                prediction.team_a_probability, signal, inputs.team_a, inputs.team_b, self.config
            )
            logger.info(f"📊 {market_id}: {decision.signal.value} ({decision.confidence:.0f}%)")

        record = build_record(market_id, inputs, prediction, now_ms(), game_date, volume_usd)
        await self.ledger.save_prediction(record)

        return PipelineOutcome(prediction=prediction, record=record, decision=decision)
