"""
Prediction Pipeline Tests
engine -> decision matrix -> ledger
"""
from unittest.mock import AsyncMock, Mock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from polycast.app import create_services
from polycast.config.settings import Settings
from polycast.db.prediction_store import InMemoryPredictionStore
from polycast.db.schemas.analytics_schemas import (
    AdvancedTeamStats,
    CalibrationBin,
    InvestmentSignal,
    MarketOdds,
    MatchInputs,
    SmartMoneyDirection,
    SmartMoneySignal,
)
from polycast.services.calibration_provider import CalibrationProvider
from polycast.services.errors import LedgerUnavailableError
from polycast.services.prediction_ledger import PENDING_KEY, PredictionLedger
from polycast.services.prediction_pipeline import PredictionPipeline


@pytest.fixture
def store():
    return InMemoryPredictionStore()


@pytest.fixture
def ledger(store):
    return PredictionLedger(store)


@pytest.fixture
def inputs():
    return MatchInputs(
        team_a="Warriors",
        team_b="Kings",
        market_odds=MarketOdds(yes=0.55, no=0.45),
        advanced_a=AdvancedTeamStats(rating=6.0, effective_fg_pct=56.0),
        advanced_b=AdvancedTeamStats(rating=1.0, effective_fg_pct=53.0),
        is_team_a_home=True,
    )


class TestPredictionPipeline:

    @pytest.mark.asyncio
    async def test_records_pending_prediction(self, store, ledger, inputs):
        pipeline = PredictionPipeline(ledger, CalibrationProvider(store))

        outcome = await pipeline.run("mkt_gsw", inputs, game_date="2024-03-15", volume_usd=125000.0)

        assert outcome.decision is None
        record = outcome.record
        assert record.market_id == "mkt_gsw"
        assert record.predicted_probability_a == outcome.prediction.team_a_probability
        assert record.market_odds_a == 0.55
        assert record.market_odds_b == 0.45
        assert record.is_team_a_home is True
        assert record.game_date == "2024-03-15"
        assert not record.is_settled

        stored = await ledger.get_prediction("mkt_gsw")
        assert stored == record
        assert await store.sismember(PENDING_KEY, "mkt_gsw")

    @pytest.mark.asyncio
    async def test_wire_format(self, store, ledger, inputs):
        pipeline = PredictionPipeline(ledger, CalibrationProvider(store))
        outcome = await pipeline.run("mkt_gsw", inputs)

        payload = outcome.record.to_dict()
        assert payload["marketId"] == "mkt_gsw"
        assert "predictedProbabilityA" in payload
        assert payload["actualWinner"] is None

    @pytest.mark.asyncio
    async def test_decision_with_smart_money(self, store, ledger, inputs):
        smart_money = Mock()
        smart_money.get_signal = AsyncMock(
            return_value=SmartMoneySignal(direction=SmartMoneyDirection.YES, concentration=35.0)
        )
        pipeline = PredictionPipeline(ledger, CalibrationProvider(store), smart_money=smart_money)

        outcome = await pipeline.run("mkt_gsw", inputs)

        smart_money.get_signal.assert_awaited_once_with("mkt_gsw")
        assert outcome.decision is not None
        assert outcome.decision.smart_money_direction == SmartMoneyDirection.YES
        assert outcome.decision.ai_prediction == outcome.prediction.team_a_probability

    @pytest.mark.asyncio
    async def test_smart_money_failure_treated_as_neutral(self, store, ledger, inputs):
        smart_money = Mock()
        smart_money.get_signal = AsyncMock(side_effect=TimeoutError("holder API timeout"))
        pipeline = PredictionPipeline(ledger, CalibrationProvider(store), smart_money=smart_money)

        outcome = await pipeline.run("mkt_gsw", inputs)

        assert outcome.decision.smart_money_direction == SmartMoneyDirection.NEUTRAL
        assert outcome.decision.signal != InvestmentSignal.CONFLICT_WARNING
        assert await ledger.get_prediction("mkt_gsw") is not None

    @pytest.mark.asyncio
    async def test_save_failure_propagates(self, store, ledger, inputs):
        store.save_indexed = AsyncMock(side_effect=RedisConnectionError("down"))
        pipeline = PredictionPipeline(ledger, CalibrationProvider(store))

        with pytest.raises(LedgerUnavailableError):
            await pipeline.run("mkt_gsw", inputs)


class TestServiceWiring:

    @pytest.mark.asyncio
    async def test_create_services_applies_settings(self, store, inputs):
        settings = Settings(
            redis_url="redis://localhost:6379/0",
            redis_key_prefix="",
            redis_socket_timeout=5.0,
            calibration_day_of_week="sun",
            calibration_hour=3,
            settlement_batch_size=5,
            model_version="v3.1-canary",
        )
        bins = [CalibrationBin(predicted_range=(0.7, 1.0), actual_win_rate=0.7, sample_size=40)]
        await CalibrationProvider(store).publish(bins)

        services = await create_services(settings, store=store)
        outcome = await services.pipeline.run("mkt_gsw", inputs)

        assert services.calibration.table == tuple(bins)
        assert outcome.record.model_version == "v3.1-canary"
        assert await services.ledger.get_pending_count() == 1
