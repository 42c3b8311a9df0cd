"""
Prediction & Analytics Schemas
==============================
Canonical data model for prediction tracking, settlement and calibration.

Core Principles:
1. A PredictionRecord is created once and settled once
2. predictedProbabilityA never changes after creation
3. Settlement fields are all-or-nothing (fully pending or fully settled)
4. ModelPerformance and CalibrationBin are derived, never hand-edited

Wire format uses camelCase aliases (marketId, predictedProbabilityA, ...);
Python attributes are snake_case. Serialize with to_json(), parse with
model_validate_json().
"""
from pydantic import BaseModel, ConfigDict, Field, model_validator
from typing import Optional, List, Tuple
from datetime import datetime, timezone
from enum import Enum


class CamelModel(BaseModel):
    """Base model accepting both field names and wire aliases"""
    model_config = ConfigDict(populate_by_name=True)

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)

    def to_dict(self) -> dict:
        return self.model_dump(by_alias=True, mode="json")


# ============================================================================
# ENUMS
# ============================================================================

class Winner(str, Enum):
    TEAM_A = "teamA"
    TEAM_B = "teamB"


class Recommendation(str, Enum):
    STRONG_A = "STRONG_A"
    LEAN_A = "LEAN_A"
    NEUTRAL = "NEUTRAL"
    LEAN_B = "LEAN_B"
    STRONG_B = "STRONG_B"


class MarketValue(str, Enum):
    VALUE_A = "VALUE_A"
    FAIR = "FAIR"
    VALUE_B = "VALUE_B"


class InvestmentSignal(str, Enum):
    """Decision matrix output (AI prediction vs smart money)"""
    STRONG_BUY_A = "STRONG_BUY_A"
    MODERATE_BUY_A = "MODERATE_BUY_A"
    WEAK_BUY_A = "WEAK_BUY_A"
    NEUTRAL = "NEUTRAL"
    WEAK_BUY_B = "WEAK_BUY_B"
    MODERATE_BUY_B = "MODERATE_BUY_B"
    STRONG_BUY_B = "STRONG_BUY_B"
    CONFLICT_WARNING = "CONFLICT_WARNING"


class SmartMoneyDirection(str, Enum):
    YES = "YES"          # large holders favour team A
    NO = "NO"            # large holders favour team B
    NEUTRAL = "NEUTRAL"


class SettlementStatus(str, Enum):
    SETTLED = "SETTLED"
    RESETTLED = "RESETTLED"              # settled again with a different outcome
    ALREADY_SETTLED = "ALREADY_SETTLED"  # identical outcome, no-op
    NOT_FOUND = "NOT_FOUND"


# ============================================================================
# ENGINE INPUTS
# ============================================================================

class AdvancedTeamStats(CamelModel):
    rating: Optional[float] = Field(None, alias="nbaRating", description="Net/power rating")
    effective_fg_pct: Optional[float] = Field(None, alias="effectiveFGPct", description="eFG% (0-100)")


class InjuryEntry(CamelModel):
    player: str = ""
    status: Optional[str] = None


class TeamInjuries(CamelModel):
    team_name: str = Field("", alias="teamName")
    injuries: List[InjuryEntry] = Field(default_factory=list)


class H2HGame(CamelModel):
    home: str
    away: str
    home_score: int = Field(..., alias="homeScore")
    away_score: int = Field(..., alias="awayScore")
    winner: str


class H2HStats(CamelModel):
    total_games: int = Field(0, alias="totalGames")
    team_a_wins: int = Field(0, alias="teamAWins")
    team_b_wins: int = Field(0, alias="teamBWins")
    team_a_win_rate: float = Field(0.0, alias="teamAWinRate")
    avg_score_diff: float = Field(0.0, alias="avgScoreDiff")
    recent_form_a: str = Field("", alias="recentFormA", description="Oldest -> newest, e.g. 'WLWWL'")
    recent_form_b: str = Field("", alias="recentFormB")


class MarketOdds(CamelModel):
    """Market-implied probability pair, summing to ~1"""
    yes: float = Field(..., gt=0, lt=1)
    no: float = Field(..., gt=0, lt=1)


class SmartMoneySignal(CamelModel):
    """Large-holder positioning produced by the holder-analysis collaborator"""
    direction: SmartMoneyDirection = SmartMoneyDirection.NEUTRAL
    concentration: float = Field(0.0, ge=0, le=100, description="Top-holder share (0-100%)")


class MatchInputs(CamelModel):
    """
    Everything the factor scorer consumes for one contest.
    Each source is independently optional; rest days default to 3 (neutral).
    """
    team_a: str = Field(..., alias="teamA")
    team_b: str = Field(..., alias="teamB")
    market_odds: MarketOdds = Field(..., alias="marketOdds")
    h2h: Optional[H2HStats] = None
    advanced_a: Optional[AdvancedTeamStats] = Field(None, alias="advancedStatsA")
    advanced_b: Optional[AdvancedTeamStats] = Field(None, alias="advancedStatsB")
    injuries_a: Optional[TeamInjuries] = Field(None, alias="injuriesA")
    injuries_b: Optional[TeamInjuries] = Field(None, alias="injuriesB")
    rest_days_a: int = Field(3, alias="restDaysA")
    rest_days_b: int = Field(3, alias="restDaysB")
    is_team_a_home: Optional[bool] = Field(None, alias="isTeamAHome")


class GameResult(CamelModel):
    winner: Winner
    score_a: int = Field(..., alias="scoreA", ge=0)
    score_b: int = Field(..., alias="scoreB", ge=0)


# ============================================================================
# ENGINE OUTPUTS
# ============================================================================

# Factor scores share one fixed scale; clamping and validation both use it.
FACTOR_SCORE_BOUND = 100.0


class Factor(CamelModel):
    """Ephemeral signed factor; positive score favours team A"""
    name: str
    score: float = Field(..., ge=-FACTOR_SCORE_BOUND, le=FACTOR_SCORE_BOUND)
    weight: float = Field(..., ge=0, le=1)
    description: str = ""
    icon: str = ""

    @property
    def impact(self) -> float:
        return abs(self.score * self.weight)


class InvestmentDecision(CamelModel):
    ai_prediction: float = Field(..., alias="aiPrediction")
    smart_money_direction: SmartMoneyDirection = Field(..., alias="smartMoneyDirection")
    whale_concentration: float = Field(..., alias="whaleConcentration")
    signal: InvestmentSignal
    confidence: float = Field(..., ge=0, le=100)
    reasoning: str


class PredictionResult(CamelModel):
    team_a_probability: float = Field(..., alias="teamAProbability")
    team_b_probability: float = Field(..., alias="teamBProbability")
    confidence: float
    factors: List[Factor] = Field(default_factory=list)
    recommendation: Recommendation
    market_value: MarketValue = Field(..., alias="marketValue")
    reasoning: List[str] = Field(default_factory=list)
    model_version: str = Field(..., alias="modelVersion")

    # Diagnostics
    synergy_bonus: float = Field(0.0, alias="synergyBonus")
    k_value: float = Field(0.0, alias="kValue")
    raw_probability: float = Field(0.0, alias="rawProbability")
    calibrated_probability: float = Field(0.0, alias="calibratedProbability")


# ============================================================================
# LEDGER
# ============================================================================

SETTLEMENT_FIELDS = (
    "actual_winner",
    "actual_score_a",
    "actual_score_b",
    "result_updated_at",
    "prediction_correct",
    "brier_score",
    "log_loss",
    "expected_value",
)


class PredictionRecord(CamelModel):
    """
    Durable unit of work, keyed by marketId.

    Created by the prediction pipeline, settled exactly once by the
    settlement service, expired by the store TTL.
    """
    market_id: str = Field(..., alias="marketId")
    team_a: str = Field(..., alias="teamA")
    team_b: str = Field(..., alias="teamB")
    predicted_probability_a: float = Field(..., alias="predictedProbabilityA", gt=0, lt=1)
    market_odds_a: float = Field(..., alias="marketOddsA", gt=0, lt=1)
    market_odds_b: Optional[float] = Field(None, alias="marketOddsB", gt=0, lt=1)
    confidence: float = Field(..., ge=0, le=1)
    timestamp: int = Field(..., description="Creation instant, epoch ms")
    model_version: str = Field(..., alias="modelVersion")

    game_date: Optional[str] = Field(None, alias="gameDate")
    is_team_a_home: Optional[bool] = Field(None, alias="isTeamAHome")
    factors: List[Factor] = Field(default_factory=list)
    volume_usd: Optional[float] = Field(None, alias="volumeUSD")

    # Settlement (null until settled)
    actual_winner: Optional[Winner] = Field(None, alias="actualWinner")
    actual_score_a: Optional[int] = Field(None, alias="actualScoreA")
    actual_score_b: Optional[int] = Field(None, alias="actualScoreB")
    result_updated_at: Optional[int] = Field(None, alias="resultUpdatedAt")
    prediction_correct: Optional[bool] = Field(None, alias="predictionCorrect")
    brier_score: Optional[float] = Field(None, alias="brierScore", ge=0, le=1)
    log_loss: Optional[float] = Field(None, alias="logLoss", ge=0)
    expected_value: Optional[float] = Field(None, alias="expectedValue")

    @model_validator(mode="after")
    def _check_record(self) -> "PredictionRecord":
        if self.market_odds_b is None:
            self.market_odds_b = 1 - self.market_odds_a

        populated = [getattr(self, name) is not None for name in SETTLEMENT_FIELDS]
        if any(populated) and not all(populated):
            missing = [n for n, p in zip(SETTLEMENT_FIELDS, populated) if not p]
            raise ValueError(f"Partially settled record {self.market_id}: missing {missing}")
        return self

    @property
    def is_settled(self) -> bool:
        return self.actual_winner is not None


class CalibrationBin(CamelModel):
    predicted_range: Tuple[float, float] = Field(..., alias="predictedRange")
    actual_win_rate: float = Field(..., alias="actualWinRate", ge=0, le=1)
    sample_size: int = Field(..., alias="sampleSize", ge=0)

    @property
    def midpoint(self) -> float:
        low, high = self.predicted_range
        return (low + high) / 2

    def contains(self, probability: float) -> bool:
        low, high = self.predicted_range
        return low <= probability < high


class SettlementResult(CamelModel):
    market_id: str = Field(..., alias="marketId")
    status: SettlementStatus
    record: Optional[PredictionRecord] = None


class SettlementBatchSummary(CamelModel):
    success: bool = True
    settled: int = 0
    pending: int = 0
    failed: int = 0
    expired: int = 0
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class LedgerStats(CamelModel):
    pending: int = 0
    settled: int = 0


# ============================================================================
# PERFORMANCE
# ============================================================================

class ConfidenceBucket(CamelModel):
    accuracy: float = 0.0
    count: int = 0


class ValueBucket(CamelModel):
    roi: float = Field(0.0, description="Mean realized ROI, percent")
    count: int = 0


class ConfidenceBreakdown(CamelModel):
    high: ConfidenceBucket = Field(default_factory=ConfidenceBucket)    # > 0.8
    medium: ConfidenceBucket = Field(default_factory=ConfidenceBucket)  # 0.6 - 0.8
    low: ConfidenceBucket = Field(default_factory=ConfidenceBucket)     # < 0.6


class ValueBreakdown(CamelModel):
    strong_value: ValueBucket = Field(default_factory=ValueBucket, alias="strongValue")  # gap > 0.10
    value: ValueBucket = Field(default_factory=ValueBucket)                             # 0.05 - 0.10
    fair: ValueBucket = Field(default_factory=ValueBucket)                              # < 0.05


class DailyAccuracy(CamelModel):
    date: str
    accuracy: float = 0.0
    count: int = 0


class ModelPerformance(CamelModel):
    total_predictions: int = Field(0, alias="totalPredictions")
    accuracy: float = 0.0
    avg_brier_score: float = Field(0.0, alias="avgBrierScore")
    avg_log_loss: float = Field(0.0, alias="avgLogLoss")
    calibration_score: float = Field(0.0, alias="calibrationScore")
    by_confidence: ConfidenceBreakdown = Field(default_factory=ConfidenceBreakdown, alias="byConfidence")
    by_value: ValueBreakdown = Field(default_factory=ValueBreakdown, alias="byValue")
    last_7_days: List[DailyAccuracy] = Field(default_factory=list, alias="last7Days")
    last_30_days: List[DailyAccuracy] = Field(default_factory=list, alias="last30Days")

    @classmethod
    def empty(cls) -> "ModelPerformance":
        return cls()
