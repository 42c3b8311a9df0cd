"""
Prediction Engine Configuration
===============================
Immutable rule tables for the factor scorer, synergy evaluator, probability
transform, decision matrix, settlement scoring and analytics.

Every core function receives an EngineConfig explicitly (defaulting to
DEFAULT_ENGINE_CONFIG), so a prediction is a pure function of
(inputs, config). Nothing in here is mutated at runtime: build a new config
with dataclasses.replace() to experiment with different values.
"""
from dataclasses import dataclass, field
from typing import Tuple


MODEL_VERSION = "v3.0"


@dataclass(frozen=True)
class SigmoidConfig:
    """
    Logistic steepness parameters

    Lower K = steeper curve (data complete), higher K = flatter curve
    (data missing, probabilities pulled toward 0.5).
    """
    base_k: float = 35.0
    min_k: float = 25.0
    max_k: float = 50.0


@dataclass(frozen=True)
class FactorWeights:
    """Factor weights (sum to 1.0 when every factor is present)"""
    team_strength: float = 0.30
    recent_form: float = 0.15
    injury_impact: float = 0.20
    head_to_head: float = 0.05
    offense_power: float = 0.10
    fatigue: float = 0.10
    home_advantage: float = 0.10


@dataclass(frozen=True)
class Multipliers:
    rating: float = 8.0    # rating diff of 10 is a large gap
    form: float = 40.0     # per win difference over the lookback
    offense: float = 4.0   # per eFG% point
    h2h: float = 150.0     # (win rate - 0.5) scale


@dataclass(frozen=True)
class InjuryWeights:
    """Per-player penalty by status, strictly decreasing in magnitude"""
    out: float = -25.0
    doubtful: float = -15.0
    questionable: float = -8.0
    day_to_day: float = -3.0


@dataclass(frozen=True)
class RestValues:
    back_to_back: float = -15.0  # <= 1 day
    one_day: float = 0.0         # 2 days
    two_days: float = 5.0        # 3 days
    three_plus: float = 8.0      # >= 4 days, capped (rust)
    fatigue_multiplier: float = 2.0


@dataclass(frozen=True)
class SynergyConfig:
    home_plus_rested: float = 10.0
    injury_plus_tired: float = -15.0
    injury_deficit_threshold: float = 20.0
    rested_days: int = 3
    back_to_back_days: int = 1


@dataclass(frozen=True)
class BayesianConfig:
    prior_weight_base: float = 0.3  # market prior
    model_weight_base: float = 0.7
    h2h_weight: float = 0.2


@dataclass(frozen=True)
class ProbabilityBounds:
    min: float = 0.05
    max: float = 0.95


@dataclass(frozen=True)
class ConfidenceConfig:
    base: float = 0.6
    h2h_bonus: float = 0.10
    advanced_stats_bonus: float = 0.15
    unanimity_bonus: float = 0.10
    noise_threshold: float = 10.0
    cap: float = 0.98


@dataclass(frozen=True)
class RecommendationThresholds:
    min_confidence: float = 0.7
    strong_a: float = 0.65
    lean_a: float = 0.55
    lean_b: float = 0.45
    strong_b: float = 0.35


@dataclass(frozen=True)
class ValueThresholds:
    strong: float = 0.10
    moderate: float = 0.05


@dataclass(frozen=True)
class DecisionMatrixConfig:
    """
    Thresholds for the AI vs smart-money decision matrix
    Confidence values are on a 0-100 scale.
    """
    agreement_min_strength: float = 0.3
    strong_signal_strength: float = 0.5
    neutral_money_min_strength: float = 0.4
    weak_model_strength: float = 0.2
    high_concentration_pct: float = 50.0
    follow_money_concentration_pct: float = 40.0

    base_confidence: float = 50.0
    agreement_confidence: float = 70.0
    agreement_strength_scale: float = 30.0
    conflict_penalty: float = 20.0
    high_concentration_conflict_penalty: float = 25.0
    model_only_confidence: float = 55.0
    model_only_strength_scale: float = 20.0
    follow_money_confidence: float = 55.0
    follow_money_concentration_scale: float = 20.0


@dataclass(frozen=True)
class SettlementConfig:
    edge_threshold: float = 0.05
    log_loss_epsilon: float = 1e-4
    record_ttl_seconds: int = 30 * 24 * 60 * 60
    max_cas_retries: int = 3


@dataclass(frozen=True)
class AnalyticsConfig:
    calibration_score_bins: int = 10
    calibration_score_min_samples: int = 5
    high_confidence: float = 0.8
    low_confidence: float = 0.6
    strong_value_gap: float = 0.10
    value_gap: float = 0.05
    calibration_lookback_days: int = 90
    calibration_min_sample_size: int = 30
    calibration_bin_edges: Tuple[float, ...] = (0.0, 0.4, 0.5, 0.6, 0.7, 1.0)


@dataclass(frozen=True)
class EngineConfig:
    sigmoid: SigmoidConfig = field(default_factory=SigmoidConfig)
    weights: FactorWeights = field(default_factory=FactorWeights)
    multipliers: Multipliers = field(default_factory=Multipliers)
    injury_weights: InjuryWeights = field(default_factory=InjuryWeights)
    rest: RestValues = field(default_factory=RestValues)
    synergy: SynergyConfig = field(default_factory=SynergyConfig)
    bayesian: BayesianConfig = field(default_factory=BayesianConfig)
    probability: ProbabilityBounds = field(default_factory=ProbabilityBounds)
    confidence: ConfidenceConfig = field(default_factory=ConfidenceConfig)
    recommendation: RecommendationThresholds = field(default_factory=RecommendationThresholds)
    value: ValueThresholds = field(default_factory=ValueThresholds)
    decision: DecisionMatrixConfig = field(default_factory=DecisionMatrixConfig)
    settlement: SettlementConfig = field(default_factory=SettlementConfig)
    analytics: AnalyticsConfig = field(default_factory=AnalyticsConfig)

    form_lookback: int = 5
    home_advantage_points: float = 15.0
    model_version: str = MODEL_VERSION


DEFAULT_ENGINE_CONFIG = EngineConfig()
