"""
Probability Transform
=====================
(factors, synergy bonus, confidence) -> calibrated probability of team A.

Steps, in order:
1. Weighted mean of factor scores
2. Add synergy bonus
3. Dynamic sigmoid steepness K from confidence and factor count
4. Logistic transform
5. Historical calibration correction (bins below the sample minimum are ignored)
6. Bayesian blend with the market prior (and head-to-head win rate if present)
7. Final clamp to [0.05, 0.95]
"""
import math
from dataclasses import dataclass
from typing import List, Optional, Sequence

from polycast.config.engine_config import DEFAULT_ENGINE_CONFIG, EngineConfig
from polycast.db.schemas.analytics_schemas import CalibrationBin, Factor


@dataclass(frozen=True)
class TransformResult:
    weighted_score: float
    final_score: float
    k_value: float
    raw_probability: float
    calibrated_probability: float
    probability: float


def clamp_probability(p: float, config: EngineConfig = DEFAULT_ENGINE_CONFIG) -> float:
    return max(config.probability.min, min(config.probability.max, p))


def weighted_score(factors: Sequence[Factor]) -> float:
    total_weight = sum(f.weight for f in factors)
    if total_weight <= 0:
        # Only reachable when a caller bypasses build_factors (fatigue always carries weight)
        return 0.0
    return sum(f.score * f.weight for f in factors) / total_weight


def calculate_dynamic_k(confidence: float, factor_count: int, config: EngineConfig = DEFAULT_ENGINE_CONFIG) -> float:
    """Lower confidence -> larger K -> flatter curve -> probabilities nearer 0.5"""
    sig = config.sigmoid
    confidence_multiplier = 0.7 + 0.6 * (1 - confidence)
    factor_multiplier = max(0.8, 1 - (factor_count - 5) * 0.05)
    k = sig.base_k * confidence_multiplier * factor_multiplier
    return max(sig.min_k, min(sig.max_k, k))


def sigmoid(x: float, k: float) -> float:
    return 1 / (1 + math.exp(-x / k))


def find_calibration_bin(probability: float, table: Sequence[CalibrationBin]) -> Optional[CalibrationBin]:
    return next((b for b in table if b.contains(probability)), None)


def calibrate_probability(
    raw_probability: float,
    table: Sequence[CalibrationBin],
    config: EngineConfig = DEFAULT_ENGINE_CONFIG,
) -> float:
    """Shift by the bin's observed bias; insufficient evidence means no adjustment."""
    calibration = find_calibration_bin(raw_probability, table)
    if calibration is None or calibration.sample_size < config.analytics.calibration_min_sample_size:
        return raw_probability

    adjustment = calibration.actual_win_rate - calibration.midpoint
    return clamp_probability(raw_probability + adjustment, config)


def bayesian_update(
    model_probability: float,
    market_probability: float,
    h2h_win_rate: Optional[float],
    confidence: float,
    config: EngineConfig = DEFAULT_ENGINE_CONFIG,
) -> float:
    bayes = config.bayesian
    prior_weight = bayes.prior_weight_base * (1 - confidence)
    model_weight = bayes.model_weight_base * confidence
    h2h_weight = bayes.h2h_weight if h2h_win_rate is not None else 0.0

    total_weight = prior_weight + model_weight + h2h_weight
    if total_weight <= 0:
        return clamp_probability(model_probability, config)

    posterior = (
        market_probability * prior_weight
        + model_probability * model_weight
        + (h2h_win_rate if h2h_win_rate is not None else 0.5) * h2h_weight
    ) / total_weight
    return clamp_probability(posterior, config)


def transform(
    factors: List[Factor],
    synergy_bonus: float,
    confidence: float,
    market_probability: float,
    h2h_win_rate: Optional[float] = None,
    calibration_table: Sequence[CalibrationBin] = (),
    config: EngineConfig = DEFAULT_ENGINE_CONFIG,
) -> TransformResult:
    base = weighted_score(factors)
    final_score = base + synergy_bonus

    k = calculate_dynamic_k(confidence, len(factors), config)
    raw = sigmoid(final_score, k)
    calibrated = calibrate_probability(raw, calibration_table, config)
    posterior = bayesian_update(calibrated, market_probability, h2h_win_rate, confidence, config)

    return TransformResult(
        weighted_score=base,
        final_score=final_score,
        k_value=k,
        raw_probability=raw,
        calibrated_probability=calibrated,
        probability=clamp_probability(posterior, config),
    )
