"""
Prediction Engine (v3.0)
========================
Factor scoring -> synergy -> confidence -> probability transform ->
recommendation, market value and reasoning.

Improvements over the flat-K scorer:
1. Dynamic K (steepness follows data quality)
2. Factor interaction (synergy bonus)
3. Historical calibration (bias correction from settled results)
4. Bayesian blend with the market prior

The calibration table is injected as plain data; see
services/calibration_provider.py for where the published table comes from.
"""
import logging
from typing import List, Sequence

from polycast.config.engine_config import DEFAULT_ENGINE_CONFIG, EngineConfig
from polycast.core.confidence import calculate_confidence
from polycast.core.factor_scorer import build_factors
from polycast.core.probability_transform import transform
from polycast.core.scoring_metrics import probability_gap
from polycast.core.synergy import calculate_synergy_bonus
from polycast.db.schemas.analytics_schemas import (
    CalibrationBin,
    Factor,
    MarketOdds,
    MarketValue,
    MatchInputs,
    PredictionResult,
    Recommendation,
)

logger = logging.getLogger(__name__)


def generate_prediction(
    inputs: MatchInputs,
    calibration_table: Sequence[CalibrationBin] = (),
    config: EngineConfig = DEFAULT_ENGINE_CONFIG,
) -> PredictionResult:
    logger.info(f"🔮 [{config.model_version}] Generating prediction for {inputs.team_a} vs {inputs.team_b}")

    factors = build_factors(inputs, config)
    synergy_bonus = calculate_synergy_bonus(
        factors, inputs.is_team_a_home, inputs.rest_days_a, inputs.rest_days_b, config
    )

    has_advanced = inputs.advanced_a is not None and inputs.advanced_b is not None
    confidence = calculate_confidence(factors, inputs.h2h is not None, has_advanced, config)

    h2h_win_rate = None
    if inputs.h2h is not None and inputs.h2h.total_games > 0:
        h2h_win_rate = inputs.h2h.team_a_win_rate

    result = transform(
        factors,
        synergy_bonus,
        confidence,
        inputs.market_odds.yes,
        h2h_win_rate=h2h_win_rate,
        calibration_table=calibration_table,
        config=config,
    )

    logger.debug(
        f"📊 Scores - Weighted: {result.weighted_score:.2f}, Synergy: {synergy_bonus:.2f}, "
        f"Final: {result.final_score:.2f}, K: {result.k_value:.2f}"
    )

    team_a_probability = result.probability
    team_b_probability = 1 - team_a_probability

    ranked = sorted(factors, key=lambda f: f.impact, reverse=True)
    recommendation = generate_recommendation(team_a_probability, confidence, config)
    market_value = analyze_market_value(team_a_probability, inputs.market_odds.yes, config)
    reasoning = generate_reasoning(
        ranked, inputs.team_a, inputs.team_b, team_a_probability, market_value, inputs.market_odds, synergy_bonus
    )

    logger.info(
        f"✅ [{config.model_version}] {inputs.team_a} {team_a_probability * 100:.1f}% | "
        f"Confidence: {confidence * 100:.0f}% | {recommendation.value}"
    )

    return PredictionResult(
        team_a_probability=team_a_probability,
        team_b_probability=team_b_probability,
        confidence=confidence,
        factors=ranked,
        recommendation=recommendation,
        market_value=market_value,
        reasoning=reasoning,
        model_version=config.model_version,
        synergy_bonus=synergy_bonus,
        k_value=result.k_value,
        raw_probability=result.raw_probability,
        calibrated_probability=result.calibrated_probability,
    )


def generate_recommendation(
    probability_a: float,
    confidence: float,
    config: EngineConfig = DEFAULT_ENGINE_CONFIG,
) -> Recommendation:
    thresholds = config.recommendation
    if confidence < thresholds.min_confidence:
        return Recommendation.NEUTRAL

    if probability_a > thresholds.strong_a:
        return Recommendation.STRONG_A
    if probability_a > thresholds.lean_a:
        return Recommendation.LEAN_A
    if probability_a < thresholds.strong_b:
        return Recommendation.STRONG_B
    if probability_a < thresholds.lean_b:
        return Recommendation.LEAN_B
    return Recommendation.NEUTRAL


def analyze_market_value(
    predicted_probability: float,
    market_probability: float,
    config: EngineConfig = DEFAULT_ENGINE_CONFIG,
) -> MarketValue:
    diff = probability_gap(predicted_probability, market_probability)
    if diff > config.value.moderate:
        return MarketValue.VALUE_A
    if diff < -config.value.moderate:
        return MarketValue.VALUE_B
    return MarketValue.FAIR


def generate_reasoning(
    factors: List[Factor],
    team_a: str,
    team_b: str,
    probability_a: float,
    value: MarketValue,
    odds: MarketOdds,
    synergy_bonus: float,
) -> List[str]:
    """Human-readable justification; factors are expected in impact order."""
    reasons = []

    favoured = team_a if probability_a > 0.5 else team_b
    win_rate = probability_a if probability_a > 0.5 else 1 - probability_a
    remark = "a meaningful market edge" if value != MarketValue.FAIR else "close to the market price"
    reasons.append(
        f"Model gives {favoured} a {win_rate * 100:.1f}% win probability "
        f"(market {odds.yes * 100:.1f}% for {team_a}), {remark}."
    )

    for f in [f for f in factors if abs(f.score) > 20][:2]:
        side = team_a if f.score > 0 else team_b
        reasons.append(f"{f.icon} {f.name}: edge to {side} ({f.description})")

    if abs(synergy_bonus) > 5:
        side = team_a if synergy_bonus > 0 else team_b
        reasons.append(f"⚡ Synergy: {side} gets an extra boost (+{abs(synergy_bonus):.0f} pts)")

    if value == MarketValue.VALUE_A:
        reasons.append(f"💰 Market undervalues {team_a}; consider buying YES.")
    elif value == MarketValue.VALUE_B:
        reasons.append(f"💰 Market undervalues {team_b}; consider buying NO.")

    return reasons
