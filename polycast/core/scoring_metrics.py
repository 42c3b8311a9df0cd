"""
core/scoring_metrics.py
Proper scoring rules and edge-gated ROI for settled predictions.

Convention: ROI is realized profit per one unit staked, as a fraction.
A bet is only simulated when |model - market| exceeds the edge threshold;
otherwise ROI is exactly 0 (no bet placed).
"""
import math

from polycast.config.engine_config import DEFAULT_ENGINE_CONFIG, EngineConfig
from polycast.db.schemas.analytics_schemas import Winner


def is_prediction_correct(predicted_probability_a: float, winner: Winner) -> bool:
    return (predicted_probability_a > 0.5) == (winner == Winner.TEAM_A)


def brier_score(predicted_probability_a: float, winner: Winner) -> float:
    """
    Squared error between predicted probability and the binary outcome.

    Examples:
        0.8, team A wins -> 0.04
        0.8, team B wins -> 0.64
    """
    actual = 1.0 if winner == Winner.TEAM_A else 0.0
    return (predicted_probability_a - actual) ** 2


def log_loss(predicted_probability_a: float, winner: Winner, epsilon: float = 1e-4) -> float:
    """Negative log-likelihood of the realized outcome, floored at epsilon."""
    prob_of_actual = predicted_probability_a if winner == Winner.TEAM_A else 1 - predicted_probability_a
    return -math.log(max(prob_of_actual, epsilon))


GAP_PRECISION = 9


def probability_gap(model_probability: float, market_probability: float) -> float:
    """
    model - market, rounded so threshold comparisons ignore float noise.

    Example: 0.55 - 0.50 is 0.050000000000000044 in binary floating point,
    which would wrongly clear a 0.05 threshold.
    """
    return round(model_probability - market_probability, GAP_PRECISION)


def edge_gated_roi(
    predicted_probability_a: float,
    market_odds_a: float,
    market_odds_b: float,
    winner: Winner,
    config: EngineConfig = DEFAULT_ENGINE_CONFIG,
) -> float:
    """
    One hypothetical unit on the side the model prefers, only with genuine edge.

    Examples:
        model 0.80, market 0.40, A wins -> bet A, 1/0.40 - 1 = 1.5
        model 0.80, market 0.40, B wins -> bet A, -1
        model 0.52, market 0.50         -> no bet, 0
        model 0.55, market 0.50         -> no bet, 0 (edge must exceed the threshold)
    """
    threshold = config.settlement.edge_threshold
    edge = probability_gap(predicted_probability_a, market_odds_a)

    if edge > threshold:
        return (1 / market_odds_a) - 1 if winner == Winner.TEAM_A else -1.0
    if edge < -threshold:
        return (1 / market_odds_b) - 1 if winner == Winner.TEAM_B else -1.0
    return 0.0
