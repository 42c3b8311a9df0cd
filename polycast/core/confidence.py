"""
Confidence Estimator
Data completeness plus cross-factor agreement, capped below certainty.
"""
from typing import List

from polycast.config.engine_config import DEFAULT_ENGINE_CONFIG, EngineConfig
from polycast.db.schemas.analytics_schemas import Factor


def calculate_confidence(
    factors: List[Factor],
    has_h2h: bool,
    has_advanced_stats: bool,
    config: EngineConfig = DEFAULT_ENGINE_CONFIG,
) -> float:
    cfg = config.confidence
    confidence = cfg.base

    if has_h2h:
        confidence += cfg.h2h_bonus
    if has_advanced_stats:
        confidence += cfg.advanced_stats_bonus

    # Scores inside the noise band count for neither side
    positive = sum(1 for f in factors if f.score > cfg.noise_threshold)
    negative = sum(1 for f in factors if f.score < -cfg.noise_threshold)
    if (positive > 0) != (negative > 0):
        confidence += cfg.unanimity_bonus

    return min(cfg.cap, confidence)
