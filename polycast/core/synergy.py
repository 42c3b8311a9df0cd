"""
Synergy Evaluator
Additive bonus for factor combinations that linear weighting misses.

Only two rules are evaluated:
1. Home + well rested while the opponent is on a back-to-back
2. Large injury deficit + back-to-back on the same side (compounding penalty)
"""
import logging
from typing import List, Optional

from polycast.config.engine_config import DEFAULT_ENGINE_CONFIG, EngineConfig
from polycast.core.factor_scorer import INJURY_IMPACT
from polycast.db.schemas.analytics_schemas import Factor

logger = logging.getLogger(__name__)


def calculate_synergy_bonus(
    factors: List[Factor],
    is_team_a_home: Optional[bool],
    rest_a: int,
    rest_b: int,
    config: EngineConfig = DEFAULT_ENGINE_CONFIG,
) -> float:
    """Signed bonus in score units; positive favours team A."""
    synergy = config.synergy
    bonus = 0.0

    if is_team_a_home is True and rest_a >= synergy.rested_days and rest_b <= synergy.back_to_back_days:
        bonus += synergy.home_plus_rested
        logger.debug(f"⚡ Synergy: home + rested ({bonus:+.1f})")
    elif is_team_a_home is False and rest_b >= synergy.rested_days and rest_a <= synergy.back_to_back_days:
        bonus -= synergy.home_plus_rested
        logger.debug(f"⚡ Synergy: opponent home + rested ({bonus:+.1f})")

    injury = next((f for f in factors if f.name == INJURY_IMPACT), None)
    if injury is not None:
        threshold = synergy.injury_deficit_threshold
        if injury.score < -threshold and rest_a <= synergy.back_to_back_days:
            bonus += synergy.injury_plus_tired
            logger.debug(f"⚡ Negative synergy: team A injured + tired ({bonus:+.1f})")
        elif injury.score > threshold and rest_b <= synergy.back_to_back_days:
            bonus -= synergy.injury_plus_tired
            logger.debug(f"⚡ Negative synergy: opponent injured + tired ({bonus:+.1f})")

    return bonus
