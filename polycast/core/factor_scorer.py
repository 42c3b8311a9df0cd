"""
Factor Scorer
=============
Turns raw match signals into independent, bounded, signed factors.

Convention: a positive score favours team A, a negative score favours team B.
Every score is clamped to +/- FACTOR_SCORE_BOUND (a fixed 100-point scale) before weighting.

A missing input source omits its factor entirely (no synthetic defaults),
except fatigue, which always contributes (rest defaults to 3 days).
Home advantage is omitted when the home/away flag is unknown.
"""
from typing import List, Optional

from polycast.config.engine_config import DEFAULT_ENGINE_CONFIG, EngineConfig
from polycast.db.schemas.analytics_schemas import (
    FACTOR_SCORE_BOUND,
    AdvancedTeamStats,
    Factor,
    H2HStats,
    MatchInputs,
    TeamInjuries,
)


TEAM_STRENGTH = "Team Strength"
RECENT_FORM = "Recent Form"
INJURY_IMPACT = "Injury Impact"
HEAD_TO_HEAD = "Head-to-Head"
OFFENSE_POWER = "Offense Power"
FATIGUE = "Fatigue"
HOME_ADVANTAGE = "Home Advantage"


def clamp_score(score: float) -> float:
    return max(-FACTOR_SCORE_BOUND, min(FACTOR_SCORE_BOUND, score))


def analyze_recent_form(form: Optional[str], lookback: int = 5) -> int:
    """
    Count wins over the most recent `lookback` games.

    Form strings run oldest -> newest ("LWWLW"); short strings are
    left-padded with losses.
    """
    games = list((form or "").upper())
    while len(games) < lookback:
        games.insert(0, "L")
    return sum(1 for g in games[-lookback:] if g == "W")


def _normalize_status(status: Optional[str]) -> str:
    if not isinstance(status, str):
        return ""
    return status.lower().replace("_", "-").replace(" ", "-")


def injury_penalty(status: Optional[str], config: EngineConfig = DEFAULT_ENGINE_CONFIG) -> float:
    """Penalty for one player, by case-insensitive substring match on status"""
    weights = config.injury_weights
    s = _normalize_status(status)
    if "out" in s:
        return weights.out
    if "doubtful" in s:
        return weights.doubtful
    if "questionable" in s:
        return weights.questionable
    if "day-to-day" in s:
        return weights.day_to_day
    return 0.0


def team_injury_score(injuries: Optional[TeamInjuries], config: EngineConfig = DEFAULT_ENGINE_CONFIG) -> float:
    if not injuries or not injuries.injuries:
        return 0.0
    return sum(injury_penalty(inj.status, config) for inj in injuries.injuries)


def rest_value(days: int, config: EngineConfig = DEFAULT_ENGINE_CONFIG) -> float:
    rest = config.rest
    if days <= 1:
        return rest.back_to_back
    if days == 2:
        return rest.one_day
    if days == 3:
        return rest.two_days
    return rest.three_plus


# ============================================================================
# PER-FACTOR SCORING
# ============================================================================

def score_team_strength(
    team_a: str,
    team_b: str,
    advanced_a: Optional[AdvancedTeamStats],
    advanced_b: Optional[AdvancedTeamStats],
    config: EngineConfig = DEFAULT_ENGINE_CONFIG,
) -> Optional[Factor]:
    if not advanced_a or not advanced_b:
        return None
    if advanced_a.rating is None or advanced_b.rating is None:
        return None

    rating_diff = advanced_a.rating - advanced_b.rating
    return Factor(
        name=TEAM_STRENGTH,
        score=clamp_score(rating_diff * config.multipliers.rating),
        weight=config.weights.team_strength,
        description=f"{team_a} Rating {advanced_a.rating:.1f} vs {team_b} {advanced_b.rating:.1f}",
        icon="⭐",
    )


def score_recent_form(
    team_a: str,
    team_b: str,
    h2h: Optional[H2HStats],
    config: EngineConfig = DEFAULT_ENGINE_CONFIG,
) -> Optional[Factor]:
    if not h2h or not (h2h.recent_form_a or h2h.recent_form_b):
        return None

    lookback = config.form_lookback
    wins_a = analyze_recent_form(h2h.recent_form_a, lookback)
    wins_b = analyze_recent_form(h2h.recent_form_b, lookback)
    return Factor(
        name=RECENT_FORM,
        score=clamp_score((wins_a - wins_b) * config.multipliers.form),
        weight=config.weights.recent_form,
        description=f"{team_a} {wins_a} wins in last {lookback}, {team_b} {wins_b} wins in last {lookback}",
        icon="📈",
    )


def score_injuries(
    injuries_a: Optional[TeamInjuries],
    injuries_b: Optional[TeamInjuries],
    config: EngineConfig = DEFAULT_ENGINE_CONFIG,
) -> Optional[Factor]:
    # A's penalty minus B's: more injuries on A pushes the score negative
    score = clamp_score(team_injury_score(injuries_a, config) - team_injury_score(injuries_b, config))
    if score == 0:
        return None

    description = "Limited injury impact"
    if abs(score) > 15:
        healthier = injuries_a if score > 0 else injuries_b
        name = healthier.team_name if healthier and healthier.team_name else ("Team A" if score > 0 else "Team B")
        description = f"{name} has the healthier roster"

    return Factor(
        name=INJURY_IMPACT,
        score=score,
        weight=config.weights.injury_impact,
        description=description,
        icon="🏥",
    )


def score_head_to_head(
    team_a: str,
    h2h: Optional[H2HStats],
    config: EngineConfig = DEFAULT_ENGINE_CONFIG,
) -> Optional[Factor]:
    if not h2h or h2h.total_games <= 0:
        return None

    return Factor(
        name=HEAD_TO_HEAD,
        score=clamp_score((h2h.team_a_win_rate - 0.5) * config.multipliers.h2h),
        weight=config.weights.head_to_head,
        description=f"{team_a} won {h2h.team_a_win_rate * 100:.0f}% of the last {h2h.total_games} meetings",
        icon="📊",
    )


def score_offense(
    team_a: str,
    team_b: str,
    advanced_a: Optional[AdvancedTeamStats],
    advanced_b: Optional[AdvancedTeamStats],
    config: EngineConfig = DEFAULT_ENGINE_CONFIG,
) -> Optional[Factor]:
    if not advanced_a or not advanced_b:
        return None
    if advanced_a.effective_fg_pct is None or advanced_b.effective_fg_pct is None:
        return None

    diff = advanced_a.effective_fg_pct - advanced_b.effective_fg_pct
    return Factor(
        name=OFFENSE_POWER,
        score=clamp_score(diff * config.multipliers.offense),
        weight=config.weights.offense_power,
        description=(
            f"eFG%: {team_a} {advanced_a.effective_fg_pct:.1f}% vs "
            f"{team_b} {advanced_b.effective_fg_pct:.1f}%"
        ),
        icon="🎯",
    )


def score_fatigue(rest_a: int, rest_b: int, config: EngineConfig = DEFAULT_ENGINE_CONFIG) -> Factor:
    score = clamp_score((rest_value(rest_a, config) - rest_value(rest_b, config)) * config.rest.fatigue_multiplier)

    description = "Both sides similarly rested"
    if rest_a <= 1 < rest_b:
        description = f"Team A on a back-to-back ({rest_a} day rest)"
    elif rest_b <= 1 < rest_a:
        description = f"Opponent on a back-to-back ({rest_b} day rest)"
    elif rest_a > rest_b + 1:
        description = f"Team A better rested ({rest_a} vs {rest_b} days)"
    elif rest_b > rest_a + 1:
        description = f"Opponent better rested ({rest_b} vs {rest_a} days)"

    return Factor(
        name=FATIGUE,
        score=score,
        weight=config.weights.fatigue,
        description=description,
        icon="🔋",
    )


def score_home_advantage(is_team_a_home: Optional[bool], config: EngineConfig = DEFAULT_ENGINE_CONFIG) -> Optional[Factor]:
    if is_team_a_home is None:
        return None

    points = config.home_advantage_points
    return Factor(
        name=HOME_ADVANTAGE,
        score=clamp_score(points if is_team_a_home else -points),
        weight=config.weights.home_advantage,
        description="Team A at home" if is_team_a_home else "Team A on the road",
        icon="🏠",
    )


def build_factors(inputs: MatchInputs, config: EngineConfig = DEFAULT_ENGINE_CONFIG) -> List[Factor]:
    """Score every available input source; fatigue is always present."""
    candidates = [
        score_team_strength(inputs.team_a, inputs.team_b, inputs.advanced_a, inputs.advanced_b, config),
        score_recent_form(inputs.team_a, inputs.team_b, inputs.h2h, config),
        score_injuries(inputs.injuries_a, inputs.injuries_b, config),
        score_head_to_head(inputs.team_a, inputs.h2h, config),
        score_offense(inputs.team_a, inputs.team_b, inputs.advanced_a, inputs.advanced_b, config),
        score_fatigue(inputs.rest_days_a, inputs.rest_days_b, config),
        score_home_advantage(inputs.is_team_a_home, config),
    ]
    return [f for f in candidates if f is not None]
