"""
Head-to-head aggregation from historical meetings
"""
from typing import List

from polycast.db.schemas.analytics_schemas import H2HGame, H2HStats


def calculate_h2h_stats(games: List[H2HGame], team_a: str, team_b: str, recent: int = 5) -> H2HStats:
    """
    Summarize meetings between team_a and team_b.

    Games are expected oldest -> newest; recent form strings cover the
    last `recent` meetings in the same order.
    """
    total_games = len(games)
    team_a_wins = 0
    total_score_a = 0
    total_score_b = 0

    for game in games:
        a_is_home = game.home == team_a
        total_score_a += game.home_score if a_is_home else game.away_score
        total_score_b += game.away_score if a_is_home else game.home_score
        if game.winner == team_a:
            team_a_wins += 1

    last = games[-recent:] if recent > 0 else []
    return H2HStats(
        total_games=total_games,
        team_a_wins=team_a_wins,
        team_b_wins=total_games - team_a_wins,
        team_a_win_rate=team_a_wins / total_games if total_games else 0.0,
        avg_score_diff=(total_score_a - total_score_b) / total_games if total_games else 0.0,
        recent_form_a="".join("W" if g.winner == team_a else "L" for g in last),
        recent_form_b="".join("W" if g.winner == team_b else "L" for g in last),
    )
