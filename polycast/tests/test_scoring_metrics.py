"""
Scoring Rule Tests
Brier score, log loss and edge-gated ROI
"""
import math

import pytest

from polycast.core.h2h import calculate_h2h_stats
from polycast.core.prediction_engine import analyze_market_value
from polycast.core.scoring_metrics import (
    brier_score,
    edge_gated_roi,
    is_prediction_correct,
    log_loss,
    probability_gap,
)
from polycast.db.schemas.analytics_schemas import H2HGame, MarketValue, Winner

A = Winner.TEAM_A
B = Winner.TEAM_B


class TestCorrectness:

    def test_favourite_wins(self):
        assert is_prediction_correct(0.7, A) is True
        assert is_prediction_correct(0.3, B) is True

    def test_favourite_loses(self):
        assert is_prediction_correct(0.7, B) is False

    def test_coin_flip_counts_as_b_pick(self):
        assert is_prediction_correct(0.5, B) is True
        assert is_prediction_correct(0.5, A) is False


class TestBrierAndLogLoss:

    def test_brier(self):
        assert brier_score(0.8, A) == pytest.approx(0.04)
        assert brier_score(0.8, B) == pytest.approx(0.64)

    def test_log_loss(self):
        assert log_loss(0.8, A) == pytest.approx(-math.log(0.8))
        assert log_loss(0.8, B) == pytest.approx(-math.log(0.2))

    def test_log_loss_floored_at_epsilon(self):
        assert log_loss(1.0, B) == pytest.approx(-math.log(1e-4))
        assert math.isfinite(log_loss(0.0, A))


class TestEdgeGatedROI:

    def test_bet_on_a_wins(self):
        assert edge_gated_roi(0.8, 0.4, 0.6, A) == pytest.approx(1.5)

    def test_bet_on_a_loses(self):
        assert edge_gated_roi(0.8, 0.4, 0.6, B) == -1.0

    def test_no_edge_no_bet(self):
        assert edge_gated_roi(0.52, 0.5, 0.5, A) == 0.0
        assert edge_gated_roi(0.52, 0.5, 0.5, B) == 0.0

    def test_mirror_bet_on_b(self):
        assert edge_gated_roi(0.3, 0.5, 0.5, B) == pytest.approx(1.0)
        assert edge_gated_roi(0.3, 0.5, 0.5, A) == -1.0

    def test_uses_market_b_price(self):
        assert edge_gated_roi(0.2, 0.4, 0.25, B) == pytest.approx(3.0)

    @pytest.mark.parametrize("model, market", [
        (0.55, 0.50),
        (0.15, 0.10),
        (0.85, 0.80),
        (0.45, 0.50),
        (0.10, 0.15),
        (0.80, 0.85),
    ])
    @pytest.mark.parametrize("winner", [A, B])
    def test_gap_exactly_at_threshold_is_no_bet(self, model, market, winner):
        assert edge_gated_roi(model, market, 1 - market, winner) == 0.0

    def test_gap_just_above_threshold_bets(self):
        assert edge_gated_roi(0.56, 0.50, 0.50, A) == pytest.approx(1.0)
        assert edge_gated_roi(0.44, 0.50, 0.50, A) == -1.0

    def test_probability_gap_drops_float_noise(self):
        assert 0.55 - 0.50 != 0.05
        assert probability_gap(0.55, 0.50) == 0.05
        assert probability_gap(0.45, 0.50) == -0.05


class TestMarketValueBoundary:

    def test_gap_at_threshold_is_fair(self):
        assert analyze_market_value(0.55, 0.50) == MarketValue.FAIR
        assert analyze_market_value(0.85, 0.80) == MarketValue.FAIR
        assert analyze_market_value(0.45, 0.50) == MarketValue.FAIR

    def test_gap_above_threshold_is_value(self):
        assert analyze_market_value(0.56, 0.50) == MarketValue.VALUE_A
        assert analyze_market_value(0.44, 0.50) == MarketValue.VALUE_B


class TestHeadToHead:

    def test_aggregates_meetings(self):
        games = [
            H2HGame(home="Bulls", away="Nets", home_score=100, away_score=90, winner="Bulls"),
            H2HGame(home="Nets", away="Bulls", home_score=105, away_score=101, winner="Nets"),
            H2HGame(home="Bulls", away="Nets", home_score=99, away_score=98, winner="Bulls"),
        ]
        stats = calculate_h2h_stats(games, "Bulls", "Nets")

        assert stats.total_games == 3
        assert stats.team_a_wins == 2
        assert stats.team_b_wins == 1
        assert stats.team_a_win_rate == pytest.approx(2 / 3)
        # (10 - 4 + 1) / 3
        assert stats.avg_score_diff == pytest.approx(7 / 3)
        assert stats.recent_form_a == "WLW"
        assert stats.recent_form_b == "LWL"

    def test_no_meetings(self):
        stats = calculate_h2h_stats([], "Bulls", "Nets")
        assert stats.total_games == 0
        assert stats.team_a_win_rate == 0.0
        assert stats.recent_form_a == ""
