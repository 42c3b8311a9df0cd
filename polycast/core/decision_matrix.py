"""
AI Prediction vs Smart Money - Decision Matrix
==============================================
Pure, deterministic classifier combining the model probability with
large-holder positioning into one of eight investment signals.

Rules in priority order:
1. Model and smart money agree with strength > 0.3   -> graded BUY toward that side
2. Model and smart money disagree                    -> CONFLICT_WARNING
   (extra penalty when whale concentration > 50%)
3. Smart money neutral                               -> model strength alone
4. Weak model (< 0.2), smart money has a side        -> follow smart money
Anything else falls through to NEUTRAL.

┌──────────────────┬──────────────┬──────────────────────┐
│ Model strength   │ Smart money  │ Signal               │
├──────────────────┼──────────────┼──────────────────────┤
│ > 0.5            │ agrees       │ STRONG_BUY           │
│ 0.3 - 0.5        │ agrees       │ MODERATE_BUY         │
│ any              │ conflicts    │ CONFLICT_WARNING     │
│ > 0.4            │ neutral      │ MODERATE_BUY         │
│ <= 0.4           │ neutral      │ NEUTRAL              │
│ < 0.2            │ has a side   │ WEAK / MODERATE_BUY  │
└──────────────────┴──────────────┴──────────────────────┘
"""
from typing import Optional

from polycast.config.engine_config import DEFAULT_ENGINE_CONFIG, EngineConfig
from polycast.db.schemas.analytics_schemas import (
    InvestmentDecision,
    InvestmentSignal,
    SmartMoneyDirection,
    SmartMoneySignal,
)


def directional_strength(probability_a: float) -> float:
    """0 at a coin flip, 1 at certainty"""
    return abs(probability_a - 0.5) * 2


def model_direction(probability_a: float) -> SmartMoneyDirection:
    return SmartMoneyDirection.YES if probability_a > 0.5 else SmartMoneyDirection.NO


def _clamp_confidence(value: float) -> float:
    return max(0.0, min(100.0, value))


def generate_investment_signal(
    ai_prediction_a: float,
    smart_money: Optional[SmartMoneySignal],
    team_a: str,
    team_b: str,
    config: EngineConfig = DEFAULT_ENGINE_CONFIG,
) -> InvestmentDecision:
    cfg = config.decision
    smart_money = smart_money or SmartMoneySignal()
    money = smart_money.direction
    concentration = smart_money.concentration

    strength = directional_strength(ai_prediction_a)
    ai_direction = model_direction(ai_prediction_a)
    favoured = team_a if ai_direction == SmartMoneyDirection.YES else team_b

    is_consistent = money == ai_direction
    is_conflict = money != SmartMoneyDirection.NEUTRAL and money != ai_direction

    signal = InvestmentSignal.NEUTRAL
    confidence = cfg.base_confidence
    reasoning = "Model and smart money are balanced; likely a tight contest. Stand aside or hedge."

    if is_consistent and strength > cfg.agreement_min_strength:
        strong = strength > cfg.strong_signal_strength
        if ai_direction == SmartMoneyDirection.YES:
            signal = InvestmentSignal.STRONG_BUY_A if strong else InvestmentSignal.MODERATE_BUY_A
            win_prob = ai_prediction_a
        else:
            signal = InvestmentSignal.STRONG_BUY_B if strong else InvestmentSignal.MODERATE_BUY_B
            win_prob = 1 - ai_prediction_a
        confidence = cfg.agreement_confidence + strength * cfg.agreement_strength_scale
        reasoning = f"Model and smart money both favour {favoured}, predicted win rate {win_prob * 100:.1f}%"

    elif is_conflict:
        signal = InvestmentSignal.CONFLICT_WARNING
        money_side = team_a if money == SmartMoneyDirection.YES else team_b
        if concentration > cfg.high_concentration_pct:
            confidence = cfg.base_confidence - cfg.high_concentration_conflict_penalty
            reasoning = (
                f"⚠️ Model favours {favoured} but large holders are positioned the other way, "
                f"with highly concentrated holdings ({concentration:.1f}%). Possible informed "
                f"or manipulative flow; stand aside."
            )
        else:
            confidence = cfg.base_confidence - cfg.conflict_penalty
            reasoning = (
                f"⚠️ Disagreement: model favours {favoured}, large holders lean {money_side}. "
                f"Proceed with caution or size down."
            )

    elif money == SmartMoneyDirection.NEUTRAL:
        if strength > cfg.neutral_money_min_strength:
            signal = (
                InvestmentSignal.MODERATE_BUY_A
                if ai_direction == SmartMoneyDirection.YES
                else InvestmentSignal.MODERATE_BUY_B
            )
            confidence = cfg.model_only_confidence + strength * cfg.model_only_strength_scale
            reasoning = f"Holder positions are dispersed; relying on the model, which favours {favoured}."

    elif strength < cfg.weak_model_strength:
        follow_a = money == SmartMoneyDirection.YES
        moderate = concentration > cfg.follow_money_concentration_pct
        if follow_a:
            signal = InvestmentSignal.MODERATE_BUY_A if moderate else InvestmentSignal.WEAK_BUY_A
        else:
            signal = InvestmentSignal.MODERATE_BUY_B if moderate else InvestmentSignal.WEAK_BUY_B
        confidence = cfg.follow_money_confidence + (concentration / 100) * cfg.follow_money_concentration_scale
        reasoning = (
            f"Model signal is weak, but smart money clearly favours {team_a if follow_a else team_b}. "
            f"Concentration {concentration:.1f}%."
        )

    return InvestmentDecision(
        ai_prediction=ai_prediction_a,
        smart_money_direction=money,
        whale_concentration=concentration,
        signal=signal,
        confidence=_clamp_confidence(confidence),
        reasoning=reasoning,
    )
