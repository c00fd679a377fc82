"""
Single-market edge evaluator.

Turns one offered price plus a bundle of contextual signals into a
calibrated "true" win probability, fair odds, EV% and a discrete safety
tier for display.

The market-implied probability is moved to logit space and the signals are
applied there as additive penalties and bonuses::

    adjusted = logit(p_market)
               - 0.9 · injury - 0.7 · fatigue - 0.5 · travel
               + ln(clamp(pace, 0.8, 1.25))
               + matchup_edge
               - 0.35 · public_bias

Any combination of adjustments maps back inside ``(0, 1)`` through the
sigmoid; the result is then clamped to the configured probability bounds.
"""

import logging
import math
from dataclasses import asdict, dataclass
from typing import Dict, Literal, Union

from propedge.core.errors import DomainError
from propedge.core.markets import Market, MarketQuote
from propedge.core.model_config import DEFAULT_CONFIG, ModelConfig
from propedge.core.odds_math import (
    american_to_decimal,
    clamp,
    implied_prob,
    logit,
    prob_to_american,
    sigmoid,
)

logger = logging.getLogger(__name__)

SafetyTier = Literal["safe", "neutral", "risky"]

MarketInput = Union[int, float, MarketQuote, Market]


# ---------------------------------------------------------------------------
# Inputs / outputs
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class AdjustmentSignals:
    """
    Independent contextual factors for one market evaluation.

    Constructed fresh per request; never persisted.
    """

    injury_impact: float = 0.0        # penalty magnitude, ≥ 0 in practice
    fatigue_impact: float = 0.0
    travel_impact: float = 0.0
    pace_factor: float = 1.0          # multiplicative, centred at 1.0
    matchup_edge: float = 0.0         # signed, roughly [-1, 1]
    public_bias: float = 0.0          # signed, small magnitude

    def __post_init__(self) -> None:
        for name, value in asdict(self).items():
            if not math.isfinite(value):
                raise DomainError(
                    f"Adjustment signal {name}={value!r} must be finite."
                )


@dataclass(frozen=True)
class MarketEdgeResult:
    """Output of :func:`evaluate_market_edge`."""

    true_probability: float           # strictly inside (0.001, 0.999) bounds
    fair_odds: int
    market_probability: float
    market_odds: int
    ev_percent: float
    safety_tier: SafetyTier

    def to_dict(self) -> Dict:
        return {
            "trueProb": self.true_probability,
            "fairOdds": self.fair_odds,
            "marketProb": self.market_probability,
            "marketOdds": self.market_odds,
            "evPct": self.ev_percent,
            "safety": self.safety_tier,
        }


def _market_odds(market: MarketInput) -> int:
    if isinstance(market, MarketQuote):
        return int(market.american_odds)
    if hasattr(market, "quote"):
        return int(market.quote.american_odds)
    return int(MarketQuote(market).american_odds)


def classify_safety(
    ev_pct: float,
    true_prob: float,
    config: ModelConfig = DEFAULT_CONFIG,
) -> SafetyTier:
    """``safe`` needs both EV and probability thresholds; any negative EV is ``risky``."""
    if ev_pct >= config.safe_ev_pct and true_prob >= config.safe_min_prob:
        return "safe"
    if ev_pct < 0:
        return "risky"
    return "neutral"


# ---------------------------------------------------------------------------
# Evaluator
# ---------------------------------------------------------------------------

class MarketEdgeEvaluator:
    """
    Calibrates a market's true probability from contextual signals.

    Stateless apart from the injected config, so a single instance can be
    shared across threads.
    """

    def __init__(self, config: ModelConfig = DEFAULT_CONFIG):
        self.config = config

    def adjusted_logit(self, market_probability: float, signals: AdjustmentSignals) -> float:
        """Baseline logit plus every signal adjustment."""
        cfg = self.config
        base = logit(clamp(market_probability, cfg.min_probability, cfg.max_probability))
        pace_lo, pace_hi = cfg.pace_factor_bounds

        return (
            base
            - cfg.injury_weight * signals.injury_impact
            - cfg.fatigue_weight * signals.fatigue_impact
            - cfg.travel_weight * signals.travel_impact
            + math.log(clamp(signals.pace_factor, pace_lo, pace_hi))
            + signals.matchup_edge
            - cfg.public_bias_weight * signals.public_bias
        )

    def evaluate(
        self,
        market: MarketInput,
        signals: AdjustmentSignals = AdjustmentSignals(),
    ) -> MarketEdgeResult:
        """
        Evaluate one market.

        Args:
            market: American odds, a :class:`MarketQuote`, or any market
                variant (moneyline / spread / total).
            signals: Contextual adjustments.  Defaults to all-neutral.

        Raises:
            InvalidOdds: If the market odds are zero or non-finite.
        """
        cfg = self.config
        odds = _market_odds(market)
        market_probability = implied_prob(odds)

        true_prob = clamp(
            sigmoid(self.adjusted_logit(market_probability, signals)),
            cfg.min_probability,
            cfg.max_probability,
        )
        fair_odds = prob_to_american(true_prob)
        ev_pct = (true_prob * american_to_decimal(odds) - 1.0) * 100.0
        tier = classify_safety(ev_pct, true_prob, cfg)

        logger.debug(
            "Market %+d: market_p=%.4f → true_p=%.4f fair=%+d ev=%.2f%% (%s)",
            odds, market_probability, true_prob, fair_odds, ev_pct, tier,
        )

        return MarketEdgeResult(
            true_probability=true_prob,
            fair_odds=fair_odds,
            market_probability=market_probability,
            market_odds=odds,
            ev_percent=ev_pct,
            safety_tier=tier,
        )


def evaluate_market_edge(
    market: MarketInput,
    signals: AdjustmentSignals = AdjustmentSignals(),
    *,
    config: ModelConfig = DEFAULT_CONFIG,
) -> MarketEdgeResult:
    """Functional shortcut for :meth:`MarketEdgeEvaluator.evaluate`."""
    return MarketEdgeEvaluator(config).evaluate(market, signals)
