"""Model configuration — every tunable constant in one place.

This module is the **registry** for every coefficient the engines use.
Nowhere else in the codebase should logit weights, rating scale domains,
or correlation levels be hard-coded.

Architecture
------------
:class:`ModelConfig` is a frozen dataclass carrying all constants.  The
named constructor :meth:`ModelConfig.nba` returns the canonical instance.
Every engine accepts a ``config`` keyword defaulting to
:data:`DEFAULT_CONFIG`; the core never reads process environment.  Callers
that want environment overrides build a config with
:func:`propedge.settings.load_model_config` and pass it in explicitly.

Typical usage::

    from dataclasses import replace
    from propedge.core.model_config import ModelConfig

    cfg = replace(ModelConfig.nba(), sim_iterations=25_000)
    result = simulate_sgp(legs, -120, config=cfg, seed=7)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Final, Mapping

SPORT_ID_NBA: Final[str] = "nba"


@dataclass(frozen=True)
class ModelConfig:
    """Immutable configuration bundle for the edge computation core.

    Attributes:
        sport_id: Short identifier used in logs.

        --- Probability bounds ---
        min_probability / max_probability: Clamp applied before any logit
            or fair-odds computation.

        --- Market edge evaluator (logit-space coefficients) ---
        injury_weight: Logit penalty per unit of ``injury_impact``.
        fatigue_weight: Logit penalty per unit of ``fatigue_impact``.
        travel_weight: Logit penalty per unit of ``travel_impact``.
        public_bias_weight: Logit penalty per unit of ``public_bias``.
        pace_factor_bounds: Clamp on the multiplicative pace factor before
            its log is added.
        safe_ev_pct / safe_min_prob: Both must hold for the ``safe`` tier.

        --- Player rating engine ---
        rating_scale_points / _assists / _rebounds: Fixed ``(min, max)``
            domains mapped linearly onto the 40-90 rating band.
        injury_multipliers: Status → matchup multiplier.  Unlisted
            statuses (including ``None``) map to 1.0.
        default_rest_days: Rest assumed when the team has no prior game.
        opponent_points_normaliser: Points-per-game figure that maps to a
            defensive index of 1.0.

        --- Game context ---
        league_avg_pace: Points-per-240-minutes figure for pace factor 1.0.
        injury_impact_per_absence: Team usage bump per out/doubtful player.

        --- Correlated parlay simulator ---
        corr_same_entity_same_stat, corr_same_entity, corr_same_team,
        corr_unrelated: Heuristic pairwise correlation levels.
        sim_iterations: Default Monte Carlo trial count.
        sim_batch_size: Trials per independently seeded batch.
        sim_workers: Thread count for batch execution (1 = serial).
        joint_prob_floor: Floor on the joint probability so fair odds stay
            finite.
        kelly_share: Share of full Kelly used for parlay stakes.
        cholesky_pivot_eps: Floor applied to non-positive pivots.
    """

    sport_id: str = SPORT_ID_NBA

    # Probability bounds
    min_probability: float = 0.001
    max_probability: float = 0.999

    # Market edge evaluator
    injury_weight: float = 0.9
    fatigue_weight: float = 0.7
    travel_weight: float = 0.5
    public_bias_weight: float = 0.35
    pace_factor_bounds: tuple[float, float] = (0.8, 1.25)
    safe_ev_pct: float = 4.0
    safe_min_prob: float = 0.6

    # Player rating engine
    rating_scale_points: tuple[float, float] = (5.0, 35.0)
    rating_scale_assists: tuple[float, float] = (1.0, 12.0)
    rating_scale_rebounds: tuple[float, float] = (2.0, 16.0)
    rating_band: tuple[float, float] = (40.0, 90.0)
    rating_bounds: tuple[float, float] = (25.0, 99.0)
    defense_bounds: tuple[float, float] = (40.0, 95.0)
    base_overall_bounds: tuple[float, float] = (30.0, 99.0)
    matchup_overall_bounds: tuple[float, float] = (20.0, 99.0)
    injury_multipliers: Mapping[str, float] = field(
        default_factory=lambda: {
            "out": 0.6,
            "doubtful": 0.6,
            "questionable": 0.8,
            "probable": 0.95,
        }
    )
    back_to_back_fatigue: float = 0.2     # ≤ 1 day of rest
    short_rest_fatigue: float = 0.1       # exactly 2 days
    default_rest_days: int = 3
    pace_adjustment_bounds: tuple[float, float] = (0.85, 1.15)
    opponent_index_bounds: tuple[float, float] = (0.8, 1.2)
    opponent_points_normaliser: float = 220.0
    default_usage_rate: float = 0.18
    default_minutes: float = 24.0
    default_points_stdev: float = 1.5
    volatility_bounds: tuple[float, float] = (0.1, 0.8)

    # Game context
    league_avg_pace: float = 99.0
    game_pace_bounds: tuple[float, float] = (0.8, 1.2)
    injury_impact_per_absence: float = 0.03
    blowout_bounds: tuple[float, float] = (0.05, 0.35)
    blowout_spread_scale: float = 20.0
    short_rest_mean_factor: float = 0.97

    # Correlated parlay simulator
    corr_same_entity_same_stat: float = 0.8
    corr_same_entity: float = 0.4
    corr_same_team: float = 0.2
    corr_unrelated: float = 0.05
    sim_iterations: int = 20_000
    sim_batch_size: int = 5_000
    sim_workers: int = 1
    joint_prob_floor: float = 1e-6
    kelly_share: float = 0.5
    cholesky_pivot_eps: float = 1e-8

    def __post_init__(self) -> None:
        if not (0.0 < self.min_probability < self.max_probability < 1.0):
            raise ValueError(
                "Probability bounds must satisfy 0 < min < max < 1, got "
                f"({self.min_probability!r}, {self.max_probability!r})."
            )
        if self.sim_iterations < 1 or self.sim_batch_size < 1 or self.sim_workers < 1:
            raise ValueError(
                "sim_iterations, sim_batch_size and sim_workers must all be ≥ 1."
            )
        if not (0.0 <= self.kelly_share <= 1.0):
            raise ValueError(f"kelly_share must be in [0, 1], got {self.kelly_share!r}.")

    # ------------------------------------------------------------------ #
    #  Named constructors                                                  #
    # ------------------------------------------------------------------ #

    @classmethod
    def nba(cls) -> ModelConfig:
        """Return the canonical NBA configuration (the dataclass defaults)."""
        return cls()

    def __repr__(self) -> str:
        return (
            f"ModelConfig(sport_id={self.sport_id!r}, "
            f"iterations={self.sim_iterations}, "
            f"kelly_share={self.kelly_share}, "
            f"safe=(ev≥{self.safe_ev_pct}%, p≥{self.safe_min_prob}))"
        )


#: Shared default instance.  Frozen, so safe to use as a default argument.
DEFAULT_CONFIG: Final[ModelConfig] = ModelConfig.nba()
