"""
Player matchup ratings.

Produces a bounded 0-99 style rating per rostered player in two layers:

1. ``base_overall``: context-free, from per-stat baselines.  Mean points,
   assists and rebounds are each mapped from a fixed observed domain onto
   the 40-90 band and clamped to [25, 99].  Rebounding doubles as an
   inverse proxy for defence (``100 − 0.6 × rebounding``) because the
   baselines carry no direct defensive stats.  This is an approximation,
   not a defensive metric.

2. ``matchup_overall``: ``base_overall`` transformed for one specific game
   by the player's injury status, the team's rest, and the opponent's
   defensive index (points conceded, normalised).

Players without any baseline are excluded from :func:`build_ratings`; a
missing record is never zero-filled into a rating.
"""

import logging
from dataclasses import asdict, dataclass, field
from datetime import date, datetime
from typing import Dict, Hashable, List, Optional, Sequence, Union

from propedge.core.errors import MissingBaseline
from propedge.core.model_config import DEFAULT_CONFIG, ModelConfig
from propedge.core.odds_math import clamp, normalize_probability_weights
from propedge.services.game_context import rest_days_between
from propedge.services.projection import StatBaseline

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Inputs
# ---------------------------------------------------------------------------

@dataclass
class RosterPlayer:
    """One rostered player with whatever baselines the sync jobs produced."""

    player_id: Hashable
    name: str = ""
    baselines: Dict[str, StatBaseline] = field(default_factory=dict)
    injury_status: Optional[str] = None   # most recent report, if any

    def mean(self, stat: str, default: float = 0.0) -> float:
        baseline = self.baselines.get(stat)
        return baseline.mean if baseline is not None else default


@dataclass
class TeamRoster:
    """A team's roster plus the date of its previous game."""

    team_id: Hashable
    players: List[RosterPlayer] = field(default_factory=list)
    last_game_date: Optional[Union[date, datetime]] = None


@dataclass
class OpponentContext:
    """
    The opponent's scoring environment.

    Either supply the recent per-game point totals and let the engine
    derive the defensive index, or pass ``defensive_index`` directly.
    """

    team_id: Hashable
    game_point_totals: Sequence[float] = ()
    defensive_index: Optional[float] = None


# ---------------------------------------------------------------------------
# Output
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class PlayerRatingRecord:
    """Ratings for one player in one matchup.  Recomputed per game, never stored."""

    player_id: Hashable
    player_name: str
    base_overall: float               # [30, 99]
    matchup_overall: float            # [20, 99]
    offense: float                    # [25, 99]
    defense: float                    # [40, 95]
    playmaking: float                 # [25, 99]
    usage: float                      # [0, 1]
    fatigue: float                    # [0, 1]
    volatility: float                 # [0.1, 0.8]

    def to_dict(self) -> Dict:
        return asdict(self)


# ---------------------------------------------------------------------------
# Building blocks
# ---------------------------------------------------------------------------

def scale_to_rating(
    value: float,
    domain: Sequence[float],
    config: ModelConfig = DEFAULT_CONFIG,
) -> float:
    """Linear map of ``value`` from ``domain`` onto the rating band, then clamp.

    A degenerate domain (min == max) maps everything to 50.
    """
    lo, hi = domain
    if hi == lo:
        return 50.0
    band_lo, band_hi = config.rating_band
    scaled = band_lo + (value - lo) / (hi - lo) * (band_hi - band_lo)
    return clamp(scaled, *config.rating_bounds)


def injury_multiplier(status: Optional[str], config: ModelConfig = DEFAULT_CONFIG) -> float:
    """Out / doubtful 0.6, questionable 0.8, probable 0.95, anything else 1.0."""
    if not status:
        return 1.0
    return config.injury_multipliers.get(status.strip().lower(), 1.0)


def fatigue_penalty(rest_days: int, config: ModelConfig = DEFAULT_CONFIG) -> float:
    """Back-to-back 0.2, one day off 0.1, otherwise 0."""
    if rest_days <= 1:
        return config.back_to_back_fatigue
    if rest_days == 2:
        return config.short_rest_fatigue
    return 0.0


def opponent_defensive_index(
    game_point_totals: Sequence[float],
    config: ModelConfig = DEFAULT_CONFIG,
) -> float:
    """
    Normalised points the opponent concedes per game.

    Games are weighted by their share of total points (higher-scoring games
    count more), the weighted average is divided by the league normaliser
    (220) and clamped to [0.8, 1.2].  With no data the index is 1.0.
    """
    if not game_point_totals:
        return 1.0
    weights = normalize_probability_weights(game_point_totals)
    weighted = sum(w * pts for w, pts in zip(weights, game_point_totals))
    return clamp(weighted / config.opponent_points_normaliser, *config.opponent_index_bounds)


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------

class PlayerRatingEngine:
    """Builds per-player ratings for one team against one opponent."""

    def __init__(self, config: ModelConfig = DEFAULT_CONFIG):
        self.config = config

    def rate_player(
        self,
        player: RosterPlayer,
        *,
        rest_days: int,
        opponent_index: float = 1.0,
    ) -> PlayerRatingRecord:
        """
        Rate a single player.

        Args:
            player: Roster entry with baselines keyed by stat.
            rest_days: Days since the team's previous game.
            opponent_index: Opponent defensive index (1.0 = league average).

        Raises:
            MissingBaseline: If the player has no baselines at all.
        """
        cfg = self.config
        if not player.baselines:
            raise MissingBaseline(player.player_id)

        mean_points = player.mean("points")
        mean_assists = player.mean("assists")
        mean_rebounds = player.mean("rebounds")

        points = player.baselines.get("points")
        minutes = points.minutes if points and points.minutes else cfg.default_minutes
        usage_rate = (
            points.usage_rate if points and points.usage_rate is not None else cfg.default_usage_rate
        )
        points_stdev = points.stdev if points else cfg.default_points_stdev

        offense = scale_to_rating(mean_points, cfg.rating_scale_points, cfg)
        playmaking = scale_to_rating(mean_assists, cfg.rating_scale_assists, cfg)
        rebounding = scale_to_rating(mean_rebounds, cfg.rating_scale_rebounds, cfg)
        defense = clamp(100.0 - rebounding * 0.6, *cfg.defense_bounds)

        base_overall = clamp(
            offense * 0.45 + defense * 0.2 + playmaking * 0.2 + rebounding * 0.15,
            *cfg.base_overall_bounds,
        )

        pace_adjustment = clamp(1.0 / opponent_index, *cfg.pace_adjustment_bounds)
        matchup_overall = clamp(
            base_overall
            * injury_multiplier(player.injury_status, cfg)
            * (1.0 - fatigue_penalty(rest_days, cfg))
            * pace_adjustment,
            *cfg.matchup_overall_bounds,
        )

        return PlayerRatingRecord(
            player_id=player.player_id,
            player_name=player.name,
            base_overall=round(base_overall, 1),
            matchup_overall=round(matchup_overall, 1),
            offense=round(offense, 1),
            defense=round(defense, 1),
            playmaking=round(playmaking, 1),
            usage=round(min(1.0, max(0.0, usage_rate)), 3),
            fatigue=round(1.0 - min(1.0, rest_days / 4.0), 3),
            volatility=round(
                clamp(points_stdev / max(1.0, minutes), *cfg.volatility_bounds), 3
            ),
        )

    def build_ratings(
        self,
        roster: TeamRoster,
        opponent: OpponentContext,
        game_date: Union[date, datetime],
    ) -> List[PlayerRatingRecord]:
        """
        Rate every player on ``roster`` for the game on ``game_date``.

        Players with no baselines are skipped.  The result is sorted by
        ``matchup_overall``, highest first.
        """
        cfg = self.config
        if roster.last_game_date is None:
            rest_days = cfg.default_rest_days
        else:
            rest_days = rest_days_between(roster.last_game_date, game_date)

        if opponent.defensive_index is not None:
            opp_index = clamp(opponent.defensive_index, *cfg.opponent_index_bounds)
        else:
            opp_index = opponent_defensive_index(opponent.game_point_totals, cfg)

        ratings: List[PlayerRatingRecord] = []
        skipped = 0
        for player in roster.players:
            try:
                ratings.append(
                    self.rate_player(player, rest_days=rest_days, opponent_index=opp_index)
                )
            except MissingBaseline:
                skipped += 1

        if skipped:
            logger.warning(
                "Team %s: skipped %d player(s) with no baseline data",
                roster.team_id, skipped,
            )
        logger.info(
            "Team %s vs %s: rated %d players (rest=%d, opp_index=%.3f)",
            roster.team_id, opponent.team_id, len(ratings), rest_days, opp_index,
        )

        ratings.sort(key=lambda r: r.matchup_overall, reverse=True)
        return ratings


def build_ratings(
    roster: TeamRoster,
    opponent: OpponentContext,
    game_date: Union[date, datetime],
    *,
    config: ModelConfig = DEFAULT_CONFIG,
) -> List[PlayerRatingRecord]:
    """Functional shortcut for :meth:`PlayerRatingEngine.build_ratings`."""
    return PlayerRatingEngine(config).build_ratings(roster, opponent, game_date)


def matchup_multipliers(ratings: Sequence[PlayerRatingRecord]) -> Dict[Hashable, float]:
    """
    Per-player ``matchup_overall / base_overall`` multipliers.

    Fed into :attr:`ContextAdjustments.matchup_difficulty` so projections
    inherit the rating engine's matchup view.
    """
    return {
        r.player_id: r.matchup_overall / r.base_overall
        for r in ratings
        if r.base_overall > 0
    }
