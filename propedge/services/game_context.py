"""
Game-level context adjustments.

Builds the :class:`ContextAdjustments` bundle that the stat projection layer
applies to every player baseline for one specific game: pace, blowout risk,
team injury load, rest and travel.

All inputs arrive already resolved by the data-sync collaborators (recent
box-score totals, the current spread, the injury report and each team's last
game date).  Nothing here touches storage.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Dict, Hashable, Iterable, Mapping, Optional, Union

from propedge.core.model_config import DEFAULT_CONFIG, ModelConfig
from propedge.core.odds_math import clamp

logger = logging.getLogger(__name__)

DateLike = Union[date, datetime]

#: Statuses that count as a full absence for team injury load.
ABSENT_STATUSES = frozenset({"out", "doubtful"})


# ---------------------------------------------------------------------------
# Data structures
# ---------------------------------------------------------------------------

@dataclass
class RecentGameBox:
    """Team totals from one recent game."""

    points: float
    minutes: float                    # summed player minutes (≈ 240 regulation)


@dataclass
class InjuryReport:
    """Single player injury entry."""

    team: str
    player: Hashable
    status: str                       # "out", "doubtful", "questionable", "probable"


@dataclass
class ContextAdjustments:
    """Per-game multipliers consumed by :mod:`propedge.services.projection`."""

    pace_factor: float = 1.0
    blowout_risk: float = 0.0
    injury_impact_team: Dict[str, float] = field(default_factory=dict)
    matchup_difficulty: Dict[Hashable, float] = field(default_factory=dict)
    rest_days: Dict[str, int] = field(default_factory=dict)
    travel_penalty: Dict[str, float] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Individual factors
# ---------------------------------------------------------------------------

def rest_days_between(previous: DateLike, reference: DateLike) -> int:
    """Whole days between two game dates, rounded, never negative."""
    if isinstance(previous, datetime) != isinstance(reference, datetime):
        previous = previous.date() if isinstance(previous, datetime) else previous
        reference = reference.date() if isinstance(reference, datetime) else reference
    seconds = max(0.0, (reference - previous).total_seconds())
    return round(seconds / 86_400)


def compute_pace_factor(
    recent_games: Iterable[RecentGameBox],
    config: ModelConfig = DEFAULT_CONFIG,
) -> float:
    """
    Scoring pace of recent games relative to the league average.

    Each game contributes ``points / minutes × 240``; games with no recorded
    minutes are skipped.  With no usable games the league average is
    assumed (factor 1.0).
    """
    paces = [g.points / g.minutes * 240.0 for g in recent_games if g.minutes > 0]
    avg_pace = sum(paces) / len(paces) if paces else config.league_avg_pace
    lo, hi = config.game_pace_bounds
    return clamp(avg_pace / config.league_avg_pace, lo, hi)


def compute_blowout_risk(
    spread_home: Optional[float],
    config: ModelConfig = DEFAULT_CONFIG,
) -> float:
    """Blowout risk grows with the absolute spread: ``|spread| / 20`` clamped."""
    lo, hi = config.blowout_bounds
    return clamp(abs(spread_home or 0.0) / config.blowout_spread_scale, lo, hi)


def compute_injury_impact(
    injuries: Iterable[InjuryReport],
    teams: Iterable[str],
    config: ModelConfig = DEFAULT_CONFIG,
) -> Dict[str, float]:
    """Usage bump for teammates: a fixed increment per absent player."""
    wanted = set(teams)
    impact: Dict[str, float] = {}
    for inj in injuries:
        if inj.team not in wanted:
            continue
        if (inj.status or "").strip().lower() in ABSENT_STATUSES:
            impact[inj.team] = impact.get(inj.team, 0.0) + config.injury_impact_per_absence
    return impact


def compute_rest_days(
    last_game_dates: Mapping[str, Optional[DateLike]],
    reference: DateLike,
) -> Dict[str, int]:
    """Rest days per team.  Teams with no previous game are omitted."""
    return {
        team: rest_days_between(last, reference)
        for team, last in last_game_dates.items()
        if last is not None
    }


# ---------------------------------------------------------------------------
# Bundle
# ---------------------------------------------------------------------------

def build_game_context(
    home_team: str,
    away_team: str,
    game_date: DateLike,
    *,
    recent_games: Iterable[RecentGameBox] = (),
    spread_home: Optional[float] = None,
    injuries: Iterable[InjuryReport] = (),
    last_game_dates: Optional[Mapping[str, Optional[DateLike]]] = None,
    travel_penalty: Optional[Mapping[str, float]] = None,
    matchup_difficulty: Optional[Mapping[Hashable, float]] = None,
    config: ModelConfig = DEFAULT_CONFIG,
) -> ContextAdjustments:
    """
    Assemble the context bundle for one game.

    Args:
        home_team / away_team: Team abbreviations used as dictionary keys.
        game_date: Tip-off date of the game being priced.
        recent_games: Recent box-score totals for either team.
        spread_home: Current home spread (sign ignored).
        injuries: Latest injury report rows; other teams are ignored.
        last_game_dates: Each team's previous game date.
        travel_penalty: Optional per-team travel adjustment (default 0).
        matchup_difficulty: Optional per-player multipliers, usually from
            :func:`propedge.services.player_ratings.matchup_multipliers`.
    """
    teams = (home_team, away_team)
    ctx = ContextAdjustments(
        pace_factor=compute_pace_factor(recent_games, config),
        blowout_risk=compute_blowout_risk(spread_home, config),
        injury_impact_team=compute_injury_impact(injuries, teams, config),
        matchup_difficulty=dict(matchup_difficulty or {}),
        rest_days=compute_rest_days(last_game_dates or {}, game_date),
        travel_penalty={team: float((travel_penalty or {}).get(team, 0.0)) for team in teams},
    )
    logger.debug(
        "Context %s vs %s: pace=%.3f blowout=%.3f injuries=%s rest=%s",
        home_team, away_team, ctx.pace_factor, ctx.blowout_risk,
        ctx.injury_impact_team, ctx.rest_days,
    )
    return ctx
