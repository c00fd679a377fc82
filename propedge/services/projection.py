"""
Player stat projection.

Turns a player's historical baseline for one stat into a game-specific
``(mean, stdev)`` projection by applying the :class:`ContextAdjustments`
for the upcoming matchup.  Projections feed the distributional legs of the
parlay simulator.

Baselines normally arrive pre-computed from the sync jobs.  When one is
missing it can be rebuilt from recent box-score rows with
:func:`baseline_from_history`.  When neither exists the caller gets
:class:`~propedge.core.errors.MissingBaseline`; a projection is never
invented from nothing.
"""

import logging
import math
from dataclasses import dataclass
from typing import Hashable, Iterable, Literal, Mapping, Optional, Union

import numpy as np
import pandas as pd

from propedge.core.errors import MissingBaseline
from propedge.core.model_config import DEFAULT_CONFIG, ModelConfig
from propedge.services.game_context import ContextAdjustments

logger = logging.getLogger(__name__)

StatType = Literal["points", "rebounds", "assists", "threes", "pra"]

STAT_TYPES = ("points", "rebounds", "assists", "threes", "pra")

# Recent games used when rebuilding a baseline from history.
HISTORY_WINDOW = 20

# Sample-variance floor so a perfectly consistent player still has spread.
MIN_VARIANCE = 0.01

# Projected stdev never drops below half a unit of the stat.
MIN_PROJECTED_STDEV = 0.5


# ---------------------------------------------------------------------------
# Data structures
# ---------------------------------------------------------------------------

@dataclass
class StatBaseline:
    """Historical baseline for one player and one stat."""

    stat: str
    mean: float
    stdev: float
    minutes: Optional[float] = None   # average minutes over the sample
    usage_rate: Optional[float] = None  # stat per minute played
    games: int = 0


@dataclass(frozen=True)
class PlayerProjection:
    """Game-specific projection for one stat."""

    mean: float
    stdev: float


# ---------------------------------------------------------------------------
# Baselines
# ---------------------------------------------------------------------------

def _stat_series(frame: pd.DataFrame, stat: str) -> Optional[pd.Series]:
    if stat == "pra":
        parts = ("points", "rebounds", "assists")
        if not all(col in frame.columns for col in parts):
            return None
        return frame["points"] + frame["rebounds"] + frame["assists"]
    if stat not in frame.columns:
        return None
    return frame[stat]


def baseline_from_history(
    player_id: Hashable,
    stat: str,
    game_logs: Union[pd.DataFrame, Iterable[Mapping]],
    window: int = HISTORY_WINDOW,
) -> StatBaseline:
    """
    Rebuild a stat baseline from recent box-score rows.

    Args:
        player_id: Used only for error reporting.
        stat: One of :data:`STAT_TYPES`.  ``pra`` is derived as
            points + rebounds + assists.
        game_logs: Rows with per-game stat columns and optionally
            ``minutes`` and ``date``.  When ``date`` is present the most
            recent ``window`` rows are used.
        window: Maximum number of rows to use.

    Returns:
        :class:`StatBaseline` with the sample mean, the sample standard
        deviation (0 for a single game, variance floored at 0.01 otherwise),
        average minutes and usage rate (``mean / minutes``).

    Raises:
        MissingBaseline: If there are no rows or the stat column is absent.
    """
    frame = game_logs.copy() if isinstance(game_logs, pd.DataFrame) else pd.DataFrame(list(game_logs))
    if frame.empty:
        raise MissingBaseline(player_id, stat)

    if "date" in frame.columns:
        frame = frame.sort_values("date", ascending=False)
    frame = frame.head(window)

    series = _stat_series(frame, stat)
    if series is None:
        raise MissingBaseline(player_id, stat)

    samples = series.astype(float).to_numpy()
    mean = float(np.mean(samples))
    if len(samples) <= 1:
        stdev = 0.0
    else:
        stdev = math.sqrt(max(float(np.var(samples, ddof=1)), MIN_VARIANCE))

    avg_minutes = None
    usage_rate = None
    if "minutes" in frame.columns:
        avg_minutes = float(frame["minutes"].astype(float).mean())
        if math.isnan(avg_minutes):
            avg_minutes = None
        else:
            usage_rate = mean / avg_minutes if avg_minutes else 0.0

    return StatBaseline(
        stat=stat,
        mean=mean,
        stdev=stdev,
        minutes=avg_minutes,
        usage_rate=usage_rate,
        games=len(samples),
    )


# ---------------------------------------------------------------------------
# Context adjustment
# ---------------------------------------------------------------------------

def adjust_projection(
    baseline: StatBaseline,
    team: str,
    player_id: Hashable,
    ctx: ContextAdjustments,
    config: ModelConfig = DEFAULT_CONFIG,
) -> PlayerProjection:
    """
    Apply game context to a baseline.

    The mean is scaled, in order, by pace, the team injury bump, the
    player's matchup multiplier, a short-rest haircut (≤ 1 day), travel and
    blowout risk (``1 − 0.25 × risk``).  Blowout risk also widens the stdev
    by ``1 + 0.15 × risk``.
    """
    mean = baseline.mean
    stdev = baseline.stdev

    mean *= ctx.pace_factor
    mean *= 1.0 + ctx.injury_impact_team.get(team, 0.0)
    mean *= ctx.matchup_difficulty.get(player_id, 1.0)

    rest = ctx.rest_days.get(team)
    if rest is not None and rest <= 1:
        mean *= config.short_rest_mean_factor

    mean *= 1.0 + ctx.travel_penalty.get(team, 0.0)

    mean *= 1.0 - ctx.blowout_risk * 0.25
    stdev *= 1.0 + 0.15 * ctx.blowout_risk

    return PlayerProjection(mean=mean, stdev=max(MIN_PROJECTED_STDEV, stdev))


def project_player_stat(
    player_id: Hashable,
    team: str,
    stat: str,
    ctx: ContextAdjustments,
    *,
    baseline: Optional[StatBaseline] = None,
    game_logs: Optional[Union[pd.DataFrame, Iterable[Mapping]]] = None,
    config: ModelConfig = DEFAULT_CONFIG,
) -> PlayerProjection:
    """
    Project one stat for one player in one game.

    Uses ``baseline`` when given, otherwise rebuilds it from ``game_logs``.

    Raises:
        MissingBaseline: If neither a baseline nor any history exists.
    """
    if baseline is None:
        if game_logs is None:
            raise MissingBaseline(player_id, stat)
        baseline = baseline_from_history(player_id, stat, game_logs)
        logger.debug(
            "Rebuilt %s baseline for player %s from %d games",
            stat, player_id, baseline.games,
        )
    return adjust_projection(baseline, team, player_id, ctx, config)
