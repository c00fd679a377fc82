"""Kelly criterion sizing — the single source of truth for stake math.

All functions here are **pure**: no I/O, no logging.
Import from this module; never reimplement Kelly locally in services.

Design decisions
----------------
* **Fractional Kelly** is expressed as a *share* of full Kelly (0.5 =
  half-Kelly) rather than a divisor, because the parlay simulator reports
  the share it used alongside the stake and a share in ``[0, 1]`` reads
  directly as "how much of full Kelly".
* Degenerate prices fail *softly*: decimal odds ≤ 1 return a 0 stake
  instead of raising, because a zero stake is the only correct
  recommendation for a bet that cannot profit.
* Full Kelly is clamped to ``[0, 1]`` before the share is applied, so the
  function is non-decreasing in ``win_prob`` for any fixed price.

Run tests with::

    pytest tests/test_kelly.py -v
"""

from __future__ import annotations

import math
from typing import Final

from propedge.core.errors import DomainError

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

#: Share of full Kelly used for parlay tickets.  Joint-probability
#: estimates carry Monte Carlo noise on top of model error, so half-Kelly
#: is the ceiling for anything the simulator sizes.
PARLAY_KELLY_SHARE: Final[float] = 0.5


# ---------------------------------------------------------------------------
# Standard Kelly
# ---------------------------------------------------------------------------


def kelly_fraction(
    win_prob: float,
    decimal_odds: float,
    kelly_share: float = 1.0,
) -> float:
    """Compute fractional Kelly bet size for a simple win/loss outcome.

    The Kelly criterion maximises expected log-wealth.  With profit per
    unit ``b = decimal_odds − 1`` the closed form (Kelly 1956) is::

        f*  =  (p · decimal_odds − 1) / b                        (1)

    which is the edge divided by the net odds.  The result is clamped to
    ``[0, 1]`` and then scaled by ``kelly_share``.

    Args:
        win_prob: Estimated true probability of winning, in ``[0, 1]``.
        decimal_odds: Decimal odds for the bet.  Use
            :func:`~propedge.core.odds_math.american_to_decimal` to convert.
        kelly_share: Share of full Kelly to stake, in ``[0, 1]``.
            Default 1.0 (full Kelly).

    Returns:
        Stake as a fraction of bankroll in ``[0, kelly_share]``.  Returns
        0.0 when ``win_prob × decimal_odds ≤ 1`` (no edge) or when
        ``decimal_odds ≤ 1`` (no possible profit).

    Raises:
        DomainError: If ``win_prob`` or ``kelly_share`` lies outside
            ``[0, 1]``.

    Examples::

        kelly_fraction(0.55, 1.909)        →  0.055  (full Kelly on -110)
        kelly_fraction(0.55, 1.909, 0.5)   →  0.027  (half-Kelly)
        kelly_fraction(0.45, 1.909)        →  0.000  (negative EV → 0)
    """
    if not (0.0 <= win_prob <= 1.0):
        raise DomainError(
            f"win_prob must be in [0, 1], got {win_prob!r}. "
            "Check upstream probability clipping."
        )
    if not (0.0 <= kelly_share <= 1.0):
        raise DomainError(f"kelly_share must be in [0, 1], got {kelly_share!r}.")
    if not math.isfinite(decimal_odds) or decimal_odds <= 1.0:
        return 0.0

    edge = win_prob * decimal_odds - 1.0
    if edge <= 0.0:
        return 0.0

    full_kelly = min(edge / (decimal_odds - 1.0), 1.0)
    return full_kelly * kelly_share


# ---------------------------------------------------------------------------
# Utility — unit conversion
# ---------------------------------------------------------------------------


def kelly_to_units(kelly_fraction_val: float) -> float:
    """Convert a Kelly fraction to units for display and logging.

    Convention: 1 unit = 1% of bankroll, so 0.025 → 2.5 units.
    """
    return kelly_fraction_val * 100.0
