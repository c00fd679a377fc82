"""Fundamental odds mathematics — the single source of truth.

Every function here is **pure**: no I/O, no logging, no side effects.
Import from this module; never reimplement locally in services.

The pillars exposed are:

1. **Odds conversion** — American ↔ decimal ↔ implied probability, plus the
   fair-odds and EV% helpers built on them.
2. **Probability transforms** — ``logit``/``sigmoid`` for additive signal
   adjustment, and the standard-normal CDF and its inverse for mapping
   between probability space and latent z-space.
3. **Weight normalisation** — flooring and rescaling a vector into a
   probability distribution.

Design decisions
----------------
* Every conversion is a total function: invalid input raises a
  :mod:`~propedge.core.errors` kind instead of returning ``nan`` or ``inf``.
  The only deliberate infinities are :func:`inverse_normal` at exactly 0
  and 1, where the latent threshold really is unbounded.
* American odds are accepted as ``int`` or ``float`` because upstream feeds
  disagree on the type.  Only zero and non-finite values are rejected;
  odds inside the ``(-100, 100)`` band are unusual but still convertible.
* The normal CDF and its inverse delegate to ``scipy.stats.norm``, whose
  accuracy is far below the 1e-7 tolerance the pricing layer needs.

Run tests with::

    pytest tests/test_odds_math.py -v
"""

from __future__ import annotations

import math
from typing import Final, Sequence

from scipy.stats import norm

from propedge.core.errors import DomainError, InvalidOdds

# ---------------------------------------------------------------------------
# Module-level constants
# ---------------------------------------------------------------------------

#: Lower probability bound used before any log/division.  Keeps fair odds
#: finite: 1 / 0.001 = 1000.0 decimal → +99900 American.
MIN_PROBABILITY: Final[float] = 0.001

#: Upper probability bound.  1 / 0.999 → -99900 American.
MAX_PROBABILITY: Final[float] = 0.999


# ---------------------------------------------------------------------------
# Odds conversion
# ---------------------------------------------------------------------------


def _check_american(american: int | float) -> float:
    try:
        value = float(american)
    except (TypeError, ValueError) as exc:
        raise InvalidOdds(f"American odds {american!r} are not numeric.") from exc
    if not math.isfinite(value) or value == 0.0:
        raise InvalidOdds(
            f"Invalid American odds {american!r}: must be finite and non-zero. "
            "Zero means the price is unset upstream."
        )
    return value


def american_to_decimal(american: int | float) -> float:
    """Convert American odds to decimal (European) format.

    Decimal odds represent the total payout per unit staked, **including**
    the return of the stake itself.  Examples::

        american_to_decimal(-110) → 1.9091   (risk 110 to win 100)
        american_to_decimal(+150) → 2.5000   (risk 100 to win 150)

    Args:
        american: American odds.  Negative = favourite, positive = underdog.

    Returns:
        Decimal odds > 1.0.

    Raises:
        InvalidOdds: If ``american`` is zero or not finite.
    """
    value = _check_american(american)
    if value > 0:
        return 1.0 + value / 100.0
    return 1.0 + 100.0 / abs(value)


def implied_prob(american: int | float) -> float:
    """Raw implied probability from American odds (vig-inclusive).

    Examples::

        implied_prob(-110) → 0.5238
        implied_prob(+150) → 0.4000

    Raises:
        InvalidOdds: If ``american`` is zero or not finite.
    """
    value = _check_american(american)
    if value > 0:
        return 100.0 / (value + 100.0)
    return abs(value) / (abs(value) + 100.0)


def decimal_to_american(decimal_odds: float) -> int:
    """Convert decimal odds to the nearest American integer.

    Inverse of :func:`american_to_decimal`.  Values ≥ 2.0 are returned as
    positive (underdog); values in ``(1.0, 2.0)`` as negative (favourite).

    Raises:
        InvalidOdds: If ``decimal_odds`` is not finite or ``≤ 1.0`` (no
            profit is possible, so no American price exists).
    """
    if not math.isfinite(decimal_odds) or decimal_odds <= 1.0:
        raise InvalidOdds(
            f"Decimal odds {decimal_odds!r} must be finite and > 1.0."
        )
    if decimal_odds >= 2.0:
        return round((decimal_odds - 1.0) * 100)
    return round(-100.0 / (decimal_odds - 1.0))


def prob_to_american(prob: float) -> int:
    """Fair American odds for a probability (no vig).

    Args:
        prob: Win probability, strictly inside ``(0, 1)``.  Callers that
            may hold an exact 0 or 1 must clamp first.

    Raises:
        DomainError: If ``prob`` is outside ``(0, 1)``.

    Examples::

        prob_to_american(0.40) → +150
        prob_to_american(0.60) → -150
    """
    if not (0.0 < prob < 1.0):
        raise DomainError(
            f"Probability {prob!r} must be in (0, 1) to price fair odds."
        )
    return decimal_to_american(1.0 / prob)


def ev_percent(true_prob: float, american: int | float) -> float:
    """Expected profit per unit staked, in percent.

    ``(true_prob × decimal − 1) × 100``.  Positive exactly when
    ``true_prob × decimal > 1``.
    """
    return (true_prob * american_to_decimal(american) - 1.0) * 100.0


# ---------------------------------------------------------------------------
# Probability transforms
# ---------------------------------------------------------------------------


def clamp(value: float, lo: float, hi: float) -> float:
    """Constrain ``value`` to ``[lo, hi]``."""
    return min(max(value, lo), hi)


def logit(prob: float) -> float:
    """Log-odds of ``prob``.

    Raises:
        DomainError: If ``prob`` is not strictly inside ``(0, 1)``.  Clamp
            with :func:`clamp` (typically to ``(0.001, 0.999)``) first.
    """
    if not (0.0 < prob < 1.0):
        raise DomainError(
            f"logit argument {prob!r} must be in (0, 1); clamp before transforming."
        )
    return math.log(prob / (1.0 - prob))


def sigmoid(value: float) -> float:
    """Logistic function, stable for large ``|value|``."""
    if value >= 0:
        return 1.0 / (1.0 + math.exp(-value))
    # exp(value) cannot overflow on this branch
    e = math.exp(value)
    return e / (1.0 + e)


def normal_cdf(z: float) -> float:
    """Standard-normal cumulative distribution ``P(Z ≤ z)``."""
    return float(norm.cdf(z))


def inverse_normal(p: float) -> float:
    """Standard-normal quantile: the ``z`` with ``normal_cdf(z) == p``.

    Returns ``-inf`` at exactly 0 and ``+inf`` at exactly 1.

    Raises:
        DomainError: If ``p`` is outside ``[0, 1]`` or is NaN.
    """
    if not (0.0 <= p <= 1.0):
        raise DomainError(f"inverse_normal argument {p!r} must be in [0, 1].")
    if p == 0.0:
        return -math.inf
    if p == 1.0:
        return math.inf
    return float(norm.ppf(p))


# ---------------------------------------------------------------------------
# Weight normalisation
# ---------------------------------------------------------------------------


def normalize_probability_weights(values: Sequence[float]) -> list[float]:
    """Rescale non-negative weights into shares summing to 1.

    Negative entries are floored to 0.  When every entry is 0 the result is
    uniform.  An empty input returns an empty list.

    Examples::

        normalize_probability_weights([1, 3])     → [0.25, 0.75]
        normalize_probability_weights([-2, 0])    → [0.5, 0.5]
    """
    if not values:
        return []
    cleaned = [max(0.0, float(v)) for v in values]
    total = sum(cleaned)
    if total == 0.0:
        share = 1.0 / len(cleaned)
        return [share] * len(cleaned)
    return [v / total for v in cleaned]
