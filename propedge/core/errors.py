"""Error kinds raised by the edge computation core.

Every error here is a local, recoverable condition.  Callers are expected to
catch them and surface "insufficient data" or "invalid price" to the end
user; none of them indicates a bug in the core itself.

All kinds subclass :class:`ValueError` so call sites that already guard
odds parsing with ``except ValueError`` keep working unchanged.
"""

from __future__ import annotations


class EdgeCoreError(ValueError):
    """Base class for every error raised by :mod:`propedge`."""


class InvalidOdds(EdgeCoreError):
    """American odds are zero or non-finite, or decimal odds are ≤ 1."""


class DomainError(EdgeCoreError):
    """A probability-space function received an argument outside its domain.

    Raised by :func:`~propedge.core.odds_math.logit` and
    :func:`~propedge.core.odds_math.inverse_normal`.  Callers must clamp
    before transforming.
    """


class EmptyLegSet(EdgeCoreError):
    """A parlay simulation was requested with zero legs."""


class MissingBaseline(EdgeCoreError):
    """No historical data exists for the requested player/stat pair."""

    def __init__(self, player_id: object, stat: str | None = None) -> None:
        self.player_id = player_id
        self.stat = stat
        what = f"stat {stat!r}" if stat else "any stat"
        super().__init__(
            f"No baseline data for player {player_id!r} ({what}). "
            "Sync historical game logs before requesting a rating or projection."
        )


class NonPositiveSemiDefinite(EdgeCoreError):
    """A correlation matrix produced a negative Cholesky pivot.

    Only raised in strict decomposition mode; the default mode projects
    the matrix onto the nearest PSD correlation matrix instead.
    """

    def __init__(self, index: int, pivot: float) -> None:
        self.index = index
        self.pivot = pivot
        super().__init__(
            f"Correlation matrix is not positive semi-definite: pivot {index} "
            f"would be {pivot!r}."
        )
