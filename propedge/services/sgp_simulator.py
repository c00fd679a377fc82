"""
Correlated same-game parlay simulator.

Estimates the probability that every leg of a same-game parlay hits when
the legs are correlated, then prices the ticket: fair odds, EV% and a
fractional Kelly stake against the offered combined odds.

Model
-----
Each leg is a latent standard-normal variate.  Pairwise correlations come
from leg metadata:

    same entity, same stat      0.80
    same entity, other stat     0.40
    same team, other entity     0.20
    anything else               0.05

(``correlation_key`` identifies the entity, usually the player.)  The
matrix is decomposed as ``C = L·Lᵀ``; each trial draws ``z ~ N(0, I)`` and
sets ``y = L·z``.  A distributional leg simulates
``mean + stdev · y`` against its line; since that is monotone in ``y``,
the comparison is done once up front as a z-threshold.

A probability-only leg is the degenerate case ``mean = 0, stdev = 1`` in
the over direction against the line ``-Φ⁻¹(p)``.  It hits with probability
exactly ``p`` and, like an over prop, on a high latent draw, so a
positive correlation with an over leg makes the two hit together more
often.

The heuristic matrix is not guaranteed positive semi-definite.  A matrix
with a negative Cholesky pivot is projected onto the nearest PSD
correlation matrix (eigenvalues clipped, diagonal rescaled to 1) and a
warning is logged; ``strict=True`` raises instead.  Numerically zero
pivots are clamped to a small epsilon and the rest of their column is
zeroed, as in a semidefinite Cholesky.  Each row of ``L`` is finally
rescaled to unit norm so every leg keeps its stated marginal.

Trials run in fixed-size batches, each seeded from
``SeedSequence(seed).spawn(...)``.  Hit counts are merged by summation, so
the result is identical for a given seed whether batches run serially or
on a thread pool.
"""

import logging
import math
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Dict, Hashable, List, Literal, Mapping, Optional, Sequence, Tuple

import numpy as np

from propedge.core.errors import DomainError, EmptyLegSet, NonPositiveSemiDefinite
from propedge.core.kelly import kelly_fraction, kelly_to_units
from propedge.core.model_config import DEFAULT_CONFIG, ModelConfig
from propedge.core.odds_math import (
    american_to_decimal,
    implied_prob,
    inverse_normal,
    normal_cdf,
    prob_to_american,
)
from propedge.services.projection import PlayerProjection

logger = logging.getLogger(__name__)

Direction = Literal["over", "under"]

CorrelationOverrides = Mapping[Tuple[str, str], float]

# Smallest eigenvalue kept when projecting a matrix onto the PSD cone.
PSD_EIGEN_FLOOR = 1e-6


# ---------------------------------------------------------------------------
# Legs
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class SimulationLeg:
    """
    One proposition in a parlay, in distributional form.

    Hit condition: ``simulated >= line`` for ``over``, ``simulated <= line``
    for ``under``, where ``simulated ~ N(projected_mean, projected_stdev²)``.
    A zero stdev is a point mass at ``projected_mean``.

    Setting ``marginal_hit_probability`` makes a probability-only leg: the
    distribution is derived as ``N(0, 1)`` over ``-Φ⁻¹(p)``.  The other
    distributional fields must then be left at their defaults (or already
    hold that derived form).
    """

    leg_id: str
    correlation_key: Hashable
    direction: Direction = "over"
    line: float = 0.0
    projected_mean: float = 0.0
    projected_stdev: float = 1.0
    stat: Optional[str] = None
    team: Optional[str] = None
    marginal_hit_probability: Optional[float] = None   # probability-only legs

    def __post_init__(self) -> None:
        p = self.marginal_hit_probability
        if p is not None:
            if not (0.0 <= p <= 1.0):
                raise DomainError(
                    f"Leg {self.leg_id!r}: marginal_hit_probability {p!r} must be in [0, 1]."
                )
            line = -inverse_normal(p)
            given = (self.direction, self.line, self.projected_mean, self.projected_stdev)
            if given not in (("over", 0.0, 0.0, 1.0), ("over", line, 0.0, 1.0)):
                raise DomainError(
                    f"Leg {self.leg_id!r}: marginal_hit_probability {p!r} conflicts with "
                    f"direction/line/mean/stdev {given!r}; pass one or the other."
                )
            object.__setattr__(self, "line", line)

        if self.direction not in ("over", "under"):
            raise ValueError(
                f"Leg {self.leg_id!r}: direction must be 'over' or 'under', "
                f"got {self.direction!r}."
            )
        if not math.isfinite(self.projected_mean):
            raise DomainError(
                f"Leg {self.leg_id!r}: projected_mean {self.projected_mean!r} must be finite."
            )
        if not math.isfinite(self.projected_stdev) or self.projected_stdev < 0:
            raise DomainError(
                f"Leg {self.leg_id!r}: projected_stdev {self.projected_stdev!r} "
                "must be finite and ≥ 0."
            )
        if math.isnan(self.line):
            raise DomainError(f"Leg {self.leg_id!r}: line is NaN.")

    # ------------------------------------------------------------------ #
    #  Constructors                                                        #
    # ------------------------------------------------------------------ #

    @classmethod
    def from_probability(
        cls,
        leg_id: str,
        correlation_key: Hashable,
        marginal_hit_probability: float,
        *,
        stat: Optional[str] = None,
        team: Optional[str] = None,
    ) -> "SimulationLeg":
        """Probability-only leg: a standard normal over ``-Φ⁻¹(p)``."""
        return cls(
            leg_id=leg_id,
            correlation_key=correlation_key,
            stat=stat,
            team=team,
            marginal_hit_probability=marginal_hit_probability,
        )

    @classmethod
    def from_projection(
        cls,
        leg_id: str,
        player_id: Hashable,
        stat: str,
        direction: Direction,
        line: float,
        projection: PlayerProjection,
        *,
        team: Optional[str] = None,
    ) -> "SimulationLeg":
        """Distributional leg keyed on the player, from a stat projection."""
        return cls(
            leg_id=leg_id,
            correlation_key=player_id,
            direction=direction,
            line=line,
            projected_mean=projection.mean,
            projected_stdev=projection.stdev,
            stat=stat,
            team=team,
        )

    # ------------------------------------------------------------------ #
    #  Derived                                                             #
    # ------------------------------------------------------------------ #

    def z_threshold(self) -> float:
        """The latent value at which the leg flips between hit and miss."""
        if self.projected_stdev > 0:
            return (self.line - self.projected_mean) / self.projected_stdev
        # Point mass: the outcome is fixed, push the threshold to ±inf.
        if self.direction == "over":
            return -math.inf if self.projected_mean >= self.line else math.inf
        return math.inf if self.projected_mean <= self.line else -math.inf

    def base_hit_prob(self) -> float:
        """Analytic marginal hit probability."""
        if self.marginal_hit_probability is not None:
            return self.marginal_hit_probability
        cdf = normal_cdf(self.z_threshold())
        return 1.0 - cdf if self.direction == "over" else cdf


# ---------------------------------------------------------------------------
# Correlation structure
# ---------------------------------------------------------------------------

def leg_correlation(
    a: SimulationLeg,
    b: SimulationLeg,
    config: ModelConfig = DEFAULT_CONFIG,
) -> float:
    """Heuristic correlation between two distinct legs."""
    if a.correlation_key == b.correlation_key:
        if a.stat == b.stat:
            return config.corr_same_entity_same_stat
        return config.corr_same_entity
    if a.team is not None and a.team == b.team:
        return config.corr_same_team
    return config.corr_unrelated


def build_correlation_matrix(
    legs: Sequence[SimulationLeg],
    config: ModelConfig = DEFAULT_CONFIG,
    overrides: Optional[CorrelationOverrides] = None,
) -> np.ndarray:
    """
    Symmetric ``n×n`` correlation matrix with a unit diagonal.

    ``overrides`` maps ``(leg_id_a, leg_id_b)`` pairs (either order) to an
    explicit correlation in ``[-1, 1]`` that replaces the heuristic value.
    """
    n = len(legs)
    matrix = np.eye(n)
    lookup: Dict[frozenset, float] = {}
    for (id_a, id_b), rho in (overrides or {}).items():
        if not (-1.0 <= rho <= 1.0):
            raise DomainError(
                f"Correlation override for ({id_a!r}, {id_b!r}) must be in [-1, 1], got {rho!r}."
            )
        lookup[frozenset((id_a, id_b))] = float(rho)

    for i in range(n):
        for j in range(i + 1, n):
            key = frozenset((legs[i].leg_id, legs[j].leg_id))
            rho = lookup.get(key)
            if rho is None:
                rho = leg_correlation(legs[i], legs[j], config)
            matrix[i, j] = matrix[j, i] = rho
    return matrix


def _decompose(matrix: np.ndarray, eps: float) -> np.ndarray:
    n = matrix.shape[0]
    lower = np.zeros((n, n))
    degenerate = np.zeros(n, dtype=bool)
    for i in range(n):
        for j in range(i):
            if degenerate[j]:
                continue
            s = float(np.dot(lower[i, :j], lower[j, :j]))
            lower[i, j] = (matrix[i, j] - s) / lower[j, j]
        pivot = float(matrix[i, i] - np.dot(lower[i, :i], lower[i, :i]))
        if pivot < -eps:
            raise NonPositiveSemiDefinite(i, pivot)
        if pivot < eps:
            # Rank-deficient direction: no later row may load on this column.
            degenerate[i] = True
            pivot = eps
        lower[i, i] = math.sqrt(pivot)
    return lower


def nearest_psd_correlation(
    matrix: np.ndarray,
    floor: float = PSD_EIGEN_FLOOR,
) -> np.ndarray:
    """
    Project a symmetric matrix onto the PSD correlation matrices.

    Eigenvalues below ``floor`` are raised to it, then the result is
    rescaled back to a unit diagonal.  An already-PSD matrix comes back
    essentially unchanged.
    """
    sym = (matrix + matrix.T) / 2.0
    values, vectors = np.linalg.eigh(sym)
    clipped = (vectors * np.maximum(values, floor)) @ vectors.T
    scale = np.sqrt(np.diag(clipped))
    projected = clipped / np.outer(scale, scale)
    np.fill_diagonal(projected, 1.0)
    return (projected + projected.T) / 2.0


def cholesky_lower(
    matrix: np.ndarray,
    *,
    eps: float = DEFAULT_CONFIG.cholesky_pivot_eps,
    strict: bool = False,
) -> np.ndarray:
    """
    Lower-triangular ``L`` with ``L·Lᵀ ≈ matrix``.

    Pivots within ``eps`` of zero are clamped to ``eps`` and the rest of
    their column is zeroed.  A negative pivot means the matrix is not PSD:
    it is projected with :func:`nearest_psd_correlation` and decomposed
    again, or :class:`NonPositiveSemiDefinite` is raised when
    ``strict=True``.
    """
    try:
        return _decompose(matrix, eps)
    except NonPositiveSemiDefinite as exc:
        if strict:
            raise
        logger.warning(
            "Correlation matrix not PSD (pivot %.3g at row %d, min eigenvalue %.3g): "
            "using nearest PSD correlation matrix",
            exc.pivot, exc.index, float(np.linalg.eigvalsh((matrix + matrix.T) / 2.0)[0]),
        )
    return _decompose(nearest_psd_correlation(matrix), eps)


def _unit_rows(lower: np.ndarray) -> np.ndarray:
    norms = np.linalg.norm(lower, axis=1, keepdims=True)
    return lower / norms


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class LegDiagnostic:
    """Per-leg view of a simulation run."""

    leg_id: str
    base_hit_prob: float              # analytic marginal
    simulated_hit_prob: float         # observed marginal across all trials

    def to_dict(self) -> Dict:
        return {
            "id": self.leg_id,
            "baseHitProb": self.base_hit_prob,
            "simHitProb": self.simulated_hit_prob,
        }


@dataclass(frozen=True)
class SimulationResult:
    """Priced output of one parlay simulation."""

    joint_probability: float          # (0, 1], floored at joint_prob_floor
    fair_odds: int
    ev_percent: float
    kelly_fraction: float             # [0, kelly_share]
    legs: List[LegDiagnostic] = field(default_factory=list)
    offered_odds: int = 0
    decimal_odds: float = 0.0
    implied_prob: float = 0.0
    recommended_units: float = 0.0
    iterations: int = 0
    seed: Optional[int] = None

    def to_dict(self) -> Dict:
        return {
            "jointProb": self.joint_probability,
            "fairOdds": self.fair_odds,
            "evPct": self.ev_percent,
            "kellyFraction": self.kelly_fraction,
            "legs": [leg.to_dict() for leg in self.legs],
            "offeredOdds": self.offered_odds,
            "decimalOdds": self.decimal_odds,
            "impliedProb": self.implied_prob,
            "recommendedUnits": self.recommended_units,
            "iterations": self.iterations,
            "seed": self.seed,
        }


# ---------------------------------------------------------------------------
# Simulator
# ---------------------------------------------------------------------------

def _run_batch(
    lower: np.ndarray,
    lo: np.ndarray,
    hi: np.ndarray,
    n_trials: int,
    seed_seq: np.random.SeedSequence,
) -> Tuple[int, np.ndarray]:
    """Run one batch of trials; return (joint hits, per-leg hits)."""
    rng = np.random.default_rng(seed_seq)
    z = rng.standard_normal((n_trials, lower.shape[0]))
    y = z @ lower.T
    hits = (y >= lo) & (y <= hi)
    return int(np.count_nonzero(hits.all(axis=1))), hits.sum(axis=0)


class CorrelatedParlaySimulator:
    """
    Monte Carlo pricer for correlated parlays.

    Stateless apart from the injected config; every call builds its own
    generators, so one instance may be shared across threads.
    """

    def __init__(self, config: ModelConfig = DEFAULT_CONFIG):
        self.config = config

    def simulate(
        self,
        legs: Sequence[SimulationLeg],
        offered_odds: int,
        *,
        iterations: Optional[int] = None,
        seed: Optional[int] = None,
        max_workers: Optional[int] = None,
        correlation_overrides: Optional[CorrelationOverrides] = None,
        strict: bool = False,
    ) -> SimulationResult:
        """
        Estimate the joint hit probability and price the ticket.

        Args:
            legs: Parlay legs, in display order.
            offered_odds: Combined American odds offered for the ticket.
            iterations: Trial count.  Defaults to ``config.sim_iterations``.
            seed: RNG seed.  Identical ``(legs, offered_odds, seed)`` give a
                bit-identical result.  ``None`` draws fresh entropy; the
                seed actually used is reported on the result.
            max_workers: Threads for batch execution.  Defaults to
                ``config.sim_workers``.  Does not affect the result.
            correlation_overrides: Explicit pairwise correlations by leg id.
            strict: Raise on a non-PSD correlation matrix instead of
                projecting it onto the nearest PSD one.

        Raises:
            EmptyLegSet: If ``legs`` is empty.
            InvalidOdds: If ``offered_odds`` is zero or non-finite.
            NonPositiveSemiDefinite: With ``strict=True``, if the correlation
                matrix is not PSD.
        """
        cfg = self.config
        if not legs:
            raise EmptyLegSet("At least one leg is required to simulate a parlay.")
        decimal_odds = american_to_decimal(offered_odds)

        n_iter = cfg.sim_iterations if iterations is None else int(iterations)
        if n_iter < 1:
            raise ValueError(f"iterations must be ≥ 1, got {iterations!r}.")
        workers = max_workers or cfg.sim_workers

        root = np.random.SeedSequence(seed)
        used_seed = root.entropy if seed is None else seed

        matrix = build_correlation_matrix(legs, cfg, correlation_overrides)
        lower = _unit_rows(
            cholesky_lower(matrix, eps=cfg.cholesky_pivot_eps, strict=strict)
        )

        thresholds = np.array([leg.z_threshold() for leg in legs])
        is_over = np.array([leg.direction == "over" for leg in legs])
        lo = np.where(is_over, thresholds, -np.inf)
        hi = np.where(is_over, np.inf, thresholds)

        full, rem = divmod(n_iter, cfg.sim_batch_size)
        sizes = [cfg.sim_batch_size] * full + ([rem] if rem else [])
        children = root.spawn(len(sizes))

        if workers > 1 and len(sizes) > 1:
            with ThreadPoolExecutor(max_workers=workers) as executor:
                batches = list(
                    executor.map(
                        lambda args: _run_batch(lower, lo, hi, *args),
                        zip(sizes, children),
                    )
                )
        else:
            batches = [_run_batch(lower, lo, hi, n, child) for n, child in zip(sizes, children)]

        joint_hits = sum(b[0] for b in batches)
        leg_hits = np.sum([b[1] for b in batches], axis=0)

        joint_prob = max(joint_hits / n_iter, cfg.joint_prob_floor)
        fair_odds = prob_to_american(min(joint_prob, cfg.max_probability))
        ev_pct = (joint_prob * decimal_odds - 1.0) * 100.0
        kelly = kelly_fraction(joint_prob, decimal_odds, cfg.kelly_share)

        diagnostics = [
            LegDiagnostic(
                leg_id=leg.leg_id,
                base_hit_prob=leg.base_hit_prob(),
                simulated_hit_prob=float(leg_hits[i]) / n_iter,
            )
            for i, leg in enumerate(legs)
        ]

        logger.info(
            "SGP %d legs @ %+d: joint=%.4f fair=%+d ev=%.2f%% kelly=%.4f (%d trials, %d batches)",
            len(legs), offered_odds, joint_prob, fair_odds, ev_pct, kelly, n_iter, len(sizes),
        )

        return SimulationResult(
            joint_probability=joint_prob,
            fair_odds=fair_odds,
            ev_percent=ev_pct,
            kelly_fraction=kelly,
            legs=diagnostics,
            offered_odds=int(offered_odds),
            decimal_odds=decimal_odds,
            implied_prob=implied_prob(offered_odds),
            recommended_units=round(kelly_to_units(kelly), 2),
            iterations=n_iter,
            seed=used_seed,
        )


def simulate_sgp(
    legs: Sequence[SimulationLeg],
    offered_odds: int,
    *,
    iterations: Optional[int] = None,
    seed: Optional[int] = None,
    max_workers: Optional[int] = None,
    correlation_overrides: Optional[CorrelationOverrides] = None,
    strict: bool = False,
    config: ModelConfig = DEFAULT_CONFIG,
) -> SimulationResult:
    """Functional shortcut for :meth:`CorrelatedParlaySimulator.simulate`."""
    return CorrelatedParlaySimulator(config).simulate(
        legs,
        offered_odds,
        iterations=iterations,
        seed=seed,
        max_workers=max_workers,
        correlation_overrides=correlation_overrides,
        strict=strict,
    )
