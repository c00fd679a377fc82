"""
Tests for propedge/services/sgp_simulator.py

Run with: pytest tests/test_sgp_simulator.py -v
"""

import logging
from dataclasses import replace

import numpy as np
import pytest

from propedge.core.errors import DomainError, EmptyLegSet, InvalidOdds, NonPositiveSemiDefinite
from propedge.core.model_config import ModelConfig
from propedge.core.odds_math import american_to_decimal
from propedge.services.projection import PlayerProjection
from propedge.services.sgp_simulator import (
    CorrelatedParlaySimulator,
    SimulationLeg,
    build_correlation_matrix,
    cholesky_lower,
    leg_correlation,
    nearest_psd_correlation,
    simulate_sgp,
)


def _prob_leg(leg_id, key, p, **kwargs):
    return SimulationLeg.from_probability(leg_id, key, p, **kwargs)


NOT_PSD = np.array([
    [1.0, 0.9, 0.9],
    [0.9, 1.0, -0.9],
    [0.9, -0.9, 1.0],
])


class TestSimulationLeg:
    """Leg construction and analytic marginals."""

    def test_probability_leg_marginal(self):
        leg = _prob_leg("a", "p1", 0.55)
        assert leg.direction == "over"
        assert leg.base_hit_prob() == pytest.approx(0.55)
        assert leg.z_threshold() == pytest.approx(-0.12566, abs=1e-4)

    def test_from_projection(self):
        leg = SimulationLeg.from_projection(
            "tatum-pts", "tatum", "points", "over", 24.5, PlayerProjection(25.0, 5.0), team="BOS"
        )
        assert leg.correlation_key == "tatum"
        assert leg.stat == "points"
        assert leg.z_threshold() == pytest.approx(-0.1)
        assert leg.base_hit_prob() == pytest.approx(0.5398, abs=1e-4)

    def test_under_direction(self):
        leg = SimulationLeg("u", "p1", "under", line=24.5, projected_mean=25.0, projected_stdev=5.0)
        assert leg.base_hit_prob() == pytest.approx(1 - 0.5398, abs=1e-4)

    def test_point_mass(self):
        sure = SimulationLeg("s", "p1", "over", line=10, projected_mean=12, projected_stdev=0)
        miss = SimulationLeg("m", "p1", "under", line=10, projected_mean=12, projected_stdev=0)
        assert sure.base_hit_prob() == 1.0
        assert miss.base_hit_prob() == 0.0

    def test_certain_probability_leg(self):
        assert _prob_leg("c", "p1", 1.0).base_hit_prob() == 1.0
        assert _prob_leg("z", "p1", 0.0).z_threshold() == np.inf
        assert _prob_leg("c", "p1", 1.0).z_threshold() == -np.inf

    def test_validation(self):
        with pytest.raises(ValueError):
            SimulationLeg("x", "p1", "sideways")
        with pytest.raises(DomainError):
            SimulationLeg("x", "p1", "over", projected_stdev=-1.0)
        with pytest.raises(DomainError):
            SimulationLeg("x", "p1", "over", projected_mean=float("inf"))
        with pytest.raises(DomainError):
            _prob_leg("x", "p1", 1.2)

    def test_direct_probability_field_drives_simulation(self):
        leg = SimulationLeg("a", "k", marginal_hit_probability=0.8)
        assert leg.direction == "over"
        assert leg.z_threshold() == pytest.approx(-0.8416, abs=1e-4)
        result = simulate_sgp([leg], -400, seed=21)
        assert result.joint_probability == pytest.approx(0.8, abs=0.015)
        assert result.legs[0].simulated_hit_prob == pytest.approx(0.8, abs=0.015)

    def test_direct_probability_survives_replace(self):
        leg = replace(SimulationLeg("a", "k", marginal_hit_probability=0.3), team="BOS")
        assert leg.team == "BOS"
        assert leg.base_hit_prob() == pytest.approx(0.3)

    def test_probability_conflicting_with_distribution(self):
        with pytest.raises(DomainError, match="conflicts"):
            SimulationLeg("a", "k", "under", line=3.0, marginal_hit_probability=0.8)
        with pytest.raises(DomainError, match="conflicts"):
            SimulationLeg("a", "k", projected_mean=25.0, projected_stdev=5.0,
                          marginal_hit_probability=0.5)


class TestCorrelationMatrix:
    """Heuristic correlation levels and overrides."""

    def test_levels(self):
        a = _prob_leg("a", "tatum", 0.5, stat="points", team="BOS")
        b = _prob_leg("b", "tatum", 0.5, stat="points", team="BOS")
        c = _prob_leg("c", "tatum", 0.5, stat="rebounds", team="BOS")
        d = _prob_leg("d", "brown", 0.5, stat="points", team="BOS")
        e = _prob_leg("e", "butler", 0.5, stat="points", team="MIA")
        assert leg_correlation(a, b) == pytest.approx(0.8)
        assert leg_correlation(a, c) == pytest.approx(0.4)
        assert leg_correlation(a, d) == pytest.approx(0.2)
        assert leg_correlation(a, e) == pytest.approx(0.05)

    def test_missing_team_is_unrelated(self):
        a = _prob_leg("a", "tatum", 0.5)
        b = _prob_leg("b", "brown", 0.5)
        assert leg_correlation(a, b) == pytest.approx(0.05)

    def test_matrix_shape(self):
        legs = [_prob_leg("a", "p1", 0.5), _prob_leg("b", "p1", 0.5), _prob_leg("c", "p2", 0.5)]
        matrix = build_correlation_matrix(legs)
        assert matrix.shape == (3, 3)
        assert np.allclose(np.diag(matrix), 1.0)
        assert np.allclose(matrix, matrix.T)
        assert matrix[0, 1] == pytest.approx(0.8)
        assert matrix[0, 2] == pytest.approx(0.05)

    def test_overrides_either_order(self):
        legs = [_prob_leg("a", "p1", 0.5), _prob_leg("b", "p2", 0.5)]
        matrix = build_correlation_matrix(legs, overrides={("b", "a"): -0.3})
        assert matrix[0, 1] == pytest.approx(-0.3)
        assert matrix[1, 0] == pytest.approx(-0.3)

    def test_override_out_of_range(self):
        legs = [_prob_leg("a", "p1", 0.5), _prob_leg("b", "p2", 0.5)]
        with pytest.raises(DomainError):
            build_correlation_matrix(legs, overrides={("a", "b"): 1.5})


class TestCholesky:
    """Lower-triangular decomposition."""

    def test_identity(self):
        assert np.allclose(cholesky_lower(np.eye(4)), np.eye(4))

    def test_reconstructs_psd_matrix(self):
        matrix = np.array([[1.0, 0.8, 0.2], [0.8, 1.0, 0.4], [0.2, 0.4, 1.0]])
        lower = cholesky_lower(matrix)
        assert np.allclose(lower @ lower.T, matrix)
        assert np.allclose(lower, np.linalg.cholesky(matrix))

    def test_strict_raises_on_non_psd(self):
        with pytest.raises(NonPositiveSemiDefinite) as excinfo:
            cholesky_lower(NOT_PSD, strict=True)
        assert excinfo.value.index == 2
        assert excinfo.value.pivot < 0

    def test_default_projects_and_warns(self, caplog):
        with caplog.at_level(logging.WARNING, logger="propedge.services.sgp_simulator"):
            lower = cholesky_lower(NOT_PSD)
        assert np.all(np.isfinite(lower))
        rebuilt = lower @ lower.T
        assert np.allclose(np.diag(rebuilt), 1.0)
        assert np.linalg.eigvalsh(rebuilt).min() > -1e-12
        assert "not PSD" in caplog.text

    def test_nearest_psd_correlation(self):
        projected = nearest_psd_correlation(NOT_PSD)
        assert np.allclose(np.diag(projected), 1.0)
        assert np.allclose(projected, projected.T)
        assert np.linalg.eigvalsh(projected).min() > 0.0

    def test_nearest_psd_leaves_psd_matrix_alone(self):
        matrix = np.array([[1.0, 0.8, 0.2], [0.8, 1.0, 0.4], [0.2, 0.4, 1.0]])
        assert np.allclose(nearest_psd_correlation(matrix), matrix, atol=1e-6)

    def test_rank_deficient_matrix_not_projected(self, caplog):
        matrix = np.ones((3, 3))
        with caplog.at_level(logging.WARNING, logger="propedge.services.sgp_simulator"):
            lower = cholesky_lower(matrix)
        assert np.all(np.isfinite(lower))
        assert np.allclose(lower[1:, 1:], np.diag([1e-4, 1e-4]))
        assert "not PSD" not in caplog.text


class TestNonPsdInputs:
    """Large or inconsistent correlation structures stay finite."""

    def _chain(self, n):
        legs = [_prob_leg(f"l{i}", f"p{i}", 0.5) for i in range(n)]
        overrides = {}
        for i in range(n - 1):
            overrides[(f"l{i}", f"l{i + 1}")] = 0.95
        for i in range(n - 2):
            overrides[(f"l{i}", f"l{i + 2}")] = -0.95
        return legs, overrides

    def test_chained_overrides_decompose_finite(self):
        legs, overrides = self._chain(30)
        matrix = build_correlation_matrix(legs, overrides=overrides)
        assert np.linalg.eigvalsh(matrix).min() < 0
        lower = cholesky_lower(matrix)
        assert np.all(np.isfinite(lower))
        assert np.abs(lower).max() <= 1.0 + 1e-6

    def test_chained_overrides_keep_marginals(self):
        legs, overrides = self._chain(30)
        result = simulate_sgp(legs, 5000, seed=13, correlation_overrides=overrides)
        assert np.isfinite(result.joint_probability)
        for diag in result.legs:
            assert diag.simulated_hit_prob == pytest.approx(0.5, abs=0.02)

    def test_team_mismatch_within_key(self):
        rng = np.random.default_rng(8)
        for _ in range(50):
            legs = [
                _prob_leg(
                    f"l{i}",
                    f"p{rng.integers(3)}",
                    0.5,
                    stat=("points", "rebounds", "assists")[rng.integers(3)],
                    team=("BOS", "MIA")[rng.integers(2)],
                )
                for i in range(8)
            ]
            lower = cholesky_lower(build_correlation_matrix(legs))
            assert np.all(np.isfinite(lower))
            assert np.all(np.linalg.norm(lower, axis=1) > 0)

    def test_perfect_correlation(self):
        legs = [_prob_leg("a", "p1", 0.6), _prob_leg("b", "p2", 0.6)]
        result = simulate_sgp(legs, 150, seed=6, correlation_overrides={("a", "b"): 1.0})
        assert result.joint_probability == pytest.approx(0.6, abs=0.015)


class TestSingleLegScenario:
    """One leg at 0.55 priced at -120."""

    def test_joint_matches_marginal(self):
        result = simulate_sgp([_prob_leg("a", "p1", 0.55)], -120, seed=42)
        assert result.joint_probability == pytest.approx(0.55, abs=0.015)
        assert result.iterations == 20_000

    def test_ev_closed_form(self):
        result = simulate_sgp([_prob_leg("a", "p1", 0.55)], -120, seed=42)
        d = american_to_decimal(-120)
        assert result.ev_percent == pytest.approx((result.joint_probability * d - 1) * 100)
        assert result.ev_percent == pytest.approx((0.55 * d - 1) * 100, abs=3.0)
        assert result.decimal_odds == pytest.approx(d)


class TestJointProbability:
    """Correlation raises the joint probability above independence."""

    def test_correlated_pair(self):
        legs = [
            _prob_leg("a", "tatum", 0.6, stat="points"),
            _prob_leg("b", "tatum", 0.6, stat="points"),
        ]
        result = simulate_sgp(legs, 250, seed=7)
        assert result.joint_probability <= 0.6
        assert result.joint_probability > 0.36 + 0.05

    def test_joint_never_exceeds_simulated_marginals(self):
        legs = [
            _prob_leg("a", "p1", 0.7, stat="points", team="BOS"),
            _prob_leg("b", "p1", 0.5, stat="assists", team="BOS"),
            _prob_leg("c", "p2", 0.65, stat="points", team="BOS"),
            _prob_leg("d", "p3", 0.8, stat="rebounds", team="MIA"),
        ]
        result = simulate_sgp(legs, 600, seed=11)
        assert result.joint_probability <= min(d.simulated_hit_prob for d in result.legs)

    def test_independent_legs_multiply(self):
        legs = [_prob_leg("a", "p1", 0.5), _prob_leg("b", "p2", 0.5)]
        result = simulate_sgp(legs, 250, seed=3, correlation_overrides={("a", "b"): 0.0})
        assert result.joint_probability == pytest.approx(0.25, abs=0.015)

    def test_leg_diagnostics(self):
        legs = [_prob_leg("a", "p1", 0.6), _prob_leg("b", "p2", 0.3)]
        result = simulate_sgp(legs, 400, seed=5)
        assert [d.leg_id for d in result.legs] == ["a", "b"]
        for diag, p in zip(result.legs, (0.6, 0.3)):
            assert diag.base_hit_prob == pytest.approx(p)
            assert diag.simulated_hit_prob == pytest.approx(p, abs=0.015)

    def test_distributional_legs(self):
        proj = PlayerProjection(25.0, 5.0)
        legs = [
            SimulationLeg.from_projection("pts", "tatum", "points", "over", 24.5, proj),
            SimulationLeg.from_projection("reb", "tatum", "rebounds", "over", 7.5,
                                          PlayerProjection(8.5, 2.5)),
        ]
        result = simulate_sgp(legs, 200, seed=9)
        single = min(leg.base_hit_prob() for leg in legs)
        assert 0.0 < result.joint_probability <= single + 0.015

    def test_probability_leg_moves_with_over_leg(self):
        legs = [
            _prob_leg("p", "tatum", 0.5, stat="points"),
            SimulationLeg.from_projection("o", "tatum", "points", "over", 25.0,
                                          PlayerProjection(25.0, 5.0)),
        ]
        result = simulate_sgp(legs, 250, seed=12)
        assert result.joint_probability > 0.25 + 0.05
        assert result.joint_probability == pytest.approx(0.3976, abs=0.015)


class TestDegenerateLegs:
    """Point masses and probability extremes."""

    def test_certain_parlay(self):
        legs = [
            SimulationLeg("s1", "p1", "over", line=10, projected_mean=12, projected_stdev=0),
            _prob_leg("s2", "p2", 1.0),
        ]
        result = simulate_sgp(legs, -120, seed=1, iterations=2000)
        assert result.joint_probability == 1.0
        assert result.fair_odds == -99_900
        assert result.kelly_fraction == pytest.approx(0.5)

    def test_impossible_leg_hits_floor(self):
        legs = [
            _prob_leg("a", "p1", 0.6),
            SimulationLeg("m", "p1", "under", line=10, projected_mean=12, projected_stdev=0),
        ]
        result = simulate_sgp(legs, 300, seed=1, iterations=2000)
        assert result.joint_probability == pytest.approx(1e-6)
        assert result.kelly_fraction == 0.0
        assert result.ev_percent < 0


class TestDeterminism:
    """Seeded runs are reproducible."""

    LEGS = [
        _prob_leg("a", "p1", 0.62, stat="points", team="BOS"),
        _prob_leg("b", "p1", 0.55, stat="rebounds", team="BOS"),
        _prob_leg("c", "p2", 0.58, stat="points", team="BOS"),
    ]

    def test_same_seed_same_result(self):
        first = simulate_sgp(self.LEGS, 450, seed=2024)
        second = simulate_sgp(self.LEGS, 450, seed=2024)
        assert first.joint_probability == second.joint_probability
        assert first == second

    def test_worker_count_does_not_matter(self):
        serial = simulate_sgp(self.LEGS, 450, seed=99, max_workers=1)
        threaded = simulate_sgp(self.LEGS, 450, seed=99, max_workers=4)
        assert serial.joint_probability == threaded.joint_probability
        assert serial.legs == threaded.legs

    def test_partial_batch(self):
        cfg = replace(ModelConfig.nba(), sim_batch_size=3000)
        result = CorrelatedParlaySimulator(cfg).simulate(self.LEGS, 450, iterations=7001, seed=4)
        assert result.iterations == 7001

    def test_fresh_seed_reported(self):
        result = simulate_sgp(self.LEGS, 450, iterations=1000)
        assert result.seed is not None
        replay = simulate_sgp(self.LEGS, 450, iterations=1000, seed=result.seed)
        assert replay.joint_probability == result.joint_probability


class TestErrors:
    def test_empty_legs(self):
        with pytest.raises(EmptyLegSet):
            simulate_sgp([], 300, seed=1)

    def test_bad_offered_odds(self):
        with pytest.raises(InvalidOdds):
            simulate_sgp([_prob_leg("a", "p1", 0.5)], 0, seed=1)

    def test_bad_iterations(self):
        with pytest.raises(ValueError):
            simulate_sgp([_prob_leg("a", "p1", 0.5)], 100, seed=1, iterations=0)

    def test_strict_mode(self):
        legs = [_prob_leg(i, f"p{i}", 0.5) for i in ("a", "b", "c")]
        overrides = {("a", "b"): 0.9, ("a", "c"): 0.9, ("b", "c"): -0.9}
        with pytest.raises(NonPositiveSemiDefinite):
            CorrelatedParlaySimulator().simulate(
                legs, 500, seed=1, correlation_overrides=overrides, strict=True
            )

    def test_non_psd_still_preserves_marginals(self):
        legs = [_prob_leg(i, f"p{i}", 0.5) for i in ("a", "b", "c")]
        overrides = {("a", "b"): 0.9, ("a", "c"): 0.9, ("b", "c"): -0.9}
        result = simulate_sgp(legs, 500, seed=1, correlation_overrides=overrides)
        for diag in result.legs:
            assert diag.simulated_hit_prob == pytest.approx(0.5, abs=0.015)

    def test_strict_mode_through_shortcut(self):
        legs = [_prob_leg(i, f"p{i}", 0.5) for i in ("a", "b", "c")]
        overrides = {("a", "b"): 0.9, ("a", "c"): 0.9, ("b", "c"): -0.9}
        with pytest.raises(NonPositiveSemiDefinite):
            simulate_sgp(legs, 500, seed=1, correlation_overrides=overrides, strict=True)


class TestResultPayload:
    def test_literal_field_names(self):
        result = simulate_sgp([_prob_leg("a", "p1", 0.55)], -120, seed=42, iterations=1000)
        payload = result.to_dict()
        for key in ("jointProb", "fairOdds", "evPct", "kellyFraction", "legs"):
            assert key in payload
        assert payload["legs"][0]["id"] == "a"
        assert payload["legs"][0]["baseHitProb"] == pytest.approx(0.55)
        assert payload["recommendedUnits"] == pytest.approx(round(result.kelly_fraction * 100, 2))
