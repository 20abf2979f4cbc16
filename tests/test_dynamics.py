"""Tests for phenomem.dynamics — right-hand sides and the integrator.

Numerical behaviour is checked on cases with known answers:
  - N = 2 tournament: logistic closed form
  - A phenotype that beats everyone excludes the rest
  - A rock-paper-scissors species: neutral cycles with perfect memory,
    global convergence to (1/3, 1/3, 1/3) with imperfect memory
"""

import warnings

import numpy as np
import pytest

from phenomem.dynamics import (
    check_simplex,
    integrate,
    replicator_rhs,
    tournament_rhs,
)
from phenomem.matrices import build_dominance_matrix, build_memory_matrix
from phenomem.types import (
    DimensionMismatch,
    IntegrationFailure,
    InvalidInitialCondition,
    InvalidParameter,
)

H2 = np.array([[0.5, 0.8],
               [0.2, 0.5]])

# Each phenotype beats the next with probability 0.9 (0 > 1 > 2 > 0)
H_RPS = np.array([[0.5, 0.9, 0.1],
                  [0.1, 0.5, 0.9],
                  [0.9, 0.1, 0.5]])

# Same cycle with near-certain wins, so orbits graze the simplex corners
H_RPS_STRONG = np.array([[0.5, 0.99, 0.01],
                         [0.01, 0.5, 0.99],
                         [0.99, 0.01, 0.5]])

# Phenotype 0 beats everyone
H_DOMINANT = np.array([[0.5, 0.9, 0.9],
                       [0.1, 0.5, 0.6],
                       [0.1, 0.4, 0.5]])


def _random_case(m=(2, 3, 3, 4, 1), tau=0.5, seed=0):
    rng = np.random.default_rng(seed)
    H = build_dominance_matrix(list(m), tau, rng=rng)
    x0 = rng.dirichlet(np.ones(sum(m)))
    return H, x0


# ── Right-hand sides ──────────────────────────────────────────────────

class TestRightHandSides:
    def test_identity_memory_reduces_to_replicator(self):
        H, x = _random_case(seed=3)
        n = x.size
        ones = np.ones(n)
        np.testing.assert_allclose(
            tournament_rhs(x, H, np.eye(n), ones, ones),
            replicator_rhs(x, H, np.eye(n), ones, ones),
            atol=1e-14,
        )

    @pytest.mark.parametrize('p', [1.0, 0.85, 0.3])
    def test_zero_sum(self, p):
        H, x = _random_case(seed=4)
        m = [2, 3, 3, 4, 1]
        Q = build_memory_matrix(m, p)
        rng = np.random.default_rng(8)
        f = rng.uniform(0.9, 1.1, x.size)
        d = rng.uniform(0.9, 1.1, x.size)
        assert tournament_rhs(x, H, Q, f, d).sum() == pytest.approx(0.0, abs=1e-14)

    def test_replicator_two_phenotypes(self):
        x = np.array([0.3, 0.7])
        dx = replicator_rhs(x, H2, np.eye(2), np.ones(2), np.ones(2))
        np.testing.assert_allclose(dx, [0.6 * 0.3 * 0.7, -0.6 * 0.3 * 0.7])

    def test_uniform_state_is_equilibrium_of_rps(self):
        x = np.full(3, 1 / 3)
        Q = build_memory_matrix([3], 0.85)
        np.testing.assert_allclose(
            tournament_rhs(x, H_RPS, Q, np.ones(3), np.ones(3)), 0.0, atol=1e-15
        )


# ── Integrator: known solutions ───────────────────────────────────────

class TestClosedForm:
    @pytest.mark.parametrize('rhs', [tournament_rhs, replicator_rhs])
    def test_two_phenotype_logistic(self, rhs):
        """dx₁/dt = 0.6 x₁ (1 − x₁) for H = [[.5, .8], [.2, .5]]."""
        x0 = np.array([0.3, 0.7])
        traj = integrate(x0, H2, np.eye(2), horizon=20.0, steps=40, rhs=rhs)
        t = traj.times
        expected = 1.0 / (1.0 + (0.7 / 0.3) * np.exp(-0.6 * t))
        np.testing.assert_allclose(traj.states[:, 0], expected, atol=1e-6)
        np.testing.assert_allclose(traj.states.sum(axis=1), 1.0, atol=1e-12)

    def test_sampling_grid(self):
        traj = integrate([0.5, 0.5], H2, np.eye(2), horizon=10.0, steps=5)
        np.testing.assert_allclose(traj.times, [0, 2, 4, 6, 8, 10])
        assert traj.states.shape == (6, 2)
        np.testing.assert_array_equal(traj.states[0], [0.5, 0.5])

    def test_single_phenotype_is_constant(self):
        traj = integrate([1.0], [[0.5]], [[1.0]], horizon=100.0, steps=10)
        assert traj.n_samples == 11
        np.testing.assert_array_equal(traj.states, np.ones((11, 1)))
        assert traj.n_extinct == 0


# ── Integrator: extinction ────────────────────────────────────────────

class TestExtinction:
    def test_dominant_phenotype_excludes_others(self):
        traj = integrate([0.2, 0.4, 0.4], H_DOMINANT, np.eye(3),
                         horizon=200.0, steps=200)
        np.testing.assert_array_equal(traj.extinct, [False, True, True])
        np.testing.assert_array_equal(traj.final, [1.0, 0.0, 0.0])
        assert np.isnan(traj.extinction_times[0])
        assert np.all(traj.extinction_times[1:] > 0)

    def test_no_resurrection(self):
        traj = integrate([0.2, 0.4, 0.4], H_DOMINANT, np.eye(3),
                         horizon=200.0, steps=200)
        for i in np.flatnonzero(traj.extinct):
            after = traj.times >= traj.extinction_times[i]
            assert np.all(traj.states[after, i] == 0.0)

    def test_memory_inflow_does_not_revive(self):
        """A zero phenotype stays at zero even when Q feeds it offspring."""
        Q = build_memory_matrix([2], 0.5)
        H = np.array([[0.5, 0.6], [0.4, 0.5]])
        traj = integrate([1.0, 0.0], H, Q, horizon=50.0, steps=10)
        np.testing.assert_array_equal(traj.states[:, 1], 0.0)
        np.testing.assert_allclose(traj.states[:, 0], 1.0)
        assert traj.extinct[1]
        assert traj.extinction_times[1] == 0.0

    def test_decline_is_monotone_for_dominated_phenotype(self):
        traj = integrate([0.2, 0.4, 0.4], H_DOMINANT, np.eye(3),
                         horizon=50.0, steps=100)
        x2 = traj.states[:, 2]
        assert np.all(np.diff(x2) <= 0.0)

    def test_extinction_independent_of_sampling(self):
        """Dips below the floor between samples still count as extinction."""
        x0 = [1.0 - 2e-7, 1e-7, 1e-7]
        runs = [
            integrate(x0, H_RPS_STRONG, np.eye(3), horizon=3000.0, steps=steps)
            for steps in (2, 20, 300)
        ]
        for traj in runs:
            np.testing.assert_array_equal(traj.extinct, [True, True, False])
            np.testing.assert_array_equal(traj.final, [0.0, 0.0, 1.0])
        for traj in runs[1:]:
            np.testing.assert_allclose(
                traj.extinction_times, runs[0].extinction_times, rtol=1e-2,
            )

    def test_extinction_time_between_samples(self):
        traj = integrate([1.0 - 2e-7, 1e-7, 1e-7], H_RPS_STRONG, np.eye(3),
                         horizon=3000.0, steps=2)
        # Phenotype 1 decays at rate 0.98 from 1e-7 to the 1e-10 floor
        assert traj.extinction_times[1] == pytest.approx(np.log(1e3) / 0.98, rel=0.05)
        assert traj.extinction_times[1] < traj.extinction_times[0] < traj.times[1]


# ── Integrator: memory and stability ──────────────────────────────────

class TestRockPaperScissors:
    def test_perfect_memory_cycles(self):
        traj = integrate([0.5, 0.3, 0.2], H_RPS, np.eye(3),
                         horizon=500.0, steps=500)
        assert traj.n_extinct == 0
        final = traj.window(0.1).states
        assert np.max(final.max(axis=0) - final.min(axis=0)) > 0.05
        np.testing.assert_allclose(traj.states.sum(axis=1), 1.0, atol=1e-9)

    def test_imperfect_memory_converges(self):
        Q = build_memory_matrix([3], 0.85)
        traj = integrate([0.5, 0.3, 0.2], H_RPS, Q, horizon=500.0, steps=500)
        assert traj.n_extinct == 0
        assert np.all(traj.final > traj.extinction_floor)
        final = traj.window(0.1).states
        assert np.max(final.max(axis=0) - final.min(axis=0)) < 1e-3
        np.testing.assert_allclose(traj.final, [1 / 3] * 3, atol=1e-4)

    def test_demography_keeps_simplex(self):
        rng = np.random.default_rng(3)
        f = rng.uniform(0.9, 1.1, 3)
        d = rng.uniform(0.9, 1.1, 3)
        Q = build_memory_matrix([3], 0.85)
        traj = integrate([0.5, 0.3, 0.2], H_RPS, Q, f, d, horizon=500.0, steps=500)
        np.testing.assert_allclose(traj.states.sum(axis=1), 1.0, atol=1e-9)
        assert np.all(traj.states >= 0.0)
        assert traj.n_extinct <= 1


# ── Integrator: random networks ───────────────────────────────────────

class TestRandomNetwork:
    def test_simplex_preserved(self):
        H, x0 = _random_case(seed=1)
        traj = integrate(x0, H, np.eye(x0.size), horizon=200.0, steps=200)
        np.testing.assert_allclose(traj.states.sum(axis=1), 1.0, atol=1e-9)
        assert np.all(traj.states >= 0.0)

    def test_deterministic(self):
        H, x0 = _random_case(seed=2)
        Q = build_memory_matrix([2, 3, 3, 4, 1], 0.85)
        a = integrate(x0, H, Q, horizon=100.0, steps=50)
        b = integrate(x0, H, Q, horizon=100.0, steps=50)
        np.testing.assert_array_equal(a.states, b.states)
        np.testing.assert_array_equal(a.extinct, b.extinct)

    def test_perfect_memory_loses_phenotypes(self):
        """Thirteen uncoupled phenotypes do not all coexist."""
        H, x0 = _random_case(seed=42)
        traj = integrate(x0, H, np.eye(x0.size), horizon=5000.0, steps=500)
        assert traj.n_extinct >= 1
        for i in np.flatnonzero(traj.extinct):
            after = traj.times >= traj.extinction_times[i]
            assert np.all(traj.states[after, i] == 0.0)
        np.testing.assert_allclose(traj.states.sum(axis=1), 1.0, atol=1e-9)

    @pytest.mark.parametrize('method', ['RK45', 'DOP853', 'LSODA'])
    def test_methods_agree(self, method):
        H, x0 = _random_case(m=(2, 2), seed=6)
        ref = integrate(x0, H, np.eye(4), horizon=20.0, steps=10, method='Radau')
        other = integrate(x0, H, np.eye(4), horizon=20.0, steps=10, method=method)
        np.testing.assert_allclose(other.states, ref.states, atol=1e-6)

    def test_no_warning_for_ordinary_run(self):
        H, x0 = _random_case(seed=9)
        with warnings.catch_warnings():
            warnings.simplefilter('error', UserWarning)
            integrate(x0, H, np.eye(x0.size), horizon=50.0, steps=25)


# ── Input validation & failures ───────────────────────────────────────

class TestValidation:
    @pytest.mark.parametrize('x0', [
        [0.5, 0.6],            # sums to 1.1
        [1.2, -0.2],           # negative entry
        [np.nan, 1.0],         # non-finite
        [[0.5, 0.5]],          # not 1-D
        [],                    # empty
    ])
    def test_invalid_initial_condition(self, x0):
        with pytest.raises(InvalidInitialCondition):
            integrate(x0, H2, np.eye(2), horizon=1.0, steps=1)

    def test_tiny_negative_is_clipped(self):
        x = check_simplex([1.0 + 1e-9, -1e-9])
        np.testing.assert_array_equal(x, [1.0, 0.0])

    def test_h_shape_mismatch(self):
        with pytest.raises(DimensionMismatch, match="H"):
            integrate([0.5, 0.5], np.full((3, 3), 0.5), np.eye(2), horizon=1.0, steps=1)

    def test_q_shape_mismatch(self):
        with pytest.raises(DimensionMismatch, match="Q"):
            integrate([0.5, 0.5], H2, np.eye(3), horizon=1.0, steps=1)

    @pytest.mark.parametrize('which', ['f', 'd'])
    def test_rate_shape_mismatch(self, which):
        kwargs = {which: np.ones(3)}
        with pytest.raises(DimensionMismatch, match=which):
            integrate([0.5, 0.5], H2, np.eye(2), horizon=1.0, steps=1, **kwargs)

    def test_non_positive_rates(self):
        with pytest.raises(InvalidParameter):
            integrate([0.5, 0.5], H2, np.eye(2), f=[1.0, 0.0], horizon=1.0, steps=1)

    @pytest.mark.parametrize('horizon,steps', [
        (0.0, 10), (-1.0, 10), (float('inf'), 10), (10.0, 0), (10.0, 2.5),
    ])
    def test_invalid_horizon_or_steps(self, horizon, steps):
        with pytest.raises(InvalidParameter):
            integrate([0.5, 0.5], H2, np.eye(2), horizon=horizon, steps=steps)

    def test_unknown_method(self):
        with pytest.raises(InvalidParameter, match="method"):
            integrate([0.5, 0.5], H2, np.eye(2), horizon=1.0, steps=1, method='Euler')

    def test_non_finite_rhs_raises_integration_failure(self):
        def broken(x, H, Q, f, d):
            return np.full_like(x, np.nan)

        with pytest.raises(IntegrationFailure):
            integrate([0.5, 0.5], H2, np.eye(2), horizon=1.0, steps=1, rhs=broken)

    @pytest.mark.parametrize('name', ['simplex_tol', 'extinction_floor', 'rtol', 'atol'])
    @pytest.mark.parametrize('value', [0.0, -1e-6])
    def test_non_positive_tolerances(self, name, value):
        with pytest.raises(InvalidParameter, match=name):
            integrate([0.5, 0.5], H2, np.eye(2), horizon=1.0, steps=1, **{name: value})
