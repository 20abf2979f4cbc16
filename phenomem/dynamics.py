"""Relative-abundance dynamics of the phenotype competition network.

Right-hand sides
----------------
Every right-hand side is a pure function ``rhs(x, H, Q, f, d) -> dx/dt``
and can be swapped into ``integrate``.

tournament_rhs (default) — encounter/replacement form:
  Phenotypes i and j meet at rate x_i x_j. The winner (i with probability
  H[i, j]) reproduces with fecundity f_i, its offspring's phenotype drawn
  from row i of Q; the loser dies at rate d_j.

      b = Qᵀ (f ∘ x ∘ H x)          birth flux into each phenotype
      δ = d ∘ x ∘ Hᵀ x              death flux out of each phenotype
      dx/dt = b − δ − x (1ᵀb − 1ᵀδ)

  The last term keeps 1ᵀx = 1 (growth in one share is paid for by the
  others). With Q = I and f = d = 1 it reduces exactly to the zero-sum
  replicator equation below, since H + Hᵀ = 1 implies 1ᵀb = 1ᵀδ = xᵀHx.

replicator_rhs — classical tournament replicator dynamics:
      dx_i/dt = x_i (P x)_i,   P = H − Hᵀ
  Ignores Q, f and d.

Integration
-----------
Output samples are taken at ``steps + 1`` evenly spaced times on
[0, horizon] (the initial state plus ``steps`` points after it). Each
interval between samples is solved with ``scipy.integrate.solve_ivp``:
  1. Non-finite states or a failed solver step raise IntegrationFailure.
  2. Every surviving phenotype carries a terminal event at
     ``extinction_floor``. When one fires, that phenotype is set to exactly
     0 at the crossing time and frozen for the rest of the run (no
     resurrection: its derivative is held at 0 and the flux it would have
     received is redistributed over the survivors); the solve restarts
     from there. Extinction therefore does not depend on ``steps``.
  3. At each sample time the survivors are renormalized to sum to 1.
     Drift larger than ``simplex_tol`` is corrected but reported with a UserWarning.
"""

from __future__ import annotations

import numbers
import warnings
from typing import Callable, Optional

import numpy as np
from scipy.integrate import solve_ivp

from phenomem.types import (
    DimensionMismatch,
    IntegrationFailure,
    InvalidInitialCondition,
    InvalidParameter,
    Trajectory,
)

RightHandSide = Callable[
    [np.ndarray, np.ndarray, np.ndarray, np.ndarray, np.ndarray], np.ndarray
]

EXTINCTION_FLOOR = 1e-10
SIMPLEX_TOL = 1e-6
VALID_METHODS = ('RK45', 'RK23', 'DOP853', 'Radau', 'BDF', 'LSODA')

# A total this far from 1 is a blow-up, not floating-point drift.
_DIVERGENCE_DRIFT = 0.5


class _NonFiniteDerivative(Exception):
    """Raised inside the solver callback to abort on NaN/inf growth rates."""

    def __init__(self, t: float):
        super().__init__(t)
        self.t = t


def _floor_crossing(i: int, floor: float):
    """Terminal solve_ivp event: phenotype i falls through the extinction floor."""
    def event(t, y):
        return y[i] - floor
    event.terminal = True
    event.direction = -1
    return event


# ═══════════════════════════════════════════════════════════════════════
# RIGHT-HAND SIDES
# ═══════════════════════════════════════════════════════════════════════

def tournament_rhs(
    x: np.ndarray,
    H: np.ndarray,
    Q: np.ndarray,
    f: np.ndarray,
    d: np.ndarray,
) -> np.ndarray:
    """Encounter/replacement dynamics with inheritance through Q."""
    births = Q.T @ (f * x * (H @ x))
    deaths = d * x * (H.T @ x)
    return births - deaths - x * (births.sum() - deaths.sum())


def replicator_rhs(
    x: np.ndarray,
    H: np.ndarray,
    Q: np.ndarray,
    f: np.ndarray,
    d: np.ndarray,
) -> np.ndarray:
    """Zero-sum replicator dynamics driven by H alone."""
    return x * ((H - H.T) @ x)


# ═══════════════════════════════════════════════════════════════════════
# INPUT CHECKS
# ═══════════════════════════════════════════════════════════════════════

def _as_square(name: str, M, n: int) -> np.ndarray:
    M = np.asarray(M, dtype=np.float64)
    if M.shape != (n, n):
        raise DimensionMismatch(
            f"{name} must have shape ({n}, {n}) to match x0, got {M.shape}"
        )
    if not np.all(np.isfinite(M)):
        raise InvalidParameter(f"{name} contains non-finite entries")
    return M


def _as_rates(name: str, v, n: int) -> np.ndarray:
    if v is None:
        return np.ones(n)
    v = np.asarray(v, dtype=np.float64)
    if v.shape != (n,):
        raise DimensionMismatch(
            f"{name} must have shape ({n},) to match x0, got {v.shape}"
        )
    if not np.all(np.isfinite(v)) or np.any(v <= 0.0):
        raise InvalidParameter(f"{name} must be finite and strictly positive")
    return v


def check_simplex(x0, tol: float = SIMPLEX_TOL) -> np.ndarray:
    """Validate that x0 lies on the simplex and return it as a clean copy.

    Entries in [−tol, 0) are clipped to 0 and the vector is rescaled to
    sum to exactly 1.

    Raises:
        InvalidInitialCondition: If x0 is not a non-empty finite vector with
            non-negative entries summing to 1 within ``tol``.
    """
    x = np.array(x0, dtype=np.float64)
    if x.ndim != 1 or x.size == 0:
        raise InvalidInitialCondition(
            f"x0 must be a non-empty 1-D vector, got shape {x.shape}"
        )
    if not np.all(np.isfinite(x)):
        raise InvalidInitialCondition("x0 contains non-finite entries")
    if np.any(x < -tol):
        raise InvalidInitialCondition(
            f"x0 has negative entries (min {x.min():.3g})"
        )
    total = x.sum()
    if abs(total - 1.0) > tol:
        raise InvalidInitialCondition(
            f"x0 must sum to 1 within {tol:g}, sums to {total:.12g}"
        )
    x = np.clip(x, 0.0, None)
    return x / x.sum()


def _check_horizon(horizon, steps) -> None:
    if isinstance(horizon, bool) or not isinstance(horizon, numbers.Real):
        raise InvalidParameter(f"horizon must be a real number, got {horizon!r}")
    if not np.isfinite(horizon) or horizon <= 0:
        raise InvalidParameter(f"horizon must be positive and finite, got {horizon}")
    if isinstance(steps, bool) or not isinstance(steps, (int, np.integer)):
        raise InvalidParameter(f"steps must be an integer, got {steps!r}")
    if steps < 1:
        raise InvalidParameter(f"steps must be >= 1, got {steps}")


# ═══════════════════════════════════════════════════════════════════════
# INTEGRATOR
# ═══════════════════════════════════════════════════════════════════════

def integrate(
    x0,
    H,
    Q,
    f=None,
    d=None,
    horizon: float = 1000.0,
    steps: int = 1000,
    rhs: RightHandSide = tournament_rhs,
    method: str = 'LSODA',
    rtol: float = 1e-8,
    atol: float = 1e-12,
    max_step: Optional[float] = None,
    extinction_floor: float = EXTINCTION_FLOOR,
    simplex_tol: float = SIMPLEX_TOL,
) -> Trajectory:
    """Integrate the abundance dynamics from x0 over [0, horizon].

    Args:
        x0: Initial relative abundances (on the simplex).
        H: (N, N) dominance matrix.
        Q: (N, N) memory matrix.
        f: Per-phenotype fecundity multipliers (None = all ones).
        d: Per-phenotype death-rate multipliers (None = all ones).
        horizon: End time (> 0).
        steps: Number of output intervals; steps + 1 samples are returned.
        rhs: Right-hand side ``rhs(x, H, Q, f, d)``.
        method: ``solve_ivp`` method name.
        rtol, atol: Solver tolerances.
        max_step: Optional cap on the solver's internal step size.
        extinction_floor: Abundance below which a phenotype is extinct.
        simplex_tol: Allowed deviation of 1ᵀx from 1 (input and drift).

    Returns:
        Trajectory with times (steps+1,) and states (steps+1, N).

    Raises:
        InvalidInitialCondition: x0 not on the simplex.
        DimensionMismatch: H, Q, f or d disagree with len(x0).
        InvalidParameter: Bad horizon, steps, method, tolerances or rates.
        IntegrationFailure: Solver failure or non-finite / divergent state.
    """
    if extinction_floor <= 0 or simplex_tol <= 0 or rtol <= 0 or atol <= 0:
        raise InvalidParameter(
            "extinction_floor, simplex_tol, rtol and atol must be positive"
        )
    x = check_simplex(x0, tol=simplex_tol)
    n = x.size
    H = _as_square('H', H, n)
    Q = _as_square('Q', Q, n)
    f = _as_rates('f', f, n)
    d = _as_rates('d', d, n)
    _check_horizon(horizon, steps)
    if method not in VALID_METHODS:
        raise InvalidParameter(f"method must be one of {VALID_METHODS}, got {method!r}")

    times = np.linspace(0.0, float(horizon), int(steps) + 1)
    states = np.empty((times.size, n))
    extinction_times = np.full(n, np.nan)

    alive = x >= extinction_floor
    x[~alive] = 0.0
    extinction_times[~alive] = 0.0
    x /= x.sum()
    states[0] = x

    if n == 1:
        states[:] = x
        return Trajectory(
            times=times,
            states=states,
            extinct=~alive,
            extinction_times=extinction_times,
            extinction_floor=extinction_floor,
        )

    def fun(t, y):
        y = np.where(alive, y, 0.0)
        dy = rhs(y, H, Q, f, d)
        dy = np.where(alive, dy, 0.0)
        if not np.all(np.isfinite(dy)):
            raise _NonFiniteDerivative(t)
        # Flux aimed at frozen phenotypes is spread back over the survivors.
        return dy - y * dy.sum()

    solver_kwargs = dict(method=method, rtol=rtol, atol=atol)
    if max_step is not None:
        solver_kwargs['max_step'] = max_step

    def solve(t0, t1, y0):
        events = [_floor_crossing(i, extinction_floor) for i in np.flatnonzero(alive)]
        try:
            sol = solve_ivp(fun, (t0, t1), y0, events=events, **solver_kwargs)
        except _NonFiniteDerivative as exc:
            raise IntegrationFailure(
                f"non-finite growth rates at t = {exc.t:g}"
            ) from exc
        if not sol.success:
            raise IntegrationFailure(
                f"solver failed on [{t0:g}, {t1:g}]: {sol.message}"
            )
        y = sol.y[:, -1]
        if not np.all(np.isfinite(y)):
            raise IntegrationFailure(f"non-finite abundances at t = {sol.t[-1]:g}")
        crossed = np.zeros(n, dtype=bool)
        for i, ev in zip(np.flatnonzero(alive), sol.t_events):
            crossed[i] = ev.size > 0
        return sol.t[-1], y, crossed

    for k in range(1, times.size):
        t, y = times[k - 1], x
        # Restart at every floor crossing so extinction is exact in time
        while True:
            t, y, crossed = solve(t, times[k], y)
            newly_extinct = alive & (crossed | (y < extinction_floor))
            if np.any(newly_extinct):
                alive = alive & ~newly_extinct
                extinction_times[newly_extinct] = t
            y = np.where(alive, y, 0.0)
            if t >= times[k] or not alive.any():
                break
            y = y / y.sum()

        total = y.sum()
        drift = abs(total - 1.0)
        if not alive.any() or drift > _DIVERGENCE_DRIFT:
            raise IntegrationFailure(
                f"abundances diverged at t = {times[k]:g} (sum = {total:.6g})"
            )
        if drift > simplex_tol:
            warnings.warn(
                f"renormalized simplex drift of {drift:.3g} at t = {times[k]:g}",
                UserWarning,
                stacklevel=2,
            )
        x = y / total
        states[k] = x

    return Trajectory(
        times=times,
        states=states,
        extinct=~np.isnan(extinction_times),
        extinction_times=extinction_times,
        extinction_floor=extinction_floor,
    )
