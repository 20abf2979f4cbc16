"""Diversity and stability summaries of an integrated trajectory.

Diversity (evaluated on one state vector, extinct entries excluded):
  - richness: number of phenotypes (or species) above the extinction floor
  - Shannon:  H' = −Σ pᵢ ln pᵢ
  - Simpson:  1 − Σ pᵢ²

Stability:
  - final_window_variation: largest absolute change of any abundance over
    the last fraction of the horizon (max − min per phenotype, then max)
  - is_stable: variation below a threshold
  - leading_eigenvalue: largest real part of the Jacobian spectrum at a
    state, restricted to the surviving phenotypes. Neutral cycles of the
    uncoupled tournament give ≈ 0; imperfect memory pushes it negative.
"""

from __future__ import annotations

from typing import Dict, Optional

import numpy as np

from phenomem.dynamics import EXTINCTION_FLOOR, RightHandSide, tournament_rhs
from phenomem.types import DimensionMismatch, SpeciesStructure, Trajectory


# ═══════════════════════════════════════════════════════════════════════
# DIVERSITY
# ═══════════════════════════════════════════════════════════════════════

def richness(x: np.ndarray, floor: float = EXTINCTION_FLOOR) -> int:
    """Number of entries at or above the extinction floor."""
    return int(np.sum(np.asarray(x) >= floor))


def _proportions(x: np.ndarray, floor: float) -> np.ndarray:
    x = np.asarray(x, dtype=np.float64)
    x = x[x >= floor]
    if x.size == 0:
        return x
    return x / x.sum()


def shannon_diversity(x: np.ndarray, floor: float = EXTINCTION_FLOOR) -> float:
    p = _proportions(x, floor)
    if p.size == 0:
        return 0.0
    return float(-np.sum(p * np.log(p)))


def simpson_diversity(x: np.ndarray, floor: float = EXTINCTION_FLOOR) -> float:
    p = _proportions(x, floor)
    if p.size == 0:
        return 0.0
    return float(1.0 - np.sum(p ** 2))


def species_abundances(x: np.ndarray, structure: SpeciesStructure) -> np.ndarray:
    """Sum phenotype abundances within each species."""
    x = np.asarray(x, dtype=np.float64)
    if x.shape[-1] != structure.n_phenotypes:
        raise DimensionMismatch(
            f"expected {structure.n_phenotypes} phenotypes, got {x.shape[-1]}"
        )
    return structure.aggregate(x)


# ═══════════════════════════════════════════════════════════════════════
# STABILITY
# ═══════════════════════════════════════════════════════════════════════

def final_window_variation(trajectory: Trajectory, fraction: float = 0.1) -> float:
    """Max over phenotypes of (max − min) abundance in the final window."""
    states = trajectory.window(fraction).states
    return float(np.max(states.max(axis=0) - states.min(axis=0)))


def is_stable(
    trajectory: Trajectory,
    fraction: float = 0.1,
    threshold: float = 1e-3,
) -> bool:
    return final_window_variation(trajectory, fraction) < threshold


def numerical_jacobian(
    x: np.ndarray,
    H: np.ndarray,
    Q: np.ndarray,
    f: Optional[np.ndarray] = None,
    d: Optional[np.ndarray] = None,
    rhs: RightHandSide = tournament_rhs,
    eps: float = 1e-7,
) -> np.ndarray:
    """Central-difference Jacobian of ``rhs`` at x."""
    x = np.asarray(x, dtype=np.float64)
    n = x.size
    f = np.ones(n) if f is None else np.asarray(f, dtype=np.float64)
    d = np.ones(n) if d is None else np.asarray(d, dtype=np.float64)
    J = np.empty((n, n))
    for j in range(n):
        step = np.zeros(n)
        step[j] = eps
        J[:, j] = (rhs(x + step, H, Q, f, d) - rhs(x - step, H, Q, f, d)) / (2 * eps)
    return J


def leading_eigenvalue(
    x: np.ndarray,
    H: np.ndarray,
    Q: np.ndarray,
    f: Optional[np.ndarray] = None,
    d: Optional[np.ndarray] = None,
    rhs: RightHandSide = tournament_rhs,
    floor: float = EXTINCTION_FLOOR,
) -> float:
    """Largest real part of the Jacobian spectrum on the surviving subsystem.

    The direction normal to the simplex (uniform scaling of x) is not a
    dynamical direction; its eigenvalue is removed by projecting the
    Jacobian onto the tangent space Σ dxᵢ = 0.
    """
    x = np.asarray(x, dtype=np.float64)
    alive = x >= floor
    k = int(alive.sum())
    if k <= 1:
        return 0.0
    idx = np.flatnonzero(alive)
    sub = np.ix_(idx, idx)
    f_sub = None if f is None else np.asarray(f)[idx]
    d_sub = None if d is None else np.asarray(d)[idx]
    J = numerical_jacobian(
        x[idx] / x[idx].sum(), np.asarray(H)[sub], np.asarray(Q)[sub],
        f_sub, d_sub, rhs=rhs,
    )
    # Orthonormal basis of {v : Σ v = 0}
    basis = np.linalg.qr(np.eye(k) - 1.0 / k)[0][:, :k - 1]
    J_tangent = basis.T @ J @ basis
    return float(np.max(np.linalg.eigvals(J_tangent).real))


# ═══════════════════════════════════════════════════════════════════════
# SUMMARY
# ═══════════════════════════════════════════════════════════════════════

def summarize(
    trajectory: Trajectory,
    structure: Optional[SpeciesStructure] = None,
    final_fraction: float = 0.1,
    stability_threshold: float = 1e-3,
) -> Dict[str, float]:
    """Diversity and stability statistics of a trajectory's end state."""
    floor = trajectory.extinction_floor
    x = trajectory.final
    variation = final_window_variation(trajectory, final_fraction)
    summary = {
        'n_phenotypes': trajectory.n_phenotypes,
        'richness': richness(x, floor),
        'n_extinct': trajectory.n_extinct,
        'shannon': shannon_diversity(x, floor),
        'simpson': simpson_diversity(x, floor),
        'final_variation': variation,
        'stable': bool(variation < stability_threshold),
    }
    if structure is not None:
        totals = species_abundances(x, structure)
        summary['n_species'] = structure.n_species
        summary['species_richness'] = richness(totals, floor)
        summary['species_shannon'] = shannon_diversity(totals, floor)
    return summary
