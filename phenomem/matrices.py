"""Structured interaction matrices for the phenotype competition network.

Two builders:
  - build_dominance_matrix: H (N×N), H[i, j] = probability that phenotype
    i beats phenotype j in a pairwise encounter. Tournament structure:
    H[i, j] + H[j, i] = 1 for i ≠ j, H[i, i] = 0.5.
  - build_memory_matrix: Q (N×N, row-stochastic), Q[i, j] = probability
    that a reproduction event of phenotype i yields phenotype j.

Within-species correlation of H (τ):
  Every unordered pair (i < j) gets an independent base draw u_ij ~ U(0,1).
  Same-species pairs are blended with one shared draw c_s ~ U(0,1) per
  species:  H[i, j] = τ·c_s + (1 − τ)·u_ij.
  τ = 1 collapses all within-species entries onto c_s; τ = 0 leaves them
  as independent as across-species entries.

Memory redistribution (p):
  Row i keeps mass p on the diagonal and spreads 1 − p over other
  phenotypes. A fraction ``leak`` of that 1 − p is shared equally by all
  phenotypes outside the parent's species; the rest goes to species-mates:
    weighting="uniform":  equal share to each species-mate
    weighting="distance": share ∝ decay^(|i − j| − 1), i.e. adjacent
                          phenotypes in the block receive the most
  A species with a single phenotype has no species-mates, so its
  within-species share stays on the diagonal. When m has a single species
  there is nowhere to leak to and all of 1 − p stays within it.

  Any leak > 0 gives every phenotype a positive birth inflow, so under
  p < 1 no phenotype (and no whole species) can be driven to zero. With
  leak = 0, Q is block-diagonal and a species can still be excluded by
  the others.
"""

from __future__ import annotations

import numbers
from typing import Sequence, Union

import numpy as np

from phenomem.rng import RandomSource, as_generator
from phenomem.types import InvalidParameter, SpeciesStructure

SpeciesCounts = Union[Sequence[int], SpeciesStructure]

VALID_WEIGHTINGS = ('uniform', 'distance')

# Row-sum tolerance for Q
ROW_SUM_TOL = 1e-9

# Share of 1 − p sent across species; must stay a minority of it
DEFAULT_LEAK = 0.01
MAX_LEAK = 0.5


def as_structure(m: SpeciesCounts) -> SpeciesStructure:
    """Accept either raw species counts or an existing SpeciesStructure."""
    if isinstance(m, SpeciesStructure):
        return m
    return SpeciesStructure.from_counts(m)


def _check_unit_interval(name: str, value) -> float:
    if isinstance(value, bool) or not isinstance(value, numbers.Real):
        raise InvalidParameter(f"{name} must be a real number, got {value!r}")
    value = float(value)
    if not (0.0 <= value <= 1.0):  # also rejects NaN
        raise InvalidParameter(f"{name} must be in [0, 1], got {value}")
    return value


# ═══════════════════════════════════════════════════════════════════════
# DOMINANCE MATRIX H
# ═══════════════════════════════════════════════════════════════════════

def build_dominance_matrix(
    m: SpeciesCounts,
    tau: float,
    rng: RandomSource = None,
) -> np.ndarray:
    """Build the competitive-dominance (tournament) matrix H.

    Draw order is fixed (all pair draws in row-major upper-triangle order,
    then one shared draw per species), so a seeded generator reproduces H
    exactly.

    Args:
        m: Species counts [m_1, ..., m_S] or a SpeciesStructure.
        tau: Within-species correlation in [0, 1].
        rng: Generator, seed, or None.

    Returns:
        (N, N) float64 array with H + Hᵀ = 1 off the diagonal and 0.5 on it.

    Raises:
        InvalidParameter: If tau is outside [0, 1] or m is malformed.
    """
    structure = as_structure(m)
    tau = _check_unit_interval('tau', tau)
    gen = as_generator(rng)

    n = structure.n_phenotypes
    rows, cols = np.triu_indices(n, k=1)
    base = gen.random(len(rows))
    shared = gen.random(structure.n_species)

    sp_i = structure.species_of[rows]
    same = sp_i == structure.species_of[cols]
    values = np.where(same, tau * shared[sp_i] + (1.0 - tau) * base, base)

    H = np.full((n, n), 0.5)
    H[rows, cols] = values
    H[cols, rows] = 1.0 - values
    return H


def is_tournament_matrix(H: np.ndarray, atol: float = 1e-12) -> bool:
    """True if H is square, within [0, 1], and H + Hᵀ = 1 off the diagonal."""
    H = np.asarray(H, dtype=np.float64)
    if H.ndim != 2 or H.shape[0] != H.shape[1]:
        return False
    if np.any(H < 0.0) or np.any(H > 1.0):
        return False
    complement = H + H.T
    off = ~np.eye(H.shape[0], dtype=bool)
    return bool(np.allclose(complement[off], 1.0, rtol=0.0, atol=atol))


# ═══════════════════════════════════════════════════════════════════════
# MEMORY MATRIX Q
# ═══════════════════════════════════════════════════════════════════════

def _redistribution_weights(k: int, weighting: str, decay: float) -> np.ndarray:
    """(k, k) row-normalized weights with zero diagonal, for one species block."""
    idx = np.arange(k)
    dist = np.abs(idx[:, None] - idx[None, :])
    if weighting == 'uniform':
        W = (dist > 0).astype(np.float64)
    else:
        W = np.where(dist > 0, decay ** (dist - 1.0), 0.0)
    return W / W.sum(axis=1, keepdims=True)


def build_memory_matrix(
    m: SpeciesCounts,
    p: float,
    weighting: str = 'uniform',
    decay: float = 0.5,
    leak: float = DEFAULT_LEAK,
) -> np.ndarray:
    """Build the phenotype-inheritance (memory) matrix Q.

    Args:
        m: Species counts [m_1, ..., m_S] or a SpeciesStructure.
        p: Phenotypic memory in [0, 1]; p = 1 gives the exact identity.
        weighting: "uniform" or "distance" (see module docstring).
        decay: Geometric decay per step of index distance, in (0, 1].
            Only used with weighting="distance".
        leak: Fraction of the redistributed mass 1 − p that goes to other
            species, in [0, MAX_LEAK). 0 makes Q block-diagonal.

    Returns:
        (N, N) row-stochastic float64 array. At most (1 − p)·leak of each
        row lies outside the parent's species.

    Raises:
        InvalidParameter: If p, decay or leak is out of range, weighting
            is unknown, or m is malformed.
    """
    structure = as_structure(m)
    p = _check_unit_interval('p', p)
    if weighting not in VALID_WEIGHTINGS:
        raise InvalidParameter(
            f"weighting must be one of {VALID_WEIGHTINGS}, got {weighting!r}"
        )
    decay = _check_unit_interval('decay', decay)
    if decay == 0.0:
        raise InvalidParameter("decay must be in (0, 1], got 0.0")

    leak = _check_unit_interval('leak', leak)
    if leak >= MAX_LEAK:
        raise InvalidParameter(f"leak must be below {MAX_LEAK}, got {leak}")

    n = structure.n_phenotypes
    if p == 1.0:
        return np.eye(n)

    same = structure.same_species_mask()
    Q = np.zeros((n, n))
    for block in structure.slices():
        k = block.stop - block.start
        within = 1.0 - p
        if k < n and leak > 0.0:
            Q[block, :] = np.where(same[block], 0.0, within * leak / (n - k))
            within -= within * leak
        if k == 1:
            Q[block, block] = p + within
        else:
            W = _redistribution_weights(k, weighting, decay)
            Q[block, block] = p * np.eye(k) + within * W
    return Q


def is_row_stochastic(Q: np.ndarray, atol: float = ROW_SUM_TOL) -> bool:
    """True if Q is square, within [0, 1], and every row sums to 1 ± atol."""
    Q = np.asarray(Q, dtype=np.float64)
    if Q.ndim != 2 or Q.shape[0] != Q.shape[1]:
        return False
    if np.any(Q < 0.0) or np.any(Q > 1.0):
        return False
    return bool(np.all(np.abs(Q.sum(axis=1) - 1.0) <= atol))


def cross_species_leakage(Q: np.ndarray, m: SpeciesCounts) -> float:
    """Largest per-row probability mass Q sends outside the parent's species."""
    structure = as_structure(m)
    outside = np.where(structure.same_species_mask(), 0.0, np.asarray(Q))
    return float(outside.sum(axis=1).max())
