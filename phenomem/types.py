"""Core data types for phenomem.

This module is the SINGLE SOURCE OF TRUTH for:
  - SpeciesStructure: phenotype → species index derived once from the
    species counts m = [m_1, ..., m_S]
  - Trajectory: sampled (time, state) output of the integrator
  - The error taxonomy shared by builders, integrator and config

All modules import these types from here.

Phenotype indexing:
  Species occupy contiguous blocks of the phenotype index space, in the
  order given by m. With m = [2, 3] phenotypes 0–1 belong to species 0
  and phenotypes 2–4 to species 1.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Sequence

import numpy as np


# ═══════════════════════════════════════════════════════════════════════
# ERRORS
# ═══════════════════════════════════════════════════════════════════════

class PhenomemError(Exception):
    """Base class for all phenomem errors."""


class InvalidParameter(PhenomemError, ValueError):
    """Out-of-range τ or p, or malformed species counts."""


class DimensionMismatch(PhenomemError, ValueError):
    """H, Q, x0, f or d sizes disagree."""


class InvalidInitialCondition(PhenomemError, ValueError):
    """Initial state is not on the simplex."""


class IntegrationFailure(PhenomemError, RuntimeError):
    """Solver diverged, produced non-finite values, or failed to step."""


# ═══════════════════════════════════════════════════════════════════════
# SPECIES STRUCTURE
# ═══════════════════════════════════════════════════════════════════════

@dataclass(frozen=True, eq=False)
class SpeciesStructure:
    """Partition of N phenotypes into S contiguous species blocks.

    Build with ``SpeciesStructure.from_counts(m)``; the constructor does
    not validate.
    """
    counts: tuple
    species_of: np.ndarray = field(repr=False)   # (N,) int, phenotype → species
    offsets: np.ndarray = field(repr=False)      # (S+1,) block boundaries

    @classmethod
    def from_counts(cls, counts: Sequence[int]) -> 'SpeciesStructure':
        """Validate m and derive the phenotype → species index.

        Raises:
            InvalidParameter: If m is empty, or any m_s is not a positive integer.
        """
        counts = list(counts)
        if len(counts) == 0:
            raise InvalidParameter("species counts must be non-empty")
        for s, m_s in enumerate(counts):
            if isinstance(m_s, bool) or not isinstance(m_s, (int, np.integer)):
                raise InvalidParameter(
                    f"species counts must be integers, got {m_s!r} for species {s}"
                )
            if m_s < 1:
                raise InvalidParameter(
                    f"every species needs at least one phenotype, "
                    f"got m[{s}] = {m_s}"
                )
        counts = tuple(int(c) for c in counts)
        offsets = np.concatenate([[0], np.cumsum(counts)]).astype(np.int64)
        species_of = np.repeat(np.arange(len(counts), dtype=np.int64), counts)
        species_of.setflags(write=False)
        offsets.setflags(write=False)
        return cls(counts=counts, species_of=species_of, offsets=offsets)

    @property
    def n_species(self) -> int:
        return len(self.counts)

    @property
    def n_phenotypes(self) -> int:
        return int(self.offsets[-1])

    def members(self, species: int) -> np.ndarray:
        """Phenotype indices belonging to one species."""
        return np.arange(self.offsets[species], self.offsets[species + 1])

    def slices(self) -> List[slice]:
        """One slice per species into any length-N phenotype array."""
        return [
            slice(int(self.offsets[s]), int(self.offsets[s + 1]))
            for s in range(self.n_species)
        ]

    def same_species_mask(self) -> np.ndarray:
        """(N, N) bool: True where phenotypes i and j share a species."""
        return self.species_of[:, None] == self.species_of[None, :]

    def aggregate(self, values: np.ndarray) -> np.ndarray:
        """Sum a (..., N) phenotype array into (..., S) species totals."""
        values = np.asarray(values, dtype=np.float64)
        return np.add.reduceat(values, self.offsets[:-1], axis=-1)


# ═══════════════════════════════════════════════════════════════════════
# TRAJECTORY
# ═══════════════════════════════════════════════════════════════════════

@dataclass(eq=False)
class Trajectory:
    """Integrator output. Arrays are read-only after construction.

    times[k] is the k-th sample time and states[k] the abundance vector
    at that time. ``extinct`` marks phenotypes that crossed the
    extinction floor at some point; ``extinction_times`` holds the first
    sample time at which each one was found below the floor (NaN for
    survivors).
    """
    times: np.ndarray                 # (T,)
    states: np.ndarray                # (T, N)
    extinct: np.ndarray               # (N,) bool
    extinction_times: np.ndarray      # (N,) float, NaN = never extinct
    extinction_floor: float = 1e-10

    def __post_init__(self):
        for arr in (self.times, self.states, self.extinct, self.extinction_times):
            arr.setflags(write=False)

    @property
    def n_samples(self) -> int:
        return len(self.times)

    @property
    def n_phenotypes(self) -> int:
        return self.states.shape[1]

    @property
    def final(self) -> np.ndarray:
        return self.states[-1]

    @property
    def n_extinct(self) -> int:
        return int(np.sum(self.extinct))

    def window(self, fraction: float) -> 'Trajectory':
        """Samples from the last ``fraction`` of the time horizon."""
        if not 0.0 < fraction <= 1.0:
            raise InvalidParameter(f"fraction must be in (0, 1], got {fraction}")
        t0, t1 = self.times[0], self.times[-1]
        start = t1 - fraction * (t1 - t0)
        keep = self.times >= start
        return Trajectory(
            times=self.times[keep].copy(),
            states=self.states[keep].copy(),
            extinct=self.extinct.copy(),
            extinction_times=self.extinction_times.copy(),
            extinction_floor=self.extinction_floor,
        )

    def species_totals(self, structure: SpeciesStructure) -> np.ndarray:
        """(T, S) species-level relative abundances."""
        if structure.n_phenotypes != self.n_phenotypes:
            raise DimensionMismatch(
                f"structure has {structure.n_phenotypes} phenotypes, "
                f"trajectory has {self.n_phenotypes}"
            )
        return structure.aggregate(self.states)
