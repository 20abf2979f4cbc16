"""phenomem: phenotypic memory in tournament competition networks.

Numerical core of a reproducibility notebook for an ecological-modeling
manuscript:
  - Competitive-dominance (tournament) matrix H among phenotypes grouped
    into species, with tunable within-species correlation τ
  - Phenotype-inheritance (memory) matrix Q with memory parameter p
  - Replicator-type relative-abundance dynamics driven by H, Q and
    optional fecundity / death-rate vectors f, d
  - Diversity and stability summaries of the resulting trajectories
"""

__version__ = "0.1.0"

from phenomem.types import (  # noqa: F401
    DimensionMismatch,
    IntegrationFailure,
    InvalidInitialCondition,
    InvalidParameter,
    PhenomemError,
    SpeciesStructure,
    Trajectory,
)
from phenomem.matrices import build_dominance_matrix, build_memory_matrix  # noqa: F401
from phenomem.dynamics import integrate, replicator_rhs, tournament_rhs  # noqa: F401
