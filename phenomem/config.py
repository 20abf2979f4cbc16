"""Configuration system for phenomem experiments.

Hierarchical YAML configuration with deep-merge support:
  base.yaml → scenario override → sweep overrides

Sections map 1:1 to YAML top-level keys. Unknown keys inside a section
are ignored, so scenario files can carry notes for the plotting layer.

Shipped scenarios (configs/scenarios/):
  perfect_memory     p = 1 (uncoupled phenotypes)
  imperfect_memory   p = 0.85
  demography         p = 0.85 with f, d ~ U(0.9, 1.1)
  extended_horizon   p = 1 over a 10× longer horizon
"""

from __future__ import annotations

import copy
import dataclasses
import warnings
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml

from phenomem.dynamics import VALID_METHODS
from phenomem.matrices import MAX_LEAK, VALID_WEIGHTINGS
from phenomem.types import InvalidParameter, SpeciesStructure


# ═══════════════════════════════════════════════════════════════════════
# CONFIGURATION DATACLASSES
# ═══════════════════════════════════════════════════════════════════════

@dataclass
class SimulationSection:
    """Run identity and master seed."""
    seed: int = 42
    label: str = 'baseline'


@dataclass
class NetworkSection:
    """Species structure and dominance-matrix correlation."""
    species_counts: List[int] = field(default_factory=lambda: [2, 3, 3, 4, 1])
    tau: float = 0.5             # Within-species correlation of H


@dataclass
class MemorySection:
    """Phenotypic memory (Q matrix)."""
    p: float = 1.0               # 1 = perfect memory (Q = I)
    weighting: str = 'uniform'   # 'uniform' or 'distance'
    decay: float = 0.5           # Per-step decay for weighting='distance'
    leak: float = 0.01           # Share of 1 - p sent to other species


@dataclass
class DemographySection:
    """Per-phenotype fecundity (f) and death-rate (d) multipliers.

    When enabled, f and d are drawn independently from U(low, high).
    """
    enabled: bool = False
    low: float = 0.9
    high: float = 1.1


@dataclass
class IntegrationSection:
    """ODE solver and extinction handling."""
    horizon: float = 1000.0
    steps: int = 1000
    method: str = 'LSODA'
    rtol: float = 1e-8
    atol: float = 1e-12
    max_step: Optional[float] = None
    extinction_floor: float = 1e-10
    simplex_tol: float = 1e-6


@dataclass
class AnalysisSection:
    """Summary statistics."""
    final_fraction: float = 0.1        # Window for the stability check
    stability_threshold: float = 1e-3  # Max abundance change in that window


@dataclass
class ExperimentConfig:
    """Complete experiment configuration.

    Load from YAML via `load_config()`.
    """
    simulation: SimulationSection = field(default_factory=SimulationSection)
    network: NetworkSection = field(default_factory=NetworkSection)
    memory: MemorySection = field(default_factory=MemorySection)
    demography: DemographySection = field(default_factory=DemographySection)
    integration: IntegrationSection = field(default_factory=IntegrationSection)
    analysis: AnalysisSection = field(default_factory=AnalysisSection)


_SECTION_MAP = {
    'simulation': SimulationSection,
    'network': NetworkSection,
    'memory': MemorySection,
    'demography': DemographySection,
    'integration': IntegrationSection,
    'analysis': AnalysisSection,
}


# ═══════════════════════════════════════════════════════════════════════
# YAML LOADING & MERGING
# ═══════════════════════════════════════════════════════════════════════

def deep_merge(base: Dict, override: Dict) -> Dict:
    """Recursively merge override into base. Modifies base in place.

    - Dict values are merged recursively
    - Non-dict values are replaced
    - Keys in override but not base are added

    Returns:
        The merged base dictionary.
    """
    for key, value in override.items():
        if (
            key in base
            and isinstance(base[key], dict)
            and isinstance(value, dict)
        ):
            deep_merge(base[key], value)
        else:
            base[key] = value
    return base


def _dict_to_section(section_cls, data: Dict) -> Any:
    """Convert a dict to a dataclass, ignoring unknown keys."""
    valid_fields = {f.name for f in dataclasses.fields(section_cls)}
    filtered = {k: v for k, v in data.items() if k in valid_fields}
    return section_cls(**filtered)


def _dict_to_config(data: Dict) -> ExperimentConfig:
    """Convert a merged YAML dict to an ExperimentConfig."""
    sections = {}
    for key, cls in _SECTION_MAP.items():
        if key in data and isinstance(data[key], dict):
            sections[key] = _dict_to_section(cls, data[key])
        else:
            sections[key] = cls()
    return ExperimentConfig(**sections)


def config_to_dict(config: ExperimentConfig) -> Dict:
    """Plain-dict view of a config (YAML-serializable)."""
    return dataclasses.asdict(config)


def with_overrides(config: ExperimentConfig, overrides: Dict) -> ExperimentConfig:
    """Return a validated copy of config with a nested override dict applied."""
    merged = deep_merge(copy.deepcopy(config_to_dict(config)), overrides)
    new = _dict_to_config(merged)
    validate_config(new)
    return new


def _check_range(name: str, value, lo: float, hi: float) -> None:
    if not (lo <= value <= hi):
        raise InvalidParameter(f"{name} must be in [{lo}, {hi}], got {value}")


def validate_config(config: ExperimentConfig) -> None:
    """Validate configuration constraints. Raises ValueError on failure.

    Model parameters (species counts, τ, p, decay, demographic bounds)
    raise InvalidParameter, a ValueError subclass.
    """
    if config.simulation.seed < 0:
        raise ValueError("simulation.seed must be non-negative")

    # Network
    SpeciesStructure.from_counts(config.network.species_counts)
    _check_range('network.tau', config.network.tau, 0.0, 1.0)

    # Memory
    _check_range('memory.p', config.memory.p, 0.0, 1.0)
    if config.memory.weighting not in VALID_WEIGHTINGS:
        raise InvalidParameter(
            f"memory.weighting must be one of {VALID_WEIGHTINGS}, "
            f"got '{config.memory.weighting}'"
        )
    if not (0.0 < config.memory.decay <= 1.0):
        raise InvalidParameter(
            f"memory.decay must be in (0, 1], got {config.memory.decay}"
        )
    if not (0.0 <= config.memory.leak < MAX_LEAK):
        raise InvalidParameter(
            f"memory.leak must be in [0, {MAX_LEAK}), got {config.memory.leak}"
        )

    # Demography
    dem = config.demography
    if dem.low <= 0:
        raise InvalidParameter(f"demography.low must be positive, got {dem.low}")
    if dem.low > dem.high:
        raise InvalidParameter(
            f"demography.low ({dem.low}) must be <= demography.high ({dem.high})"
        )

    # Integration
    integ = config.integration
    if integ.horizon <= 0:
        raise ValueError(f"integration.horizon must be positive, got {integ.horizon}")
    if isinstance(integ.steps, bool) or not isinstance(integ.steps, int) or integ.steps < 1:
        raise ValueError(f"integration.steps must be a positive integer, got {integ.steps}")
    if integ.method not in VALID_METHODS:
        raise ValueError(
            f"integration.method must be one of {VALID_METHODS}, "
            f"got '{integ.method}'"
        )
    for name in ('rtol', 'atol', 'extinction_floor', 'simplex_tol'):
        if getattr(integ, name) <= 0:
            raise ValueError(f"integration.{name} must be positive")
    if integ.max_step is not None:
        if integ.max_step <= 0:
            raise ValueError("integration.max_step must be positive")
        if integ.max_step > integ.horizon / integ.steps:
            warnings.warn(
                f"integration.max_step ({integ.max_step}) exceeds the output "
                f"interval ({integ.horizon / integ.steps:g}) and has no effect",
                UserWarning,
                stacklevel=2,
            )

    # Analysis
    if not (0.0 < config.analysis.final_fraction <= 1.0):
        raise ValueError(
            f"analysis.final_fraction must be in (0, 1], "
            f"got {config.analysis.final_fraction}"
        )
    if config.analysis.stability_threshold <= 0:
        raise ValueError("analysis.stability_threshold must be positive")


def _read_yaml(path: Path) -> Dict:
    with open(path) as f:
        return yaml.safe_load(f) or {}


def load_config(
    base_path: Union[str, Path],
    scenario_path: Optional[Union[str, Path]] = None,
    sweep_overrides: Optional[Dict] = None,
) -> ExperimentConfig:
    """Load and merge hierarchical YAML configuration.

    Merge order: base → scenario → sweep overrides.
    Each layer overrides only the fields it specifies.

    Args:
        base_path: Path to base configuration YAML.
        scenario_path: Optional scenario override YAML (skipped if missing).
        sweep_overrides: Optional dict of parameter sweep overrides.

    Returns:
        Validated ExperimentConfig.

    Raises:
        FileNotFoundError: If base_path doesn't exist.
        ValueError: If validation fails.
    """
    base_path = Path(base_path)
    if not base_path.exists():
        raise FileNotFoundError(f"Config file not found: {base_path}")

    config_dict = _read_yaml(base_path)

    if scenario_path is not None:
        scenario_path = Path(scenario_path)
        if scenario_path.exists():
            deep_merge(config_dict, _read_yaml(scenario_path))

    if sweep_overrides is not None:
        deep_merge(config_dict, sweep_overrides)

    config = _dict_to_config(config_dict)
    validate_config(config)
    return config


def save_config(config: ExperimentConfig, path: Union[str, Path]) -> None:
    """Write a config as YAML (readable back with load_config)."""
    with open(path, 'w') as f:
        yaml.safe_dump(config_to_dict(config), f, sort_keys=False)


def default_config() -> ExperimentConfig:
    """Return an ExperimentConfig with all default values."""
    config = ExperimentConfig()
    validate_config(config)
    return config
