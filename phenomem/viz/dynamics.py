"""Trajectory and matrix figures for phenomem experiments.

Every function:
  - Accepts an ExperimentResult (or its parts) as input
  - Returns a matplotlib Figure
  - Has an optional ``save_path`` parameter (saves PNG when given)
  - Uses the shared dark theme from ``phenomem.viz.style``

matplotlib backend is forced to Agg (no display) on import.
"""

from __future__ import annotations

import matplotlib
matplotlib.use('Agg')

from typing import Dict, Optional, TYPE_CHECKING

import matplotlib.pyplot as plt
import numpy as np

from phenomem.viz.style import (
    DARK_PANEL,
    GRID_COLOR,
    REGIME_COLORS,
    SPECIES_COLORS,
    TEXT_COLOR,
    dark_figure,
    dark_legend,
    phenotype_colors,
    save_figure,
    species_color,
)

if TYPE_CHECKING:
    from phenomem.experiment import ExperimentResult
    from phenomem.types import SpeciesStructure


# ═══════════════════════════════════════════════════════════════════════
# 1. PHENOTYPE ABUNDANCES
# ═══════════════════════════════════════════════════════════════════════

def plot_abundance_trajectories(
    result: 'ExperimentResult',
    log_scale: bool = True,
    save_path: Optional[str] = None,
) -> plt.Figure:
    """Relative abundance of every phenotype, coloured by species.

    Extinct phenotypes are drawn up to their extinction time only (the
    zeros after it are hidden on the log axis).
    """
    traj = result.trajectory
    colors = phenotype_colors(result.structure)
    fig, ax = dark_figure()

    for i in range(traj.n_phenotypes):
        y = traj.states[:, i]
        if log_scale:
            y = np.where(y > 0, y, np.nan)
        ax.plot(traj.times, y, color=colors[i], linewidth=1.4,
                linestyle='--' if traj.extinct[i] else '-')

    for s in range(result.structure.n_species):
        ax.plot([], [], color=species_color(s), linewidth=2.5, label=f'Species {s + 1}')

    if log_scale:
        ax.set_yscale('log')
        ax.axhline(traj.extinction_floor, color=GRID_COLOR, linestyle=':', linewidth=1.0)
    ax.set_xlabel('Time', fontsize=12)
    ax.set_ylabel('Relative abundance', fontsize=12)
    ax.set_title(f'Phenotype dynamics ({result.label})', fontsize=14, fontweight='bold')
    ax.set_xlim(traj.times[0], traj.times[-1])
    dark_legend(ax, fontsize=9, loc='lower left')

    if save_path:
        save_figure(fig, save_path)
    return fig


# ═══════════════════════════════════════════════════════════════════════
# 2. SPECIES TOTALS
# ═══════════════════════════════════════════════════════════════════════

def plot_species_totals(
    result: 'ExperimentResult',
    save_path: Optional[str] = None,
) -> plt.Figure:
    """Stacked area of species-level abundance (sums to 1 at every time)."""
    traj = result.trajectory
    totals = traj.species_totals(result.structure)
    fig, ax = dark_figure()

    ax.stackplot(
        traj.times, totals.T,
        colors=[species_color(s) for s in range(result.structure.n_species)],
        labels=[f'Species {s + 1}' for s in range(result.structure.n_species)],
        alpha=0.85,
    )
    ax.set_xlabel('Time', fontsize=12)
    ax.set_ylabel('Species share', fontsize=12)
    ax.set_title(f'Species composition ({result.label})', fontsize=14, fontweight='bold')
    ax.set_xlim(traj.times[0], traj.times[-1])
    ax.set_ylim(0, 1)
    dark_legend(ax, fontsize=9, loc='upper right')

    if save_path:
        save_figure(fig, save_path)
    return fig


# ═══════════════════════════════════════════════════════════════════════
# 3–4. MATRICES
# ═══════════════════════════════════════════════════════════════════════

def _matrix_panel(M, structure, title, cmap, vmin, vmax, save_path):
    fig, ax = dark_figure(figsize=(7, 6))
    im = ax.imshow(M, cmap=cmap, vmin=vmin, vmax=vmax, interpolation='nearest')
    ax.grid(False)

    # Species block outlines
    for s, block in enumerate(structure.slices()):
        lo, hi = block.start - 0.5, block.stop - 0.5
        ax.add_patch(plt.Rectangle(
            (lo, lo), hi - lo, hi - lo, fill=False,
            edgecolor=species_color(s), linewidth=2.0,
        ))

    ax.set_xlabel('Phenotype j', fontsize=12)
    ax.set_ylabel('Phenotype i', fontsize=12)
    ax.set_title(title, fontsize=14, fontweight='bold')
    cbar = fig.colorbar(im, ax=ax)
    cbar.ax.yaxis.set_tick_params(color=TEXT_COLOR)
    plt.setp(cbar.ax.get_yticklabels(), color=TEXT_COLOR)

    if save_path:
        save_figure(fig, save_path)
    return fig


def plot_dominance_matrix(
    H: np.ndarray,
    structure: 'SpeciesStructure',
    save_path: Optional[str] = None,
) -> plt.Figure:
    """Heatmap of H[i, j] = P(i beats j), species blocks outlined."""
    return _matrix_panel(H, structure, 'Dominance matrix H', 'RdBu_r', 0.0, 1.0, save_path)


def plot_memory_matrix(
    Q: np.ndarray,
    structure: 'SpeciesStructure',
    save_path: Optional[str] = None,
) -> plt.Figure:
    """Heatmap of Q[i, j] = P(offspring of i is j), species blocks outlined."""
    return _matrix_panel(Q, structure, 'Memory matrix Q', 'magma', 0.0, 1.0, save_path)


# ═══════════════════════════════════════════════════════════════════════
# 5. REGIME COMPARISON
# ═══════════════════════════════════════════════════════════════════════

def plot_regime_comparison(
    results: Dict[str, 'ExperimentResult'],
    save_path: Optional[str] = None,
) -> plt.Figure:
    """Side-by-side summary bars: surviving phenotypes and Shannon diversity."""
    labels = list(results)
    survivors = [results[k].summary['richness'] for k in labels]
    shannon = [results[k].summary['shannon'] for k in labels]
    colors = [REGIME_COLORS.get(k, SPECIES_COLORS[i % len(SPECIES_COLORS)])
              for i, k in enumerate(labels)]

    fig, (ax1, ax2) = dark_figure(1, 2, figsize=(12, 5))
    x = np.arange(len(labels))

    ax1.bar(x, survivors, color=colors, alpha=0.9)
    n_total = max(r.trajectory.n_phenotypes for r in results.values())
    ax1.axhline(n_total, color=TEXT_COLOR, linestyle='--', linewidth=1.0, alpha=0.6)
    ax1.set_ylabel('Surviving phenotypes', fontsize=12)
    ax1.set_title('Richness', fontsize=13, fontweight='bold')

    ax2.bar(x, shannon, color=colors, alpha=0.9)
    ax2.set_ylabel("Shannon diversity H'", fontsize=12)
    ax2.set_title('Diversity', fontsize=13, fontweight='bold')

    for ax in (ax1, ax2):
        ax.set_xticks(x)
        ax.set_xticklabels(labels, rotation=20, ha='right', color=TEXT_COLOR)
        ax.set_facecolor(DARK_PANEL)

    if save_path:
        save_figure(fig, save_path)
    return fig
