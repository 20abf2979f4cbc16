"""Dark theme styling for phenomem figures.

Species get one base colour each; phenotypes within a species are drawn
as lighter/darker shades of it so grouping reads at a glance.
"""

import matplotlib.colors as mcolors
import matplotlib.pyplot as plt
import numpy as np

# ═══════════════════════════════════════════════════════════════════════
# COLOR PALETTE
# ═══════════════════════════════════════════════════════════════════════

DARK_BG = '#1a1a2e'
DARK_PANEL = '#16213e'
TEXT_COLOR = '#e0e0e0'
GRID_COLOR = '#2a2a4a'

SPECIES_COLORS = [
    '#e94560',  # crimson
    '#48c9b0',  # teal
    '#f39c12',  # amber
    '#3498db',  # sky blue
    '#9b59b6',  # violet
    '#2ecc71',  # green
    '#f1c40f',  # yellow
    '#e67e22',  # orange
]

REGIME_COLORS = {
    'perfect_memory':   '#e94560',
    'imperfect_memory': '#48c9b0',
    'demography':       '#f39c12',
    'extended_horizon': '#3498db',
}


def species_color(species: int) -> str:
    return SPECIES_COLORS[species % len(SPECIES_COLORS)]


def phenotype_colors(structure) -> list:
    """One RGB tuple per phenotype: shades of its species' colour."""
    colors = []
    for s, k in enumerate(structure.counts):
        base = np.array(mcolors.to_rgb(species_color(s)))
        # Blend from 35% toward black to 35% toward white across the block
        for w in np.linspace(-0.35, 0.35, k) if k > 1 else [0.0]:
            target = np.ones(3) if w > 0 else np.zeros(3)
            colors.append(tuple(base + abs(w) * (target - base)))
    return colors


# ═══════════════════════════════════════════════════════════════════════
# THEME HELPERS
# ═══════════════════════════════════════════════════════════════════════

def apply_dark_theme(fig=None, ax=None):
    """Apply dark theme to a matplotlib Figure and/or Axes."""
    if fig is not None:
        fig.patch.set_facecolor(DARK_BG)
    if ax is not None:
        ax.set_facecolor(DARK_PANEL)
        ax.tick_params(colors=TEXT_COLOR)
        ax.xaxis.label.set_color(TEXT_COLOR)
        ax.yaxis.label.set_color(TEXT_COLOR)
        ax.title.set_color(TEXT_COLOR)
        for spine in ax.spines.values():
            spine.set_color(GRID_COLOR)
        ax.grid(True, color=GRID_COLOR, alpha=0.3, linewidth=0.5)


def dark_figure(nrows=1, ncols=1, figsize=None, **kwargs):
    """Create a Figure + Axes with the dark theme already applied.

    Returns (fig, ax) where ax may be a single Axes or an ndarray.
    """
    if figsize is None:
        figsize = (10, 6) if (nrows == 1 and ncols == 1) else (6 * ncols, 5 * nrows)
    fig, axes = plt.subplots(nrows, ncols, figsize=figsize, **kwargs)
    apply_dark_theme(fig=fig)
    if isinstance(axes, np.ndarray):
        for a in axes.flat:
            apply_dark_theme(ax=a)
    else:
        apply_dark_theme(ax=axes)
    return fig, axes


def dark_legend(ax, **kwargs):
    return ax.legend(facecolor=DARK_PANEL, edgecolor=GRID_COLOR,
                     labelcolor=TEXT_COLOR, **kwargs)


def save_figure(fig, save_path, dpi=150):
    """Save a figure with tight layout and dark background."""
    fig.tight_layout()
    fig.savefig(save_path, dpi=dpi, facecolor=fig.get_facecolor(),
                edgecolor='none', bbox_inches='tight')
    plt.close(fig)
