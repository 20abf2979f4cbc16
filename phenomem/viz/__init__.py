"""phenomem visualization library.

Modules:
  - style: Dark theme colours and helpers
  - dynamics: Trajectory, species-composition, matrix and regime plots
"""

from phenomem.viz.style import (  # noqa: F401
    DARK_BG,
    DARK_PANEL,
    GRID_COLOR,
    REGIME_COLORS,
    SPECIES_COLORS,
    TEXT_COLOR,
    apply_dark_theme,
    dark_figure,
    phenotype_colors,
    save_figure,
    species_color,
)

from phenomem.viz.dynamics import (  # noqa: F401
    plot_abundance_trajectories,
    plot_dominance_matrix,
    plot_memory_matrix,
    plot_regime_comparison,
    plot_species_totals,
)
