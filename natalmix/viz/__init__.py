"""natalmix visualization library.

Modules:
  - style: Dark theme colours and helpers
  - trace: Chain traces, posterior summaries, PSRF and assignment plots
"""

from natalmix.viz.style import (  # noqa: F401
    CHAIN_COLORS,
    DARK_BG,
    DARK_PANEL,
    GRID_COLOR,
    GROUP_COLORS,
    TEXT_COLOR,
    apply_dark_theme,
    dark_figure,
    save_figure,
)

from natalmix.viz.trace import (  # noqa: F401
    plot_assignment_heatmap,
    plot_group_posteriors,
    plot_group_traces,
    plot_pathogen_traces,
    plot_psrf,
)
