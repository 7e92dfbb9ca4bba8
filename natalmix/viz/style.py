"""Dark theme styling for natalmix plots.

Colors for chains and reporting groups plus helpers that give every
figure the same look.
"""

import matplotlib
matplotlib.use('Agg')

import matplotlib.pyplot as plt

# ═══════════════════════════════════════════════════════════════════════
# COLOR PALETTE
# ═══════════════════════════════════════════════════════════════════════

DARK_BG = '#1a1a2e'
DARK_PANEL = '#16213e'
TEXT_COLOR = '#e0e0e0'
GRID_COLOR = '#2a2a4a'

# One color per chain, cycled
CHAIN_COLORS = [
    '#e94560',
    '#48c9b0',
    '#f39c12',
    '#3498db',
    '#2ecc71',
    '#9b59b6',
]

GROUP_COLORS = [
    '#e94560', '#48c9b0', '#f39c12', '#3498db', '#2ecc71',
    '#533483', '#e74c3c', '#f1c40f', '#1abc9c', '#9b59b6',
]

PSRF_OK = '#2ecc71'
PSRF_WARN = '#e74c3c'
PSRF_THRESHOLD = 1.1


def chain_color(chain: int) -> str:
    """Color for a 1-based chain number."""
    return CHAIN_COLORS[(chain - 1) % len(CHAIN_COLORS)]


def group_color(index: int) -> str:
    """Color for a 0-based group column."""
    return GROUP_COLORS[index % len(GROUP_COLORS)]


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
        figsize = (10, 6) if (nrows == 1 and ncols == 1) else (12, 3 * nrows)
    fig, axes = plt.subplots(nrows, ncols, figsize=figsize, squeeze=False, **kwargs)
    apply_dark_theme(fig=fig)
    for a in axes.flat:
        apply_dark_theme(ax=a)
    if nrows == 1 and ncols == 1:
        return fig, axes[0, 0]
    return fig, axes


def style_legend(ax, **kwargs):
    """Legend with dark background and light text."""
    leg = ax.legend(facecolor=DARK_PANEL, edgecolor=GRID_COLOR, **kwargs)
    for text in leg.get_texts():
        text.set_color(TEXT_COLOR)
    return leg


def save_figure(fig, save_path, dpi=150):
    """Save a figure with tight layout and dark background."""
    fig.tight_layout()
    fig.savefig(save_path, dpi=dpi, facecolor=fig.get_facecolor(),
                edgecolor='none', bbox_inches='tight')
    plt.close(fig)
