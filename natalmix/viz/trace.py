"""MCMC trace and posterior plots for natalmix results.

Every function:
  - Accepts a MixtureResult
  - Returns a matplotlib Figure
  - Has an optional ``save_path`` parameter (saves PNG when given)
  - Uses the shared dark theme from ``natalmix.viz.style``

matplotlib backend is forced to Agg (no display) on import.
"""

from __future__ import annotations

import matplotlib
matplotlib.use('Agg')

from typing import Optional, Sequence, TYPE_CHECKING

import matplotlib.pyplot as plt
import numpy as np

from natalmix.viz.style import (
    PSRF_OK,
    PSRF_THRESHOLD,
    PSRF_WARN,
    TEXT_COLOR,
    chain_color,
    dark_figure,
    group_color,
    save_figure,
    style_legend,
)

if TYPE_CHECKING:
    from natalmix.results import MixtureResult, TraceTable


# ═══════════════════════════════════════════════════════════════════════
# 1. MIXING-PROPORTION TRACES
# ═══════════════════════════════════════════════════════════════════════

def plot_group_traces(
    result: 'MixtureResult',
    groups: Optional[Sequence[str]] = None,
    save_path: Optional[str] = None,
) -> plt.Figure:
    """One panel per reporting group, one line per chain.

    Args:
        result: MixtureResult.
        groups: Subset of group names to show (default: all).
        save_path: Optional path to save the figure.

    Returns:
        matplotlib Figure.
    """
    return _plot_traces(result.trace, groups, "proportion", save_path)


def plot_pathogen_traces(
    result: 'MixtureResult',
    stratum: str,
    save_path: Optional[str] = None,
) -> plt.Figure:
    """Infection-probability traces of one stratum, one panel per group."""
    if not result.trace_pathogen:
        raise ValueError("result has no pathogen traces")
    if stratum not in result.trace_pathogen:
        raise KeyError(f"unknown stratum '{stratum}'; have {list(result.trace_pathogen)}")
    return _plot_traces(result.trace_pathogen[stratum], None,
                        "infection probability", save_path)


def _plot_traces(table: 'TraceTable', columns, ylabel, save_path) -> plt.Figure:
    columns = list(columns) if columns is not None else table.columns
    chains = np.unique(table.chain)
    fig, axes = dark_figure(nrows=len(columns), ncols=1,
                            figsize=(10, 2.5 * len(columns)), sharex=True)
    axes = np.atleast_1d(axes).ravel()

    for ax, name in zip(axes, columns):
        values = table.column(name)
        for c in chains:
            rows = table.chain == c
            ax.plot(table.itr[rows], values[rows], color=chain_color(int(c)),
                    linewidth=0.8, alpha=0.85, label=f"chain {int(c)}")
        ax.set_ylabel(ylabel)
        ax.set_title(name)

    axes[-1].set_xlabel("retained sample")
    if len(chains) > 1:
        style_legend(axes[0], loc='upper right', fontsize=8)

    if save_path:
        save_figure(fig, save_path)
    return fig


# ═══════════════════════════════════════════════════════════════════════
# 2. POSTERIOR SUMMARY
# ═══════════════════════════════════════════════════════════════════════

def plot_group_posteriors(
    result: 'MixtureResult',
    save_path: Optional[str] = None,
) -> plt.Figure:
    """Posterior mean and credible interval of each reporting group.

    Returns:
        matplotlib Figure.
    """
    rows = result.summary
    fig, ax = dark_figure(figsize=(8, 0.6 * len(rows) + 2))
    y = np.arange(len(rows))[::-1]
    for yi, (j, row) in zip(y, enumerate(rows)):
        ax.plot([row.ci_lower, row.ci_upper], [yi, yi],
                color=group_color(j), linewidth=3, solid_capstyle='round')
        ax.plot(row.mean, yi, 'o', color=TEXT_COLOR, markersize=6)
    ax.set_yticks(y)
    ax.set_yticklabels([r.group for r in rows])
    ax.set_xlim(0, 1)
    ax.set_xlabel("mixing proportion")
    ax.set_title("Reporting-group composition")

    if save_path:
        save_figure(fig, save_path)
    return fig


def plot_psrf(
    result: 'MixtureResult',
    threshold: float = PSRF_THRESHOLD,
    save_path: Optional[str] = None,
) -> plt.Figure:
    """PSRF point estimate and upper limit per group, threshold marked.

    With a single chain the panel only carries a note.
    """
    rows = result.summary
    fig, ax = dark_figure(figsize=(8, 0.6 * len(rows) + 2))
    psrf = np.array([r.psrf for r in rows])

    if np.all(np.isnan(psrf)):
        ax.text(0.5, 0.5, "PSRF not applicable (single chain)",
                ha='center', va='center', color=TEXT_COLOR, transform=ax.transAxes)
        ax.set_xticks([])
        ax.set_yticks([])
    else:
        upper = np.array([r.psrf_upper for r in rows])
        y = np.arange(len(rows))[::-1]
        colors = [PSRF_WARN if p > threshold else PSRF_OK for p in psrf]
        ax.barh(y, psrf, color=colors, alpha=0.85)
        ax.plot(upper, y, '|', color=TEXT_COLOR, markersize=12)
        ax.axvline(threshold, color=PSRF_WARN, linestyle='--', linewidth=1)
        ax.set_yticks(y)
        ax.set_yticklabels([r.group for r in rows])
        ax.set_xlim(left=min(0.9, float(np.nanmin(psrf)) - 0.05))
        ax.set_xlabel("PSRF")
    ax.set_title("Gelman-Rubin diagnostic")

    if save_path:
        save_figure(fig, save_path)
    return fig


def plot_assignment_heatmap(
    result: 'MixtureResult',
    save_path: Optional[str] = None,
) -> plt.Figure:
    """Posterior population-of-origin probabilities, individuals x populations."""
    probs = result.assignment_probabilities()
    fig, ax = dark_figure(figsize=(max(6, 0.5 * probs.shape[1] + 4),
                                   max(4, 0.15 * probs.shape[0] + 2)))
    im = ax.imshow(probs, aspect='auto', cmap='magma', vmin=0, vmax=1,
                   interpolation='nearest')
    ax.set_xticks(np.arange(len(result.population_names)))
    ax.set_xticklabels(result.population_names, rotation=45, ha='right')
    ax.set_ylabel("individual")
    ax.set_title("Assignment probabilities")
    cbar = fig.colorbar(im, ax=ax)
    cbar.ax.tick_params(colors=TEXT_COLOR)

    if save_path:
        save_figure(fig, save_path)
    return fig
