"""Assemble finished chains into traces and posterior summaries.

Population-level mixing proportions are summed into reporting groups,
chains are stacked into long tables tagged with `itr` (1..S within a
chain) and `chain` (1..N), and the diagnostics module produces the
summary rows.

Only retained samples whose iteration is past burn-in enter the
summaries. With keep_burn the traces still hold the burn-in samples.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

import numpy as np

from natalmix.config import DiagnosticsSection
from natalmix.diagnostics import GroupSummary, diagnose
from natalmix.types import ChainFailure, ChainTrace

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════
# TRACE TABLES
# ═══════════════════════════════════════════════════════════════════════

@dataclass
class TraceTable:
    """Long-format trace: one row per (chain, retained sample).

    values: (n_rows, n_columns)
    itr:    (n_rows,) 1-based sample index within the chain
    chain:  (n_rows,) 1-based chain number
    """
    columns: List[str]
    values: np.ndarray
    itr: np.ndarray
    chain: np.ndarray

    @property
    def n_rows(self) -> int:
        return len(self.itr)

    def column(self, name: str) -> np.ndarray:
        try:
            j = self.columns.index(name)
        except ValueError:
            raise KeyError(f"no trace column '{name}'; have {self.columns}") from None
        return self.values[:, j]

    def chain_values(self, chain: int) -> np.ndarray:
        """Rows of one chain (1-based), in sample order."""
        return self.values[self.chain == chain]

    def to_records(self) -> List[Dict[str, Any]]:
        out = []
        for r in range(self.n_rows):
            rec = {name: self.values[r, j].item() for j, name in enumerate(self.columns)}
            rec['itr'] = int(self.itr[r])
            rec['chain'] = int(self.chain[r])
            out.append(rec)
        return out


def _stack_table(columns: Sequence[str], per_chain: Sequence[np.ndarray],
                 chain_numbers: Sequence[int]) -> TraceTable:
    values = np.concatenate(per_chain, axis=0)
    itr = np.concatenate([np.arange(1, len(v) + 1) for v in per_chain])
    chain = np.concatenate([np.full(len(v), c) for v, c in zip(per_chain, chain_numbers)])
    return TraceTable(columns=list(columns), values=values, itr=itr, chain=chain)


# ═══════════════════════════════════════════════════════════════════════
# RESULT
# ═══════════════════════════════════════════════════════════════════════

@dataclass
class MixtureResult:
    """Everything a run produces.

    summary:          one GroupSummary per reporting group
    trace:            group proportions, columns = group names
    origins:          per-individual population of origin, 1-based
    summary_pathogen: {stratum name: per-group summaries of infection probability}
    trace_pathogen:   {stratum name: TraceTable, columns = group names}
    failures:         chains that did not finish
    """
    summary: List[GroupSummary]
    trace: TraceTable
    origins: TraceTable
    group_names: List[str]
    population_names: List[str]
    summary_pathogen: Optional[Dict[str, List[GroupSummary]]] = None
    trace_pathogen: Optional[Dict[str, TraceTable]] = None
    failures: List[ChainFailure] = field(default_factory=list)
    config: Dict[str, Any] = field(default_factory=dict)
    runtime_s: float = 0.0
    seed: Optional[int] = None
    summary_mask: Optional[np.ndarray] = field(default=None, repr=False)  # trace rows past burn-in

    @property
    def n_chains(self) -> int:
        return len(np.unique(self.trace.chain))

    def summary_table(self) -> List[Dict[str, Any]]:
        """Group summaries as plain dicts."""
        return [row.as_dict() for row in self.summary]

    def pathogen_table(self) -> List[Dict[str, Any]]:
        """Pathogen summaries as plain dicts, tagged with the stratum."""
        if not self.summary_pathogen:
            return []
        out = []
        for stratum, rows in self.summary_pathogen.items():
            for row in rows:
                rec = row.as_dict()
                rec['stratum'] = stratum
                out.append(rec)
        return out

    def assignment_probabilities(self) -> np.ndarray:
        """(n_individuals, n_pops) share of post-burn-in samples at each origin."""
        mask = self.summary_mask
        if mask is None:
            mask = np.ones(self.origins.n_rows, dtype=bool)
        draws = self.origins.values[mask] - 1
        n_pops = len(self.population_names)
        counts = np.zeros((draws.shape[1], n_pops))
        for j in range(draws.shape[1]):
            counts[j] = np.bincount(draws[:, j], minlength=n_pops)
        return counts / max(len(draws), 1)

    def group_assignment_probabilities(self, groups: Sequence[int]) -> np.ndarray:
        """(n_individuals, n_groups) assignment probabilities summed by group."""
        return self.assignment_probabilities() @ group_matrix(groups, len(self.group_names))


# ═══════════════════════════════════════════════════════════════════════
# ASSEMBLY
# ═══════════════════════════════════════════════════════════════════════

def group_matrix(groups: Sequence[int], n_groups: int) -> np.ndarray:
    """(n_pops, n_groups) 0/1 membership matrix from 1-based group ids."""
    groups = np.asarray(groups, dtype=np.int64)
    out = np.zeros((len(groups), n_groups))
    out[np.arange(len(groups)), groups - 1] = 1.0
    return out


def group_proportions(mixing: np.ndarray, groups: Sequence[int], n_groups: int) -> np.ndarray:
    """Sum population mixing proportions into reporting groups."""
    return mixing @ group_matrix(groups, n_groups)


def _summarize(per_chain: Sequence[np.ndarray], keep: Sequence[np.ndarray],
               names: Sequence[str], diag_cfg: DiagnosticsSection) -> List[GroupSummary]:
    chains = [v[k] for v, k in zip(per_chain, keep)]
    return diagnose(
        chains, names,
        ci_lower=diag_cfg.ci_lower,
        ci_upper=diag_cfg.ci_upper,
        confidence=diag_cfg.confidence,
    )


def assemble_results(
    traces: Sequence[Optional[ChainTrace]],
    groups: Sequence[int],
    group_names: Sequence[str],
    population_names: Sequence[str],
    nburn: int,
    diagnostics: Optional[DiagnosticsSection] = None,
    failures: Sequence[ChainFailure] = (),
    strata_names: Optional[Sequence[str]] = None,
) -> MixtureResult:
    """Build a MixtureResult from the completed chains.

    Args:
        traces: One entry per chain; None for a failed chain.
        groups: (n_pops,) 1-based reporting group of each population.
        group_names: Display name per group.
        population_names: Display name per population.
        nburn: Burn-in length; samples at or before it are left out of
            the summaries.
        diagnostics: DiagnosticsSection (defaults if None).
        failures: Chains that did not finish.
        strata_names: Display name per pathogen stratum.
    """
    diagnostics = diagnostics or DiagnosticsSection()
    done = [(i + 1, t) for i, t in enumerate(traces) if t is not None]
    if not done:
        raise ValueError("no completed chains to assemble")
    chain_numbers = [c for c, _ in done]
    chain_traces = [t for _, t in done]
    n_groups = len(group_names)

    group_draws = [group_proportions(t.mixing, groups, n_groups) for t in chain_traces]
    keep = [t.iterations > nburn for t in chain_traces]
    n_summary = {int(k.sum()) for k in keep}
    if len(n_summary) != 1 or 0 in n_summary:
        raise ValueError(f"chains disagree on post-burn-in sample counts: {sorted(n_summary)}")

    summary = _summarize(group_draws, keep, group_names, diagnostics)
    trace = _stack_table(group_names, group_draws, chain_numbers)

    n_ind = chain_traces[0].origins.shape[1]
    ind_cols = [f"ind_{j + 1}" for j in range(n_ind)]
    origins = _stack_table(ind_cols, [t.origins + 1 for t in chain_traces], chain_numbers)

    summary_pathogen = None
    trace_pathogen = None
    if chain_traces[0].nuisance is not None:
        n_strata = chain_traces[0].nuisance.shape[1]
        if strata_names is None:
            strata_names = [f"stratum_{s + 1}" for s in range(n_strata)]
        summary_pathogen = {}
        trace_pathogen = {}
        for s, sname in enumerate(strata_names):
            theta = [t.nuisance[:, s, :] for t in chain_traces]
            summary_pathogen[sname] = _summarize(theta, keep, group_names, diagnostics)
            trace_pathogen[sname] = _stack_table(group_names, theta, chain_numbers)

    logger.debug("assembled %d chain(s), %d post-burn-in samples each",
                 len(chain_traces), n_summary.pop())

    return MixtureResult(
        summary=summary,
        trace=trace,
        origins=origins,
        group_names=list(group_names),
        population_names=list(population_names),
        summary_pathogen=summary_pathogen,
        trace_pathogen=trace_pathogen,
        failures=list(failures),
        summary_mask=np.concatenate(keep),
    )
