"""Dirichlet pseudo-count priors.

Allele frequencies: every wild population gets a flat prior of
1/(number of allele types) per allele column, so each locus contributes
one pseudo-allele in total. Hatchery rows get no prior (their origin is
always observed).

Mixing proportions: each population gets 1 / size(group) / n_groups,
which spreads one unit of prior mass evenly over reporting groups rather
than over populations. Groups with many populations are not favoured.
"""

from __future__ import annotations

import numpy as np

from natalmix.types import LocusLayout, PriorSet


def allele_prior(layout: LocusLayout, n_wild: int, n_pops: int) -> np.ndarray:
    """Allele-frequency pseudo-counts, shape (n_pops, n_columns)."""
    prior = np.zeros((n_pops, layout.n_columns), dtype=np.float64)
    per_column = np.repeat(1.0 / np.asarray(layout.n_alleles, dtype=np.float64),
                           layout.n_alleles)
    prior[:n_wild, :] = per_column
    return prior


def mixing_prior(groups: np.ndarray) -> np.ndarray:
    """Mixing-proportion pseudo-counts, one per population.

    Args:
        groups: (n_pops,) 1-based reporting-group id.
    """
    groups = np.asarray(groups, dtype=np.int64)
    n_groups = int(groups.max())
    group_size = np.bincount(groups, minlength=n_groups + 1)
    return 1.0 / group_size[groups] / n_groups


def build_priors(
    baseline: np.ndarray,
    layout: LocusLayout,
    groups: np.ndarray,
    n_wild: int,
) -> PriorSet:
    """Build both priors. Pure function, no randomness.

    Args:
        baseline: (n_pops, n_columns) baseline allele counts; fixes the
            shape of the allele prior.
        layout: Locus structure of the columns.
        groups: (n_pops,) 1-based reporting-group id.
        n_wild: Number of wild populations (the first baseline rows).
    """
    n_pops = baseline.shape[0]
    if len(groups) != n_pops:
        raise ValueError(
            f"groups has {len(groups)} entries for {n_pops} baseline rows"
        )
    return PriorSet(
        allele=allele_prior(layout, n_wild, n_pops),
        mixing=mixing_prior(groups),
    )
