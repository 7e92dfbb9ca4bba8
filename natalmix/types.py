"""Core data types for natalmix.

This module holds the shared vocabulary of the sampler:
  - Family names and constants (TINY, VALID_FAMILIES)
  - LocusLayout: how the allele-count columns split into loci
  - PriorSet: Dirichlet pseudo-counts for allele frequencies and mixing
  - ChainState: one immutable snapshot of a chain between Gibbs steps
  - ChainTrace / ChainFailure: what a finished (or failed) chain hands back

Population indices are 0-based internally: wild populations occupy
0..K-1 and hatcheries K..K+H-1, in the row order of the baseline table.
"""

from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

import numpy as np


# ═══════════════════════════════════════════════════════════════════════
# CONSTANTS
# ═══════════════════════════════════════════════════════════════════════

# Smallest positive normal double; stands in for exact zeros in Dirichlet draws
TINY = np.finfo(np.float64).tiny

FAMILY_MULTINOMIAL = 'multinomial'
FAMILY_NORMAL = 'normal'       # isotope covariate, Gaussian per population
FAMILY_ICHTHY = 'ichthy'       # pathogen covariate, Beta-Bernoulli per stratum/group

VALID_FAMILIES = (FAMILY_MULTINOMIAL, FAMILY_NORMAL, FAMILY_ICHTHY)

UNKNOWN_ORIGIN = -1  # marker in 0-based origin vectors


# ═══════════════════════════════════════════════════════════════════════
# LOCUS LAYOUT
# ═══════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class LocusLayout:
    """Column structure shared by the mixture and baseline count tables.

    Columns are grouped locus by locus: the first n_alleles[0] columns are
    the allele types of locus 0, and so on.
    """
    names: Tuple[str, ...]
    n_alleles: Tuple[int, ...]

    @classmethod
    def from_counts(cls, n_alleles: Sequence[int],
                    names: Optional[Sequence[str]] = None) -> 'LocusLayout':
        n_alleles = tuple(int(n) for n in n_alleles)
        if names is None:
            names = tuple(f"locus_{i + 1}" for i in range(len(n_alleles)))
        return cls(names=tuple(names), n_alleles=n_alleles)

    @property
    def n_loci(self) -> int:
        return len(self.n_alleles)

    @property
    def n_columns(self) -> int:
        return int(sum(self.n_alleles))

    @property
    def starts(self) -> np.ndarray:
        """First column index of each locus block."""
        return np.concatenate(([0], np.cumsum(self.n_alleles)[:-1])).astype(np.intp)

    @property
    def column_locus(self) -> np.ndarray:
        """Locus index for every column, shape (n_columns,)."""
        return np.repeat(np.arange(self.n_loci), self.n_alleles)

    def slices(self) -> Tuple[slice, ...]:
        """Column slice for each locus, in order."""
        out = []
        start = 0
        for n in self.n_alleles:
            out.append(slice(start, start + n))
            start += n
        return tuple(out)


# ═══════════════════════════════════════════════════════════════════════
# PRIORS
# ═══════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class PriorSet:
    """Dirichlet pseudo-counts.

    allele: (n_pops, n_columns) is flat 1/n_alleles on wild rows, 0 on hatcheries
    mixing: (n_pops,) is 1 / size(group) / n_groups per population
    """
    allele: np.ndarray
    mixing: np.ndarray


# ═══════════════════════════════════════════════════════════════════════
# CHAIN STATE & OUTPUT
# ═══════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class ChainState:
    """Everything one Gibbs step reads and writes.

    A step never mutates a ChainState; it returns a new one.

    iteration:  Completed iterations (0 = initial imputation).
    freq:       (n_pops, n_columns) allele frequencies.
    loglik:     (n_unknown, n_wild) genetic log-likelihood of unknown individuals.
    mixing:     (n_pops,) mixing proportions.
    origins:    (n_individuals,) 0-based population index.
    covariate:  (n_individuals,) pathogen status with missing values imputed,
                or None for families without a resampled covariate.
    nuisance:   (n_strata, n_groups) infection probabilities, or None.
    """
    iteration: int
    freq: np.ndarray
    loglik: np.ndarray
    mixing: np.ndarray
    origins: np.ndarray
    covariate: Optional[np.ndarray] = None
    nuisance: Optional[np.ndarray] = None


@dataclass
class ChainTrace:
    """Retained samples from one chain.

    iterations: (n_samples,) post-adaptation iteration of each sample.
    mixing:     (n_samples, n_pops)
    origins:    (n_samples, n_individuals), 0-based
    nuisance:   (n_samples, n_strata, n_groups) or None
    freq:       (n_samples, n_pops, n_columns) when frequencies are recorded
    """
    chain_id: int
    iterations: np.ndarray
    mixing: np.ndarray
    origins: np.ndarray
    nuisance: Optional[np.ndarray] = None
    freq: Optional[np.ndarray] = None
    elapsed_s: float = 0.0

    @property
    def n_samples(self) -> int:
        return len(self.iterations)


@dataclass(frozen=True)
class ChainFailure:
    """Marker for a chain that did not finish."""
    chain_id: int
    iteration: Optional[int]
    message: str
