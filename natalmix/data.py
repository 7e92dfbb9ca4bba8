"""Input contract for a mixture analysis.

A MixtureData bundles what the upstream data-preparation step produces:
allele-count tables for the mixture and the baseline (identical column
order), population and reporting-group metadata, optional known origins
and the covariate payload of the chosen family.

validate_mixture_data() is run before any chain starts. Every problem it
finds is fatal and the message names the offending identifiers.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Union

import numpy as np

from natalmix.types import (
    FAMILY_ICHTHY,
    FAMILY_MULTINOMIAL,
    FAMILY_NORMAL,
    UNKNOWN_ORIGIN,
    VALID_FAMILIES,
    LocusLayout,
)


ArrayLike = Union[np.ndarray, Sequence[float]]


# ═══════════════════════════════════════════════════════════════════════
# COVARIATE PAYLOADS
# ═══════════════════════════════════════════════════════════════════════

@dataclass
class IsotopeCovariate:
    """Isotope signature for the 'normal' family.

    values: (n_individuals,) per-individual reading, NaN if missing.
    means, sds: (n_pops,) isoscape mean and sd of each baseline population.
    """
    values: np.ndarray
    means: np.ndarray
    sds: np.ndarray

    def __post_init__(self):
        self.values = np.asarray(self.values, dtype=np.float64)
        self.means = np.asarray(self.means, dtype=np.float64)
        self.sds = np.asarray(self.sds, dtype=np.float64)


@dataclass
class PathogenCovariate:
    """Infection status for the 'ichthy' family.

    status: (n_individuals,) 1 = positive, 0 = negative, NaN = unknown.
    strata: (n_individuals,) 1-based stratum id.
    prior_a, prior_b: Beta prior on the infection probability; scalars or
        (n_strata, n_groups) arrays.
    """
    status: np.ndarray
    strata: np.ndarray
    prior_a: Union[float, np.ndarray] = 1.0
    prior_b: Union[float, np.ndarray] = 1.0

    def __post_init__(self):
        self.status = np.asarray(self.status, dtype=np.float64)
        self.strata = np.asarray(self.strata)

    @property
    def n_strata(self) -> int:
        return int(np.max(self.strata)) if self.strata.size else 0


# ═══════════════════════════════════════════════════════════════════════
# MIXTURE DATA
# ═══════════════════════════════════════════════════════════════════════

@dataclass
class MixtureData:
    """Prepared input for run_mixture_model().

    mixture:       (n_individuals, n_columns) allele counts of the mixture.
    baseline:      (n_pops, n_columns) allele counts; wild rows then hatchery rows.
    layout:        Locus structure of the columns.
    groups:        (n_pops,) 1-based reporting-group id per population.
    group_names:   Display name for each group id (index g-1).
    wildpops:      Wild population names (first K baseline rows).
    hatcheries:    Hatchery names (remaining rows); may be empty.
    known_origins: (n_individuals,) 1-based population index or NaN/None.
    family:        'multinomial', 'normal' or 'ichthy'.
    """
    mixture: np.ndarray
    baseline: np.ndarray
    layout: LocusLayout
    groups: np.ndarray
    group_names: List[str]
    wildpops: List[str] = field(default_factory=list)
    hatcheries: List[str] = field(default_factory=list)
    known_origins: Optional[ArrayLike] = None
    family: str = FAMILY_MULTINOMIAL
    isotope: Optional[IsotopeCovariate] = None
    pathogen: Optional[PathogenCovariate] = None

    def __post_init__(self):
        self.mixture = np.asarray(self.mixture, dtype=np.float64)
        self.baseline = np.asarray(self.baseline, dtype=np.float64)
        self.groups = np.asarray(self.groups)
        self.group_names = list(self.group_names)
        self.hatcheries = list(self.hatcheries or [])
        if not self.wildpops:
            n_wild = self.baseline.shape[0] - len(self.hatcheries)
            self.wildpops = [f"yrow_{i + 1}" for i in range(n_wild)]
        else:
            self.wildpops = list(self.wildpops)

    @property
    def n_wild(self) -> int:
        return len(self.wildpops)

    @property
    def n_hatcheries(self) -> int:
        return len(self.hatcheries)

    @property
    def n_pops(self) -> int:
        return self.n_wild + self.n_hatcheries

    @property
    def n_individuals(self) -> int:
        return self.mixture.shape[0]

    @property
    def n_groups(self) -> int:
        return int(np.max(self.groups)) if self.groups.size else 0

    @property
    def population_names(self) -> List[str]:
        return self.wildpops + self.hatcheries

    def origin_indices(self) -> np.ndarray:
        """Known origins as 0-based indices, UNKNOWN_ORIGIN where missing."""
        out = np.full(self.n_individuals, UNKNOWN_ORIGIN, dtype=np.int64)
        if self.known_origins is None:
            return out
        raw = np.array(
            [np.nan if v is None else v for v in self.known_origins],
            dtype=np.float64,
        )
        known = ~np.isnan(raw)
        out[known] = raw[known].astype(np.int64) - 1
        return out


def validate_mixture_data(data: MixtureData) -> None:
    """Check the input contract. Raises ValueError on the first failure.

    Checks:
      - Count tables are 2-D, non-negative and share the layout's columns
      - Population and reporting-group cardinalities agree
      - Hatcheries in the group vector are present in the baseline
      - Known origins fall inside the population index space
      - The family payload exists and matches the tables
    """
    if data.family not in VALID_FAMILIES:
        raise ValueError(
            f"family must be one of {VALID_FAMILIES}, got '{data.family}'"
        )

    if data.mixture.ndim != 2 or data.baseline.ndim != 2:
        raise ValueError(
            f"mixture and baseline must be 2-D count tables, got "
            f"{data.mixture.ndim}-D and {data.baseline.ndim}-D"
        )
    n_cols = data.layout.n_columns
    if data.mixture.shape[1] != n_cols or data.baseline.shape[1] != n_cols:
        raise ValueError(
            f"column count mismatch: layout has {n_cols} allele columns, "
            f"mixture has {data.mixture.shape[1]}, baseline has "
            f"{data.baseline.shape[1]}"
        )
    if any(n < 1 for n in data.layout.n_alleles):
        bad = [name for name, n in zip(data.layout.names, data.layout.n_alleles) if n < 1]
        raise ValueError(f"loci without allele types: {bad}")
    if np.any(data.mixture < 0) or np.any(data.baseline < 0):
        raise ValueError("allele counts must be non-negative")
    if np.isnan(data.mixture).any() or np.isnan(data.baseline).any():
        raise ValueError("allele counts must not contain NaN")

    n_wild = data.n_wild
    n_pops = data.n_pops
    if n_wild < 1:
        raise ValueError("at least one wild population is required")

    # Hatcheries listed in groups but missing from the baseline
    if data.n_hatcheries == 0 and len(data.groups) > n_wild:
        raise ValueError(
            f"There were hatcheries (known pops) in the reporting groups "
            f"({len(data.groups)} group entries for {n_wild} wild populations), "
            f"but no hatchery was found in the baseline data."
        )
    if data.baseline.shape[0] != n_pops:
        raise ValueError(
            f"baseline has {data.baseline.shape[0]} rows but "
            f"{n_wild} wild populations + {data.n_hatcheries} hatcheries "
            f"= {n_pops} were named"
        )
    if len(data.groups) != n_pops:
        raise ValueError(
            f"groups has {len(data.groups)} entries, expected one per "
            f"population ({n_pops})"
        )
    if np.any(data.groups < 1):
        bad = [data.population_names[i] for i in np.flatnonzero(data.groups < 1)]
        raise ValueError(f"reporting-group ids must be >= 1; offending populations: {bad}")
    missing_groups = sorted(set(range(1, data.n_groups + 1)) - set(int(g) for g in data.groups))
    if missing_groups:
        raise ValueError(
            f"reporting-group ids must be contiguous 1..{data.n_groups}; "
            f"no population in group(s) {missing_groups}"
        )
    if len(data.group_names) != data.n_groups:
        raise ValueError(
            f"group_names has {len(data.group_names)} entries but group ids "
            f"run 1..{data.n_groups}"
        )

    # Known origins
    if data.known_origins is not None:
        if len(data.known_origins) != data.n_individuals:
            raise ValueError(
                f"known_origins has {len(data.known_origins)} entries, "
                f"mixture has {data.n_individuals} individuals"
            )
        raw = np.array(
            [np.nan if v is None else v for v in data.known_origins],
            dtype=np.float64,
        )
        known = raw[~np.isnan(raw)]
        bad = np.unique(known[(known < 1) | (known > n_pops) | (known != np.floor(known))])
        if bad.size:
            raise ValueError(
                f"Unidentified populations in known origins: {bad.tolist()}. "
                f"Valid indices are 1..{n_pops}; maybe there are hatcheries "
                f"in the data that are not listed in the reporting groups?"
            )

    # Family payloads
    if data.family == FAMILY_NORMAL:
        iso = data.isotope
        if iso is None:
            raise ValueError("family 'normal' requires an isotope covariate")
        if iso.values.shape != (data.n_individuals,):
            raise ValueError(
                f"isotope.values must have shape ({data.n_individuals},), "
                f"got {iso.values.shape}"
            )
        if iso.means.shape != (n_pops,) or iso.sds.shape != (n_pops,):
            raise ValueError(
                f"isotope.means and isotope.sds must have one entry per "
                f"population ({n_pops})"
            )
        bad = [data.population_names[i] for i in np.flatnonzero(~(iso.sds[:n_wild] > 0))]
        if bad:
            raise ValueError(f"isotope sd must be positive for wild populations: {bad}")

    if data.family == FAMILY_ICHTHY:
        pat = data.pathogen
        if pat is None:
            raise ValueError("family 'ichthy' requires a pathogen covariate")
        if pat.status.shape != (data.n_individuals,):
            raise ValueError(
                f"pathogen.status must have shape ({data.n_individuals},), "
                f"got {pat.status.shape}"
            )
        observed = pat.status[~np.isnan(pat.status)]
        if not np.all(np.isin(observed, (0.0, 1.0))):
            raise ValueError("pathogen.status must be 0, 1 or NaN")
        if pat.strata.shape != (data.n_individuals,):
            raise ValueError(
                f"pathogen.strata must have shape ({data.n_individuals},), "
                f"got {pat.strata.shape}"
            )
        if pat.strata.size and np.min(pat.strata) < 1:
            raise ValueError("pathogen.strata ids must be >= 1")
        for label, prior in (('prior_a', pat.prior_a), ('prior_b', pat.prior_b)):
            arr = np.asarray(prior, dtype=np.float64)
            if np.any(arr <= 0):
                raise ValueError(f"pathogen.{label} must be positive")
            if arr.ndim and arr.shape != (pat.n_strata, data.n_groups):
                raise ValueError(
                    f"pathogen.{label} must be a scalar or have shape "
                    f"({pat.n_strata}, {data.n_groups}), got {arr.shape}"
                )
