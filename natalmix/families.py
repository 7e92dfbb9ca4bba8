"""Auxiliary likelihood families.

Each family multiplies the genetic likelihood by an individual-level
auxiliary term. All three expose the same interface, so the Gibbs step
never branches on the family name:

  - Multinomial:           auxiliary term is 1 (genetics only, or an
                           isotope signature binned into an extra locus)
  - IsotopeGaussian:       Gaussian density of the isotope reading at each
                           population's isoscape (mean, sd); fixed over the run
  - PathogenBetaBinomial:  Bernoulli likelihood of infection status under a
                           per-(stratum, reporting group) infection probability
                           theta ~ Beta, resampled every iteration

Missing covariate values contribute a factor of 1.
"""

from __future__ import annotations

from typing import Optional, Union

import numpy as np
from scipy.stats import norm

from natalmix.data import MixtureData
from natalmix.types import FAMILY_ICHTHY, FAMILY_MULTINOMIAL, FAMILY_NORMAL


class Family:
    """Base interface. Static families only override auxiliary_likelihood."""

    name = 'base'
    has_nuisance = False

    def auxiliary_likelihood(
        self,
        covariate: Optional[np.ndarray],
        nuisance: Optional[np.ndarray],
    ) -> np.ndarray:
        """(n_individuals, n_pops) auxiliary likelihood matrix."""
        raise NotImplementedError

    def initial_covariate(self) -> Optional[np.ndarray]:
        return None

    def initial_nuisance(self, rng: np.random.Generator) -> Optional[np.ndarray]:
        return None

    def update_nuisance(
        self,
        origins: np.ndarray,
        covariate: Optional[np.ndarray],
        rng: np.random.Generator,
    ) -> Optional[np.ndarray]:
        return None

    def impute_covariate(
        self,
        origins: np.ndarray,
        covariate: Optional[np.ndarray],
        nuisance: Optional[np.ndarray],
        rng: np.random.Generator,
    ) -> Optional[np.ndarray]:
        return covariate


class Multinomial(Family):
    name = FAMILY_MULTINOMIAL

    def __init__(self, n_individuals: int, n_pops: int):
        self._ones = np.ones((n_individuals, n_pops), dtype=np.float64)

    def auxiliary_likelihood(self, covariate=None, nuisance=None) -> np.ndarray:
        return self._ones


class IsotopeGaussian(Family):
    """Isotope signature against each population's isoscape.

    The isoscape is fixed, so the matrix is computed once.
    """

    name = FAMILY_NORMAL

    def __init__(self, values: np.ndarray, means: np.ndarray, sds: np.ndarray):
        self.values = np.asarray(values, dtype=np.float64)
        self.means = np.asarray(means, dtype=np.float64)
        self.sds = np.asarray(sds, dtype=np.float64)
        with np.errstate(invalid='ignore', divide='ignore'):
            dens = norm.pdf(self.values[:, None], loc=self.means[None, :],
                            scale=self.sds[None, :])
        self._density = np.where(np.isnan(dens), 1.0, dens)

    def auxiliary_likelihood(self, covariate=None, nuisance=None) -> np.ndarray:
        return self._density


class PathogenBetaBinomial(Family):
    """Infection status with a Beta prior on prevalence per stratum and group.

    Args:
        status: (n_individuals,) 1/0/NaN infection status.
        strata: (n_individuals,) 1-based stratum id.
        groups: (n_pops,) 1-based reporting-group id of each population.
        prior_a, prior_b: Beta prior; scalar or (n_strata, n_groups).
    """

    name = FAMILY_ICHTHY
    has_nuisance = True

    def __init__(
        self,
        status: np.ndarray,
        strata: np.ndarray,
        groups: np.ndarray,
        prior_a: Union[float, np.ndarray] = 1.0,
        prior_b: Union[float, np.ndarray] = 1.0,
    ):
        self.status = np.asarray(status, dtype=np.float64)
        self.missing = np.flatnonzero(np.isnan(self.status))
        self.strata = np.asarray(strata, dtype=np.int64) - 1
        self.groups = np.asarray(groups, dtype=np.int64) - 1
        self.n_strata = int(self.strata.max()) + 1
        self.n_groups = int(self.groups.max()) + 1
        shape = (self.n_strata, self.n_groups)
        self.prior_a = np.broadcast_to(np.asarray(prior_a, dtype=np.float64), shape)
        self.prior_b = np.broadcast_to(np.asarray(prior_b, dtype=np.float64), shape)

    def initial_covariate(self) -> np.ndarray:
        return self.status.copy()

    def initial_nuisance(self, rng: np.random.Generator) -> np.ndarray:
        return rng.beta(self.prior_a, self.prior_b)

    def auxiliary_likelihood(self, covariate: np.ndarray, nuisance: np.ndarray) -> np.ndarray:
        theta = nuisance[self.strata][:, self.groups]   # (n_individuals, n_pops)
        y = covariate[:, None]
        with np.errstate(invalid='ignore'):
            lik = np.where(y == 1, theta, 1.0 - theta)
        lik[np.isnan(covariate)] = 1.0
        return lik

    def tabulate(self, origins: np.ndarray, covariate: np.ndarray):
        """Positive and negative counts per (stratum, group of origin)."""
        g = self.groups[origins]
        pos = np.zeros((self.n_strata, self.n_groups))
        neg = np.zeros((self.n_strata, self.n_groups))
        np.add.at(pos, (self.strata, g), (covariate == 1).astype(np.float64))
        np.add.at(neg, (self.strata, g), (covariate == 0).astype(np.float64))
        return pos, neg

    def update_nuisance(self, origins, covariate, rng) -> np.ndarray:
        pos, neg = self.tabulate(origins, covariate)
        return rng.beta(pos + self.prior_a, neg + self.prior_b)

    def impute_covariate(self, origins, covariate, nuisance, rng) -> np.ndarray:
        out = covariate.copy()
        if self.missing.size == 0:
            return out
        idx = self.missing
        p = nuisance[self.strata[idx], self.groups[origins[idx]]]
        out[idx] = (rng.random(idx.size) < p).astype(np.float64)
        return out


def build_family(data: MixtureData) -> Family:
    """Instantiate the family variant named by data.family."""
    if data.family == FAMILY_NORMAL:
        iso = data.isotope
        return IsotopeGaussian(iso.values, iso.means, iso.sds)
    if data.family == FAMILY_ICHTHY:
        pat = data.pathogen
        return PathogenBetaBinomial(
            pat.status, pat.strata, data.groups,
            prior_a=pat.prior_a, prior_b=pat.prior_b,
        )
    return Multinomial(data.n_individuals, data.n_pops)
