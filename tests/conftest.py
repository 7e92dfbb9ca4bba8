"""Shared fixtures: small synthetic mixtures with obvious answers."""

import numpy as np
import pytest

from natalmix.config import default_config
from natalmix.data import IsotopeCovariate, MixtureData, PathogenCovariate
from natalmix.gibbs import SamplerContext
from natalmix.types import LocusLayout


def make_three_pop_data(n_individuals=30, **kwargs):
    """pop_1 carries allele 1 only, pop_2 and pop_3 allele 2 only.

    Every mixture individual is homozygous for allele 1, so all of them
    belong to pop_1 (reporting group 1 = pop_1 + pop_2).
    """
    layout = LocusLayout.from_counts([2])
    baseline = np.array([[20, 0], [0, 20], [0, 20]], dtype=float)
    mixture = np.tile([2.0, 0.0], (n_individuals, 1))
    fields = dict(
        mixture=mixture,
        baseline=baseline,
        layout=layout,
        groups=np.array([1, 1, 2]),
        group_names=['north', 'south'],
        wildpops=['pop_1', 'pop_2', 'pop_3'],
    )
    fields.update(kwargs)
    return MixtureData(**fields)


def make_two_locus_data(n_individuals=40, seed=0):
    """Two loci, two wild populations with different frequencies, one hatchery.

    The last 5 individuals have a known hatchery origin.
    """
    rng = np.random.default_rng(seed)
    layout = LocusLayout.from_counts([3, 2], names=['L1', 'L2'])
    baseline = np.array([
        [30, 10, 10, 25, 25],
        [5, 20, 25, 40, 10],
        [10, 10, 30, 10, 40],
    ], dtype=float)
    freqs = [
        [np.array([.6, .2, .2]), np.array([.5, .5])],
        [np.array([.1, .4, .5]), np.array([.8, .2])],
    ]
    rows = []
    for i in range(n_individuals):
        src = freqs[i % 2]
        rows.append(np.concatenate([rng.multinomial(2, src[0]), rng.multinomial(2, src[1])]))
    mixture = np.array(rows, dtype=float)
    known = [None] * (n_individuals - 5) + [3] * 5
    return MixtureData(
        mixture=mixture,
        baseline=baseline,
        layout=layout,
        groups=np.array([1, 2, 2]),
        group_names=['A', 'B+H'],
        wildpops=['wild_A', 'wild_B'],
        hatcheries=['hatch_H'],
        known_origins=known,
    )


@pytest.fixture
def three_pop_data():
    return make_three_pop_data()


@pytest.fixture
def two_locus_data():
    return make_two_locus_data()


@pytest.fixture
def isotope_data():
    data = make_three_pop_data(n_individuals=6)
    data.family = 'normal'
    data.isotope = IsotopeCovariate(
        values=np.array([-20.0, -20.5, np.nan, -19.5, -20.0, -21.0]),
        means=np.array([-20.0, -15.0, -25.0]),
        sds=np.array([1.0, 1.0, 1.0]),
    )
    return data


@pytest.fixture
def pathogen_data():
    data = make_two_locus_data(n_individuals=40)
    status = np.tile([1.0, 0.0, np.nan, 0.0], 10)
    strata = np.repeat([1, 2], 20)
    data.family = 'ichthy'
    data.pathogen = PathogenCovariate(status=status, strata=strata)
    return data


@pytest.fixture
def small_config():
    return default_config(nreps=60, nburn=20, thin=1, nchains=2, seed=123)


@pytest.fixture
def cgsi_ctx(two_locus_data, small_config):
    return SamplerContext.from_data(two_locus_data, small_config.sampler)


@pytest.fixture
def full_bayes_ctx(two_locus_data):
    cfg = default_config(nreps=40, nburn=10, nchains=2, cond_gsi=False,
                         nadapt=5, seed=7)
    return SamplerContext.from_data(two_locus_data, cfg.sampler)


@pytest.fixture
def three_pop_factory():
    """Builder for variants of the three-population dataset."""
    return make_three_pop_data


@pytest.fixture
def two_locus_factory():
    return make_two_locus_data
