"""Tests for natalmix.rng — seeded per-chain RNG hierarchy."""

import logging

import numpy as np
import pytest

from natalmix.rng import (
    create_rng_hierarchy,
    get_chain_rng,
    resolve_seed,
    split_streams,
)


class TestCreateRngHierarchy:
    def test_returns_correct_keys(self):
        rngs = create_rng_hierarchy(42, n_chains=4)
        assert 'init' in rngs
        for i in range(4):
            assert f'chain_{i}' in rngs
        assert len(rngs) == 4 + 1

    def test_generators_are_independent(self):
        rngs = create_rng_hierarchy(42, n_chains=3)
        vals = {name: rng.random() for name, rng in rngs.items()}
        assert len(set(vals.values())) == len(vals)

    def test_reproducibility(self):
        rngs1 = create_rng_hierarchy(42, n_chains=3)
        rngs2 = create_rng_hierarchy(42, n_chains=3)
        for name in rngs1:
            np.testing.assert_array_equal(rngs1[name].random(100), rngs2[name].random(100))

    def test_different_seeds_differ(self):
        a = create_rng_hierarchy(42, n_chains=2)['chain_0'].random(10)
        b = create_rng_hierarchy(43, n_chains=2)['chain_0'].random(10)
        assert not np.array_equal(a, b)

    def test_adding_chains_keeps_existing_streams(self):
        small = create_rng_hierarchy(42, n_chains=2)
        large = create_rng_hierarchy(42, n_chains=5)
        np.testing.assert_array_equal(small['init'].random(20), large['init'].random(20))
        np.testing.assert_array_equal(small['chain_1'].random(20), large['chain_1'].random(20))

    def test_streams_do_not_interfere(self):
        """Draining one chain's stream leaves the others untouched."""
        ref = create_rng_hierarchy(7, n_chains=2)['chain_1'].random(5)
        rngs = create_rng_hierarchy(7, n_chains=2)
        rngs['chain_0'].random(10_000)
        np.testing.assert_array_equal(rngs['chain_1'].random(5), ref)


class TestChainAccess:
    def test_get_chain_rng(self):
        rngs = create_rng_hierarchy(1, n_chains=2)
        assert get_chain_rng(rngs, 1) is rngs['chain_1']

    def test_missing_chain(self):
        rngs = create_rng_hierarchy(1, n_chains=2)
        with pytest.raises(KeyError, match="chain 5"):
            get_chain_rng(rngs, 5)

    def test_split_streams(self):
        init, chains = split_streams(11, 3)
        assert sorted(chains) == [0, 1, 2]
        ref = create_rng_hierarchy(11, 3)
        assert init.random() == ref['init'].random()
        assert chains[2].random() == ref['chain_2'].random()


class TestResolveSeed:
    def test_seed_passes_through(self):
        assert resolve_seed(17) == 17

    def test_none_draws_and_logs_entropy(self, caplog):
        with caplog.at_level(logging.INFO, logger='natalmix.rng'):
            seed = resolve_seed(None)
        assert isinstance(seed, int)
        assert seed >= 0
        assert str(seed) in caplog.text
