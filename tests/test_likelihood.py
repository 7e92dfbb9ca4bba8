"""Tests for natalmix.likelihood — Dirichlet draws, likelihoods, categorical draws."""

import numpy as np
import pytest

from natalmix.errors import NumericalFault
from natalmix.likelihood import (
    allele_frequency_means,
    assignment_log_weights,
    draw_allele_frequencies,
    genetic_log_likelihood,
    rdirichlet,
    reassigned_counts,
    sample_categorical,
)
from natalmix.types import TINY, LocusLayout


@pytest.fixture
def rng():
    return np.random.default_rng(2024)


class TestRdirichlet:
    def test_sums_to_one(self, rng):
        for _ in range(20):
            x = rdirichlet(np.array([0.5, 2.0, 3.0]), rng)
            assert x.sum() == pytest.approx(1.0)
            assert np.all(x > 0)

    def test_zero_total_gives_zeros(self, rng):
        x = rdirichlet(np.zeros(4), rng)
        np.testing.assert_array_equal(x, np.zeros(4))

    def test_zero_component_replaced_by_tiny(self, rng):
        x = rdirichlet(np.array([0.0, 5.0]), rng)
        assert x[0] == TINY
        assert x[1] == pytest.approx(1.0)

    def test_mean_matches_concentration(self, rng):
        alpha = np.array([1.0, 3.0, 6.0])
        draws = np.array([rdirichlet(alpha, rng) for _ in range(4000)])
        np.testing.assert_allclose(draws.mean(axis=0), alpha / alpha.sum(), atol=0.02)


class TestAlleleFrequencies:
    def test_locus_blocks_sum_to_one(self, rng):
        layout = LocusLayout.from_counts([3, 2])
        alpha = np.array([[1, 2, 3, 4, 5], [0.5, 0.5, 0.5, 1, 1]], dtype=float)
        freq = draw_allele_frequencies(alpha, layout, rng)
        sums = np.add.reduceat(freq, layout.starts, axis=1)
        np.testing.assert_allclose(sums, 1.0)

    def test_empty_block_is_zero(self, rng):
        layout = LocusLayout.from_counts([2, 2])
        alpha = np.array([[0, 0, 3, 1]], dtype=float)
        freq = draw_allele_frequencies(alpha, layout, rng)
        np.testing.assert_array_equal(freq[0, :2], [0.0, 0.0])
        assert freq[0, 2:].sum() == pytest.approx(1.0)

    def test_zero_column_in_nonempty_block(self, rng):
        layout = LocusLayout.from_counts([3])
        alpha = np.array([[2.0, 0.0, 2.0]])
        freq = draw_allele_frequencies(alpha, layout, rng)
        assert freq[0, 1] == TINY

    def test_means(self):
        layout = LocusLayout.from_counts([2, 2])
        alpha = np.array([[1, 3, 2, 2], [0, 0, 5, 0]], dtype=float)
        means = allele_frequency_means(alpha, layout)
        np.testing.assert_allclose(means[0], [0.25, 0.75, 0.5, 0.5])
        # all-zero block falls back to ones
        np.testing.assert_allclose(means[1], [1.0, 1.0, 1.0, 0.0])


class TestGeneticLikelihood:
    def test_matches_product_form(self):
        counts = np.array([[2, 0, 1, 1], [0, 2, 0, 2]], dtype=float)
        freq = np.array([[0.7, 0.3, 0.4, 0.6], [0.2, 0.8, 0.9, 0.1]])
        loglik = genetic_log_likelihood(counts, freq)
        expected = np.log(np.prod(freq[None, :, :] ** counts[:, None, :], axis=2))
        np.testing.assert_allclose(loglik, expected)

    def test_zero_frequency_with_zero_count(self):
        counts = np.array([[2.0, 0.0]])
        freq = np.array([[1.0, 0.0]])
        assert genetic_log_likelihood(counts, freq)[0, 0] == 0.0

    def test_zero_frequency_carried_allele(self):
        counts = np.array([[1.0, 1.0]])
        freq = np.array([[1.0, 0.0], [0.5, 0.5]])
        loglik = genetic_log_likelihood(counts, freq)
        assert np.isneginf(loglik[0, 0])
        assert loglik[0, 1] == pytest.approx(2 * np.log(0.5))

    def test_reassigned_counts(self):
        mixture = np.array([[2, 0], [1, 1], [0, 2]], dtype=float)
        out = reassigned_counts(mixture, np.array([0, 0, 2]), n_pops=3)
        np.testing.assert_array_equal(out, [[3, 1], [0, 0], [0, 2]])

    def test_assignment_log_weights(self):
        loglik = np.log(np.array([[0.5, 0.25]]))
        w = assignment_log_weights(loglik, np.array([0.5, 0.5]), np.array([[1.0, 0.0]]))
        assert w[0, 0] == pytest.approx(np.log(0.25))
        assert np.isneginf(w[0, 1])


class TestSampleCategorical:
    def test_frequencies(self, rng):
        log_w = np.log(np.tile([0.2, 0.3, 0.5], (20000, 1)))
        draws = sample_categorical(log_w, rng)
        freq = np.bincount(draws, minlength=3) / len(draws)
        np.testing.assert_allclose(freq, [0.2, 0.3, 0.5], atol=0.015)

    def test_never_draws_zero_weight(self, rng):
        log_w = np.log(np.tile([0.0, 1.0, 0.0], (500, 1)))
        assert np.all(sample_categorical(log_w, rng) == 1)

    def test_large_log_weights_are_stable(self, rng):
        log_w = np.array([[-1000.0, -1001.0], [-5000.0, -4990.0]])
        draws = sample_categorical(log_w, rng)
        assert draws.shape == (2,)
        assert draws[1] == 1

    def test_all_zero_row_raises(self, rng):
        log_w = np.array([[0.0, 0.0], [-np.inf, -np.inf]])
        with pytest.raises(NumericalFault, match="all-zero"):
            sample_categorical(log_w, rng)

    def test_nan_row_raises(self, rng):
        log_w = np.array([[np.nan, 0.0]])
        with pytest.raises(NumericalFault, match="non-finite"):
            sample_categorical(log_w, rng)
