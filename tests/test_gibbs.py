"""Tests for natalmix.gibbs — sampler context, initial state, Gibbs step, chain driver."""

import numpy as np
import pytest

from natalmix import gibbs
from natalmix.config import default_config
from natalmix.errors import ChainError, NumericalFault
from natalmix.gibbs import (
    PHASE_ADAPTING,
    PHASE_SAMPLING,
    SamplerContext,
    gibbs_step,
    initial_state,
    run_chain,
    trace_states,
)


def _locus_sums(freq, layout):
    return np.add.reduceat(freq, layout.starts, axis=1)


# ═══════════════════════════════════════════════════════════════════════
# CONTEXT / SCHEDULE
# ═══════════════════════════════════════════════════════════════════════

class TestSchedule:
    @pytest.mark.parametrize("thin", [1, 2, 5])
    @pytest.mark.parametrize("keep_burn", [False, True])
    def test_recorded_count_matches_formula(self, three_pop_data, thin, keep_burn):
        cfg = default_config(nreps=100, nburn=20, thin=thin, keep_burn=keep_burn)
        ctx = SamplerContext.from_data(three_pop_data, cfg.sampler)
        recorded = [it for it in range(1, ctx.total_iterations + 1) if ctx.should_record(it)]
        expected = (100 - (0 if keep_burn else 20)) // thin
        assert len(recorded) == expected == ctx.n_retained

    def test_adaptation_never_recorded(self, three_pop_data):
        cfg = default_config(nreps=30, nburn=10, nadapt=15, cond_gsi=False)
        ctx = SamplerContext.from_data(three_pop_data, cfg.sampler)
        assert ctx.total_iterations == 45
        assert not any(ctx.should_record(it) for it in range(1, 16))
        assert ctx.phase(15) == PHASE_ADAPTING
        assert ctx.phase(16) == PHASE_SAMPLING

    def test_nadapt_ignored_under_cgsi(self, three_pop_data):
        with pytest.warns(UserWarning, match="nadapt"):
            cfg = default_config(nreps=30, nburn=10, nadapt=15)
        ctx = SamplerContext.from_data(three_pop_data, cfg.sampler)
        assert ctx.nadapt == 0
        assert not ctx.updates_frequencies(1)

    def test_frequencies_frozen_during_adaptation(self, full_bayes_ctx):
        assert not full_bayes_ctx.updates_frequencies(5)
        assert full_bayes_ctx.updates_frequencies(6)

    def test_unknown_excludes_known(self, cgsi_ctx):
        assert cgsi_ctx.unknown.tolist() == list(range(35))


# ═══════════════════════════════════════════════════════════════════════
# INITIAL STATE
# ═══════════════════════════════════════════════════════════════════════

class TestInitialState:
    def test_shapes_and_invariants(self, cgsi_ctx):
        state = initial_state(cgsi_ctx, np.random.default_rng(1))
        assert state.iteration == 0
        assert state.freq.shape == cgsi_ctx.baseline.shape
        assert state.loglik.shape == (35, 2)
        assert state.mixing.sum() == pytest.approx(1.0)
        np.testing.assert_allclose(_locus_sums(state.freq, cgsi_ctx.layout), 1.0)

    def test_known_origins_kept(self, cgsi_ctx):
        state = initial_state(cgsi_ctx, np.random.default_rng(1))
        assert np.all(state.origins[-5:] == 2)

    def test_unknown_only_wild(self, cgsi_ctx):
        state = initial_state(cgsi_ctx, np.random.default_rng(1))
        assert np.all(state.origins[:35] < cgsi_ctx.n_wild)

    def test_posterior_mean_frequencies(self, three_pop_data):
        cfg = default_config(nreps=10, nburn=2)
        ctx = SamplerContext.from_data(three_pop_data, cfg.sampler)
        state = initial_state(ctx, np.random.default_rng(0))
        # (20 + 1/2) / (20 + 1)
        assert state.freq[0, 0] == pytest.approx(20.5 / 21)

    def test_unmatched_individual_rejected(self, isotope_data):
        """An isotope reading no wild population can produce."""
        isotope_data.isotope.values[1] = 1.0e6
        cfg = default_config(nreps=10, nburn=2)
        ctx = SamplerContext.from_data(isotope_data, cfg.sampler)
        with pytest.warns(UserWarning, match="hatchery"):
            with pytest.raises(ValueError, match=r"individuals \[2\]"):
                initial_state(ctx, np.random.default_rng(0))


# ═══════════════════════════════════════════════════════════════════════
# GIBBS STEP
# ═══════════════════════════════════════════════════════════════════════

class TestGibbsStep:
    def test_step_does_not_mutate_input(self, cgsi_ctx):
        state = initial_state(cgsi_ctx, np.random.default_rng(1))
        origins_before = state.origins.copy()
        freq_before = state.freq.copy()
        new = gibbs_step(state, cgsi_ctx, np.random.default_rng(2))
        np.testing.assert_array_equal(state.origins, origins_before)
        np.testing.assert_array_equal(state.freq, freq_before)
        assert new.iteration == state.iteration + 1

    def test_step_is_deterministic_given_rng(self, cgsi_ctx):
        state = initial_state(cgsi_ctx, np.random.default_rng(1))
        a = gibbs_step(state, cgsi_ctx, np.random.default_rng(5))
        b = gibbs_step(state, cgsi_ctx, np.random.default_rng(5))
        np.testing.assert_array_equal(a.mixing, b.mixing)
        np.testing.assert_array_equal(a.origins, b.origins)

    def test_mixing_sums_to_one(self, full_bayes_ctx):
        rng = np.random.default_rng(3)
        states = trace_states(full_bayes_ctx, initial_state(full_bayes_ctx, rng), rng, 30)
        for s in states:
            assert s.mixing.sum() == pytest.approx(1.0)

    def test_known_origins_invariant(self, full_bayes_ctx):
        rng = np.random.default_rng(3)
        states = trace_states(full_bayes_ctx, initial_state(full_bayes_ctx, rng), rng, 30)
        for s in states:
            assert np.all(s.origins[-5:] == 2)
            assert np.all(s.origins[:35] < 2)

    def test_cgsi_frequencies_bit_identical(self, cgsi_ctx):
        rng = np.random.default_rng(4)
        states = trace_states(cgsi_ctx, initial_state(cgsi_ctx, rng), rng, 20)
        for s in states[1:]:
            assert np.array_equal(s.freq, states[0].freq)

    def test_full_bayes_frequencies_change(self, full_bayes_ctx):
        rng = np.random.default_rng(4)
        states = trace_states(full_bayes_ctx, initial_state(full_bayes_ctx, rng), rng, 10)
        # frozen through adaptation (5 iterations), then redrawn every step
        for s in states[1:6]:
            assert np.array_equal(s.freq, states[0].freq)
        for prev, cur in zip(states[6:], states[7:]):
            assert not np.array_equal(prev.freq, cur.freq)

    def test_full_bayes_frequency_blocks_valid(self, full_bayes_ctx):
        rng = np.random.default_rng(6)
        states = trace_states(full_bayes_ctx, initial_state(full_bayes_ctx, rng), rng, 15)
        for s in states:
            np.testing.assert_allclose(_locus_sums(s.freq, full_bayes_ctx.layout), 1.0)

    def test_clear_separation(self, three_pop_factory):
        """An allele-1 homozygote against a pure allele-1 and a pure allele-2 source."""
        data = three_pop_factory(
            n_individuals=1,
            baseline=np.array([[200, 0], [0, 200], [0, 200]], dtype=float),
        )
        cfg = default_config(nreps=10, nburn=2)
        ctx = SamplerContext.from_data(data, cfg.sampler)
        rng = np.random.default_rng(10)
        states = trace_states(ctx, initial_state(ctx, rng), rng, 500)
        share = np.mean([s.origins[0] == 0 for s in states[1:]])
        assert share >= 0.99

    def test_pathogen_state_carried(self, pathogen_data):
        cfg = default_config(nreps=10, nburn=2)
        ctx = SamplerContext.from_data(pathogen_data, cfg.sampler)
        rng = np.random.default_rng(8)
        states = trace_states(ctx, initial_state(ctx, rng), rng, 5)
        for s in states:
            assert s.nuisance.shape == (2, 2)
            assert not np.isnan(s.covariate).any()
            observed = ~np.isnan(pathogen_data.pathogen.status)
            np.testing.assert_array_equal(s.covariate[observed],
                                          pathogen_data.pathogen.status[observed])


# ═══════════════════════════════════════════════════════════════════════
# CHAIN DRIVER
# ═══════════════════════════════════════════════════════════════════════

class TestRunChain:
    def test_trace_shapes(self, cgsi_ctx):
        init = initial_state(cgsi_ctx, np.random.default_rng(1))
        trace = run_chain(0, cgsi_ctx, init, np.random.default_rng(2))
        assert trace.n_samples == cgsi_ctx.n_retained == 40
        assert trace.mixing.shape == (40, 3)
        assert trace.origins.shape == (40, 40)
        assert trace.nuisance is None
        assert trace.freq is None
        np.testing.assert_array_equal(trace.iterations, np.arange(21, 61))

    def test_iterations_exclude_adaptation(self, full_bayes_ctx):
        init = initial_state(full_bayes_ctx, np.random.default_rng(1))
        trace = run_chain(1, full_bayes_ctx, init, np.random.default_rng(2))
        np.testing.assert_array_equal(trace.iterations, np.arange(11, 41))

    def test_records_frequencies(self, two_locus_data):
        cfg = default_config(nreps=20, nburn=10, cond_gsi=False, record_frequencies=True)
        ctx = SamplerContext.from_data(two_locus_data, cfg.sampler)
        init = initial_state(ctx, np.random.default_rng(1))
        trace = run_chain(0, ctx, init, np.random.default_rng(2))
        assert trace.freq.shape == (10, 3, 5)

    def test_reproducible(self, cgsi_ctx):
        init = initial_state(cgsi_ctx, np.random.default_rng(1))
        a = run_chain(0, cgsi_ctx, init, np.random.default_rng(2))
        b = run_chain(0, cgsi_ctx, init, np.random.default_rng(2))
        np.testing.assert_array_equal(a.mixing, b.mixing)
        np.testing.assert_array_equal(a.origins, b.origins)

    def test_numerical_fault_becomes_chain_error(self, cgsi_ctx, monkeypatch):
        init = initial_state(cgsi_ctx, np.random.default_rng(1))
        calls = {'n': 0}
        real = gibbs.sample_categorical

        def flaky(log_w, rng):
            calls['n'] += 1
            if calls['n'] == 7:
                raise NumericalFault("all-zero sampling weights")
            return real(log_w, rng)

        monkeypatch.setattr(gibbs, 'sample_categorical', flaky)
        with pytest.raises(ChainError) as excinfo:
            run_chain(3, cgsi_ctx, init, np.random.default_rng(2))
        assert excinfo.value.chain_id == 3
        assert excinfo.value.iteration == 7
