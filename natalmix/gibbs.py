"""Gibbs sampler for the Pella-Masuda mixture model.

One chain is a sequence of immutable ChainState records:

    state_0 = initial_state(ctx, init_rng)        # shared by all chains
    state_{t+1} = gibbs_step(state_t, ctx, rng)   # pure in (state, ctx)

Each step, in order:
  1. Full Bayes, past adaptation: redraw baseline allele frequencies per
     locus from Dirichlet(baseline + prior + mixture counts by origin) and
     recompute genetic log-likelihoods of unknown individuals
  2. Families with a nuisance parameter: redraw it (pathogen prevalence)
  3. Mixing proportions ~ Dirichlet(origin counts + prior)
  4. Every unknown individual: draw a wild population of origin with weight
     aux x p x genetic likelihood
  5. Impute missing covariates (pathogen status) under the new origins

Phases: iterations 1..nadapt are adaptation (full Bayes only; frequencies
stay at their initial value while origins settle), then nreps sampling
iterations. Conditional GSI has no adaptation and never touches the
frequencies, which stay bit-identical to the initial posterior mean.
"""

from __future__ import annotations

import logging
import time
import warnings
from dataclasses import dataclass
from typing import List, Optional

import numpy as np

from natalmix.config import SamplerSection
from natalmix.data import MixtureData
from natalmix.errors import ChainError, NumericalFault
from natalmix.families import Family, build_family
from natalmix.likelihood import (
    allele_frequency_means,
    assignment_log_weights,
    draw_allele_frequencies,
    genetic_log_likelihood,
    rdirichlet,
    reassigned_counts,
    sample_categorical,
)
from natalmix.priors import build_priors
from natalmix.types import UNKNOWN_ORIGIN, ChainState, ChainTrace, LocusLayout, PriorSet

logger = logging.getLogger(__name__)

PHASE_ADAPTING = 'adapting'
PHASE_SAMPLING = 'sampling'


# ═══════════════════════════════════════════════════════════════════════
# SAMPLER CONTEXT (read-only, shared by all chains)
# ═══════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class SamplerContext:
    """Everything a chain reads but never writes."""
    mixture: np.ndarray        # (n_individuals, n_columns)
    baseline: np.ndarray       # (n_pops, n_columns)
    layout: LocusLayout
    priors: PriorSet
    groups: np.ndarray         # (n_pops,) 1-based
    n_wild: int
    known_origins: np.ndarray  # (n_individuals,) 0-based, UNKNOWN_ORIGIN if unknown
    family: Family
    nreps: int
    nburn: int
    thin: int
    nadapt: int
    keep_burn: bool = False
    cond_gsi: bool = True
    record_frequencies: bool = False

    @classmethod
    def from_data(cls, data: MixtureData, sampler: SamplerSection) -> 'SamplerContext':
        priors = build_priors(data.baseline, data.layout, data.groups, data.n_wild)
        return cls(
            mixture=data.mixture,
            baseline=data.baseline,
            layout=data.layout,
            priors=priors,
            groups=np.asarray(data.groups, dtype=np.int64),
            n_wild=data.n_wild,
            known_origins=data.origin_indices(),
            family=build_family(data),
            nreps=sampler.nreps,
            nburn=sampler.nburn,
            thin=sampler.thin,
            nadapt=sampler.effective_nadapt,
            keep_burn=sampler.keep_burn,
            cond_gsi=sampler.cond_gsi,
            record_frequencies=sampler.record_frequencies,
        )

    @property
    def n_pops(self) -> int:
        return self.baseline.shape[0]

    @property
    def n_individuals(self) -> int:
        return self.mixture.shape[0]

    @property
    def unknown(self) -> np.ndarray:
        """Indices of individuals whose origin is resampled."""
        return np.flatnonzero(self.known_origins == UNKNOWN_ORIGIN)

    @property
    def total_iterations(self) -> int:
        return self.nreps + self.nadapt

    @property
    def effective_nburn(self) -> int:
        return 0 if self.keep_burn else self.nburn

    @property
    def n_retained(self) -> int:
        return (self.nreps - self.effective_nburn) // self.thin

    def phase(self, iteration: int) -> str:
        return PHASE_ADAPTING if iteration <= self.nadapt else PHASE_SAMPLING

    def should_record(self, iteration: int) -> bool:
        """Past adaptation and burn-in, and on the thinning grid."""
        if iteration <= self.nadapt:
            return False
        post = iteration - self.nadapt - self.effective_nburn
        return post > 0 and post % self.thin == 0

    def updates_frequencies(self, iteration: int) -> bool:
        return not self.cond_gsi and iteration > self.nadapt


# ═══════════════════════════════════════════════════════════════════════
# INITIAL STATE
# ═══════════════════════════════════════════════════════════════════════

def initial_state(ctx: SamplerContext, rng: np.random.Generator) -> ChainState:
    """Posterior-mean frequencies and a first imputation of unknown origins.

    Built once from the shared 'init' stream; every chain starts here.

    Raises:
        ValueError: If an unknown-origin individual has zero likelihood under
            every wild population (possibly a hatchery fish that is not
            flagged as known).
    """
    K = ctx.n_wild
    unknown = ctx.unknown
    freq = allele_frequency_means(ctx.baseline + ctx.priors.allele, ctx.layout)
    loglik = genetic_log_likelihood(ctx.mixture[unknown], freq[:K])

    covariate = ctx.family.initial_covariate()
    nuisance = ctx.family.initial_nuisance(rng)
    aux = ctx.family.auxiliary_likelihood(covariate, nuisance)

    origins = ctx.known_origins.copy()
    if unknown.size:
        log_w = assignment_log_weights(loglik, ctx.priors.mixing[:K], aux[unknown, :K])
        dead = np.isneginf(log_w).all(axis=1)
        if dead.any():
            rows = unknown[dead]
            warnings.warn(
                f"{rows.size} unknown-origin individual(s) match no wild "
                f"population; they may be hatchery fish without a known origin",
                UserWarning,
                stacklevel=2,
            )
            raise ValueError(
                f"individuals {(rows + 1).tolist()} have zero likelihood under "
                f"every wild population"
            )
        try:
            origins[unknown] = sample_categorical(log_w, rng)
        except NumericalFault as exc:
            raise ValueError(f"initial origin imputation failed: {exc}") from exc

    covariate = ctx.family.impute_covariate(origins, covariate, nuisance, rng)
    mixing = ctx.priors.mixing / ctx.priors.mixing.sum()

    return ChainState(
        iteration=0,
        freq=freq,
        loglik=loglik,
        mixing=mixing,
        origins=origins,
        covariate=covariate,
        nuisance=nuisance,
    )


# ═══════════════════════════════════════════════════════════════════════
# GIBBS STEP
# ═══════════════════════════════════════════════════════════════════════

def gibbs_step(state: ChainState, ctx: SamplerContext, rng: np.random.Generator) -> ChainState:
    """Advance one iteration. Returns a new state; `state` is left untouched.

    Raises:
        NumericalFault: Non-finite likelihood or all-zero sampling weights.
    """
    iteration = state.iteration + 1
    K = ctx.n_wild
    unknown = ctx.unknown
    family = ctx.family

    # 1. Allele frequencies (full Bayes only)
    freq, loglik = state.freq, state.loglik
    if ctx.updates_frequencies(iteration):
        alpha = (ctx.baseline + ctx.priors.allele
                 + reassigned_counts(ctx.mixture, state.origins, ctx.n_pops))
        freq = draw_allele_frequencies(alpha, ctx.layout, rng)
        loglik = genetic_log_likelihood(ctx.mixture[unknown], freq[:K])
        if np.isnan(loglik).any() or np.isposinf(loglik).any():
            raise NumericalFault("non-finite genetic likelihood after frequency update")

    # 2. Nuisance parameters
    nuisance = state.nuisance
    if family.has_nuisance:
        nuisance = family.update_nuisance(state.origins, state.covariate, rng)
    aux = family.auxiliary_likelihood(state.covariate, nuisance)

    # 3. Mixing proportions
    counts = np.bincount(state.origins, minlength=ctx.n_pops)
    mixing = rdirichlet(counts + ctx.priors.mixing, rng)

    # 4. Origins of unknown individuals (wild populations only)
    origins = state.origins.copy()
    if unknown.size:
        log_w = assignment_log_weights(loglik, mixing[:K], aux[unknown, :K])
        origins[unknown] = sample_categorical(log_w, rng)

    # 5. Missing covariates
    covariate = family.impute_covariate(origins, state.covariate, nuisance, rng)

    return ChainState(
        iteration=iteration,
        freq=freq,
        loglik=loglik,
        mixing=mixing,
        origins=origins,
        covariate=covariate,
        nuisance=nuisance,
    )


# ═══════════════════════════════════════════════════════════════════════
# CHAIN DRIVER
# ═══════════════════════════════════════════════════════════════════════

def run_chain(
    chain_id: int,
    ctx: SamplerContext,
    init: ChainState,
    rng: np.random.Generator,
) -> ChainTrace:
    """Run one chain to completion and return its retained samples.

    Raises:
        ChainError: Carrying chain_id and the failing iteration.
    """
    t0 = time.perf_counter()
    n_keep = ctx.n_retained
    iterations = np.zeros(n_keep, dtype=np.int64)
    mixing = np.zeros((n_keep, ctx.n_pops))
    origins = np.zeros((n_keep, ctx.n_individuals), dtype=np.int64)
    nuisance: Optional[np.ndarray] = None
    if init.nuisance is not None:
        nuisance = np.zeros((n_keep,) + init.nuisance.shape)
    freq: Optional[np.ndarray] = None
    if ctx.record_frequencies:
        freq = np.zeros((n_keep,) + init.freq.shape)

    logger.debug("chain %d: %d iterations (%d adaptation)",
                 chain_id, ctx.total_iterations, ctx.nadapt)

    state = init
    k = 0
    try:
        for _ in range(ctx.total_iterations):
            state = gibbs_step(state, ctx, rng)
            if ctx.should_record(state.iteration):
                iterations[k] = state.iteration - ctx.nadapt
                mixing[k] = state.mixing
                origins[k] = state.origins
                if nuisance is not None:
                    nuisance[k] = state.nuisance
                if freq is not None:
                    freq[k] = state.freq
                k += 1
    except NumericalFault as exc:
        raise ChainError(chain_id, state.iteration + 1, str(exc)) from exc

    elapsed = time.perf_counter() - t0
    logger.debug("chain %d finished in %.2fs", chain_id, elapsed)
    return ChainTrace(
        chain_id=chain_id,
        iterations=iterations[:k],
        mixing=mixing[:k],
        origins=origins[:k],
        nuisance=None if nuisance is None else nuisance[:k],
        freq=None if freq is None else freq[:k],
        elapsed_s=elapsed,
    )


def trace_states(ctx: SamplerContext, init: ChainState, rng: np.random.Generator,
                 n_steps: int) -> List[ChainState]:
    """Every state of a short run, init included. Handy for inspecting steps."""
    states = [init]
    for _ in range(n_steps):
        states.append(gibbs_step(states[-1], ctx, rng))
    return states
