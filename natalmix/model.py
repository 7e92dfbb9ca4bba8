"""Top-level entry point: run a complete mixture analysis.

    result = run_mixture_model(data, config)

Order of work:
  1. Validate the run configuration and the input contract
  2. Resolve the seed and split it into the init stream + one per chain
  3. Build priors, the family and the shared initial state
  4. Run the chains on the worker pool and join them
  5. Assemble traces, summaries and diagnostics

Every configuration problem surfaces in step 1 or 3, before any chain
starts.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from natalmix.config import RunConfig, default_config, validate_config
from natalmix.data import MixtureData, validate_mixture_data
from natalmix.diagnostics import worst_psrf
from natalmix.gibbs import SamplerContext, initial_state
from natalmix.orchestrator import run_chains
from natalmix.results import MixtureResult, assemble_results
from natalmix.rng import resolve_seed, split_streams
from natalmix.types import FAMILY_ICHTHY
from natalmix.utils import default_names, format_time, timer

logger = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    """Set the level of the package logger."""
    logging.getLogger('natalmix').setLevel(level.upper())


def run_mixture_model(
    data: MixtureData,
    config: Optional[RunConfig] = None,
    **sampler_overrides: Any,
) -> MixtureResult:
    """Fit the mixture model and return posterior traces and summaries.

    Args:
        data: Prepared mixture and baseline tables plus metadata.
        config: Run configuration (defaults if None).
        **sampler_overrides: Shortcut for sampler fields when no config is
            given, e.g. ``run_mixture_model(data, nreps=200, nburn=100)``.

    Returns:
        MixtureResult. Chains that failed are listed in result.failures.

    Raises:
        ValueError: Invalid configuration or input data.
        AllChainsFailedError: No chain completed.
    """
    if config is None:
        config = default_config(**sampler_overrides)
    elif sampler_overrides:
        raise TypeError("pass sampler overrides either in config or as keywords, not both")

    validate_config(config)
    validate_mixture_data(data)
    configure_logging(config.logging.level)

    s = config.sampler
    seed = resolve_seed(s.seed)
    logger.info(
        "natalmix run: family=%s, %s, %d individual(s), %d population(s), "
        "%d group(s), %d chain(s) x %d iterations (seed=%d)",
        data.family, "conditional GSI" if s.cond_gsi else "full Bayes",
        data.n_individuals, data.n_pops, data.n_groups,
        s.nchains, s.nreps + s.effective_nadapt, seed,
    )

    with timer("natalmix run") as watch:
        init_rng, chain_rngs = split_streams(seed, s.nchains)
        ctx = SamplerContext.from_data(data, s)
        init = initial_state(ctx, init_rng)

        report = run_chains(ctx, init, chain_rngs, config.parallel)

        strata_names = None
        if data.family == FAMILY_ICHTHY:
            strata_names = default_names("stratum", data.pathogen.n_strata)
        result = assemble_results(
            report.traces,
            groups=data.groups,
            group_names=data.group_names,
            population_names=data.population_names,
            nburn=s.nburn,
            diagnostics=config.diagnostics,
            failures=report.failures,
            strata_names=strata_names,
        )

    result.config = config.to_dict()
    result.runtime_s = watch.elapsed
    result.seed = seed

    if report.failures:
        logger.warning("%d of %d chain(s) failed: %s", len(report.failures),
                       s.nchains, report.missing_chains)
    worst = worst_psrf(result.summary)
    if worst is not None:
        logger.info("max PSRF %.3f", worst)
    logger.info("Time to run natalmix: %s", format_time(result.runtime_s))
    return result
