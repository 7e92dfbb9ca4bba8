"""Run independent chains on a fixed worker pool.

One task per chain. Workers receive only read-only inputs (the sampler
context, the shared initial state and their own random stream) and hand
back a finished ChainTrace; nothing is shared while chains run. The
orchestrator blocks until every task is done.

A chain that raises is recorded as a ChainFailure and the remaining
chains are still returned. Only when every chain fails is the run
aborted.
"""

from __future__ import annotations

import logging
from concurrent.futures import Executor, ProcessPoolExecutor, ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import numpy as np

from natalmix.config import ParallelSection
from natalmix.errors import AllChainsFailedError, ChainError
from natalmix.gibbs import SamplerContext, run_chain
from natalmix.types import ChainFailure, ChainState, ChainTrace

logger = logging.getLogger(__name__)


@dataclass
class ChainRunReport:
    """Outcome of all chains, in chain order.

    traces[i] is None when chain i failed; its failure is in `failures`.
    """
    traces: List[Optional[ChainTrace]]
    failures: List[ChainFailure] = field(default_factory=list)

    @property
    def completed(self) -> List[ChainTrace]:
        return [t for t in self.traces if t is not None]

    @property
    def missing_chains(self) -> List[int]:
        return [i for i, t in enumerate(self.traces) if t is None]


def _make_executor(parallel: ParallelSection, n_chains: int) -> Optional[Executor]:
    workers = parallel.max_workers or n_chains
    if parallel.backend == 'process':
        return ProcessPoolExecutor(max_workers=workers)
    if parallel.backend == 'thread':
        return ThreadPoolExecutor(max_workers=workers)
    return None


def _failure_from(chain_id: int, exc: BaseException) -> ChainFailure:
    if isinstance(exc, ChainError):
        return ChainFailure(chain_id=chain_id, iteration=exc.iteration, message=exc.message)
    return ChainFailure(chain_id=chain_id, iteration=None,
                        message=f"{type(exc).__name__}: {exc}")


def run_chains(
    ctx: SamplerContext,
    init: ChainState,
    chain_rngs: Dict[int, np.random.Generator],
    parallel: Optional[ParallelSection] = None,
) -> ChainRunReport:
    """Run one chain per entry of chain_rngs and collect their traces.

    Args:
        ctx: Read-only sampler context.
        init: Shared initial state.
        chain_rngs: {chain_id: independent random stream}.
        parallel: Worker-pool settings (default: process pool, one worker
            per chain).

    Returns:
        ChainRunReport with traces in chain-id order.

    Raises:
        AllChainsFailedError: If no chain completes.
    """
    parallel = parallel or ParallelSection()
    chain_ids = sorted(chain_rngs)
    n_chains = len(chain_ids)
    results: Dict[int, ChainTrace] = {}
    failures: List[ChainFailure] = []

    logger.info("Running %d chain(s), backend=%s", n_chains, parallel.backend)

    executor = _make_executor(parallel, n_chains)
    if executor is None:
        for cid in chain_ids:
            try:
                results[cid] = run_chain(cid, ctx, init, chain_rngs[cid])
            except Exception as exc:  # isolate the chain, keep the others
                failures.append(_failure_from(cid, exc))
    else:
        with executor:
            futures = {
                cid: executor.submit(run_chain, cid, ctx, init, chain_rngs[cid])
                for cid in chain_ids
            }
            for cid, fut in futures.items():
                try:
                    results[cid] = fut.result()
                except Exception as exc:  # isolate the chain, keep the others
                    failures.append(_failure_from(cid, exc))

    for f in failures:
        logger.error("chain %d failed at iteration %s: %s",
                     f.chain_id, f.iteration, f.message)

    if not results:
        raise AllChainsFailedError(failures)

    return ChainRunReport(
        traces=[results.get(cid) for cid in chain_ids],
        failures=sorted(failures, key=lambda f: f.chain_id),
    )
