"""Seeded RNG factory for reproducible multi-chain runs.

Uses NumPy's SeedSequence → PCG64 hierarchy to guarantee:
  - Statistical independence between per-chain streams
  - Bit-exact replay with the same master seed and chain count
  - Adding chains doesn't change the streams of existing chains
  - No chain's stream is ever advanced by another chain's draws

Stream 0 ('init') is used once, before any chain starts, for the shared
initial imputation of unknown origins. Streams 1..n are the chains.
"""

from __future__ import annotations

import logging
from typing import Dict, Optional, Tuple

import numpy as np

logger = logging.getLogger(__name__)


def resolve_seed(seed: Optional[int]) -> int:
    """Return seed unchanged, or fresh OS entropy when seed is None.

    The entropy is logged so an unseeded run can still be replayed.
    """
    if seed is not None:
        return int(seed)
    entropy = int(np.random.SeedSequence().entropy)
    logger.info("No seed supplied; using entropy %d", entropy)
    return entropy


def create_rng_hierarchy(
    master_seed: int,
    n_chains: int,
) -> Dict[str, np.random.Generator]:
    """Create the shared initialization stream plus one stream per chain.

    Streams created:
      - 'init':                     shared initial state (priors draws, imputation)
      - 'chain_0' .. 'chain_{n-1}': one per chain

    Args:
        master_seed: Master RNG seed (non-negative integer).
        n_chains: Number of chains.

    Returns:
        Dictionary mapping stream names to numpy Generator instances.

    Example:
        >>> rngs = create_rng_hierarchy(42, n_chains=3)
        >>> rngs['init'].random()  # reproducible
        >>> rngs['chain_2'].integers(0, 100)
    """
    ss = np.random.SeedSequence(master_seed)
    child_seeds = ss.spawn(n_chains + 1)

    rngs: Dict[str, np.random.Generator] = {
        'init': np.random.Generator(np.random.PCG64(child_seeds[0])),
    }
    for i in range(n_chains):
        rngs[f'chain_{i}'] = np.random.Generator(
            np.random.PCG64(child_seeds[1 + i])
        )
    return rngs


def get_chain_rng(
    rngs: Dict[str, np.random.Generator],
    chain_id: int,
) -> np.random.Generator:
    """Get the RNG stream for a specific chain (0-based).

    Raises:
        KeyError: If chain_id doesn't have a stream.
    """
    key = f'chain_{chain_id}'
    if key not in rngs:
        n = sum(1 for k in rngs if k.startswith('chain_'))
        raise KeyError(
            f"No RNG stream for chain {chain_id}. "
            f"Available chains: 0..{n - 1}"
        )
    return rngs[key]


def split_streams(
    master_seed: int,
    n_chains: int,
) -> Tuple[np.random.Generator, Dict[int, np.random.Generator]]:
    """Convenience wrapper: (init stream, {chain_id: stream})."""
    rngs = create_rng_hierarchy(master_seed, n_chains)
    return rngs['init'], {i: get_chain_rng(rngs, i) for i in range(n_chains)}
