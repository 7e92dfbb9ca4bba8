"""Genetic likelihood and conjugate draws.

The genetic likelihood of individual m under population k is the
multinomial kernel prod_j q_kj ** x_mj over all allele columns, i.e.
exp(x_m . log q_k). It is kept in log space throughout and only
exponentiated, after subtracting the row maximum, when an origin is drawn.

Dirichlet draws tolerate zero concentrations, which occur for locus
blocks with no observations anywhere (hatchery rows carry no prior).
"""

from __future__ import annotations

import numpy as np

from natalmix.errors import NumericalFault
from natalmix.types import TINY, LocusLayout


# ═══════════════════════════════════════════════════════════════════════
# DIRICHLET DRAWS
# ═══════════════════════════════════════════════════════════════════════

def rdirichlet(alpha: np.ndarray, rng: np.random.Generator) -> np.ndarray:
    """Dirichlet draw that accepts zero concentrations.

    Independent Gamma(alpha_i, rate=1) draws are normalized; exact zeros
    are replaced by the smallest positive double so logs stay finite.
    If the total concentration is zero the result is all zeros.
    """
    alpha = np.asarray(alpha, dtype=np.float64)
    if alpha.sum() <= 0:
        return np.zeros_like(alpha)
    vec = rng.gamma(alpha, 1.0)
    vec = vec / vec.sum()
    vec[vec == 0] = TINY
    return vec


def draw_allele_frequencies(
    alpha: np.ndarray,
    layout: LocusLayout,
    rng: np.random.Generator,
) -> np.ndarray:
    """Draw every locus block of every row from its Dirichlet posterior.

    Same semantics as applying rdirichlet() to each (row, locus) block,
    vectorized over the whole table.

    Args:
        alpha: (n_pops, n_columns) concentration (counts + prior).
        layout: Locus structure of the columns.
        rng: Chain random stream.

    Returns:
        (n_pops, n_columns) frequencies; zero-concentration blocks are 0.
    """
    starts = layout.starts
    col_locus = layout.column_locus
    concentration = np.add.reduceat(alpha, starts, axis=1)
    draws = rng.gamma(alpha, 1.0)
    totals = np.add.reduceat(draws, starts, axis=1)

    with np.errstate(invalid='ignore', divide='ignore'):
        freq = draws / totals[:, col_locus]
    freq[freq == 0] = TINY
    empty = concentration[:, col_locus] <= 0
    freq[empty] = 0.0
    return freq


def allele_frequency_means(alpha: np.ndarray, layout: LocusLayout) -> np.ndarray:
    """Posterior-mean allele frequencies, block by block.

    A block with zero total concentration is filled with ones instead of
    a simplex; such blocks only occur on rows that are never sampled.
    """
    totals = np.add.reduceat(alpha, layout.starts, axis=1)[:, layout.column_locus]
    freq = np.ones_like(alpha, dtype=np.float64)
    nonzero = totals > 0
    freq[nonzero] = alpha[nonzero] / totals[nonzero]
    return freq


# ═══════════════════════════════════════════════════════════════════════
# LIKELIHOODS
# ═══════════════════════════════════════════════════════════════════════

def genetic_log_likelihood(counts: np.ndarray, freq: np.ndarray) -> np.ndarray:
    """Log multinomial kernel, shape (n_individuals, n_populations).

    Zero frequencies contribute nothing where the count is zero (0**0 = 1)
    and -inf where an individual carries the allele.
    """
    zero = freq <= 0
    with np.errstate(divide='ignore'):
        logq = np.where(zero, 0.0, np.log(np.where(zero, 1.0, freq)))
    loglik = counts @ logq.T
    if zero.any():
        impossible = (counts > 0).astype(np.float64) @ zero.T.astype(np.float64)
        loglik[impossible > 0] = -np.inf
    return loglik


def reassigned_counts(mixture: np.ndarray, origins: np.ndarray, n_pops: int) -> np.ndarray:
    """Sum mixture allele counts by current origin, shape (n_pops, n_columns)."""
    out = np.zeros((n_pops, mixture.shape[1]), dtype=np.float64)
    np.add.at(out, origins, mixture)
    return out


def assignment_log_weights(
    loglik: np.ndarray,
    mixing: np.ndarray,
    aux: np.ndarray,
) -> np.ndarray:
    """log(aux) + log(p) + genetic log-likelihood, over wild populations.

    Args:
        loglik: (n_unknown, n_wild) genetic log-likelihood.
        mixing: (n_wild,) mixing proportions of the wild populations.
        aux: (n_unknown, n_wild) auxiliary likelihood.
    """
    with np.errstate(divide='ignore'):
        return loglik + np.log(mixing)[None, :] + np.log(aux)


def sample_categorical(log_weights: np.ndarray, rng: np.random.Generator) -> np.ndarray:
    """Draw one category per row with probability proportional to exp(row).

    Raises:
        NumericalFault: If a row holds NaN or +inf, or every weight is zero.
    """
    if np.isnan(log_weights).any() or np.isposinf(log_weights).any():
        rows = np.flatnonzero(
            np.isnan(log_weights).any(axis=1) | np.isposinf(log_weights).any(axis=1)
        )
        raise NumericalFault(
            f"non-finite likelihood for individual rows {rows[:10].tolist()}"
        )
    row_max = log_weights.max(axis=1)
    dead = np.isneginf(row_max)
    if dead.any():
        rows = np.flatnonzero(dead)
        raise NumericalFault(
            f"all-zero sampling weights for individual rows {rows[:10].tolist()}"
        )
    weights = np.exp(log_weights - row_max[:, None])
    cum = np.cumsum(weights, axis=1)
    u = rng.random(len(cum)) * cum[:, -1]
    idx = (cum <= u[:, None]).sum(axis=1)
    return np.minimum(idx, log_weights.shape[1] - 1)
