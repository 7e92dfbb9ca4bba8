"""Posterior summaries and convergence diagnostics.

Inputs are per-chain draw matrices of shape (n_iterations, n_variables),
one matrix per chain, all the same length.

  - summarize_draws: mean, median, sd, credible interval of pooled draws
  - gelman_diag:     univariate PSRF (point estimate + upper limit) and a
                     multivariate PSRF
  - effective_size:  autocorrelation-adjusted sample size, summed over chains

The multivariate PSRF fixes the largest eigenvalue of W^-1 B at 1 instead
of computing it:

    mpsrf = sqrt((1 - 1/n) + (1 + 1/p) / n)

so it depends only on the number of iterations n and variables p.
Downstream reports rely on this convention; keep it.

With a single chain neither PSRF is defined; both come back as NaN with
`applicable` set to False.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence

import numpy as np
from scipy import stats
from scipy.linalg import solve_toeplitz

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════
# RESULT TYPES
# ═══════════════════════════════════════════════════════════════════════

@dataclass
class GelmanDiag:
    """Potential scale reduction factors.

    psrf, psrf_upper: (n_variables,)
    mpsrf: float, NaN when fewer than two variables or not applicable.
    """
    psrf: np.ndarray
    psrf_upper: np.ndarray
    mpsrf: float
    applicable: bool


@dataclass
class GroupSummary:
    """One row of a posterior summary table."""
    group: str
    mean: float
    median: float
    sd: float
    ci_lower: float
    ci_upper: float
    psrf: float
    psrf_upper: float
    mpsrf: float
    n_eff: float

    def as_dict(self) -> dict:
        return {
            'group': self.group,
            'mean': self.mean,
            'median': self.median,
            'sd': self.sd,
            'ci.05': self.ci_lower,
            'ci.95': self.ci_upper,
            'GR': self.psrf,
            'GR.upper': self.psrf_upper,
            'mpsrf': self.mpsrf,
            'n_eff': self.n_eff,
        }


def _stack(chains: Sequence[np.ndarray]) -> np.ndarray:
    """(n_chains, n_iterations, n_variables) from a list of chain matrices."""
    arrs = [np.asarray(c, dtype=np.float64) for c in chains]
    arrs = [a[:, None] if a.ndim == 1 else a for a in arrs]
    lengths = {a.shape[0] for a in arrs}
    if len(lengths) != 1:
        raise ValueError(f"chains must have equal length, got {sorted(lengths)}")
    return np.stack(arrs)


# ═══════════════════════════════════════════════════════════════════════
# SUMMARY STATISTICS
# ═══════════════════════════════════════════════════════════════════════

def summarize_draws(draws: np.ndarray, lower: float = 0.05, upper: float = 0.95) -> dict:
    """Mean, median, sample sd and quantiles of each column of pooled draws."""
    draws = np.asarray(draws, dtype=np.float64)
    if draws.ndim == 1:
        draws = draws[:, None]
    n = draws.shape[0]
    return {
        'mean': draws.mean(axis=0),
        'median': np.median(draws, axis=0),
        'sd': draws.std(axis=0, ddof=1) if n > 1 else np.full(draws.shape[1], np.nan),
        'ci_lower': np.quantile(draws, lower, axis=0),
        'ci_upper': np.quantile(draws, upper, axis=0),
    }


# ═══════════════════════════════════════════════════════════════════════
# GELMAN-RUBIN
# ═══════════════════════════════════════════════════════════════════════

def multivariate_psrf(n_iter: int, n_var: int) -> float:
    """Multivariate PSRF with the dominant eigenvalue fixed at 1."""
    if n_var < 2:
        return np.nan
    emax = 1.0
    return float(np.sqrt((1.0 - 1.0 / n_iter) + (1.0 + 1.0 / n_var) * emax / n_iter))


def gelman_diag(chains: Sequence[np.ndarray], confidence: float = 0.95) -> GelmanDiag:
    """Gelman-Rubin potential scale reduction factors.

    Between/within-chain variance decomposition with the Brooks-Gelman
    degrees-of-freedom correction. Chains whose draws agree exactly
    (zero between-chain spread) get a correction factor of 1 rather
    than 0/0.

    Args:
        chains: One (n_iterations, n_variables) array per chain.
        confidence: Level for the upper confidence limit.
    """
    x = _stack(chains)
    m, n, p = x.shape
    if m < 2:
        nan = np.full(p, np.nan)
        return GelmanDiag(psrf=nan, psrf_upper=nan.copy(), mpsrf=np.nan, applicable=False)

    s2 = x.var(axis=1, ddof=1)            # (m, p) within-chain variances
    xbar = x.mean(axis=1)                 # (m, p) chain means
    w = s2.mean(axis=0)
    b = n * xbar.var(axis=0, ddof=1)
    muhat = xbar.mean(axis=0)

    var_w = s2.var(axis=0, ddof=1) / m
    var_b = 2.0 * b ** 2 / (m - 1)
    cov_s2_xbar2 = _column_cov(s2, xbar ** 2)
    cov_s2_xbar = _column_cov(s2, xbar)
    cov_wb = (n / m) * (cov_s2_xbar2 - 2.0 * muhat * cov_s2_xbar)

    V = (n - 1) * w / n + (1 + 1.0 / m) * b / n
    var_V = ((n - 1) ** 2 * var_w + (1 + 1.0 / m) ** 2 * var_b
             + 2 * (n - 1) * (1 + 1.0 / m) * cov_wb) / n ** 2

    with np.errstate(divide='ignore', invalid='ignore'):
        df_V = 2 * V ** 2 / var_V
        df_adj = np.where(np.isfinite(df_V), (df_V + 3) / (df_V + 1), 1.0)
        W_df = 2 * w ** 2 / var_w
        R2_fixed = (n - 1) / n
        R2_random = np.where(b == 0, 0.0, (1 + 1.0 / m) * (1.0 / n) * (b / w))

    q = (1 + confidence) / 2
    B_df = m - 1
    f_quant = np.where(
        np.isfinite(W_df),
        stats.f.ppf(q, B_df, np.where(np.isfinite(W_df), W_df, 1.0)),
        stats.chi2.ppf(q, B_df) / B_df,
    )

    psrf = np.sqrt(df_adj * (R2_fixed + R2_random))
    psrf_upper = np.sqrt(df_adj * (R2_fixed + f_quant * R2_random))
    return GelmanDiag(
        psrf=psrf,
        psrf_upper=psrf_upper,
        mpsrf=multivariate_psrf(n, p),
        applicable=True,
    )


def _column_cov(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    """Covariance across rows between matching columns of a and b."""
    m = a.shape[0]
    da = a - a.mean(axis=0)
    db = b - b.mean(axis=0)
    return (da * db).sum(axis=0) / (m - 1)


# ═══════════════════════════════════════════════════════════════════════
# EFFECTIVE SAMPLE SIZE
# ═══════════════════════════════════════════════════════════════════════

def spectrum0_ar(x: np.ndarray) -> float:
    """Spectral density at frequency zero from an AR fit.

    Yule-Walker estimates for every order up to min(n - 2, 10 log10 n),
    order chosen by AIC, then S(0) = sigma^2 / (1 - sum(phi))^2 with the
    innovation variance rescaled by n / (n - order - 1).
    """
    x = np.asarray(x, dtype=np.float64)
    n = x.size
    xc = x - x.mean()
    acov0 = float(xc @ xc) / n
    if n < 2 or acov0 <= 0:
        return 0.0
    # order n - 1 would leave no degrees of freedom for the variance rescale
    order_max = max(0, int(min(n - 2, np.floor(10 * np.log10(n)))))
    acov = np.array([float(xc[:n - k] @ xc[k:]) / n for k in range(order_max + 1)])

    variances = [acov0]
    coefs: List[np.ndarray] = [np.zeros(0)]
    for k in range(1, order_max + 1):
        try:
            phi = solve_toeplitz(acov[:k], acov[1:k + 1])
        except np.linalg.LinAlgError:
            break
        var_k = acov0 - float(phi @ acov[1:k + 1])
        if not var_k > 0:
            break
        variances.append(var_k)
        coefs.append(phi)

    aic = n * np.log(np.asarray(variances)) + 2 * np.arange(len(variances))
    order = int(np.argmin(aic))
    var_pred = variances[order] * n / (n - (order + 1))
    return float(var_pred / (1.0 - coefs[order].sum()) ** 2)


def effective_size(chains: Sequence[np.ndarray]) -> np.ndarray:
    """Effective sample size per variable, summed over chains.

    Each chain contributes n * var(x) / S(0); a constant chain contributes 0.
    """
    x = _stack(chains)
    m, n, p = x.shape
    out = np.zeros(p)
    if n < 2:
        return out
    for j in range(p):
        for c in range(m):
            series = x[c, :, j]
            spec = spectrum0_ar(series)
            if spec > 0:
                out[j] += n * series.var(ddof=1) / spec
    return out


# ═══════════════════════════════════════════════════════════════════════
# COMBINED TABLE
# ═══════════════════════════════════════════════════════════════════════

def diagnose(
    chains: Sequence[np.ndarray],
    names: Sequence[str],
    ci_lower: float = 0.05,
    ci_upper: float = 0.95,
    confidence: float = 0.95,
) -> List[GroupSummary]:
    """Summary statistics plus PSRF and ESS for every variable.

    Args:
        chains: One (n_iterations, n_variables) array per chain.
        names: Variable (reporting-group) names, in column order.
    """
    x = _stack(chains)
    m, n, p = x.shape
    if len(names) != p:
        raise ValueError(f"{len(names)} names for {p} variables")

    pooled = x.reshape(m * n, p)
    summ = summarize_draws(pooled, ci_lower, ci_upper)
    gd = gelman_diag(list(x), confidence)
    n_eff = effective_size(list(x))
    if not gd.applicable:
        logger.debug("PSRF not applicable with %d chain(s)", m)

    rows = []
    for j, name in enumerate(names):
        rows.append(GroupSummary(
            group=name,
            mean=float(summ['mean'][j]),
            median=float(summ['median'][j]),
            sd=float(summ['sd'][j]),
            ci_lower=float(summ['ci_lower'][j]),
            ci_upper=float(summ['ci_upper'][j]),
            psrf=float(gd.psrf[j]),
            psrf_upper=float(gd.psrf_upper[j]),
            mpsrf=gd.mpsrf,
            n_eff=float(n_eff[j]),
        ))
    return rows


def psrf_not_applicable(rows: Sequence[GroupSummary]) -> bool:
    """True when every row's PSRF is undefined (single chain)."""
    return all(np.isnan(r.psrf) and np.isnan(r.mpsrf) for r in rows)


def worst_psrf(rows: Sequence[GroupSummary]) -> Optional[float]:
    """Largest finite PSRF in a table, or None."""
    vals = [r.psrf for r in rows if np.isfinite(r.psrf)]
    return max(vals) if vals else None
