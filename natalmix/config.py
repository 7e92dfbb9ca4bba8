"""Configuration system for natalmix runs.

YAML configuration with deep-merge support:
  base.yaml → scenario override → programmatic overrides

Sections map 1:1 to YAML top-level keys:
  sampler:      iteration counts, chains, conditional GSI, seed
  parallel:     worker-pool backend for the chains
  diagnostics:  credible-interval bounds and PSRF confidence level
  logging:      level for the 'natalmix' logger
"""

from __future__ import annotations

import dataclasses
import warnings
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml


VALID_BACKENDS = {"process", "thread", "serial"}
VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


# ═══════════════════════════════════════════════════════════════════════
# CONFIGURATION DATACLASSES
# ═══════════════════════════════════════════════════════════════════════

@dataclass
class SamplerSection:
    """Gibbs sampler run parameters.

    nreps counts sampling iterations and includes the burn-in; adaptation
    iterations (full Bayes only) run before them.
    """
    nreps: int = 1000
    nburn: int = 500
    thin: int = 1
    nchains: int = 3
    nadapt: int = 0               # Forced to 0 under conditional GSI
    keep_burn: bool = False       # Keep burn-in samples in the traces
    cond_gsi: bool = True         # Fixed baseline allele frequencies
    seed: Optional[int] = None    # None = fresh OS entropy (logged)
    record_frequencies: bool = False  # Store allele frequencies per retained sample

    @property
    def effective_nadapt(self) -> int:
        return 0 if self.cond_gsi else self.nadapt

    @property
    def effective_nburn(self) -> int:
        """Burn-in iterations dropped from the traces."""
        return 0 if self.keep_burn else self.nburn

    @property
    def n_retained(self) -> int:
        """Samples recorded per chain."""
        return (self.nreps - self.effective_nburn) // self.thin

    @property
    def n_summarized(self) -> int:
        """Retained samples past burn-in, used for posterior summaries."""
        if self.keep_burn:
            return self.nreps // self.thin - self.nburn // self.thin
        return self.n_retained


@dataclass
class ParallelSection:
    """Worker pool for independent chains."""
    backend: str = "process"            # 'process', 'thread' or 'serial'
    max_workers: Optional[int] = None   # None = one worker per chain


@dataclass
class DiagnosticsSection:
    """Posterior summary and convergence diagnostics."""
    ci_lower: float = 0.05
    ci_upper: float = 0.95
    confidence: float = 0.95      # For the PSRF upper confidence limit


@dataclass
class LoggingSection:
    level: str = "INFO"


@dataclass
class RunConfig:
    """Complete run configuration.

    Load from YAML via `load_config()`.
    """
    sampler: SamplerSection = field(default_factory=SamplerSection)
    parallel: ParallelSection = field(default_factory=ParallelSection)
    diagnostics: DiagnosticsSection = field(default_factory=DiagnosticsSection)
    logging: LoggingSection = field(default_factory=LoggingSection)

    def to_dict(self) -> Dict[str, Any]:
        return dataclasses.asdict(self)


# ═══════════════════════════════════════════════════════════════════════
# YAML LOADING & MERGING
# ═══════════════════════════════════════════════════════════════════════

def deep_merge(base: Dict, override: Dict) -> Dict:
    """Recursively merge override into base. Modifies base in place.

    Dict values are merged recursively, anything else is replaced.
    """
    for key, value in override.items():
        if (
            key in base
            and isinstance(base[key], dict)
            and isinstance(value, dict)
        ):
            deep_merge(base[key], value)
        else:
            base[key] = value
    return base


def _dict_to_section(section_cls, data: Dict) -> Any:
    """Convert a dict to a dataclass, ignoring unknown keys."""
    valid_fields = {f.name for f in dataclasses.fields(section_cls)}
    filtered = {k: v for k, v in data.items() if k in valid_fields}
    return section_cls(**filtered)


_SECTION_MAP = {
    'sampler': SamplerSection,
    'parallel': ParallelSection,
    'diagnostics': DiagnosticsSection,
    'logging': LoggingSection,
}


def config_from_dict(data: Dict) -> RunConfig:
    """Build a RunConfig from a (merged) dict; missing sections get defaults."""
    sections = {}
    for key, cls in _SECTION_MAP.items():
        if key in data and isinstance(data[key], dict):
            sections[key] = _dict_to_section(cls, data[key])
        else:
            sections[key] = cls()
    return RunConfig(**sections)


def validate_config(config: RunConfig) -> None:
    """Validate run parameters. Raises ValueError on failure.

    Conditional GSI with nadapt > 0 only warns: adaptation is skipped.
    """
    s = config.sampler
    if s.nreps < 1:
        raise ValueError(f"sampler.nreps must be >= 1, got {s.nreps}")
    if s.nburn < 0:
        raise ValueError(f"sampler.nburn must be >= 0, got {s.nburn}")
    if s.nburn >= s.nreps:
        raise ValueError(
            f"sampler.nburn ({s.nburn}) must be < sampler.nreps ({s.nreps}); "
            f"nreps includes the burn-in"
        )
    if s.thin < 1:
        raise ValueError(f"sampler.thin must be >= 1, got {s.thin}")
    if s.nchains < 1:
        raise ValueError(f"sampler.nchains must be >= 1, got {s.nchains}")
    if s.nadapt < 0:
        raise ValueError(f"sampler.nadapt must be >= 0, got {s.nadapt}")
    if s.n_retained < 1:
        raise ValueError(
            f"no samples would be retained: (nreps - burn-in) // thin = "
            f"({s.nreps} - {s.effective_nburn}) // {s.thin} = 0"
        )
    if s.n_summarized < 1:
        raise ValueError(
            f"no retained sample falls after the burn-in of {s.nburn} "
            f"iterations with thin={s.thin}"
        )
    if s.seed is not None and s.seed < 0:
        raise ValueError("sampler.seed must be non-negative")
    if s.cond_gsi and s.nadapt > 0:
        warnings.warn(
            f"sampler.nadapt={s.nadapt} ignored: adaptation only runs in "
            f"fully Bayesian mode (cond_gsi=False)",
            UserWarning,
            stacklevel=2,
        )

    p = config.parallel
    if p.backend not in VALID_BACKENDS:
        raise ValueError(
            f"parallel.backend must be one of {VALID_BACKENDS}, "
            f"got '{p.backend}'"
        )
    if p.max_workers is not None and p.max_workers < 1:
        raise ValueError(
            f"parallel.max_workers must be >= 1, got {p.max_workers}"
        )

    d = config.diagnostics
    if not (0.0 <= d.ci_lower < d.ci_upper <= 1.0):
        raise ValueError(
            f"diagnostics credible interval must satisfy "
            f"0 <= ci_lower < ci_upper <= 1, got ({d.ci_lower}, {d.ci_upper})"
        )
    if not (0.0 < d.confidence < 1.0):
        raise ValueError(
            f"diagnostics.confidence must be in (0, 1), got {d.confidence}"
        )

    if config.logging.level.upper() not in VALID_LOG_LEVELS:
        raise ValueError(
            f"logging.level must be one of {sorted(VALID_LOG_LEVELS)}, "
            f"got '{config.logging.level}'"
        )


def load_config(
    base_path: Union[str, Path],
    scenario_path: Optional[Union[str, Path]] = None,
    overrides: Optional[Dict] = None,
) -> RunConfig:
    """Load and merge YAML configuration.

    Merge order: base → scenario → overrides. Each layer overrides only
    the fields it specifies.

    Args:
        base_path: Path to base configuration YAML.
        scenario_path: Optional override YAML (skipped if it doesn't exist).
        overrides: Optional dict of parameter overrides.

    Returns:
        Validated RunConfig.

    Raises:
        FileNotFoundError: If base_path doesn't exist.
        ValueError: If validation fails.
    """
    base_path = Path(base_path)
    if not base_path.exists():
        raise FileNotFoundError(f"Config file not found: {base_path}")

    with open(base_path) as f:
        config_dict = yaml.safe_load(f) or {}

    if scenario_path is not None:
        scenario_path = Path(scenario_path)
        if scenario_path.exists():
            with open(scenario_path) as f:
                scenario = yaml.safe_load(f) or {}
            deep_merge(config_dict, scenario)

    if overrides is not None:
        deep_merge(config_dict, overrides)

    config = config_from_dict(config_dict)
    validate_config(config)
    return config


def default_config(**sampler_overrides: Any) -> RunConfig:
    """Return a RunConfig with default values.

    Keyword arguments override fields of the sampler section, e.g.
    ``default_config(nreps=200, nburn=100, nchains=2)``.
    """
    config = RunConfig()
    for key, value in sampler_overrides.items():
        if not hasattr(config.sampler, key):
            raise ValueError(f"unknown sampler parameter '{key}'")
        setattr(config.sampler, key, value)
    validate_config(config)
    return config
