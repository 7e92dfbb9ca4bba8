"""Exception types raised by the sampler.

Configuration problems are plain ValueError (see config.validate_config and
data.validate_mixture_data). The classes here cover faults that only show
up once chains are running.
"""

from typing import Optional, Sequence


class NumericalFault(ArithmeticError):
    """A likelihood or sampling weight that cannot be used.

    Raised inside a Gibbs step; run_chain re-raises it as ChainError with
    the chain id and iteration attached.
    """


class ChainError(RuntimeError):
    """A single chain failed at a given iteration."""

    def __init__(self, chain_id: int, iteration: Optional[int], message: str):
        super().__init__(chain_id, iteration, message)
        self.chain_id = chain_id
        self.iteration = iteration
        self.message = message

    def __str__(self) -> str:
        return (
            f"chain {self.chain_id} failed at iteration {self.iteration}: "
            f"{self.message}"
        )


class AllChainsFailedError(RuntimeError):
    """No chain produced a trace."""

    def __init__(self, failures: Sequence):
        super().__init__(list(failures))
        self.failures = list(failures)

    def __str__(self) -> str:
        detail = "; ".join(
            f"chain {f.chain_id} @ iteration {f.iteration}: {f.message}"
            for f in self.failures
        )
        return f"all {len(self.failures)} chains failed ({detail})"
