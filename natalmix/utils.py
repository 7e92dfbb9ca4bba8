"""Utility helpers for natalmix."""

from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from typing import Generator, List

logger = logging.getLogger(__name__)


class Stopwatch:
    """Elapsed wall time, readable after the timed block exits."""

    def __init__(self) -> None:
        self.start = time.perf_counter()
        self.elapsed = 0.0

    def stop(self) -> float:
        self.elapsed = time.perf_counter() - self.start
        return self.elapsed


@contextmanager
def timer(label: str = "", level: int = logging.INFO) -> Generator[Stopwatch, None, None]:
    """Context-manager timer. Logs elapsed time on exit."""
    watch = Stopwatch()
    try:
        yield watch
    finally:
        elapsed = watch.stop()
        if label:
            logger.log(level, "[%s] %.3fs", label, elapsed)
        else:
            logger.log(level, "Elapsed: %.3fs", elapsed)


def format_time(seconds: float) -> str:
    """Human-readable duration, e.g. '1h 02m 03s'."""
    seconds = int(round(seconds))
    h, rem = divmod(seconds, 3600)
    m, s = divmod(rem, 60)
    if h:
        return f"{h}h {m:02d}m {s:02d}s"
    if m:
        return f"{m}m {s:02d}s"
    return f"{s}s"


def default_names(prefix: str, n: int) -> List[str]:
    """['prefix_1', ..., 'prefix_n']"""
    return [f"{prefix}_{i + 1}" for i in range(n)]
