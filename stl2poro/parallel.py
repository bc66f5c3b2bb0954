"""Data-parallel execution over node ranges.

Every per-node computation in the pipeline is a pure function of the node
index, so the work is expressed as ``func(start, stop) -> values`` over
contiguous ranges of linear node indices.  Each range writes its own slice of
a preallocated output array; no two ranges touch the same slot, so the result
does not depend on the order in which ranges finish.
"""

from __future__ import annotations

import logging
from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait
from typing import Callable, Iterator, Tuple

import numpy as np
import numpy.typing as npt

logger = logging.getLogger(__name__)

_Array = npt.NDArray[np.floating]
RangeFunc = Callable[[int, int], _Array]


class ExecutionStrategy:
    """How many worker threads to use and how to split the node range.

    Parameters
    ----------
    workers:
        Thread count; 1 runs everything inline on the calling thread.
    chunk_size:
        Nodes per work unit.
    """

    def __init__(self, workers: int = 1, chunk_size: int = 4096) -> None:
        if workers < 1:
            raise ValueError(f"workers must be >= 1, got {workers}")
        if chunk_size < 1:
            raise ValueError(f"chunk_size must be >= 1, got {chunk_size}")
        self.workers = int(workers)
        self.chunk_size = int(chunk_size)

    def __repr__(self) -> str:
        return f"ExecutionStrategy(workers={self.workers}, chunk_size={self.chunk_size})"

    @property
    def parallel(self) -> bool:
        return self.workers > 1

    def ranges(self, n: int) -> Iterator[Tuple[int, int]]:
        for start in range(0, n, self.chunk_size):
            yield start, min(start + self.chunk_size, n)

    def map_ranges(self, func: RangeFunc, n: int) -> _Array:
        """Evaluate *func* over ``[0, n)`` and return the assembled array.

        The first exception raised by any range propagates; ranges still
        queued at that point are cancelled and the partially filled buffer is
        discarded.
        """
        out = np.empty(n, dtype=np.float64)

        def _run(bounds: Tuple[int, int]) -> None:
            start, stop = bounds
            values = np.asarray(func(start, stop), dtype=np.float64)
            if values.shape != (stop - start,):
                raise RuntimeError(
                    f"range [{start}, {stop}) produced shape {values.shape}"
                )
            out[start:stop] = values

        if not self.parallel or n <= self.chunk_size:
            for bounds in self.ranges(n):
                _run(bounds)
            return out

        logger.debug("Splitting %d nodes over %d threads", n, self.workers)
        with ThreadPoolExecutor(max_workers=self.workers) as executor:
            futures = [executor.submit(_run, bounds) for bounds in self.ranges(n)]
            _, pending = wait(futures, return_when=FIRST_EXCEPTION)
            # Queued ranges are dropped once any range has failed.
            for future in pending:
                future.cancel()
            for future in futures:
                if not future.cancelled():
                    future.result()
        return out


SEQUENTIAL = ExecutionStrategy(workers=1)
