"""Parallel processing mode helpers for in-memory batch encoding."""

import os
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from enum import Enum
from typing import Literal

from .errors import ArgumentError

ParallelStrategy = Literal["auto", "batch", "off"]


class ParallelMode(str, Enum):
    """Named parallelization modes for batch encoding."""

    AUTO = "auto"
    BATCH = "batch"
    OFF = "off"

    @classmethod
    def get(cls, name: "str | ParallelMode") -> "ParallelMode":
        """Get parallel mode by name (case-insensitive)."""
        if isinstance(name, ParallelMode):
            return name
        try:
            return cls[name.upper()]
        except KeyError:
            raise ArgumentError(
                "unknown parallel mode",
                expected=[mode.value for mode in cls],
                got=name,
            )


def list_parallel_modes() -> list[str]:
    """Return available parallel mode names."""
    return [mode.value for mode in ParallelMode]


def run_rows(
    encode_one: Callable[[int], int],
    n_rows: int,
    num_workers: int | None = None,
    parallel_mode: ParallelStrategy | ParallelMode = "auto",
) -> list[int]:
    """
    Call ``encode_one(row)`` for every row and return the results in row order.

    Rows are independent, each one writes only its own buffer slice, so they
    can be fanned out to a thread pool without locking.

    :param encode_one: Encodes one row and returns its non-padding count.
    :param n_rows: Number of rows.
    :param num_workers: Pool size, defaults to the CPU count.
    :param parallel_mode: ``"off"`` runs inline, ``"batch"`` always uses the
        pool, ``"auto"`` uses it for more than one row.
    """
    mode = ParallelMode.get(parallel_mode)
    if num_workers is None:
        workers = os.cpu_count() or 1
    else:
        workers = max(1, num_workers)

    def process_batch() -> list[int]:
        """Encode all rows concurrently at the batch level."""
        with ThreadPoolExecutor(max_workers=workers) as pool:
            return list(pool.map(encode_one, range(n_rows)))

    match mode:
        case ParallelMode.OFF:
            return [encode_one(row) for row in range(n_rows)]
        case ParallelMode.BATCH:
            return process_batch()
        case ParallelMode.AUTO:
            if n_rows <= 1 or workers == 1:
                return [encode_one(row) for row in range(n_rows)]
            return process_batch()


__all__ = [
    "ParallelStrategy",
    "ParallelMode",
    "list_parallel_modes",
    "run_rows",
]
