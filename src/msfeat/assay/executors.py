"""Utilities to execute independent units of work, one unit per sample."""

from __future__ import annotations

import concurrent.futures
from logging import getLogger
from typing import Any, Callable, Generic, Hashable, Protocol, Sequence, TypeVar

import pydantic

logger = getLogger(__name__)

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


class ExecutionResult(Generic[K, V]):
    """Store the results and errors of units executed by an executor.

    Both results and errors are indexed by the unit key.

    """

    def __init__(self) -> None:
        self.results: dict[K, V] = dict()
        self.errors: dict[K, Exception] = dict()

    def __repr__(self) -> str:
        return f"ExecutionResult(n_results={len(self.results)}, n_errors={len(self.errors)})"

    def is_successful(self) -> bool:
        """Check that all units completed without errors."""
        return not self.errors


class Executor(Protocol):
    """Base executor class."""

    def map(self, func: Callable[[Any], Any], items: Sequence[tuple[K, Any]]) -> ExecutionResult:
        """Apply a function to multiple items.

        :param func: the function applied to each item value.
        :param items: pairs of unit key and function argument.

        """
        ...


class SequentialExecutor:
    """Execute units one after another in the current process."""

    def map(self, func: Callable[[Any], V], items: Sequence[tuple[K, Any]]) -> ExecutionResult[K, V]:
        """Apply a function to multiple items. An error in one unit does not stop other units."""
        result: ExecutionResult[K, V] = ExecutionResult()
        n_items = len(items)
        for k, (key, item) in enumerate(items, start=1):
            logger.debug(f"Processing `{key}` ({k}/{n_items}).")
            try:
                result.results[key] = func(item)
            except Exception as e:
                logger.warning(f"Processing `{key}` failed with {type(e).__name__}: {e}")
                result.errors[key] = e
        return result


class ParallelExecutor(pydantic.BaseModel):
    """Execute units in a pool of worker processes.

    `func` and item values are sent to worker processes and must be picklable, e.g., module level
    functions or :py:func:`functools.partial` objects built from them.

    """

    max_workers: pydantic.PositiveInt = 2
    """The maximum number of process spawned simultaneously."""

    def map(self, func: Callable[[Any], V], items: Sequence[tuple[K, Any]]) -> ExecutionResult[K, V]:
        """Apply a function to multiple items. An error in one unit does not stop other units."""
        result: ExecutionResult[K, V] = ExecutionResult()
        n_items = len(items)
        with concurrent.futures.ProcessPoolExecutor(max_workers=self.max_workers) as executor:
            futures = {executor.submit(func, item): key for key, item in items}
            for k, future in enumerate(concurrent.futures.as_completed(futures), start=1):
                key = futures[future]
                try:
                    result.results[key] = future.result()
                    logger.debug(f"Processed `{key}` ({k}/{n_items}).")
                except Exception as e:
                    logger.warning(f"Processing `{key}` failed with {type(e).__name__}: {e}")
                    result.errors[key] = e
        return result
