from __future__ import annotations

"""Parallel evaluation of every (pattern, cutline) combination.

The pattern-major product of both inputs is cut into contiguous chunks.
Every chunk is evaluated on a worker thread and reduced to its local
minimum; the chunk minima are folded in chunk order on the coordinating
thread.  The fold key ``(cost, pattern labels, cutline edges)`` is a total
order, so the selected combination does not depend on the worker count or
on the order in which chunks finish.
"""

from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from enum import Enum
import logging
import math
import os
import threading
from typing import Any, Callable, Dict, Iterable, List, Sequence, Tuple, TYPE_CHECKING

from . import config
from .cutline import Cutline
from .errors import EmptySearchSpace
from .pattern import Pattern

if TYPE_CHECKING:  # pragma: no cover - typing only
    from .cost import CostEvaluator
    from .grid import GridGraph


LOGGER = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]


class CompletionStatus(Enum):
    """How a search terminated."""

    COMPLETE = "complete"
    PARTIAL = "partial"
    CAPACITY_EXCEEDED = "capacity_exceeded"

    @property
    def is_complete(self) -> bool:
        return self is CompletionStatus.COMPLETE


@dataclass(frozen=True)
class ScoredCombination:
    """A pattern, a cutline and the cost of running SFA with both."""

    pattern: Pattern
    cutline: Cutline
    cost: float

    def sort_key(self) -> Tuple[float, str, Tuple[int, ...]]:
        return (self.cost, self.pattern.labels, self.cutline.edges)

    def to_dict(self, grid: "GridGraph | None" = None) -> Dict[str, Any]:
        return {
            "pattern": self.pattern.to_dict(),
            "cutline": self.cutline.to_dict(grid),
            "cost": self.cost if math.isfinite(self.cost) else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ScoredCombination":
        cost = data.get("cost")
        return cls(
            pattern=Pattern.from_dict(data["pattern"]),
            cutline=Cutline.from_dict(data["cutline"]),
            cost=math.inf if cost is None else float(cost),
        )


def select_best(
    first: ScoredCombination | None, second: ScoredCombination | None
) -> ScoredCombination | None:
    """Return the smaller of two combinations under the tie-break order."""

    if first is None:
        return second
    if second is None:
        return first
    return second if second.sort_key() < first.sort_key() else first


@dataclass(frozen=True)
class SearchResult:
    """Outcome of a search.

    ``best`` is ``None`` only when the search was cancelled before a single
    combination was evaluated.
    """

    best: ScoredCombination | None
    status: CompletionStatus
    evaluated: int
    total: int
    pattern_count: int
    cutline_count: int
    grid: "GridGraph | None" = field(default=None, compare=False, repr=False)


@dataclass
class _ChunkResult:
    best: ScoredCombination | None
    evaluated: int


class ParallelOrchestrator:
    """Fan the pattern×cutline product out over a thread pool.

    Parameters
    ----------
    workers:
        Worker thread count.  Defaults to ``config.DEFAULT.workers`` and
        then to the CPU count.
    chunk_size:
        Combinations per unit of work.
    progress:
        Optional callback receiving ``(completed, total)`` after every
        finished chunk.  It runs on the coordinating thread and has no
        influence on the result.
    cancel:
        Optional :class:`threading.Event`; once set, chunks that have not
        started are skipped and the result is tagged
        :attr:`CompletionStatus.PARTIAL`.
    """

    def __init__(
        self,
        workers: int | None = None,
        chunk_size: int | None = None,
        progress: ProgressCallback | None = None,
        cancel: threading.Event | None = None,
    ) -> None:
        self.workers = max(1, int(workers or config.DEFAULT.workers or os.cpu_count() or 1))
        self.chunk_size = max(1, int(chunk_size or config.DEFAULT.chunk_size))
        self.progress = progress
        self.cancel = cancel

    def _evaluate_chunk(
        self,
        start: int,
        stop: int,
        patterns: Sequence[Pattern],
        cutlines: Sequence[Cutline],
        evaluator: "CostEvaluator",
    ) -> _ChunkResult | None:
        if self.cancel is not None and self.cancel.is_set():
            return None
        width = len(cutlines)
        best: ScoredCombination | None = None
        best_key: Tuple[float, str, Tuple[int, ...]] | None = None
        bound_index = -1
        bound = None
        for flat in range(start, stop):
            pattern_index, cutline_index = divmod(flat, width)
            if pattern_index != bound_index:
                bound = evaluator.bind(patterns[pattern_index])
                bound_index = pattern_index
            pattern = patterns[pattern_index]
            cutline = cutlines[cutline_index]
            cost = float(bound(cutline))
            if best_key is not None and cost > best_key[0]:
                continue
            key = (cost, pattern.labels, cutline.edges)
            if best_key is None or key < best_key:
                best_key = key
                best = ScoredCombination(pattern, cutline, cost)
        return _ChunkResult(best, stop - start)

    def run(
        self,
        grid: "GridGraph",
        patterns: Iterable[Pattern],
        cutlines: Iterable[Cutline],
        evaluator: "CostEvaluator",
        *,
        truncated: bool | None = None,
    ) -> SearchResult:
        """Evaluate every combination and return the minimal one.

        ``truncated`` marks the pattern input as capped; when omitted it is
        read from the ``truncated`` attribute of ``patterns`` after the
        sequence has been materialised.

        Raises
        ------
        EmptySearchSpace
            If ``patterns`` or ``cutlines`` is empty.
        """

        pattern_list = list(patterns)
        if truncated is None:
            truncated = bool(getattr(patterns, "truncated", False))
        cutline_list = list(cutlines)
        if not pattern_list:
            raise EmptySearchSpace("no pattern survived enumeration", stage="evaluation", field="patterns", value=[])
        if not cutline_list:
            raise EmptySearchSpace("no cutline survived enumeration", stage="evaluation", field="cutlines", value=[])

        total = len(pattern_list) * len(cutline_list)
        bounds = [(start, min(start + self.chunk_size, total)) for start in range(0, total, self.chunk_size)]
        LOGGER.info(
            "Evaluating %d patterns x %d cutlines = %d combinations in %d chunks on %d workers",
            len(pattern_list),
            len(cutline_list),
            total,
            len(bounds),
            self.workers,
        )

        results: List[_ChunkResult | None] = [None] * len(bounds)
        completed = 0
        with ThreadPoolExecutor(max_workers=self.workers) as executor:
            futures = {
                executor.submit(
                    self._evaluate_chunk, start, stop, pattern_list, cutline_list, evaluator
                ): index
                for index, (start, stop) in enumerate(bounds)
            }
            for future in as_completed(futures):
                chunk = future.result()
                results[futures[future]] = chunk
                if chunk is None:
                    continue
                completed += chunk.evaluated
                if self.progress is not None:
                    self.progress(completed, total)

        best: ScoredCombination | None = None
        skipped = 0
        for chunk in results:
            if chunk is None:
                skipped += 1
                continue
            best = select_best(best, chunk.best)

        if skipped:
            status = CompletionStatus.PARTIAL
            LOGGER.warning("Search cancelled: %d of %d chunks skipped", skipped, len(bounds))
        elif truncated:
            status = CompletionStatus.CAPACITY_EXCEEDED
        else:
            status = CompletionStatus.COMPLETE
        if best is not None:
            LOGGER.info("Best cost %g (status %s)", best.cost, status.value)
        return SearchResult(
            best=best,
            status=status,
            evaluated=completed,
            total=total,
            pattern_count=len(pattern_list),
            cutline_count=len(cutline_list),
            grid=grid,
        )
