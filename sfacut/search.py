"""End-to-end search: grid, patterns, cutlines and parallel evaluation."""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import Callable, Iterator

from .config import SearchConfig
from .cost import CostEvaluator, CostModel
from .cutline import CutlineSearcher
from .errors import EmptySearchSpace, InfeasibleGrid, SearchError
from .grid import GridGraph
from .orchestrator import ParallelOrchestrator, ProgressCallback, SearchResult
from .pattern import PatternEnumerator

LOGGER = logging.getLogger(__name__)

STAGES = ("graph construction", "pattern enumeration", "cutline search", "evaluation")


@contextmanager
def _stage(name: str) -> Iterator[None]:
    """Tag :class:`SearchError` raised inside the block with ``name``."""

    LOGGER.debug("Entering stage: %s", name)
    try:
        yield
    except SearchError as exc:
        if exc.stage is None:
            exc.stage = name
        raise


def run_search(
    config: SearchConfig,
    *,
    progress: ProgressCallback | None = None,
    cancel: threading.Event | None = None,
    cost_model: str | CostModel | Callable | None = None,
) -> SearchResult:
    """Run the full search described by ``config``.

    Parameters
    ----------
    config:
        Validated search configuration.
    progress:
        Optional ``(completed, total)`` callback for the evaluation stage.
    cancel:
        Optional event; setting it stops the evaluation after the running
        chunks and yields a :attr:`~CompletionStatus.PARTIAL` result.
    cost_model:
        Overrides ``config.cost_model`` with a model instance or a plain
        ``func(pattern, cutline)``.

    Raises
    ------
    SearchError
        Any structural failure; ``exc.stage`` names the aborted stage.
    """

    with _stage("graph construction"):
        grid = GridGraph.from_config(config)
        components = grid.components()
        if len(components) != 1:
            raise InfeasibleGrid(
                f"defects split the grid into {len(components)} components before any cut",
                field="unused_qubits" if config.unused_qubits else "unused_couplers",
                value=[len(c) for c in components],
            )
        LOGGER.info(
            "Grid %dx%d: %d live qubits, %d live couplers",
            grid.width,
            grid.height,
            grid.node_count,
            grid.edge_count,
        )

    with _stage("pattern enumeration"):
        enumerator = PatternEnumerator(
            grid,
            config.order,
            max_patterns=config.max_patterns,
            patterns=config.patterns,
        )
        patterns = list(enumerator)
        if not patterns:
            raise EmptySearchSpace("no pattern survived enumeration", field="patterns", value=config.patterns)

    with _stage("cutline search"):
        searcher = CutlineSearcher(
            grid,
            min_depth=config.min_depth,
            max_depth=config.max_depth,
            max_unbalance=config.max_unbalance,
        )
        cutlines = list(searcher)
        if not cutlines:
            raise EmptySearchSpace(
                "no cutline satisfies the depth and balance bounds",
                field="max_unbalance",
                value=config.max_unbalance,
            )

    with _stage("evaluation"):
        evaluator = CostEvaluator(grid, config.order, cost_model or config.cost_model)
        orchestrator = ParallelOrchestrator(
            workers=config.workers,
            chunk_size=config.chunk_size,
            progress=progress,
            cancel=cancel,
        )
        return orchestrator.run(grid, patterns, cutlines, evaluator, truncated=enumerator.truncated)
