import threading

import pytest

from sfacut import (
    CompletionStatus,
    CostEvaluator,
    CutlineSearcher,
    EmptySearchSpace,
    GridGraph,
    ParallelOrchestrator,
    PatternEnumerator,
    ScoredCombination,
)


@pytest.fixture
def inputs():
    grid = GridGraph.build(4, 3)
    patterns = list(PatternEnumerator(grid, "ABCD"))
    cutlines = list(CutlineSearcher(grid, max_unbalance=2))
    return grid, patterns, cutlines


def _brute_force(patterns, cutlines, evaluator):
    return min(
        (
            ScoredCombination(p, c, evaluator.cost(p, c))
            for p in patterns
            for c in cutlines
        ),
        key=ScoredCombination.sort_key,
    )


def test_finds_the_global_minimum(inputs):
    grid, patterns, cutlines = inputs
    evaluator = CostEvaluator(grid, "ABCD")
    result = ParallelOrchestrator(workers=3, chunk_size=5).run(grid, patterns, cutlines, evaluator)
    assert result.status is CompletionStatus.COMPLETE
    assert result.status.is_complete
    assert result.evaluated == result.total == len(patterns) * len(cutlines)
    assert result.best == _brute_force(patterns, cutlines, evaluator)


@pytest.mark.parametrize("workers,chunk_size", [(1, 1), (2, 7), (4, 3), (8, 10_000)])
def test_result_does_not_depend_on_scheduling(inputs, workers, chunk_size):
    grid, patterns, cutlines = inputs
    evaluator = CostEvaluator(grid, "ABCD")
    reference = ParallelOrchestrator(workers=1, chunk_size=1).run(grid, patterns, cutlines, evaluator)
    result = ParallelOrchestrator(workers=workers, chunk_size=chunk_size).run(
        grid, patterns, cutlines, evaluator
    )
    assert result.best == reference.best


def test_ties_break_on_labels_then_edges(inputs):
    grid, patterns, cutlines = inputs
    evaluator = CostEvaluator(grid, "ABCD", lambda pattern, cutline: 1.0)
    result = ParallelOrchestrator(workers=4, chunk_size=2).run(
        grid, reversed(patterns), reversed(cutlines), evaluator
    )
    assert result.best.pattern == min(patterns)
    assert result.best.cutline == min(cutlines)


def test_progress_reports_every_chunk(inputs):
    grid, patterns, cutlines = inputs
    evaluator = CostEvaluator(grid, "ABCD")
    events = []
    ParallelOrchestrator(workers=2, chunk_size=4, progress=lambda done, total: events.append((done, total))).run(
        grid, patterns, cutlines, evaluator
    )
    total = len(patterns) * len(cutlines)
    assert len(events) == -(-total // 4)
    assert [done for done, _ in events] == sorted(done for done, _ in events)
    assert events[-1] == (total, total)


def test_cancel_before_start_returns_empty_partial(inputs):
    grid, patterns, cutlines = inputs
    cancel = threading.Event()
    cancel.set()
    result = ParallelOrchestrator(workers=2, cancel=cancel).run(
        grid, patterns, cutlines, CostEvaluator(grid, "ABCD")
    )
    assert result.status is CompletionStatus.PARTIAL
    assert result.best is None
    assert result.evaluated == 0


def test_cancel_mid_run_keeps_best_so_far(inputs):
    grid, patterns, cutlines = inputs
    cancel = threading.Event()

    def cost(pattern, cutline):
        cancel.set()
        return float(cutline.depth)

    evaluator = CostEvaluator(grid, "ABCD", cost)
    result = ParallelOrchestrator(workers=1, chunk_size=3, cancel=cancel).run(
        grid, patterns, cutlines, evaluator
    )
    assert result.status is CompletionStatus.PARTIAL
    assert not result.status.is_complete
    assert result.evaluated == 3
    assert result.best.pattern == patterns[0]
    assert result.best.cutline in cutlines[:3]


def test_truncated_input_is_capacity_exceeded():
    grid = GridGraph.build(4, 3)
    enumerator = PatternEnumerator(grid, "ABCD", max_patterns=1)
    cutlines = CutlineSearcher(grid, max_unbalance=2)
    result = ParallelOrchestrator(workers=2).run(grid, enumerator, cutlines, CostEvaluator(grid, "ABCD"))
    assert result.status is CompletionStatus.CAPACITY_EXCEEDED
    assert result.pattern_count == 1
    assert result.best is not None


@pytest.mark.parametrize("empty", ["patterns", "cutlines"])
def test_empty_inputs(inputs, empty):
    grid, patterns, cutlines = inputs
    if empty == "patterns":
        patterns = []
    else:
        cutlines = []
    with pytest.raises(EmptySearchSpace):
        ParallelOrchestrator().run(grid, patterns, cutlines, CostEvaluator(grid, "ABCD"))


def test_workers_default_from_config(monkeypatch):
    from sfacut import config

    monkeypatch.setattr(config.DEFAULT, "workers", 3)
    monkeypatch.setattr(config.DEFAULT, "chunk_size", 17)
    orchestrator = ParallelOrchestrator()
    assert orchestrator.workers == 3
    assert orchestrator.chunk_size == 17


def test_scored_combination_round_trip(inputs):
    grid, patterns, cutlines = inputs
    combo = ScoredCombination(patterns[0], cutlines[0], float("inf"))
    payload = combo.to_dict(grid)
    assert payload["cost"] is None
    assert ScoredCombination.from_dict(payload) == combo
