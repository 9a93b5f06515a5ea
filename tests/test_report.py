import json
import math

from sfacut import (
    CompletionStatus,
    Cutline,
    Pattern,
    ScoredCombination,
    SearchConfig,
    SearchResult,
    load_result,
    result_to_dict,
    run_search,
    save_result,
)


def test_round_trip(tmp_path):
    config = SearchConfig(width=3, height=3, order="AB", max_unbalance=1)
    result = run_search(config)
    path = save_result(tmp_path / "out" / "result.json", result, config)
    assert path.exists()

    record = load_result(path)
    assert record.best == result.best
    assert record.best.pattern.key == result.best.pattern.key
    assert record.status is CompletionStatus.COMPLETE
    assert (record.evaluated, record.total) == (result.evaluated, result.total)
    assert record.config == config
    assert record.cost == result.best.cost


def test_record_lists_cut_coordinates(tmp_path):
    config = SearchConfig(width=3, height=3, order="AB", max_unbalance=1)
    result = run_search(config)
    data = json.loads(save_result(tmp_path / "result.json", result, config).read_text())
    cutline = data["best"]["cutline"]
    assert len(cutline["couplers"]) == cutline["depth"] == len(cutline["edges"])
    assert data["config"]["order"] == "AB"
    assert data["status"] == "complete"


def test_infinite_cost_is_stored_as_null(tmp_path):
    config = SearchConfig(width=2, height=2, order="AB")
    best = ScoredCombination(Pattern("AAAA"), Cutline((0, 3), (2, 2)), math.inf)
    result = SearchResult(
        best=best,
        status=CompletionStatus.PARTIAL,
        evaluated=1,
        total=4,
        pattern_count=1,
        cutline_count=4,
    )
    data = result_to_dict(result, config)
    assert data["best"]["cost"] is None
    assert "couplers" not in data["best"]["cutline"]

    path = tmp_path / "result.json"
    path.write_text(json.dumps(data))
    record = load_result(path)
    assert record.cost == math.inf
    assert record.status is CompletionStatus.PARTIAL


def test_cancelled_result_without_best(tmp_path):
    config = SearchConfig(width=2, height=2, order="AB")
    result = SearchResult(
        best=None,
        status=CompletionStatus.PARTIAL,
        evaluated=0,
        total=12,
        pattern_count=3,
        cutline_count=4,
    )
    record = load_result(save_result(tmp_path / "result.json", result, config))
    assert record.best is None
    assert record.cost is None
