"""Serialisation of search results for reproducible runs."""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping

from .config import SearchConfig
from .orchestrator import CompletionStatus, ScoredCombination, SearchResult

FORMAT_VERSION = 1


@dataclass(frozen=True)
class ResultRecord:
    """Persisted outcome of a search together with its configuration."""

    best: ScoredCombination | None
    status: CompletionStatus
    evaluated: int
    total: int
    pattern_count: int
    cutline_count: int
    config: SearchConfig

    @property
    def cost(self) -> float | None:
        return None if self.best is None else self.best.cost


def result_to_dict(result: SearchResult, config: SearchConfig) -> Dict[str, Any]:
    """Return a JSON-serialisable mapping describing ``result``.

    Infinite costs are stored as ``null``.  Cutlines carry the coordinates
    of their crossed couplers when the result still references its grid.
    """

    return {
        "version": FORMAT_VERSION,
        "status": result.status.value,
        "evaluated": result.evaluated,
        "total": result.total,
        "pattern_count": result.pattern_count,
        "cutline_count": result.cutline_count,
        "best": result.best.to_dict(result.grid) if result.best is not None else None,
        "config": config.to_dict(),
    }


def record_from_dict(data: Mapping[str, Any]) -> ResultRecord:
    best = data.get("best")
    return ResultRecord(
        best=ScoredCombination.from_dict(best) if best is not None else None,
        status=CompletionStatus(data["status"]),
        evaluated=int(data["evaluated"]),
        total=int(data["total"]),
        pattern_count=int(data.get("pattern_count", 0)),
        cutline_count=int(data.get("cutline_count", 0)),
        config=SearchConfig.from_dict(data["config"]),
    )


def save_result(path: str | Path, result: SearchResult, config: SearchConfig) -> Path:
    """Write ``result`` and ``config`` to ``path`` in JSON format.

    Parent directories are created automatically.
    """

    destination = Path(path)
    destination.parent.mkdir(parents=True, exist_ok=True)
    payload = result_to_dict(result, config)
    destination.write_text(json.dumps(payload, indent=2, sort_keys=True) + "\n", encoding="utf8")
    return destination


def load_result(path: str | Path) -> ResultRecord:
    """Read a record previously written by :func:`save_result`."""

    data = json.loads(Path(path).read_text(encoding="utf8"))
    return record_from_dict(data)
