"""Command line interface for the cutline and pattern search."""

from __future__ import annotations

import argparse
import logging
import sys
import threading
from pathlib import Path
from typing import Any, Dict, Sequence

from .config import DEFAULT, QubitRef, SearchConfig
from .cost import COST_MODELS
from .errors import SearchError
from .orchestrator import CompletionStatus, SearchResult
from .report import save_result
from .search import run_search

LOGGER = logging.getLogger(__name__)

# Exit codes besides 0 (complete search).
EXIT_ERROR = 1
EXIT_CONFIG = 2
EXIT_INCOMPLETE = 3

# Command line option -> SearchConfig field for plain overrides.
_OVERRIDES = {
    "width": "width",
    "height": "height",
    "qubit_at_origin": "qubit_at_origin",
    "min_depth": "min_depth",
    "max_depth": "max_depth",
    "max_unbalance": "max_unbalance",
    "order": "order",
    "max_patterns": "max_patterns",
    "cost_model": "cost_model",
    "workers": "workers",
    "chunk_size": "chunk_size",
}


def _configure_logging(verbosity: int) -> None:
    """Initialise logging for CLI usage."""

    level = logging.WARNING
    if verbosity >= 2:
        level = logging.DEBUG
    elif verbosity == 1:
        level = logging.INFO
    logging.basicConfig(level=level, format="%(levelname)s: %(message)s")


def _qubit_ref(text: str) -> QubitRef:
    """Parse ``"7"`` as a qubit index and ``"1,2"`` as a ``(row, col)`` pair."""

    try:
        parts = [int(p) for p in text.split(",")]
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid qubit reference: {text!r}") from None
    if len(parts) == 1:
        return parts[0]
    if len(parts) == 2:
        return (parts[0], parts[1])
    raise argparse.ArgumentTypeError(f"invalid qubit reference: {text!r}")


def _coupler_ref(text: str) -> tuple:
    """Parse ``"A:B"`` where both sides are qubit references."""

    first, sep, second = text.partition(":")
    if not sep:
        raise argparse.ArgumentTypeError(f"coupler must be given as QUBIT:QUBIT, got {text!r}")
    return (_qubit_ref(first), _qubit_ref(second))


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="sfacut",
        description=(
            "Search the gate pattern and cutline with the lowest SFA cost on a "
            "rectangular qubit grid."
        ),
    )
    parser.add_argument("--config", type=Path, help="Load the configuration from a JSON file.")

    topology = parser.add_argument_group("topology")
    topology.add_argument("--width", type=int, help="Number of qubit columns.")
    topology.add_argument("--height", type=int, help="Number of qubit rows.")
    topology.add_argument(
        "--unused-qubit",
        dest="unused_qubits",
        action="append",
        type=_qubit_ref,
        metavar="QUBIT",
        help="Mark a qubit as unused (index or ROW,COL). May be repeated.",
    )
    topology.add_argument(
        "--unused-coupler",
        dest="unused_couplers",
        action="append",
        type=_coupler_ref,
        metavar="QUBIT:QUBIT",
        help="Mark the coupler between two qubits as unused. May be repeated.",
    )
    topology.add_argument(
        "--qubit-at-origin",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Whether coordinates start at 0 (default) or at 1.",
    )

    search = parser.add_argument_group("search")
    search.add_argument("--min-depth", type=int, help="Minimum number of cut couplers.")
    search.add_argument("--max-depth", type=int, help="Maximum number of cut couplers.")
    search.add_argument(
        "--max-unbalance",
        type=int,
        help=f"Largest size difference of the two halves (default: {DEFAULT.max_unbalance}).",
    )
    search.add_argument("--order", help="Layer order of the SFA circuit, one label per layer.")
    search.add_argument(
        "--pattern",
        dest="patterns",
        action="append",
        metavar="LABELS",
        help="Evaluate only the given pattern label string. May be repeated.",
    )
    search.add_argument("--max-patterns", type=int, help="Stop after this many distinct patterns.")
    search.add_argument(
        "--cost-model",
        choices=sorted(COST_MODELS),
        help=f"Cost model to minimise (default: {DEFAULT.cost_model}).",
    )

    execution = parser.add_argument_group("execution")
    execution.add_argument("--workers", type=int, help="Worker threads (default: CPU count).")
    execution.add_argument(
        "--chunk-size",
        type=int,
        help=f"Combinations per unit of work (default: {DEFAULT.chunk_size}).",
    )
    execution.add_argument(
        "--timeout",
        type=float,
        help="Stop evaluating after this many seconds and report a partial result.",
    )

    output = parser.add_argument_group("output")
    output.add_argument("--output", type=Path, help="Write the result record to a JSON file.")
    output.add_argument("--save-config", type=Path, help="Write the effective configuration to a JSON file.")
    output.add_argument(
        "--show-pattern",
        action="store_true",
        help="Draw the winning pattern on the grid.",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Increase logging verbosity (use -vv for debug output).",
    )
    return parser


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    """Parse and sanity check command line arguments."""

    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.config is None and (args.width is None or args.height is None):
        parser.error("--width and --height are required without --config")
    if args.timeout is not None and args.timeout <= 0:
        parser.error("--timeout must be positive")
    for opt in ("width", "height", "workers", "chunk_size", "max_patterns"):
        value = getattr(args, opt)
        if value is not None and value <= 0:
            parser.error(f"--{opt.replace('_', '-')} must be a positive integer")
    for opt in ("min_depth", "max_depth", "max_unbalance"):
        value = getattr(args, opt)
        if value is not None and value < 0:
            parser.error(f"--{opt.replace('_', '-')} must be non-negative")
    return args


def build_config(args: argparse.Namespace) -> SearchConfig:
    """Combine the ``--config`` file with command line overrides."""

    changes: Dict[str, Any] = {
        field: getattr(args, option)
        for option, field in _OVERRIDES.items()
        if getattr(args, option) is not None
    }
    # Repeated options extend the lists from the configuration file.
    if args.config is not None:
        config = SearchConfig.from_json(args.config)
        if args.unused_qubits:
            changes["unused_qubits"] = config.unused_qubits + tuple(args.unused_qubits)
        if args.unused_couplers:
            changes["unused_couplers"] = config.unused_couplers + tuple(args.unused_couplers)
        if args.patterns:
            changes["patterns"] = tuple(args.patterns)
        return config.replace(**changes) if changes else config

    changes["unused_qubits"] = tuple(args.unused_qubits or ())
    changes["unused_couplers"] = tuple(args.unused_couplers or ())
    if args.patterns:
        changes["patterns"] = tuple(args.patterns)
    return SearchConfig(**changes)


class _ProgressLogger:
    """Log evaluation progress in steps of ``step`` percent."""

    def __init__(self, step: int = 10) -> None:
        self.step = step
        self._next = step

    def __call__(self, completed: int, total: int) -> None:
        percent = 100 * completed // total if total else 100
        if percent < self._next:
            return
        LOGGER.info("Evaluated %d/%d combinations (%d%%)", completed, total, percent)
        self._next = (percent // self.step + 1) * self.step


def _summary(result: SearchResult, show_pattern: bool) -> str:
    lines = [
        f"status: {result.status.value}",
        f"evaluated: {result.evaluated}/{result.total} "
        f"({result.pattern_count} patterns x {result.cutline_count} cutlines)",
    ]
    best = result.best
    if best is None:
        lines.append("no combination evaluated")
        return "\n".join(lines)
    lines.append(f"cost: {best.cost:g}")
    lines.append(f"pattern: {best.pattern.labels}")
    cutline = best.cutline
    lines.append(
        f"cutline: couplers {list(cutline.edges)}, depth {cutline.depth}, "
        f"sizes {cutline.sizes[0]}/{cutline.sizes[1]}, unbalance {cutline.unbalance}"
    )
    if result.grid is not None:
        couplers = ", ".join(
            f"{a}-{b}" for a, b in (result.grid.coupler_coordinates(e) for e in cutline.edges)
        )
        lines.append(f"cut couplers: {couplers}")
        if show_pattern:
            lines.append(best.pattern.render(result.grid))
    return "\n".join(lines)


def main(argv: Sequence[str] | None = None) -> int:
    args = parse_args(argv)
    _configure_logging(args.verbose)

    try:
        config = build_config(args)
    except (SearchError, OSError, ValueError) as exc:
        LOGGER.error("Invalid configuration: %s", exc)
        return EXIT_CONFIG
    if args.save_config is not None:
        args.save_config.parent.mkdir(parents=True, exist_ok=True)
        config.to_json(args.save_config)
        LOGGER.info("Wrote configuration to %s", args.save_config)

    cancel = threading.Event()
    timer = None
    if args.timeout is not None:
        timer = threading.Timer(args.timeout, cancel.set)
        timer.daemon = True
        timer.start()
    try:
        result = run_search(config, progress=_ProgressLogger(), cancel=cancel)
    except SearchError as exc:
        LOGGER.error("Search aborted: %s", exc)
        return EXIT_CONFIG if isinstance(exc, ValueError) else EXIT_ERROR
    finally:
        if timer is not None:
            timer.cancel()

    print(_summary(result, args.show_pattern))
    if args.output is not None:
        path = save_result(args.output, result, config)
        LOGGER.info("Wrote result to %s", path)
    if result.status is not CompletionStatus.COMPLETE:
        LOGGER.warning("Search did not complete: %s", result.status.value)
        return EXIT_INCOMPLETE
    return 0


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
