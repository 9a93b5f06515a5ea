"""Periodic gate patterns and their exhaustive, symmetry-reduced enumeration."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, Iterator, List, NamedTuple, Sequence, Tuple

from .errors import ConfigurationError, InvalidPattern
from .grid import GridGraph

LOGGER = logging.getLogger(__name__)

ORIENTATIONS = ("rows", "columns", "diagonal", "antidiagonal")

# Label stored at lattice positions whose coupler is dead.
DEAD_LABEL = "-"


class PatternKey(NamedTuple):
    """Generation point of an enumerated pattern."""

    phase_h: int
    phase_v: int
    orientation: str


def coupler_position(orientation: str, horizontal: bool, row: int, col: int) -> int:
    """Offset into the cyclic order for a coupler anchored at ``(row, col)``.

    ``rows`` advances the cycle along each coupler's own direction,
    ``columns`` across it, and the diagonal orientations along ``row + col``
    and ``row - col`` for both directions.
    """

    if orientation == "rows":
        return col if horizontal else row
    if orientation == "columns":
        return row if horizontal else col
    if orientation == "diagonal":
        return row + col
    if orientation == "antidiagonal":
        return row - col
    raise ConfigurationError("unknown pattern orientation", field="orientation", value=orientation)


@dataclass(frozen=True, order=True)
class Pattern:
    """Immutable assignment of one label per lattice coupler.

    ``labels`` holds one character per coupler id; dead couplers carry
    :data:`DEAD_LABEL`.  Patterns compare and sort by ``labels``.
    """

    labels: str
    key: PatternKey | None = field(default=None, compare=False)

    def label(self, edge: int) -> str:
        return self.labels[edge]

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"labels": self.labels}
        if self.key is not None:
            payload["key"] = self.key._asdict()
        return payload

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Pattern":
        key = data.get("key")
        return cls(data["labels"], PatternKey(**key) if key else None)

    def render(self, grid: GridGraph) -> str:
        """Return a text drawing of the pattern on ``grid``.

        Qubits are drawn as ``o`` (``x`` when unused) with the label of each
        coupler between its endpoints.
        """

        rows = [[" "] * (2 * grid.width - 1) for _ in range(2 * grid.height - 1)]
        for node in range(grid.width * grid.height):
            r, c = divmod(node, grid.width)
            rows[2 * r][2 * c] = "o" if grid.is_live_node(node) else "x"
        for edge in range(grid.coupler_count):
            a, b = grid.endpoints(edge)
            (ra, ca), (rb, cb) = divmod(a, grid.width), divmod(b, grid.width)
            label = self.labels[edge]
            rows[ra + rb][ca + cb] = " " if label == DEAD_LABEL else label
        return "\n".join("".join(row).rstrip() for row in rows)


@dataclass(frozen=True)
class Symmetry:
    """Lattice symmetry expressed as a permutation of coupler ids."""

    name: str
    permutation: Tuple[int, ...]

    def apply(self, labels: Sequence[str]) -> str:
        image = [DEAD_LABEL] * len(labels)
        for edge, target in enumerate(self.permutation):
            image[target] = labels[edge]
        return "".join(image)


def _site_maps(width: int, height: int) -> List[Tuple[str, Callable[[int, int], Tuple[int, int]]]]:
    maps: List[Tuple[str, Callable[[int, int], Tuple[int, int]]]] = [
        ("identity", lambda r, c: (r, c)),
        ("flip_rows", lambda r, c: (height - 1 - r, c)),
        ("flip_columns", lambda r, c: (r, width - 1 - c)),
        ("rotate_180", lambda r, c: (height - 1 - r, width - 1 - c)),
    ]
    if width == height:
        maps.extend(
            [
                ("transpose", lambda r, c: (c, r)),
                ("anti_transpose", lambda r, c: (width - 1 - c, height - 1 - r)),
                ("rotate_90", lambda r, c: (c, height - 1 - r)),
                ("rotate_270", lambda r, c: (width - 1 - c, r)),
            ]
        )
    return maps


def grid_symmetries(grid: GridGraph) -> List[Symmetry]:
    """Return the lattice symmetries that map the live graph onto itself.

    The identity is always first.  Defects break symmetries: a map is kept
    only if it sends live qubits to live qubits and live couplers to live
    couplers.
    """

    width, height = grid.width, grid.height
    symmetries: List[Symmetry] = []
    for name, site_map in _site_maps(width, height):
        site_perm = []
        for site in range(width * height):
            r, c = site_map(*divmod(site, width))
            site_perm.append(r * width + c)
        if any(grid.is_live_node(s) != grid.is_live_node(site_perm[s]) for s in range(width * height)):
            continue
        permutation = []
        for edge in range(grid.coupler_count):
            a, b = grid.endpoints(edge)
            permutation.append(grid.coupler_id(site_perm[a], site_perm[b]))
        if any(grid.is_live_coupler(e) != grid.is_live_coupler(permutation[e]) for e in range(grid.coupler_count)):
            continue
        symmetries.append(Symmetry(name, tuple(permutation)))
    return symmetries


def canonical_form(labels: str, symmetries: Iterable[Symmetry]) -> str:
    """Lexicographically smallest image of ``labels`` under ``symmetries``."""

    return min(symmetry.apply(labels) for symmetry in symmetries)


class PatternEnumerator:
    """Lazy, restartable sequence of symmetry-distinct patterns.

    Patterns are generated for every horizontal phase, then every vertical
    phase, then every orientation in :data:`ORIENTATIONS`.  A pattern is
    yielded only when no symmetry-equivalent pattern was yielded before.

    When ``patterns`` is given, iteration validates and yields exactly those
    label strings instead.  ``max_patterns`` caps the output in both modes;
    after an iteration finishes :attr:`truncated` reports whether the cap
    cut the sequence short.
    """

    def __init__(
        self,
        grid: GridGraph,
        order: str,
        max_patterns: int | None = None,
        patterns: Sequence[str] | None = None,
    ) -> None:
        if not order:
            raise ConfigurationError("order must be a non-empty string", field="order", value=order)
        self.grid = grid
        self.order = order
        self.max_patterns = max_patterns
        self.truncated = False
        self.symmetries = grid_symmetries(grid)
        self._anchors = []
        for edge in range(grid.coupler_count):
            a, _ = grid.endpoints(edge)
            row, col = grid.coordinate(a)
            self._anchors.append((edge, grid.is_horizontal(edge), row, col, grid.is_live_coupler(edge)))
        self._explicit: Tuple[Pattern, ...] | None = None
        if patterns is not None:
            self._explicit = tuple(self._validate(labels) for labels in patterns)

    def _validate(self, labels: str) -> Pattern:
        if len(labels) != self.grid.coupler_count:
            raise InvalidPattern(
                f"pattern must hold {self.grid.coupler_count} labels, got {len(labels)}",
                field="patterns",
                value=labels,
            )
        alphabet = set(self.order)
        chars = []
        for edge, label in enumerate(labels):
            if not self.grid.is_live_coupler(edge):
                chars.append(DEAD_LABEL)
            elif label not in alphabet:
                raise InvalidPattern(
                    f"label {label!r} of coupler {edge} is not part of the order",
                    field="patterns",
                    value=labels,
                )
            else:
                chars.append(label)
        return Pattern("".join(chars))

    def project(self, phase_h: int, phase_v: int, orientation: str) -> Pattern:
        """Return the pattern generated at one generation point."""

        order = self.order
        period = len(order)
        chars = []
        for _, horizontal, row, col, live in self._anchors:
            if not live:
                chars.append(DEAD_LABEL)
                continue
            phase = phase_h if horizontal else phase_v
            chars.append(order[(phase + coupler_position(orientation, horizontal, row, col)) % period])
        return Pattern("".join(chars), PatternKey(phase_h, phase_v, orientation))

    def _generate(self) -> Iterator[Pattern]:
        seen: set[str] = set()
        period = len(self.order)
        for phase_h in range(period):
            for phase_v in range(period):
                for orientation in ORIENTATIONS:
                    pattern = self.project(phase_h, phase_v, orientation)
                    canonical = canonical_form(pattern.labels, self.symmetries)
                    if canonical in seen:
                        continue
                    seen.add(canonical)
                    yield pattern

    def __iter__(self) -> Iterator[Pattern]:
        self.truncated = False
        source: Iterable[Pattern] = self._explicit if self._explicit is not None else self._generate()
        produced = 0
        for pattern in source:
            if self.max_patterns is not None and produced >= self.max_patterns:
                self.truncated = True
                LOGGER.warning("Pattern enumeration capped at %d patterns", self.max_patterns)
                return
            produced += 1
            yield pattern
        LOGGER.info("Enumerated %d distinct patterns", produced)


def enumerate_patterns(
    grid: GridGraph,
    order: str,
    max_patterns: int | None = None,
    patterns: Sequence[str] | None = None,
) -> PatternEnumerator:
    """Return the pattern sequence for ``grid`` and ``order``."""

    return PatternEnumerator(grid, order, max_patterns=max_patterns, patterns=patterns)
