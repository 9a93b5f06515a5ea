"""Enumeration of cutlines splitting the grid into two connected halves.

A cutline is a simple cycle of the dual graph through the exterior
region: it enters the lattice across a boundary coupler, walks through
interior regions crossing one live coupler per step and leaves across
another boundary coupler.  Bridges of the live graph form single-coupler
cutlines of their own.

Side sizes are tracked while the path grows.  Fix a spanning tree of the
live graph and give every crossing of a tree coupler the weight
``+size`` when the child end of the coupler lies on the right hand of the
walker and ``-size`` when it lies on the left, where ``size`` is the
qubit count of the child subtree.  For a completed cut the weights sum to
the size of the right half when the tree root lies on the left and to
minus the size of the left half otherwise.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Sequence, Tuple

from .errors import ConfigurationError, FragmentedCut, InfeasibleGrid
from .grid import DualStep, GridGraph, UnionFind

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True, order=True)
class Cutline:
    """Crossed couplers of a cut and the sizes of the two halves.

    ``edges`` lists the crossed live coupler ids in path order and
    ``sizes`` the qubit counts of the ``(left, right)`` components.
    Cutlines compare and sort by ``edges``.
    """

    edges: Tuple[int, ...]
    sizes: Tuple[int, int]

    @property
    def depth(self) -> int:
        return len(self.edges)

    @property
    def unbalance(self) -> int:
        return abs(self.sizes[0] - self.sizes[1])

    def to_dict(self, grid: GridGraph | None = None) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "edges": list(self.edges),
            "depth": self.depth,
            "sizes": list(self.sizes),
            "unbalance": self.unbalance,
        }
        if grid is not None:
            payload["couplers"] = [
                [list(a), list(b)] for a, b in (grid.coupler_coordinates(e) for e in self.edges)
            ]
        return payload

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Cutline":
        left, right = data["sizes"]
        return cls(tuple(int(e) for e in data["edges"]), (int(left), int(right)))


def minimum_unbalance(left_min: int, right_min: int, total: int) -> int:
    """Smallest unbalance reachable when each side holds at least the given qubits.

    The left side of any completion holds between ``left_min`` and
    ``total - right_min`` qubits.
    """

    low, high = left_min, total - right_min
    if high < low:
        return total + 1
    if 2 * high < total:
        return total - 2 * high
    if 2 * low > total:
        return 2 * low - total
    return total % 2


def balance_reachable(low: int, high: int, total: int, max_unbalance: int) -> bool:
    """Whether a signed side size in ``[low, high]`` can give an admissible split.

    A signed size ``s`` describes halves of ``|s|`` and ``total - |s|``
    qubits; ``s == 0`` never describes a cut.
    """

    least = max(1, -(-(total - max_unbalance) // 2))
    most = min(total - 1, (total + max_unbalance) // 2)
    if least > most:
        return False
    return (low <= most and high >= least) or (low <= -least and high >= -most)


def split_sizes(balance: int, total: int) -> Tuple[int, int] | None:
    """``(left, right)`` sizes described by a completed signed side size."""

    if balance > 0:
        return (total - balance, balance)
    if balance < 0:
        return (-balance, total + balance)
    return None


def tree_weights(grid: GridGraph) -> Dict[int, Tuple[int, int]]:
    """Map the couplers of a spanning tree of ``grid`` to ``(child, subtree size)``.

    Vertical couplers are taken first, so on a defect-free grid the tree is
    a comb of column chains joined along one row.  The tree is rooted at the
    smallest live qubit.
    """

    uf = UnionFind(grid.width * grid.height)
    links: Dict[int, List[Tuple[int, int]]] = {node: [] for node in grid.nodes}
    for edge in sorted(grid.edges, key=lambda e: (grid.is_horizontal(e), e)):
        a, b = grid.endpoints(edge)
        if uf.union(a, b):
            links[a].append((b, edge))
            links[b].append((a, edge))

    root = grid.nodes[0]
    parent_edge: Dict[int, int | None] = {root: None}
    discovered = [root]
    stack = [root]
    while stack:
        node = stack.pop()
        for other, edge in links[node]:
            if other not in parent_edge:
                parent_edge[other] = edge
                discovered.append(other)
                stack.append(other)

    size = {node: 1 for node in discovered}
    weights: Dict[int, Tuple[int, int]] = {}
    # Children are discovered after their parent.
    for node in reversed(discovered):
        edge = parent_edge[node]
        if edge is None:
            continue
        a, b = grid.endpoints(edge)
        size[a if b == node else b] += size[node]
        weights[edge] = (node, size[node])
    return weights


class CutlineSearcher:
    """Lazy, restartable enumeration of feasible cutlines.

    Only cuts whose dual curve passes through the exterior region are
    produced.  A closed curve that stays inside the lattice, such as the
    ring of couplers around an interior qubit, is never enumerated even
    when it splits the grid into two components.

    Parameters
    ----------
    grid:
        Device graph; must be connected.
    min_depth, max_depth:
        Bounds on the number of crossed live couplers.  ``max_depth=None``
        leaves the depth unbounded.
    max_unbalance:
        Largest allowed difference between the two component sizes.

    Raises
    ------
    InfeasibleGrid
        If defects already split ``grid`` into several components.
    """

    def __init__(
        self,
        grid: GridGraph,
        min_depth: int = 0,
        max_depth: int | None = None,
        max_unbalance: int = 6,
    ) -> None:
        for name, value in (("min_depth", min_depth), ("max_unbalance", max_unbalance)):
            if value < 0:
                raise ConfigurationError("expected a non-negative integer", field=name, value=value)
        if max_depth is not None and max_depth < min_depth:
            raise ConfigurationError("max_depth must not be smaller than min_depth", field="max_depth", value=max_depth)
        components = grid.components()
        if len(components) != 1:
            raise InfeasibleGrid(
                f"defects split the grid into {len(components)} components before any cut",
                stage="cutline search",
            )
        self.grid = grid
        self.min_depth = min_depth
        self.max_depth = grid.edge_count if max_depth is None else max_depth
        self.max_unbalance = max_unbalance
        self.fragmented = 0

        self._weights = tree_weights(grid)
        boundary = set(grid.boundary_couplers())
        self._inner_weight = max((s for e, (_, s) in self._weights.items() if e not in boundary), default=0)
        self._boundary_weight = max((s for e, (_, s) in self._weights.items() if e in boundary), default=0)

    def _signed(self, step: DualStep) -> int:
        weight = self._weights.get(step.edge)
        if weight is None:
            return 0
        child, size = weight
        return size if child == step.right else -size

    def _validate(self, edges: Tuple[int, ...], left_node: int) -> Cutline:
        components = self.grid.components(edges)
        if len(components) != 2:
            raise FragmentedCut(
                f"removing couplers {edges} leaves {len(components)} components",
                components=len(components),
            )
        left = next(len(c) for c in components if left_node in c)
        return Cutline(edges, (left, self.grid.node_count - left))

    def _accept(self, edges: Tuple[int, ...], left_node: int, balance: int) -> Cutline | None:
        if not self.min_depth <= len(edges) <= self.max_depth:
            return None
        sizes = split_sizes(balance, self.grid.node_count)
        if sizes is None or abs(sizes[0] - sizes[1]) > self.max_unbalance:
            return None
        try:
            cutline = self._validate(edges, left_node)
        except FragmentedCut as exc:
            self.fragmented += 1
            LOGGER.debug("Dropping candidate cut: %s", exc)
            return None
        if cutline.unbalance > self.max_unbalance:
            return None
        return cutline

    def _bridges(self) -> Iterator[Cutline]:
        if not self.min_depth <= 1 <= self.max_depth:
            return
        for step in self.grid.dual.bridges:
            cutline = self._accept((step.edge,), step.left, self._signed(step))
            if cutline is not None:
                yield cutline

    def _cycles(self) -> Iterator[Cutline]:
        dual = self.grid.dual
        exterior = dual.exterior
        adjacency = dual.adjacency
        distance = dual.distance
        total = self.grid.node_count
        max_depth, min_depth = self.max_depth, self.min_depth
        max_unbalance = self.max_unbalance
        inner_weight, boundary_weight = self._inner_weight, self._boundary_weight

        # Qubits left/right of the crossings so far, reference counted.
        left_seeds: Dict[int, int] = {}
        right_seeds: Dict[int, int] = {}
        path: List[DualStep] = []
        signed: List[int] = []
        balance = 0
        visited = {exterior}
        stack = [iter(adjacency[exterior])]
        while stack:
            step = next(stack[-1], None)
            if step is None:
                stack.pop()
                if path:
                    last = path.pop()
                    balance -= signed.pop()
                    visited.discard(last.target)
                    _release(left_seeds, last.left)
                    _release(right_seeds, last.right)
                continue
            depth = len(path) + 1
            if depth > max_depth:
                continue
            if step.target == exterior:
                # Each cycle is reported once: in the direction whose first
                # crossing has the smaller coupler id.
                if path and path[0].edge < step.edge and depth >= min_depth:
                    edges = tuple(s.edge for s in path) + (step.edge,)
                    cutline = self._accept(edges, path[0].left, balance + self._signed(step))
                    if cutline is not None:
                        yield cutline
                continue
            if step.target in visited or depth + distance[step.target] > max_depth:
                continue
            weight = self._signed(step)
            # All remaining crossings but the last one stay off the boundary.
            budget = (max_depth - depth - 1) * inner_weight + boundary_weight
            if not balance_reachable(balance + weight - budget, balance + weight + budget, total, max_unbalance):
                continue
            _hold(left_seeds, step.left)
            _hold(right_seeds, step.right)
            if minimum_unbalance(len(left_seeds), len(right_seeds), total) > max_unbalance:
                _release(left_seeds, step.left)
                _release(right_seeds, step.right)
                continue
            path.append(step)
            signed.append(weight)
            balance += weight
            visited.add(step.target)
            stack.append(iter(adjacency[step.target]))

    def __iter__(self) -> Iterator[Cutline]:
        self.fragmented = 0
        found = 0
        for source in (self._bridges(), self._cycles()):
            for cutline in source:
                found += 1
                yield cutline
        LOGGER.info(
            "Found %d cutlines (depth %d..%d, unbalance <= %d); dropped %d fragmented candidates",
            found,
            self.min_depth,
            self.max_depth,
            self.max_unbalance,
            self.fragmented,
        )


def _hold(seeds: Dict[int, int], node: int) -> None:
    seeds[node] = seeds.get(node, 0) + 1


def _release(seeds: Dict[int, int], node: int) -> None:
    count = seeds[node] - 1
    if count:
        seeds[node] = count
    else:
        del seeds[node]


def search_cutlines(
    grid: GridGraph,
    min_depth: int = 0,
    max_depth: int | None = None,
    max_unbalance: int = 6,
) -> CutlineSearcher:
    """Return the cutline sequence for ``grid`` under the given bounds."""

    return CutlineSearcher(grid, min_depth=min_depth, max_depth=max_depth, max_unbalance=max_unbalance)


def cut_components(grid: GridGraph, cutline: Cutline | Sequence[int]) -> List[Tuple[int, ...]]:
    """Components of ``grid`` once the couplers of ``cutline`` are removed."""

    edges = cutline.edges if isinstance(cutline, Cutline) else tuple(cutline)
    return grid.components(edges)
