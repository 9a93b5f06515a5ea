"""Device topology: qubits on a width×height lattice joined by couplers.

Nodes and couplers are identified by dense integers.  A node id is the
row-major index of its lattice site; a coupler id indexes the lattice
coupler positions in row-major order, the horizontal coupler of a site
coming before its vertical coupler.  Dead sites and dead couplers keep
their ids so that patterns and symmetries can address every lattice
position uniformly.

The dual view treats every lattice square as a face plus one exterior
face.  Faces separated by a dead coupler are merged into a single
*region*, so that regions are exactly the faces of the live plane graph
and a cutline is a simple cycle through the exterior region.
"""

from __future__ import annotations

import importlib
import logging
from collections import deque
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, NamedTuple, Sequence, Tuple

import numpy as np

from .config import normalize_coupler_ref, normalize_qubit_ref
from .errors import InvalidGeometry, UnknownEntity

if TYPE_CHECKING:  # pragma: no cover - typing only
    import networkx as _nx


LOGGER = logging.getLogger(__name__)

Coordinate = Tuple[int, int]

# Neighbour slots of the adjacency tables.
UP, RIGHT, DOWN, LEFT = range(4)
_STEPS = ((-1, 0), (0, 1), (1, 0), (0, -1))


def _require_networkx() -> "_nx":
    """Return the :mod:`networkx` module if available."""

    try:
        return importlib.import_module("networkx")
    except ModuleNotFoundError as exc:  # pragma: no cover - exercised via tests
        raise RuntimeError(
            "networkx is required for GridGraph.to_networkx(); install it to "
            "export device topologies."
        ) from exc


def lattice_couplers(width: int, height: int) -> Tuple[List[Tuple[int, int]], List[bool]]:
    """Return the site pairs and orientation of every lattice coupler.

    Pairs are ordered by coupler id and hold the top/left site first.
    """

    sites: List[Tuple[int, int]] = []
    horizontal: List[bool] = []
    for r in range(height):
        for c in range(width):
            site = r * width + c
            if c < width - 1:
                sites.append((site, site + 1))
                horizontal.append(True)
            if r < height - 1:
                sites.append((site, site + width))
                horizontal.append(False)
    return sites, horizontal


class UnionFind:
    """Disjoint sets over ``range(size)`` with path halving.

    The smaller index always becomes the root so that component
    representatives do not depend on the union order.
    """

    def __init__(self, size: int) -> None:
        self.parent = list(range(size))

    def find(self, x: int) -> int:
        parent = self.parent
        while parent[x] != x:
            parent[x] = parent[parent[x]]
            x = parent[x]
        return x

    def union(self, a: int, b: int) -> bool:
        ra, rb = self.find(a), self.find(b)
        if ra == rb:
            return False
        if rb < ra:
            ra, rb = rb, ra
        self.parent[rb] = ra
        return True


class DualStep(NamedTuple):
    """Crossing of one live coupler in the dual graph.

    ``left`` and ``right`` are the qubits on the left and right hand of a
    walker crossing the coupler towards ``target``.
    """

    edge: int
    target: int
    left: int
    right: int


@dataclass(frozen=True)
class DualView:
    """Regions of the live plane graph and the couplers between them."""

    region_count: int
    exterior: int
    adjacency: Tuple[Tuple[DualStep, ...], ...]
    bridges: Tuple[DualStep, ...]
    distance: Tuple[int, ...]
    face_regions: Tuple[int, ...]


class GridGraph:
    """Immutable qubit/coupler graph on a rectangular lattice.

    Use :meth:`build` to construct an instance from configuration values;
    the constructor expects already validated live masks.
    """

    def __init__(
        self,
        width: int,
        height: int,
        site_live: Sequence[bool],
        coupler_live: Sequence[bool] | None = None,
        *,
        qubit_at_origin: bool = True,
    ) -> None:
        self.width = width
        self.height = height
        self.qubit_at_origin = qubit_at_origin
        self.offset = 0 if qubit_at_origin else 1

        sites, horizontal = lattice_couplers(width, height)
        self.coupler_count = len(sites)
        self._coupler_sites = np.array(sites, dtype=np.int64).reshape(-1, 2)
        self._coupler_horizontal = np.array(horizontal, dtype=bool)
        self._coupler_index: Dict[Tuple[int, int], int] = {pair: idx for idx, pair in enumerate(sites)}

        self._site_live = np.array(site_live, dtype=bool)
        if coupler_live is None:
            coupler_live = [True] * self.coupler_count
        declared = np.array(coupler_live, dtype=bool)
        # A coupler touching a dead qubit is dead as well.
        self._coupler_live = (
            declared
            & self._site_live[self._coupler_sites[:, 0]]
            & self._site_live[self._coupler_sites[:, 1]]
        )
        for arr in (self._coupler_sites, self._coupler_horizontal, self._site_live, self._coupler_live):
            arr.setflags(write=False)

        self.nodes: Tuple[int, ...] = tuple(int(n) for n in np.flatnonzero(self._site_live))
        self.edges: Tuple[int, ...] = tuple(int(e) for e in np.flatnonzero(self._coupler_live))

        self._neighbor_table = np.full((width * height, 4), -1, dtype=np.int64)
        self._edge_table = np.full((width * height, 4), -1, dtype=np.int64)
        for edge in self.edges:
            a, b = self.endpoints(edge)
            if self._coupler_horizontal[edge]:
                slot_a, slot_b = RIGHT, LEFT
            else:
                slot_a, slot_b = DOWN, UP
            self._neighbor_table[a, slot_a] = b
            self._neighbor_table[b, slot_b] = a
            self._edge_table[a, slot_a] = edge
            self._edge_table[b, slot_b] = edge
        self._neighbor_table.setflags(write=False)
        self._edge_table.setflags(write=False)
        self._incident: Tuple[Tuple[Tuple[int, int], ...], ...] = tuple(
            tuple(
                (int(n), int(e))
                for n, e in zip(self._neighbor_table[site], self._edge_table[site])
                if e >= 0
            )
            for site in range(width * height)
        )

        self.dual = self._build_dual()

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------
    @classmethod
    def build(
        cls,
        width: int,
        height: int,
        unused_qubits: Iterable[Any] = (),
        unused_couplers: Iterable[Any] = (),
        qubit_at_origin: bool = True,
    ) -> "GridGraph":
        """Validate configuration values and build the graph.

        Raises
        ------
        InvalidGeometry
            If ``width`` or ``height`` is not a positive integer.
        UnknownEntity
            If an unused qubit or coupler lies outside the lattice or a
            coupler joins two non-adjacent qubits.
        """

        for name, value in (("width", width), ("height", height)):
            if not isinstance(value, int) or isinstance(value, bool) or value <= 0:
                raise InvalidGeometry("grid dimensions must be positive integers", field=name, value=value)
        offset = 0 if qubit_at_origin else 1

        def resolve(ref: Any, field_name: str) -> int:
            ref = normalize_qubit_ref(ref, field_name=field_name)
            if isinstance(ref, int):
                if 0 <= ref < width * height:
                    return ref
            else:
                r, c = ref[0] - offset, ref[1] - offset
                if 0 <= r < height and 0 <= c < width:
                    return r * width + c
            raise UnknownEntity("qubit lies outside the lattice", field=field_name, value=ref)

        site_live = [True] * (width * height)
        for ref in unused_qubits:
            site_live[resolve(ref, "unused_qubits")] = False

        sites, _ = lattice_couplers(width, height)
        index = {pair: idx for idx, pair in enumerate(sites)}
        coupler_live = [True] * len(sites)
        for ref in unused_couplers:
            first, second = normalize_coupler_ref(ref)
            a = resolve(first, "unused_couplers")
            b = resolve(second, "unused_couplers")
            pair = (min(a, b), max(a, b))
            if pair not in index:
                raise UnknownEntity("coupler joins non-adjacent qubits", field="unused_couplers", value=ref)
            coupler_live[index[pair]] = False

        graph = cls(width, height, site_live, coupler_live, qubit_at_origin=qubit_at_origin)
        LOGGER.debug(
            "Built %dx%d grid with %d live qubits and %d live couplers",
            width,
            height,
            graph.node_count,
            graph.edge_count,
        )
        return graph

    @classmethod
    def from_config(cls, config: Any) -> "GridGraph":
        """Build the graph described by a :class:`~sfacut.config.SearchConfig`."""

        return cls.build(
            config.width,
            config.height,
            config.unused_qubits,
            config.unused_couplers,
            config.qubit_at_origin,
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    @property
    def node_count(self) -> int:
        return len(self.nodes)

    @property
    def edge_count(self) -> int:
        return len(self.edges)

    @property
    def adjacency(self) -> np.ndarray:
        """Read-only ``(sites, 4)`` table of live neighbours (``-1`` = none).

        Columns follow the ``UP``, ``RIGHT``, ``DOWN``, ``LEFT`` slots.
        """

        return self._neighbor_table

    @property
    def edge_table(self) -> np.ndarray:
        """Read-only ``(sites, 4)`` table of live coupler ids per slot."""

        return self._edge_table

    def is_live_node(self, node: int) -> bool:
        return bool(self._site_live[node])

    def is_live_coupler(self, edge: int) -> bool:
        return bool(self._coupler_live[edge])

    def neighbors(self, node: int) -> List[int]:
        return [n for n, _ in self._incident[node]]

    def incident_edges(self, node: int) -> List[int]:
        return [e for _, e in self._incident[node]]

    def incident(self, node: int) -> Tuple[Tuple[int, int], ...]:
        """Return ``(neighbour, coupler)`` pairs for the live links of ``node``."""

        return self._incident[node]

    def endpoints(self, edge: int) -> Tuple[int, int]:
        a, b = self._coupler_sites[edge]
        return int(a), int(b)

    def is_horizontal(self, edge: int) -> bool:
        return bool(self._coupler_horizontal[edge])

    def coordinate(self, node: int) -> Coordinate:
        r, c = divmod(node, self.width)
        return (r + self.offset, c + self.offset)

    def node_id(self, coordinate: Coordinate) -> int:
        r, c = coordinate[0] - self.offset, coordinate[1] - self.offset
        if not (0 <= r < self.height and 0 <= c < self.width):
            raise UnknownEntity("coordinate lies outside the lattice", field="coordinate", value=coordinate)
        return r * self.width + c

    def coupler_id(self, a: int, b: int) -> int:
        """Return the lattice coupler id joining nodes ``a`` and ``b``."""

        key = (min(a, b), max(a, b))
        try:
            return self._coupler_index[key]
        except KeyError:
            raise UnknownEntity("nodes are not lattice-adjacent", field="coupler", value=key) from None

    def coupler_coordinates(self, edge: int) -> Tuple[Coordinate, Coordinate]:
        a, b = self.endpoints(edge)
        return self.coordinate(a), self.coordinate(b)

    def components(self, removed_edges: Iterable[int] = ()) -> List[Tuple[int, ...]]:
        """Connected components of the live graph without ``removed_edges``.

        Components are returned as sorted node tuples, ordered by their
        smallest node.
        """

        removed = set(removed_edges)
        uf = UnionFind(self.width * self.height)
        for edge in self.edges:
            if edge in removed:
                continue
            a, b = self._coupler_sites[edge]
            uf.union(int(a), int(b))
        groups: Dict[int, List[int]] = {}
        for node in self.nodes:
            groups.setdefault(uf.find(node), []).append(node)
        return [tuple(group) for _, group in sorted(groups.items())]

    def is_connected(self) -> bool:
        """``True`` when the live qubits form exactly one component."""

        return len(self.components()) == 1

    def boundary_couplers(self) -> List[int]:
        """Live couplers adjacent to the exterior region, in id order."""

        dual = self.dual
        edges = {step.edge for step in dual.adjacency[dual.exterior]}
        edges.update(step.edge for step in dual.bridges if step.target == dual.exterior)
        return sorted(edges)

    def to_networkx(self) -> "_nx.Graph":
        """Return the live graph as a :class:`networkx.Graph`.

        Nodes carry their ``coordinate`` and edges their ``coupler`` id.
        """

        nx = _require_networkx()
        graph = nx.Graph()
        for node in self.nodes:
            graph.add_node(node, coordinate=self.coordinate(node))
        for edge in self.edges:
            a, b = self.endpoints(edge)
            graph.add_edge(a, b, coupler=edge, horizontal=self.is_horizontal(edge))
        return graph

    # ------------------------------------------------------------------
    # Dual graph
    # ------------------------------------------------------------------
    def _coupler_faces(self, edge: int) -> Tuple[int, int, int, int]:
        """Return ``(face_a, face_b, left, right)`` for ``edge``.

        ``left``/``right`` are seen by a walker crossing from ``face_a`` to
        ``face_b``: southwards over horizontal couplers and eastwards over
        vertical ones.
        """

        width, height = self.width, self.height
        face_width = width - 1
        exterior = max(height - 1, 0) * max(face_width, 0)
        a, b = self.endpoints(edge)
        r, c = divmod(a, width)
        if self._coupler_horizontal[edge]:
            face_a = (r - 1) * face_width + c if r > 0 else exterior
            face_b = r * face_width + c if r < height - 1 else exterior
            return face_a, face_b, b, a
        face_a = r * face_width + c - 1 if c > 0 else exterior
        face_b = r * face_width + c if c < width - 1 else exterior
        return face_a, face_b, a, b

    def _build_dual(self) -> DualView:
        face_count = max(self.height - 1, 0) * max(self.width - 1, 0) + 1
        exterior_face = face_count - 1
        faces = [self._coupler_faces(edge) for edge in range(self.coupler_count)]

        uf = UnionFind(face_count)
        for edge, (face_a, face_b, _, _) in enumerate(faces):
            if not self._coupler_live[edge]:
                uf.union(face_a, face_b)

        region_of_root: Dict[int, int] = {}
        face_regions: List[int] = []
        for face in range(face_count):
            root = uf.find(face)
            if root not in region_of_root:
                region_of_root[root] = len(region_of_root)
            face_regions.append(region_of_root[root])
        region_count = len(region_of_root)
        exterior = face_regions[exterior_face]

        adjacency: List[List[DualStep]] = [[] for _ in range(region_count)]
        bridges: List[DualStep] = []
        for edge in self.edges:
            face_a, face_b, left, right = faces[edge]
            ra, rb = face_regions[face_a], face_regions[face_b]
            if ra == rb:
                bridges.append(DualStep(edge, ra, left, right))
                continue
            adjacency[ra].append(DualStep(edge, rb, left, right))
            adjacency[rb].append(DualStep(edge, ra, right, left))

        unreachable = self.coupler_count + 1
        distance = [unreachable] * region_count
        distance[exterior] = 0
        queue = deque([exterior])
        while queue:
            region = queue.popleft()
            for step in adjacency[region]:
                if distance[step.target] == unreachable:
                    distance[step.target] = distance[region] + 1
                    queue.append(step.target)

        return DualView(
            region_count=region_count,
            exterior=exterior,
            adjacency=tuple(tuple(steps) for steps in adjacency),
            bridges=tuple(bridges),
            distance=tuple(distance),
            face_regions=tuple(face_regions),
        )

    def __repr__(self) -> str:  # pragma: no cover - debugging helper
        return (
            f"GridGraph(width={self.width}, height={self.height}, "
            f"nodes={self.node_count}, edges={self.edge_count})"
        )
