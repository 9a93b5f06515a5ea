from __future__ import annotations

"""Cost models for running the SFA template on a cut device.

The order string is the layer sequence of the SFA circuit: layer ``t``
applies a two-qubit gate on every coupler labelled ``order[t]``.  A cost
model turns the couplers crossed by a cutline, together with their
labels, into a scalar to be minimised.  Models are pure: the result only
depends on the pattern and cutline, so evaluations can run on any thread
in any order.
"""

from collections import Counter
from dataclasses import dataclass
import math
from typing import Callable, Dict, List, Mapping, Set, Tuple, Type

from .cutline import Cutline
from .errors import ConfigurationError
from .grid import GridGraph
from .pattern import Pattern

BoundCost = Callable[[Cutline], float]


@dataclass(frozen=True)
class CostContext:
    """Read-only inputs shared by every evaluation of a search."""

    grid: GridGraph
    order: str
    counts: Mapping[str, int]

    @classmethod
    def build(cls, grid: GridGraph, order: str) -> "CostContext":
        if not order:
            raise ConfigurationError("order must be a non-empty string", field="order", value=order)
        return cls(grid=grid, order=order, counts=dict(Counter(order)))


class CostModel:
    """Base class for pluggable cost models.

    Subclasses implement :meth:`bind`, which performs the per-pattern
    preparation once and returns a function of the cutline.
    """

    name = "base"

    def bind(self, context: CostContext, pattern: Pattern) -> BoundCost:
        raise NotImplementedError

    def __call__(self, context: CostContext, pattern: Pattern, cutline: Cutline) -> float:
        return self.bind(context, pattern)(cutline)


class CrossingCostModel(CostModel):
    """Weighted count of cross-partition gates.

    Every crossed coupler contributes one term per layer carrying its
    label: ``1`` for the first and last layer, whose gates can be moved to
    the circuit boundary, and ``2`` for interior layers.  Adding a crossing
    never lowers the cost.
    """

    name = "crossing"

    def __init__(self, edge_weight: float = 1.0, interior_weight: float = 2.0) -> None:
        self.edge_weight = edge_weight
        self.interior_weight = interior_weight

    def label_weights(self, order: str) -> Dict[str, float]:
        last = len(order) - 1
        weights: Dict[str, float] = {}
        for layer, label in enumerate(order):
            weight = self.edge_weight if layer in (0, last) else self.interior_weight
            weights[label] = weights.get(label, 0.0) + weight
        return weights

    def bind(self, context: CostContext, pattern: Pattern) -> BoundCost:
        weights = self.label_weights(context.order)
        labels = pattern.labels

        def cost(cutline: Cutline) -> float:
            return float(sum(weights.get(labels[edge], 0.0) for edge in cutline.edges))

        return cost


class SFACostModel(CostModel):
    """Execution cost of the SFA template across a cut.

    The number of cross-partition gates is reduced by three optimisations
    before it enters the exponent:

    * gates in the first and last layer are elided at half weight;
    * DCD fusion: in a layer window ``X Y X`` a crossed ``X`` coupler whose
      endpoint carries a ``Y`` coupler (and whose other endpoint does not)
      fuses with it, and with the ``Y`` coupler as well when that one is
      crossed too;
    * wedge fusion: crossed couplers of consecutive layers sharing a qubit
      fuse pairwise.

    Each gate is used by at most one optimisation.  The result is
    ``(2**(u/2) + 2**(-u/2)) * 4**(gates - fused - elided/2)`` with ``u``
    the cut unbalance; values beyond float range saturate to ``inf``.
    """

    name = "sfa"

    def bind(self, context: CostContext, pattern: Pattern) -> BoundCost:
        grid = context.grid
        order = context.order
        counts = context.counts
        labels = pattern.labels
        alphabet = sorted(counts)

        # First coupler per label at every qubit.
        node_labels: Dict[int, Dict[str, int]] = {}
        for node in grid.nodes:
            mapping: Dict[str, int] = {}
            for edge in sorted(grid.incident_edges(node)):
                mapping.setdefault(labels[edge], edge)
            node_labels[node] = mapping
        endpoints = {edge: grid.endpoints(edge) for edge in grid.edges}

        def cost(cutline: Cutline) -> float:
            crossed = cutline.edges
            crossed_set = set(crossed)
            by_label: Dict[str, List[int]] = {label: [] for label in alphabet}
            for edge in crossed:
                if labels[edge] in by_label:
                    by_label[labels[edge]].append(edge)
            gates = sum(counts[label] * len(edges) for label, edges in by_label.items())

            used: Set[Tuple[int, int]] = set()
            elided = 0
            for layer in (0, len(order) - 1):
                edges = by_label[order[layer]]
                used.update((layer, edge) for edge in edges)
                elided += len(edges)

            fused = 0
            for layer in range(len(order) - 2):
                outer, middle = order[layer], order[layer + 1]
                if order[layer + 2] != outer:
                    continue
                for edge in by_label[outer]:
                    if (layer, edge) in used or (layer + 2, edge) in used:
                        continue
                    n1, n2 = endpoints[edge]
                    if middle not in node_labels[n1]:
                        n1, n2 = n2, n1
                    partner = node_labels[n1].get(middle)
                    if partner is None or middle in node_labels[n2]:
                        continue
                    if partner in crossed_set:
                        fused += 1
                        used.add((layer + 1, partner))
                    used.add((layer, edge))
                    used.add((layer + 2, edge))
                    fused += 1

            for layer in range(len(order) - 1):
                second = by_label[order[layer + 1]]
                for edge in by_label[order[layer]]:
                    if (layer, edge) in used:
                        continue
                    qubits = endpoints[edge]
                    for other in second:
                        if (layer + 1, other) in used:
                            continue
                        if qubits[0] in endpoints[other] or qubits[1] in endpoints[other]:
                            used.add((layer, edge))
                            used.add((layer + 1, other))
                            fused += 1
                            break

            unbalance = cutline.unbalance
            # log2 of the 4**(...) factor; always an integer.
            exponent = 2 * (gates - fused) - elided
            try:
                balance = 2.0 ** (unbalance / 2) + 2.0 ** (-unbalance / 2)
                return math.ldexp(balance, exponent)
            except OverflowError:
                return math.inf

        return cost


class FunctionCostModel(CostModel):
    """Adapter turning ``func(pattern, cutline) -> float`` into a cost model."""

    def __init__(self, func: Callable[[Pattern, Cutline], float], name: str | None = None) -> None:
        self.func = func
        self.name = name or getattr(func, "__name__", "function")

    def bind(self, context: CostContext, pattern: Pattern) -> BoundCost:
        func = self.func

        def cost(cutline: Cutline) -> float:
            return float(func(pattern, cutline))

        return cost


COST_MODELS: Dict[str, Type[CostModel]] = {
    SFACostModel.name: SFACostModel,
    CrossingCostModel.name: CrossingCostModel,
}


def register_cost_model(name: str, model: Type[CostModel]) -> None:
    """Make ``model`` selectable by ``name`` through the configuration."""

    COST_MODELS[name] = model


def get_cost_model(model: str | CostModel | Callable[[Pattern, Cutline], float]) -> CostModel:
    """Resolve a registry name, model instance or plain function."""

    if isinstance(model, CostModel):
        return model
    if isinstance(model, str):
        try:
            return COST_MODELS[model]()
        except KeyError:
            raise ConfigurationError(
                f"unknown cost model; choose one of {sorted(COST_MODELS)}",
                field="cost_model",
                value=model,
            ) from None
    if callable(model):
        return FunctionCostModel(model)
    raise ConfigurationError("unsupported cost model", field="cost_model", value=model)


class CostEvaluator:
    """Evaluate one cost model for (pattern, cutline) pairs on a grid."""

    def __init__(
        self,
        grid: GridGraph,
        order: str,
        model: str | CostModel | Callable[[Pattern, Cutline], float] = "sfa",
    ) -> None:
        self.context = CostContext.build(grid, order)
        self.model = get_cost_model(model)

    @property
    def grid(self) -> GridGraph:
        return self.context.grid

    def bind(self, pattern: Pattern) -> BoundCost:
        """Prepare ``pattern`` once and return a function of the cutline."""

        return self.model.bind(self.context, pattern)

    def cost(self, pattern: Pattern, cutline: Cutline) -> float:
        return float(self.model(self.context, pattern, cutline))
