from __future__ import annotations

import json
import os
from dataclasses import dataclass, field, fields, replace as _dc_replace
from pathlib import Path
from typing import Any, Dict, Iterable, Mapping, Tuple, Union

from .errors import ConfigurationError, UnknownEntity

# A qubit is referenced either by its dense row-major index or by its
# ``(row, col)`` coordinate.
QubitRef = Union[int, Tuple[int, int]]
CouplerRef = Tuple[QubitRef, QubitRef]

DEFAULT_ORDER = "ABCDCDABABCDCDABABCD"


def _int_from_env(name: str, default: int | None) -> int | None:
    val = os.getenv(name)
    if val is None:
        return default
    if val.lower() == "none":
        return None
    try:
        return int(val)
    except ValueError:
        return default


def _str_from_env(name: str, default: str) -> str:
    """Return a stripped string parsed from the environment."""

    val = os.getenv(name)
    if val is None or not val.strip():
        return default
    return val.strip()


def _bool_from_env(name: str, default: bool) -> bool:
    """Return a boolean value parsed from the environment."""

    val = os.getenv(name)
    if val is None or not val.strip():
        return default
    val = val.strip().lower()
    if val in {"1", "true", "yes", "on"}:
        return True
    if val in {"0", "false", "no", "off"}:
        return False
    return default


@dataclass
class Config:
    """Runtime defaults for sfacut.

    Values may be overridden via environment variables or by supplying
    explicit fields to :class:`SearchConfig`.
    """

    workers: int | None = _int_from_env("SFACUT_WORKERS", None)
    chunk_size: int = _int_from_env("SFACUT_CHUNK_SIZE", 2048)
    cost_model: str = _str_from_env("SFACUT_COST_MODEL", "sfa")
    max_unbalance: int = _int_from_env("SFACUT_MAX_UNBALANCE", 6)
    order: str = _str_from_env("SFACUT_ORDER", DEFAULT_ORDER)
    qubit_at_origin: bool = _bool_from_env("SFACUT_QUBIT_AT_ORIGIN", True)


# Global configuration instance used when modules import ``sfacut.config``.
DEFAULT = Config()


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def normalize_qubit_ref(ref: Any, *, field_name: str = "unused_qubits") -> QubitRef:
    """Return ``ref`` as an ``int`` index or a ``(row, col)`` tuple."""

    if _is_int(ref):
        return ref
    if isinstance(ref, (list, tuple)) and len(ref) == 2 and all(_is_int(v) for v in ref):
        return (ref[0], ref[1])
    raise UnknownEntity("malformed qubit reference", field=field_name, value=ref)


def normalize_coupler_ref(ref: Any) -> CouplerRef:
    """Return ``ref`` as a pair of normalised qubit references."""

    if isinstance(ref, (list, tuple)) and len(ref) == 2:
        try:
            return (
                normalize_qubit_ref(ref[0], field_name="unused_couplers"),
                normalize_qubit_ref(ref[1], field_name="unused_couplers"),
            )
        except UnknownEntity:
            pass
    raise UnknownEntity("malformed coupler reference", field="unused_couplers", value=ref)


def _check_non_negative(name: str, value: Any, *, optional: bool = False) -> None:
    if value is None and optional:
        return
    if not _is_int(value) or value < 0:
        raise ConfigurationError("expected a non-negative integer", field=name, value=value)


def _check_positive(name: str, value: Any, *, optional: bool = False) -> None:
    if value is None and optional:
        return
    if not _is_int(value) or value <= 0:
        raise ConfigurationError("expected a positive integer", field=name, value=value)


@dataclass(frozen=True)
class SearchConfig:
    """Validated configuration record consumed by the search core.

    The record is immutable for the duration of a search.  Entity
    references are normalised on construction: qubits become either an
    ``int`` index or a ``(row, col)`` tuple and couplers a pair of those.
    Grid dimensions and entity bounds are validated when the
    :class:`~sfacut.grid.GridGraph` is built, since they depend on the
    lattice.
    """

    width: int
    height: int
    unused_qubits: Tuple[QubitRef, ...] = ()
    unused_couplers: Tuple[CouplerRef, ...] = ()
    qubit_at_origin: bool = field(default_factory=lambda: DEFAULT.qubit_at_origin)
    min_depth: int = 0
    max_depth: int | None = None
    max_unbalance: int = field(default_factory=lambda: DEFAULT.max_unbalance)
    order: str = field(default_factory=lambda: DEFAULT.order)
    patterns: Tuple[str, ...] | None = None
    max_patterns: int | None = None
    cost_model: str = field(default_factory=lambda: DEFAULT.cost_model)
    workers: int | None = field(default_factory=lambda: DEFAULT.workers)
    chunk_size: int = field(default_factory=lambda: DEFAULT.chunk_size)

    def __post_init__(self) -> None:
        set_ = object.__setattr__
        set_(self, "unused_qubits", tuple(normalize_qubit_ref(q) for q in self.unused_qubits))
        set_(
            self,
            "unused_couplers",
            tuple(normalize_coupler_ref(c) for c in self.unused_couplers),
        )
        set_(self, "qubit_at_origin", bool(self.qubit_at_origin))

        if not isinstance(self.order, str) or not self.order.strip():
            raise ConfigurationError("order must be a non-empty string", field="order", value=self.order)
        set_(self, "order", self.order.strip())

        _check_non_negative("min_depth", self.min_depth)
        _check_non_negative("max_depth", self.max_depth, optional=True)
        if self.max_depth is not None and self.max_depth < self.min_depth:
            raise ConfigurationError(
                "max_depth must not be smaller than min_depth",
                field="max_depth",
                value=self.max_depth,
            )
        _check_non_negative("max_unbalance", self.max_unbalance)
        _check_positive("max_patterns", self.max_patterns, optional=True)
        _check_positive("workers", self.workers, optional=True)
        _check_positive("chunk_size", self.chunk_size)

        from .cost import COST_MODELS

        if self.cost_model not in COST_MODELS:
            raise ConfigurationError(
                f"unknown cost model; choose one of {sorted(COST_MODELS)}",
                field="cost_model",
                value=self.cost_model,
            )

        if self.patterns is not None:
            if isinstance(self.patterns, str):
                raise ConfigurationError(
                    "patterns must be a list of label strings", field="patterns", value=self.patterns
                )
            patterns = tuple(self.patterns)
            for pattern in patterns:
                if not isinstance(pattern, str):
                    raise ConfigurationError(
                        "patterns must be a list of label strings", field="patterns", value=pattern
                    )
            set_(self, "patterns", patterns)

    # ------------------------------------------------------------------
    # Serialisation helpers
    # ------------------------------------------------------------------
    def to_dict(self) -> Dict[str, Any]:
        """Return a JSON-serialisable mapping for ``self``."""

        def ref(q: QubitRef) -> Any:
            return list(q) if isinstance(q, tuple) else q

        return {
            "width": self.width,
            "height": self.height,
            "unused_qubits": [ref(q) for q in self.unused_qubits],
            "unused_couplers": [[ref(a), ref(b)] for a, b in self.unused_couplers],
            "qubit_at_origin": self.qubit_at_origin,
            "min_depth": self.min_depth,
            "max_depth": self.max_depth,
            "max_unbalance": self.max_unbalance,
            "order": self.order,
            "patterns": list(self.patterns) if self.patterns is not None else None,
            "max_patterns": self.max_patterns,
            "cost_model": self.cost_model,
            "workers": self.workers,
            "chunk_size": self.chunk_size,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "SearchConfig":
        """Build a configuration from a mapping.

        Besides the flat layout produced by :meth:`to_dict` the nested
        ``{"topology": ..., "algorithm": ...}`` layout of earlier
        configuration files is accepted.  Its ``ordering`` list is repeated
        cyclically up to ``circuit_depth`` layers.
        """

        if "topology" in data or "algorithm" in data:
            data = _flatten_legacy(data)
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigurationError("unknown configuration field", field=unknown[0], value=data[unknown[0]])
        missing = [name for name in ("width", "height") if name not in data]
        if missing:
            raise ConfigurationError("missing configuration field", field=missing[0], value=None)
        # ``null`` means "use the default" for fields that are never optional.
        kwargs = {
            key: value
            for key, value in data.items()
            if value is not None or key in _OPTIONAL_FIELDS
        }
        for key in ("unused_qubits", "unused_couplers"):
            if key in kwargs:
                kwargs[key] = tuple(kwargs[key])
        return cls(**kwargs)

    def to_json(self, path: str | Path) -> None:
        """Write the configuration to ``path`` as pretty-printed JSON."""

        with open(path, "w", encoding="utf8") as f:
            json.dump(self.to_dict(), f, indent=2)

    @classmethod
    def from_json(cls, path: str | Path) -> "SearchConfig":
        """Load a configuration previously written by :meth:`to_json`."""

        with open(path, "r", encoding="utf8") as f:
            data = json.load(f)
        if not isinstance(data, Mapping):
            raise ConfigurationError("configuration file must contain an object", field="path", value=str(path))
        return cls.from_dict(data)

    def replace(self, **changes: Any) -> "SearchConfig":
        """Return a copy of ``self`` with ``changes`` applied."""

        return _dc_replace(self, **changes)


_OPTIONAL_FIELDS = {"max_depth", "patterns", "max_patterns", "workers"}

_LEGACY_TOPOLOGY = {
    "grid_width": "width",
    "grid_height": "height",
    "unused_qubits": "unused_qubits",
    "unused_couplers": "unused_couplers",
    "qubit_at_origin": "qubit_at_origin",
}

_LEGACY_ALGORITHM = {
    "min_search_depth": "min_depth",
    "max_search_depth": "max_depth",
    "max_unbalance": "max_unbalance",
}


def _flatten_legacy(data: Mapping[str, Any]) -> Dict[str, Any]:
    flat: Dict[str, Any] = {}
    topology = data.get("topology") or {}
    algorithm = data.get("algorithm") or {}
    for key, value in topology.items():
        if key not in _LEGACY_TOPOLOGY:
            raise ConfigurationError("unknown topology field", field=key, value=value)
        flat[_LEGACY_TOPOLOGY[key]] = value
    for key, value in algorithm.items():
        if key in _LEGACY_ALGORITHM:
            flat[_LEGACY_ALGORITHM[key]] = value
    ordering = algorithm.get("ordering")
    if ordering is not None:
        flat["order"] = _full_ordering(ordering, algorithm.get("circuit_depth"))
    for key, value in data.items():
        if key not in {"topology", "algorithm"}:
            flat[key] = value
    return flat


def _full_ordering(ordering: Iterable[str] | str, circuit_depth: int | None) -> str:
    labels = "".join(ordering)
    if not labels:
        raise ConfigurationError("ordering must not be empty", field="ordering", value=ordering)
    if circuit_depth is None:
        return labels
    repeats = -(-int(circuit_depth) // len(labels))
    return (labels * repeats)[: int(circuit_depth)]
