"""Error hierarchy shared by every search stage."""

from __future__ import annotations

from typing import Any


class SearchError(RuntimeError):
    """Base class for errors that abort a search.

    Attributes
    ----------
    stage:
        Pipeline stage that raised the error (``"graph construction"``,
        ``"pattern enumeration"``, ``"cutline search"`` or ``"evaluation"``).
        Filled in by :func:`sfacut.search.run_search` when not known at the
        raise site.
    field, value:
        Offending configuration field and value, when applicable.
    """

    def __init__(
        self,
        message: str,
        *,
        stage: str | None = None,
        field: str | None = None,
        value: Any = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.stage = stage
        self.field = field
        self.value = value

    def __str__(self) -> str:
        text = self.message
        if self.field is not None:
            text = f"{text} ({self.field}={self.value!r})"
        if self.stage is not None:
            text = f"[{self.stage}] {text}"
        return text


class ConfigurationError(SearchError, ValueError):
    """Raised when a configuration field holds an invalid value."""


class InvalidGeometry(ConfigurationError):
    """Raised for non-positive grid dimensions."""


class UnknownEntity(ConfigurationError):
    """Raised when a qubit or coupler reference lies outside the lattice."""


class InvalidPattern(ConfigurationError):
    """Raised when an explicit pattern does not fit the grid or order."""


class InfeasibleGrid(SearchError):
    """Raised when defects disconnect the grid before any cut is applied."""


class EmptySearchSpace(SearchError):
    """Raised when no pattern or no cutline survives enumeration."""


class FragmentedCut(SearchError):
    """Candidate cut that does not leave exactly two components.

    Only raised internally by the cutline search and always recovered by
    discarding the candidate.
    """

    def __init__(self, message: str, *, components: int) -> None:
        super().__init__(message, stage="cutline search")
        self.components = components
