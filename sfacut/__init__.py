"""Python API for sfacut."""

from .config import Config, SearchConfig
from .errors import (
    SearchError,
    ConfigurationError,
    InvalidGeometry,
    UnknownEntity,
    InvalidPattern,
    InfeasibleGrid,
    EmptySearchSpace,
    FragmentedCut,
)
from .grid import GridGraph, DualView, DualStep
from .pattern import (
    Pattern,
    PatternKey,
    PatternEnumerator,
    Symmetry,
    enumerate_patterns,
    grid_symmetries,
    canonical_form,
)
from .cutline import Cutline, CutlineSearcher, search_cutlines, cut_components
from .cost import (
    CostContext,
    CostModel,
    CostEvaluator,
    SFACostModel,
    CrossingCostModel,
    FunctionCostModel,
    COST_MODELS,
    register_cost_model,
    get_cost_model,
)
from .orchestrator import (
    CompletionStatus,
    ScoredCombination,
    SearchResult,
    ParallelOrchestrator,
)
from .search import run_search
from .report import ResultRecord, result_to_dict, save_result, load_result

__all__ = [
    "Config",
    "SearchConfig",
    "SearchError",
    "ConfigurationError",
    "InvalidGeometry",
    "UnknownEntity",
    "InvalidPattern",
    "InfeasibleGrid",
    "EmptySearchSpace",
    "FragmentedCut",
    "GridGraph",
    "DualView",
    "DualStep",
    "Pattern",
    "PatternKey",
    "PatternEnumerator",
    "Symmetry",
    "enumerate_patterns",
    "grid_symmetries",
    "canonical_form",
    "Cutline",
    "CutlineSearcher",
    "search_cutlines",
    "cut_components",
    "CostContext",
    "CostModel",
    "CostEvaluator",
    "SFACostModel",
    "CrossingCostModel",
    "FunctionCostModel",
    "COST_MODELS",
    "register_cost_model",
    "get_cost_model",
    "CompletionStatus",
    "ScoredCombination",
    "SearchResult",
    "ParallelOrchestrator",
    "run_search",
    "ResultRecord",
    "result_to_dict",
    "save_result",
    "load_result",
]
