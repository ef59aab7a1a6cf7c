"""Execution plan compilation."""

from .compiler import (
    ExecutionPlan,
    PlanStep,
    StepKind,
    TrimBounds,
    build_filter_graph,
    build_hash_step,
    build_probe_step,
    compile_plan,
    compute_trim_bounds,
)
from .filter_graph import FilterEntry, FilterGraph
from .splits import SplitInterval, plan_splits

__all__ = [
    "ExecutionPlan",
    "FilterEntry",
    "FilterGraph",
    "PlanStep",
    "SplitInterval",
    "StepKind",
    "TrimBounds",
    "build_filter_graph",
    "build_hash_step",
    "build_probe_step",
    "compile_plan",
    "compute_trim_bounds",
    "plan_splits",
]
