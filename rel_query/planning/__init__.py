"""Planning layer - query specifications to plan trees to SQL."""

from __future__ import annotations

from rel_query.planning.builder import build_count_plan, build_plan
from rel_query.planning.plan import (
    ColumnRef,
    CountPlan,
    DerivedTable,
    Join,
    JoinColumnPair,
    LateralBatch,
    LateralKey,
    OrderBy,
    PlanNode,
    SelectedColumn,
    TableRef,
)
from rel_query.planning.render import render, render_count

__all__ = [
    "build_plan",
    "build_count_plan",
    "render",
    "render_count",
    "PlanNode",
    "CountPlan",
    "TableRef",
    "ColumnRef",
    "SelectedColumn",
    "OrderBy",
    "Join",
    "JoinColumnPair",
    "DerivedTable",
    "LateralBatch",
    "LateralKey",
]
