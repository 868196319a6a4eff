"""Mapping layer - batched relation fetches and nested result reconstruction."""

from __future__ import annotations

from rel_query.mapping.orchestrator import (
    AsyncBatchFetchOrchestrator,
    BatchFetchOrchestrator,
    stitch,
)
from rel_query.mapping.relations import (
    ToManyQuery,
    collect_to_many_queries,
    lateral_join_values,
    with_relation_keys,
)
from rel_query.mapping.rows import row_to_object, rows_to_objects

__all__ = [
    "BatchFetchOrchestrator",
    "AsyncBatchFetchOrchestrator",
    "stitch",
    "ToManyQuery",
    "collect_to_many_queries",
    "lateral_join_values",
    "with_relation_keys",
    "row_to_object",
    "rows_to_objects",
]
