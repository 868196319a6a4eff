"""RelQuery - relational query compilation and result stitching engine."""

from __future__ import annotations

from rel_query.core.config import (
    FieldDefinition,
    ManyToManyDefinition,
    ManyToOneDefinition,
    ModelDefinition,
    OneToManyDefinition,
    QuerySpec,
    RegistryConfig,
    ThroughDefinition,
)
from rel_query.core.enums import Direction, JoinType, LockMode, RelationKind
from rel_query.core.exceptions import (
    ExecutionError,
    JoinKeyNotFoundError,
    MisuseError,
    MultipleRowsError,
    OrderByPathError,
    PlanError,
    PredicateError,
    QuerySpecError,
    RegistryConfigError,
    RegistryError,
    RelationKindError,
    RelQueryError,
    StatementError,
    UnknownFieldError,
    UnknownModelError,
    UnknownRelationError,
)
from rel_query.core.predicate import Middleware, compile_where
from rel_query.core.registry import ModelRegistry
from rel_query.core.statement import Statement, ident, join, param, raw, sql
from rel_query.mapping.orchestrator import AsyncBatchFetchOrchestrator, BatchFetchOrchestrator
from rel_query.mapping.protocol import AsyncQueryExecutor, QueryExecutor
from rel_query.planning.builder import build_count_plan, build_plan
from rel_query.planning.render import render, render_count

__all__ = [
    # Configuration
    "RegistryConfig",
    "ModelDefinition",
    "FieldDefinition",
    "ManyToOneDefinition",
    "OneToManyDefinition",
    "ManyToManyDefinition",
    "ThroughDefinition",
    "QuerySpec",
    # Registry
    "ModelRegistry",
    # Statements
    "Statement",
    "sql",
    "param",
    "ident",
    "raw",
    "join",
    # Predicates
    "Middleware",
    "compile_where",
    # Planning
    "build_plan",
    "build_count_plan",
    "render",
    "render_count",
    # Orchestration
    "BatchFetchOrchestrator",
    "AsyncBatchFetchOrchestrator",
    "QueryExecutor",
    "AsyncQueryExecutor",
    # Enums
    "RelationKind",
    "JoinType",
    "Direction",
    "LockMode",
    # Exceptions
    "RelQueryError",
    "RegistryError",
    "UnknownModelError",
    "UnknownFieldError",
    "UnknownRelationError",
    "RegistryConfigError",
    "PlanError",
    "OrderByPathError",
    "JoinKeyNotFoundError",
    "MisuseError",
    "RelationKindError",
    "QuerySpecError",
    "PredicateError",
    "StatementError",
    "ExecutionError",
    "MultipleRowsError",
]
