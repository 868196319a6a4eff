"""Batch fetch orchestrator.

Runs a find query and then fetches every to-many relation in one lateral
batch per relation, keyed by the parent rows' key values, and stitches the
children back onto their parents. Each parent receives its own ordered,
limited and offset slice, independent of its siblings.

Deeper relations wait for their parents' rows; sibling relations at the
same depth are independent, and the async orchestrator fetches them
concurrently.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from typing import Any

from rel_query.core.config import QuerySpec, coerce_query
from rel_query.core.exceptions import MultipleRowsError
from rel_query.core.predicate import Middleware
from rel_query.core.registry import ModelRegistry
from rel_query.core.statement import Statement
from rel_query.mapping.protocol import AsyncQueryExecutor, QueryExecutor
from rel_query.mapping.relations import (
    ToManyQuery,
    collect_to_many_queries,
    lateral_join_values,
    with_relation_keys,
)
from rel_query.mapping.rows import get_path, rows_to_objects
from rel_query.planning.builder import LateralBy, build_count_plan, build_plan
from rel_query.planning.plan import PlanNode
from rel_query.planning.render import render, render_count

logger = logging.getLogger("rel_query.orchestrator")


def _log_statement(action: str, model_name: str, statement: Statement) -> None:
    if logger.isEnabledFor(logging.DEBUG):
        logger.debug(
            "Executing %s for '%s':\n%s\nvalues=%r",
            action,
            model_name,
            statement.pretty,
            statement.values,
        )


def stitch(
    results: list[dict[str, Any]], relation: ToManyQuery, children: Sequence[dict[str, Any]]
) -> None:
    """Assign each parent in *results* the children matching its key.

    Children keep the order they were fetched in; a parent with no
    children gets an empty list.
    """
    groups: dict[tuple[Any, ...], list[Any]] = {}
    for child in children:
        key = tuple(child.get(f) for f in relation.to_fields)
        value = child.get(relation.unwrap) if relation.unwrap is not None else child
        groups.setdefault(key, []).append(value)

    parent_path, name = relation.path[:-1], relation.path[-1]
    for result in results:
        parent = get_path(result, parent_path) if parent_path else result
        if not isinstance(parent, dict):
            continue
        key = tuple(parent.get(f) for f in relation.from_fields)
        parent[name] = list(groups.get(key, ()))


def _has_keys(lateral_by: LateralBy) -> bool:
    return bool(lateral_by) and bool(lateral_by[0][1])


class _Planner:
    """Plan building shared by the sync and async orchestrators."""

    def __init__(self, registry: ModelRegistry, middleware: Sequence[Middleware] = ()) -> None:
        self._registry = registry
        self._middleware = tuple(middleware)

    @property
    def registry(self) -> ModelRegistry:
        return self._registry

    def _plan(
        self, model_name: str, query: QuerySpec | dict[str, Any], lateral_by: LateralBy
    ) -> tuple[QuerySpec, PlanNode, Statement]:
        query = with_relation_keys(self._registry, model_name, coerce_query(model_name, query))
        plan = build_plan(self._registry, model_name, query, lateral_by, middleware=self._middleware)
        statement = render(plan)
        _log_statement("find_many", model_name, statement)
        return query, plan, statement

    def _batches(
        self, model_name: str, query: QuerySpec, results: list[dict[str, Any]]
    ) -> list[tuple[ToManyQuery, LateralBy]]:
        return [
            (
                relation,
                lateral_join_values(
                    results, relation.path[:-1], relation.from_fields, relation.to_fields
                ),
            )
            for relation in collect_to_many_queries(self._registry, model_name, query)
        ]

    def _count_statement(self, model_name: str, query: QuerySpec | dict[str, Any]) -> Statement:
        plan = build_count_plan(self._registry, model_name, query, middleware=self._middleware)
        statement = render_count(plan)
        _log_statement("count", model_name, statement)
        return statement


class BatchFetchOrchestrator(_Planner):
    """Synchronous orchestrator over a QueryExecutor."""

    def __init__(
        self,
        registry: ModelRegistry,
        executor: QueryExecutor,
        middleware: Sequence[Middleware] = (),
    ) -> None:
        super().__init__(registry, middleware)
        self._executor = executor

    def find_many(
        self,
        model_name: str,
        query: QuerySpec | dict[str, Any],
        lateral_by: LateralBy = (),
    ) -> list[dict[str, Any]]:
        """Fetch nested results for *query*.

        Args:
            model_name: Root model.
            query: QuerySpec or equivalent mapping.
            lateral_by: Parent key batch; used when this call fetches a
                deferred relation.
        """
        query, plan, statement = self._plan(model_name, query, lateral_by)
        results = rows_to_objects(self._executor.fetch_all(statement), plan.columns)

        for relation, keys in self._batches(model_name, query, results):
            children = (
                self.find_many(relation.model_name, relation.query, keys)
                if _has_keys(keys)
                else []
            )
            stitch(results, relation, children)
        return results

    def find_one(self, model_name: str, query: QuerySpec | dict[str, Any]) -> dict[str, Any] | None:
        """Fetch a single nested result.

        Returns None if zero rows match.
        Raises MultipleRowsError if more than one row matches.
        """
        results = self.find_many(model_name, query)
        if len(results) > 1:
            raise MultipleRowsError(model_name, len(results))
        return results[0] if results else None

    def count(self, model_name: str, query: QuerySpec | dict[str, Any]) -> int:
        """Count the root rows *query* matches."""
        rows = self._executor.fetch_all(self._count_statement(model_name, query))
        return int(rows[0]["count"]) if rows else 0


class AsyncBatchFetchOrchestrator(_Planner):
    """Asynchronous orchestrator over an AsyncQueryExecutor."""

    def __init__(
        self,
        registry: ModelRegistry,
        executor: AsyncQueryExecutor,
        middleware: Sequence[Middleware] = (),
    ) -> None:
        super().__init__(registry, middleware)
        self._executor = executor

    async def find_many(
        self,
        model_name: str,
        query: QuerySpec | dict[str, Any],
        lateral_by: LateralBy = (),
    ) -> list[dict[str, Any]]:
        """Fetch nested results, batching sibling relations concurrently."""
        query, plan, statement = self._plan(model_name, query, lateral_by)
        results = rows_to_objects(await self._executor.fetch_all(statement), plan.columns)

        batches = self._batches(model_name, query, results)
        children = await asyncio.gather(
            *(self._fetch_children(relation, keys) for relation, keys in batches)
        )
        for (relation, _), relation_children in zip(batches, children, strict=True):
            stitch(results, relation, relation_children)
        return results

    async def _fetch_children(self, relation: ToManyQuery, keys: LateralBy) -> list[dict[str, Any]]:
        if not _has_keys(keys):
            return []
        return await self.find_many(relation.model_name, relation.query, keys)

    async def find_one(
        self, model_name: str, query: QuerySpec | dict[str, Any]
    ) -> dict[str, Any] | None:
        """Fetch a single nested result asynchronously."""
        results = await self.find_many(model_name, query)
        if len(results) > 1:
            raise MultipleRowsError(model_name, len(results))
        return results[0] if results else None

    async def count(self, model_name: str, query: QuerySpec | dict[str, Any]) -> int:
        """Count the root rows *query* matches."""
        rows = await self._executor.fetch_all(self._count_statement(model_name, query))
        return int(rows[0]["count"]) if rows else 0
