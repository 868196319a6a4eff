"""Plan builder - expands a query specification into a plan tree.

Many-to-one relations are joined inline; one-to-many and many-to-many
relations are never joined here, they are fetched afterwards in lateral
batches (see ``rel_query.mapping.orchestrator``).

Every function here is pure. The table alias counter is passed into each
recursive call and read back from the returned plan's
``next_alias_index``, so aliases never collide within one plan tree and
independent builds never share state.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, replace
from typing import Any

from rel_query.core.config import QuerySpec, coerce_query
from rel_query.core.enums import Direction, JoinType
from rel_query.core.exceptions import JoinKeyNotFoundError, OrderByPathError
from rel_query.core.predicate import Middleware, compile_where
from rel_query.core.registry import (
    FieldMetadata,
    ManyToOneRelation,
    ModelMetadata,
    ModelRegistry,
)
from rel_query.planning.aliases import make_column_alias, make_table_alias
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

LateralBy = Sequence[tuple[str, Sequence[Any]]]


@dataclass(frozen=True)
class _OrderPath:
    """An order-by entry resolved against the model it was written for."""

    relation: ManyToOneRelation | None
    field: FieldMetadata
    direction: Direction


def _resolve_order_by(
    registry: ModelRegistry, model: ModelMetadata, query: QuerySpec
) -> list[_OrderPath]:
    resolved = []
    for path, direction in query.order_by:
        if "." not in path:
            resolved.append(_OrderPath(None, model.get_field(path), direction))
            continue

        relation_name, field_name = path.split(".", 1)
        relation = model.relations.get(relation_name)
        if relation is None:
            raise OrderByPathError(model.name, path, f"unknown relation '{relation_name}'")
        if not isinstance(relation, ManyToOneRelation):
            raise OrderByPathError(
                model.name, path, f"relation '{relation_name}' is {relation.kind.value}, not N:1"
            )
        field = registry.get_field(relation.model, field_name)
        resolved.append(_OrderPath(relation, field, direction))
    return resolved


def _collect_many_to_one(
    model: ModelMetadata, query: QuerySpec, order_paths: list[_OrderPath]
) -> dict[str, tuple[ManyToOneRelation, QuerySpec]]:
    """Many-to-one relations to join: included ones, then ones only ordered by."""
    branches: dict[str, tuple[ManyToOneRelation, QuerySpec]] = {}
    for relation_name, subquery in query.include.items():
        relation = model.get_relation(relation_name)
        if isinstance(relation, ManyToOneRelation):
            branches[relation_name] = (relation, subquery)

    # an empty select is enough, the primary key is always selected
    for order_path in order_paths:
        relation = order_path.relation
        if relation is not None and relation.name not in query.include:
            branches.setdefault(relation.name, (relation, QuerySpec()))
    return branches


def _select_columns(
    model: ModelMetadata,
    table: TableRef,
    query: QuerySpec,
    lateral_by: LateralBy,
    path: tuple[str, ...],
) -> list[SelectedColumn]:
    # primary keys wire up child relations, lateral fields correlate batches
    field_names = dict.fromkeys(
        [*query.select, *model.primary_key, *(field for field, _ in lateral_by)]
    )
    columns = []
    for index, field_name in enumerate(field_names):
        field = model.get_field(field_name)
        columns.append(
            SelectedColumn(
                table=table.alias,
                name=field.column,
                alias=make_column_alias(table.alias, index),
                path=(*path, field_name),
            )
        )
    return columns


def _min(*values: int | None) -> int | None:
    present = [v for v in values if v is not None]
    return min(present) if present else None


def _max(*values: int | None) -> int | None:
    present = [v for v in values if v is not None]
    return max(present) if present else None


class _Projection:
    """Columns a derived table projects, extended on demand for ordering."""

    def __init__(self, columns: Sequence[SelectedColumn]) -> None:
        self.columns = list(columns)

    def alias_for(self, column: ColumnRef) -> str:
        for selected in self.columns:
            if selected.table == column.table and selected.name == column.name:
                return selected.alias
        index = sum(1 for c in self.columns if c.table == column.table)
        alias = make_column_alias(column.table, index)
        self.columns.append(SelectedColumn(column.table, column.name, alias, ()))
        return alias


def _wrap_branch(
    relation: ManyToOneRelation,
    parent: TableRef,
    branch: PlanNode,
    path: tuple[str, ...],
    own_order: list[_OrderPath],
) -> tuple[Join, list[SelectedColumn], list[OrderBy], dict[str, ColumnRef]]:
    """Wrap a LEFT-joined branch that has joins of its own as a derived table.

    Returns the join, the columns the parent selects from the derived table,
    the branch's order-by re-pointed at the derived table, and a lookup from
    target column name to derived-table column for the parent's own
    ``relation.field`` order-by entries.
    """
    subquery_alias = f"{branch.table.alias}_subq"

    pairs = []
    for source_column, target_column in zip(
        relation.source.columns, relation.target.columns, strict=True
    ):
        key = next(
            (
                c
                for c in branch.columns
                if c.table == branch.table.alias and c.name == target_column
            ),
            None,
        )
        if key is None:
            raise JoinKeyNotFoundError(relation.name, target_column)
        pairs.append(
            JoinColumnPair(
                source=ColumnRef(parent.alias, source_column),
                target=ColumnRef(subquery_alias, key.alias),
            )
        )

    projection = _Projection(branch.columns)
    order_by = [
        OrderBy(ColumnRef(subquery_alias, projection.alias_for(ob.column)), ob.direction)
        for ob in branch.order_by
    ]
    order_columns = {
        op.field.column: ColumnRef(
            subquery_alias,
            projection.alias_for(ColumnRef(branch.table.alias, op.field.column)),
        )
        for op in own_order
        if op.relation is not None and op.relation.name == relation.name
    }

    join = Join(
        type=JoinType.LEFT,
        relation=relation.name,
        path=path,
        table=branch.table,
        columns=tuple(pairs),
        where=branch.where,
        order_by=tuple(order_by),
        subquery=DerivedTable(
            alias=subquery_alias,
            joins=branch.joins,
            columns=tuple(projection.columns),
        ),
    )
    # the parent reads the derived table's output aliases as column names
    exposed = [
        replace(c, table=subquery_alias, name=c.alias) for c in branch.columns
    ]
    return join, exposed, order_by, order_columns


def build_plan(
    registry: ModelRegistry,
    model_name: str,
    query: QuerySpec | dict[str, Any],
    lateral_by: LateralBy = (),
    path: Sequence[str] = (),
    alias_index: int = 0,
    middleware: Sequence[Middleware] = (),
) -> PlanNode:
    """Build the plan for *query* on *model_name*.

    Args:
        registry: Entity registry supplying model metadata.
        model_name: Root model of this (sub-)plan.
        query: QuerySpec or an equivalent mapping.
        lateral_by: ``(field, values)`` pairs of parent keys; when given the
            plan is rendered as a lateral batch correlated on these fields.
        path: Relation names from the query root to this model.
        alias_index: First free table alias index.
        middleware: Middleware whose where hooks apply to every table.

    Returns:
        The plan node; ``next_alias_index`` is the first index it left free.

    Raises:
        UnknownModelError, UnknownFieldError, UnknownRelationError,
        OrderByPathError, JoinKeyNotFoundError, QuerySpecError.
    """
    model = registry.get_model(model_name)
    query = coerce_query(model_name, query)
    path = tuple(path)

    table = TableRef(
        schema=model.schema,
        table=model.table,
        alias=make_table_alias(alias_index),
        model=model_name,
    )
    alias_index += 1

    columns = _select_columns(model, table, query, lateral_by, path)
    where = compile_where(registry, table, query.where, middleware)
    own_order = _resolve_order_by(registry, model, query)

    joins: list[Join] = []
    branch_order: list[OrderBy] = []
    order_columns: dict[tuple[str, str], ColumnRef] = {}
    limit, offset = query.limit, query.offset

    for relation_name, (relation, subquery) in _collect_many_to_one(model, query, own_order).items():
        branch_path = (*path, relation_name)
        branch = build_plan(
            registry,
            relation.model,
            subquery,
            path=branch_path,
            alias_index=alias_index,
            middleware=middleware,
        )
        alias_index = branch.next_alias_index

        join_type = (
            JoinType.LEFT if relation.optional and subquery.where is None else JoinType.INNER
        )

        # Flattening a LEFT JOIN followed by the branch's own INNER JOINs would
        # drop parent rows lacking the optional relation, so wrap it instead.
        if join_type is JoinType.LEFT and branch.joins:
            join, exposed, wrapped_order, wrapped_columns = _wrap_branch(
                relation, table, branch, branch_path, own_order
            )
            joins.append(join)
            columns.extend(exposed)
            branch_order.extend(wrapped_order)
            for column_name, ref in wrapped_columns.items():
                order_columns[(relation_name, column_name)] = ref
        else:
            joins.append(
                Join(
                    type=join_type,
                    relation=relation_name,
                    path=branch_path,
                    table=branch.table,
                    columns=tuple(
                        JoinColumnPair(
                            source=ColumnRef(table.alias, source_column),
                            target=ColumnRef(branch.table.alias, target_column),
                        )
                        for source_column, target_column in zip(
                            relation.source.columns, relation.target.columns, strict=True
                        )
                    ),
                    where=branch.where,
                    order_by=branch.order_by,
                )
            )
            joins.extend(branch.joins)
            columns.extend(branch.columns)
            branch_order.extend(branch.order_by)

        # N:1 branches only carry limit/offset when they stand in for a
        # batched N:N relation (see collect_to_many_queries)
        limit = _min(limit, branch.limit)
        offset = _max(offset, branch.offset)

    lateral_batch = None
    if lateral_by:
        lateral_batch = LateralBatch(
            outer_alias=make_table_alias(alias_index),
            inner_alias=make_table_alias(alias_index + 1),
            primary_keys=tuple(
                LateralKey(
                    column=model.get_field(field).column,
                    type=model.get_field(field).type,
                    values=tuple(values),
                )
                for field, values in lateral_by
            ),
        )
        alias_index += 2

    order_by = []
    joined = {j.relation: j for j in joins if j.path[:-1] == path}
    for op in own_order:
        if op.relation is None:
            column = ColumnRef(table.alias, op.field.column)
        else:
            column = order_columns.get(
                (op.relation.name, op.field.column),
                ColumnRef(joined[op.relation.name].table.alias, op.field.column),
            )
        order_by.append(OrderBy(column, op.direction))
    order_by.extend(branch_order)

    return PlanNode(
        table=table,
        columns=tuple(columns),
        joins=tuple(joins),
        where=where,
        order_by=tuple(order_by),
        limit=limit,
        offset=offset,
        lateral_batch=lateral_batch,
        lock=query.lock,
        next_alias_index=alias_index,
    )


def build_count_plan(
    registry: ModelRegistry,
    model_name: str,
    query: QuerySpec | dict[str, Any],
    path: Sequence[str] = (),
    alias_index: int = 0,
    middleware: Sequence[Middleware] = (),
) -> CountPlan:
    """Build the plan for counting the rows *query* would return.

    Only joins that can remove rows are kept: many-to-one relations that are
    mandatory or carry their own where clause are INNER-joined, recursively.
    Optional relations without a filter cannot change the count and are
    skipped, as are one-to-many and many-to-many includes.
    """
    model = registry.get_model(model_name)
    query = coerce_query(model_name, query)
    path = tuple(path)

    table = TableRef(
        schema=model.schema,
        table=model.table,
        alias=make_table_alias(alias_index),
        model=model_name,
    )
    alias_index += 1
    where = compile_where(registry, table, query.where, middleware)

    joins: list[Join] = []
    for relation_name, subquery in query.include.items():
        relation = model.get_relation(relation_name)
        if not isinstance(relation, ManyToOneRelation):
            continue
        if relation.optional and subquery.where is None:
            continue

        branch = build_count_plan(
            registry,
            relation.model,
            subquery,
            path=(*path, relation_name),
            alias_index=alias_index,
            middleware=middleware,
        )
        alias_index = branch.next_alias_index
        joins.append(
            Join(
                type=JoinType.INNER,
                relation=relation_name,
                path=(*path, relation_name),
                table=branch.table,
                columns=tuple(
                    JoinColumnPair(
                        source=ColumnRef(table.alias, source_column),
                        target=ColumnRef(branch.table.alias, target_column),
                    )
                    for source_column, target_column in zip(
                        relation.source.columns, relation.target.columns, strict=True
                    )
                ),
                where=branch.where,
            )
        )
        joins.extend(branch.joins)

    return CountPlan(
        table=table,
        joins=tuple(joins),
        where=where,
        lock=query.lock,
        next_alias_index=alias_index,
    )
