"""SQL renderer - plan trees to parameterized statements.

Rendering is a pure function of the plan. Output is single-line SQL with
``$n`` placeholders; use ``Statement.pretty`` for readable diagnostics.
"""

from __future__ import annotations

from rel_query.core.enums import Direction, JoinType
from rel_query.core.statement import Statement, ident, join, param, raw, sql
from rel_query.planning.plan import (
    ColumnRef,
    CountPlan,
    Join,
    LateralKey,
    OrderBy,
    PlanNode,
    SelectedColumn,
    TableRef,
)


def table_name(table: TableRef) -> Statement:
    return sql(ident(table.schema), ".", ident(table.table), " AS ", ident(table.alias))


def column_name(column: ColumnRef) -> Statement:
    return sql(ident(column.table), ".", ident(column.name))


def select_column(column: SelectedColumn) -> Statement:
    return sql(ident(column.table), ".", ident(column.name), " AS ", ident(column.alias))


def order_by_column(order_by: OrderBy) -> Statement:
    return sql(column_name(order_by.column), " ASC" if order_by.direction is Direction.ASC else " DESC")


def unnest_key(key: LateralKey) -> Statement:
    values = join((param(v) for v in key.values), ",")
    return sql("UNNEST(ARRAY[", values, "]::", raw(key.type), "[]) AS ", ident(key.column))


def join_clause(j: Join) -> Statement:
    keyword = "LEFT JOIN" if j.type is JoinType.LEFT else "INNER JOIN"
    pairs = [sql(column_name(p.source), " = ", column_name(p.target)) for p in j.columns]

    if j.subquery is not None:
        derived = _select(
            j.subquery.columns,
            j.table,
            j.subquery.joins,
            where=sql(" WHERE ", j.where) if j.where is not None else None,
        )
        return sql(
            keyword, " (", derived, ") AS ", ident(j.subquery.alias), " ON ", join(pairs, " AND ")
        )

    conditions = [*pairs, j.where] if j.where is not None else pairs
    return sql(keyword, " ", table_name(j.table), " ON ", join(conditions, " AND "))


def _select(
    columns: tuple[SelectedColumn, ...],
    table: TableRef,
    joins: tuple[Join, ...],
    where: Statement | None = None,
) -> Statement:
    parts: list[Statement | str] = [
        "SELECT ",
        join(select_column(c) for c in columns),
        " FROM ",
        table_name(table),
    ]
    for j in joins:
        parts.extend((" ", join_clause(j)))
    if where is not None:
        parts.append(where)
    return sql(*parts)


def _tail(plan: PlanNode) -> Statement:
    parts: list[Statement | str] = []
    if plan.order_by:
        parts.extend((" ORDER BY ", join(order_by_column(ob) for ob in plan.order_by)))
    if plan.limit is not None:
        parts.extend((" LIMIT ", param(plan.limit)))
    if plan.offset is not None:
        parts.extend((" OFFSET ", param(plan.offset)))
    if plan.lock is not None:
        parts.append(f" FOR {plan.lock.value.upper()}")
    return sql(*parts)


def render(plan: PlanNode) -> Statement:
    """Render *plan* as a single SELECT statement.

    With a lateral batch the base plan becomes the correlated inner query of
    ``JOIN LATERAL``, so ordering, limit and offset apply per parent key.
    """
    batch = plan.lateral_batch
    if batch is None:
        where = sql(" WHERE ", plan.where) if plan.where is not None else None
        return sql(_select(plan.columns, plan.table, plan.joins, where), _tail(plan))

    correlation = join(
        (
            sql(ident(batch.inner_alias), ".", ident(key.column), " = ",
                ident(plan.table.alias), ".", ident(key.column))
            for key in batch.primary_keys
        ),
        " AND ",
    )
    where = sql(
        " WHERE (", plan.where if plan.where is not None else "1=1", ") AND (", correlation, ")"
    )
    inner = sql(_select(plan.columns, plan.table, plan.joins, where), _tail(plan))
    return sql(
        "SELECT ", ident(batch.outer_alias), ".* FROM (SELECT ",
        join(unnest_key(key) for key in batch.primary_keys),
        ") AS ", ident(batch.inner_alias),
        " JOIN LATERAL (", inner, ") ", ident(batch.outer_alias), " ON TRUE",
    )


def render_count(plan: CountPlan) -> Statement:
    """Render *plan* as ``SELECT count(*) AS "count" ...``."""
    parts: list[Statement | str] = ['SELECT count(*) AS "count" FROM ', table_name(plan.table)]
    for j in plan.joins:
        parts.extend((" ", join_clause(j)))
    if plan.where is not None:
        parts.extend((" WHERE ", plan.where))
    if plan.lock is not None:
        parts.append(f" FOR {plan.lock.value.upper()}")
    return sql(*parts)
