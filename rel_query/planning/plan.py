"""Query plan data classes.

Frozen dataclasses describing one SELECT (or its lateral-batch variant)
before rendering. A plan is built fresh per query, never mutated, and
discarded once rendered.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from rel_query.core.enums import Direction, JoinType, LockMode
from rel_query.core.statement import Statement


@dataclass(frozen=True)
class TableRef:
    """One occurrence of a model's table in a plan."""

    schema: str
    table: str
    alias: str
    model: str


@dataclass(frozen=True)
class ColumnRef:
    """A column addressed through a table (or derived table) alias."""

    table: str
    name: str


@dataclass(frozen=True)
class SelectedColumn:
    """A projected column.

    ``path`` is the sequence of relation names from the query root ending
    with the field name; result rows are folded into nested objects by it.
    An empty path marks a column projected only to support ordering.
    """

    table: str
    name: str
    alias: str
    path: tuple[str, ...]


@dataclass(frozen=True)
class OrderBy:
    column: ColumnRef
    direction: Direction = Direction.ASC


@dataclass(frozen=True)
class JoinColumnPair:
    """``source = target`` equality used in a join condition."""

    source: ColumnRef
    target: ColumnRef


@dataclass(frozen=True)
class DerivedTable:
    """Sub-plan rendered as ``(SELECT ...) AS alias`` instead of flattened joins."""

    alias: str
    joins: tuple[Join, ...]
    columns: tuple[SelectedColumn, ...]


@dataclass(frozen=True)
class Join:
    type: JoinType
    relation: str
    path: tuple[str, ...]
    table: TableRef
    columns: tuple[JoinColumnPair, ...]
    where: Statement | None = None
    order_by: tuple[OrderBy, ...] = ()
    subquery: DerivedTable | None = None


@dataclass(frozen=True)
class LateralKey:
    """Parent key values unnested into the synthetic batch table."""

    column: str
    type: str
    values: tuple[Any, ...]


@dataclass(frozen=True)
class LateralBatch:
    outer_alias: str
    inner_alias: str
    primary_keys: tuple[LateralKey, ...]


@dataclass(frozen=True)
class PlanNode:
    """Compiled plan for a find query.

    ``next_alias_index`` is the first table alias index not used by this
    plan or any of its joins.
    """

    table: TableRef
    columns: tuple[SelectedColumn, ...]
    joins: tuple[Join, ...] = ()
    where: Statement | None = None
    order_by: tuple[OrderBy, ...] = ()
    limit: int | None = None
    offset: int | None = None
    lateral_batch: LateralBatch | None = None
    lock: LockMode | None = None
    next_alias_index: int = 0


@dataclass(frozen=True)
class CountPlan:
    """Compiled plan for a count query."""

    table: TableRef
    joins: tuple[Join, ...] = ()
    where: Statement | None = None
    lock: LockMode | None = None
    next_alias_index: int = 0
