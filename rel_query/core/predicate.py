"""Predicate compiler - where specifications to parameterized SQL.

A where specification maps field names to values or operator mappings.
Keys starting with ``$`` are operators:

    {"name": "Alice"}                      "a"."name" = $1
    {"deleted_at": None}                   "a"."deleted_at" IS NULL
    {"age": {"$gte": 18, "$lt": 65}}       "a"."age" >= $1 AND "a"."age" < $2
    {"$or": [{"id": 1}, {"id": 2}]}        ("a"."id" = $1 OR "a"."id" = $2)
    {"$not": {"id": 3}}                    NOT ("a"."id" = $1)

Middleware ``where`` hooks run before compilation, once per table, so
cross-cutting filters (soft deletes, tenancy) apply to joined relations
as well as the base table.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from rel_query.core.exceptions import PredicateError
from rel_query.core.statement import Statement, ident, join, param, sql

if TYPE_CHECKING:
    from rel_query.core.registry import ModelRegistry
    from rel_query.planning.plan import TableRef

WhereHook = Callable[["ModelRegistry", str, dict[str, Any]], dict[str, Any]]
Operator = Callable[[Statement, Any], Statement]

LOGICAL_OPERATORS = ("$and", "$or", "$not")


@dataclass(frozen=True)
class Middleware:
    """Hooks applied while compiling queries.

    Attributes:
        name: Optional label, used only for diagnostics.
        where: Receives ``(registry, model_name, where)`` and returns the
            where specification to compile instead.
    """

    name: str | None = None
    where: WhereHook | None = None


def _in(column: Statement, value: Any) -> Statement:
    if not isinstance(value, (list, tuple, set, frozenset)):
        raise PredicateError(f"Non-list passed to $in: {value!r}")
    if not value:
        return sql(column, " IN (NULL)")
    return sql(column, " IN (", join(param(v) for v in value), ")")


def _not(column: Statement, value: Any) -> Statement:
    if value is None:
        return sql(column, " IS NOT NULL")
    if value is True:
        return sql(column, " IS NOT TRUE")
    if value is False:
        return sql(column, " IS NOT FALSE")
    raise PredicateError(f"Invalid value passed to $not operator: {value!r}")


def _binary(op: str) -> Operator:
    def compile_operator(column: Statement, value: Any) -> Statement:
        return sql(column, f" {op} ", param(value))

    return compile_operator


def _equality(op: str, literal_op: str) -> Operator:
    # = NULL never matches, so None/True/False compare with IS
    def compile_operator(column: Statement, value: Any) -> Statement:
        if value is None or value is True or value is False:
            return sql(column, f" {literal_op} ", param(value))
        return sql(column, f" {op} ", param(value))

    return compile_operator


DEFAULT_OPERATORS: dict[str, Operator] = {
    "$eq": _equality("=", "IS"),
    "$ne": _equality("!=", "IS NOT"),
    "$gt": _binary(">"),
    "$gte": _binary(">="),
    "$lt": _binary("<"),
    "$lte": _binary("<="),
    "$like": _binary("LIKE"),
    "$ilike": _binary("ILIKE"),
    "$is": _binary("IS"),
    "$in": _in,
    "$not": _not,
}


def apply_where_middleware(
    registry: ModelRegistry,
    middleware: Sequence[Middleware],
    model_name: str,
    where: dict[str, Any] | None,
) -> dict[str, Any] | None:
    """Run every middleware ``where`` hook over *where*, in order."""
    for mw in middleware:
        if mw.where is not None:
            where = mw.where(registry, model_name, dict(where or {}))
    return where


def compile_where(
    registry: ModelRegistry,
    table: TableRef,
    where: Mapping[str, Any] | None,
    middleware: Sequence[Middleware] = (),
) -> Statement | None:
    """Compile *where* for the model behind *table*, scoped to its alias.

    Returns:
        The boolean SQL expression, or None when there is nothing to filter.

    Raises:
        UnknownFieldError: If a key names a field the model does not have.
        PredicateError: On unknown operators or empty logical clauses.
    """
    processed = apply_where_middleware(
        registry, middleware, table.model, dict(where) if where is not None else None
    )
    if not processed:
        return None
    return _compile(registry, table, processed)


def _compile(registry: ModelRegistry, table: TableRef, where: Mapping[str, Any]) -> Statement:
    model = registry.get_model(table.model)
    clauses: list[Statement] = []

    for key, value in where.items():
        if key in LOGICAL_OPERATORS:
            continue
        if key.startswith("$"):
            raise PredicateError(f"Unrecognised logical operator '{key}'")

        column = sql(ident(table.alias), ".", ident(model.get_field(key).column))

        # None/True/False compare with IS so NULLs are matched as expected
        if value is None:
            clauses.append(sql(column, " IS NULL"))
        elif value is True:
            clauses.append(sql(column, " IS TRUE"))
        elif value is False:
            clauses.append(sql(column, " IS FALSE"))
        elif isinstance(value, Mapping) and any(str(k).startswith("$") for k in value):
            subclauses = []
            for op, op_value in value.items():
                operator = DEFAULT_OPERATORS.get(op)
                if operator is None:
                    raise PredicateError(f"Unrecognised query operator '{op}' for field '{key}'")
                subclauses.append(operator(column, op_value))
            clauses.append(join(subclauses, " AND "))
        else:
            clauses.append(sql(column, " = ", param(value)))

    if "$and" in where:
        clauses.append(_compile_group(registry, table, where["$and"], "AND"))
    if "$or" in where:
        clauses.append(_compile_group(registry, table, where["$or"], "OR"))
    if "$not" in where:
        negated = where["$not"]
        if not negated:
            raise PredicateError("NOT clause must not be empty")
        clauses.append(sql("NOT (", _compile(registry, table, negated), ")"))

    return join(clauses, " AND ")


def _compile_group(
    registry: ModelRegistry, table: TableRef, group: Sequence[Mapping[str, Any]], keyword: str
) -> Statement:
    if not group:
        raise PredicateError(f"{keyword} clause must not be empty")
    subclauses = []
    for clause in group:
        if not clause:
            raise PredicateError(f"{keyword} clause must not be empty")
        subclauses.append(_compile(registry, table, clause))
    return sql("(", join(subclauses, f" {keyword} "), ")")
