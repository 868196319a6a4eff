"""To-many relation discovery and lateral batch keys.

One-to-many and many-to-many includes are fetched after their parents,
one lateral batch per relation, keyed by the distinct parent key values.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from rel_query.core.config import QuerySpec, coerce_query
from rel_query.core.exceptions import RelationKindError
from rel_query.core.registry import (
    ManyToManyRelation,
    ManyToOneRelation,
    ModelRegistry,
    OneToManyRelation,
)
from rel_query.mapping.rows import get_path


@dataclass(frozen=True)
class ToManyQuery:
    """A deferred relation fetch.

    Attributes:
        model_name: Model the batch query runs against. For N:N relations
            this is the join model, not the related model.
        query: Query run once per batch.
        path: Relation names from the query root; the last one is where
            children are assigned on each parent.
        from_fields: Parent fields holding the key.
        to_fields: Child fields the key is matched against.
        unwrap: For N:N relations, the join model relation whose objects
            are the actual children.
    """

    model_name: str
    query: QuerySpec
    path: tuple[str, ...]
    from_fields: tuple[str, ...]
    to_fields: tuple[str, ...]
    unwrap: str | None = None


def _through_relation(
    registry: ModelRegistry, relation: ManyToManyRelation, name: str
) -> ManyToOneRelation:
    through_relation = registry.get_relation(relation.through_model, name)
    if not isinstance(through_relation, ManyToOneRelation):
        raise RelationKindError(name, "N:1", through_relation.kind.value)
    return through_relation


def collect_to_many_queries(
    registry: ModelRegistry,
    model_name: str,
    query: QuerySpec | dict[str, Any],
    path: Sequence[str] = (),
) -> list[ToManyQuery]:
    """Find every to-many include reachable through N:1 includes.

    An N:N include becomes a query on the join model that selects its
    primary key and includes the join model's N:1 relation to the related
    model with the caller's sub-query. That sub-query's ordering, limit and
    offset then apply per parent through the builder's branch merge.
    """
    model = registry.get_model(model_name)
    query = coerce_query(model_name, query)
    queries: list[ToManyQuery] = []

    for relation_name, subquery in query.include.items():
        relation = model.get_relation(relation_name)
        relation_path = (*path, relation_name)

        if isinstance(relation, OneToManyRelation):
            queries.append(
                ToManyQuery(
                    model_name=relation.model,
                    query=subquery,
                    path=relation_path,
                    from_fields=relation.source.fields,
                    to_fields=relation.target.fields,
                )
            )
        elif isinstance(relation, ManyToManyRelation):
            from_relation = _through_relation(registry, relation, relation.from_relation)
            to_relation = _through_relation(registry, relation, relation.to_relation)
            through = registry.get_model(relation.through_model)
            queries.append(
                ToManyQuery(
                    model_name=relation.through_model,
                    query=QuerySpec(
                        select=through.primary_key,
                        include={to_relation.name: subquery},
                    ),
                    path=relation_path,
                    from_fields=from_relation.target.fields,
                    to_fields=from_relation.source.fields,
                    unwrap=to_relation.name,
                )
            )
        elif isinstance(relation, ManyToOneRelation):
            queries.extend(collect_to_many_queries(registry, relation.model, subquery, relation_path))
        else:
            raise RelationKindError(relation_name, "N:1, 1:N or N:N", type(relation).__name__)

    return queries


def with_relation_keys(
    registry: ModelRegistry, model_name: str, query: QuerySpec | dict[str, Any]
) -> QuerySpec:
    """Add the parent key fields of every to-many include to ``select``.

    Primary keys are always selected, but a relation may be keyed on another
    field; its values must be present on the parent rows to batch on them.
    """
    model = registry.get_model(model_name)
    query = coerce_query(model_name, query)
    extra: list[str] = []
    include = dict(query.include)

    for relation_name, subquery in query.include.items():
        relation = model.get_relation(relation_name)
        if isinstance(relation, OneToManyRelation):
            extra.extend(relation.source.fields)
        elif isinstance(relation, ManyToManyRelation):
            extra.extend(_through_relation(registry, relation, relation.from_relation).target.fields)
        elif isinstance(relation, ManyToOneRelation):
            include[relation_name] = with_relation_keys(registry, relation.model, subquery)

    missing = [f for f in dict.fromkeys(extra) if f not in query.select]
    return query.model_copy(update={"select": (*query.select, *missing), "include": include})


def lateral_join_values(
    results: Sequence[Mapping[str, Any]],
    parent_path: Sequence[str],
    from_fields: Sequence[str],
    to_fields: Sequence[str],
) -> list[tuple[str, list[Any]]]:
    """Distinct parent key values, one ``(to_field, values)`` pair per key field.

    Values stay position-aligned across fields. Parents missing at
    *parent_path* (an absent optional relation) and keys containing None
    are skipped, since they cannot match any child.
    """
    keys: dict[tuple[Any, ...], None] = {}
    for result in results:
        parent = get_path(result, parent_path) if parent_path else result
        if not isinstance(parent, Mapping):
            continue
        key = tuple(parent.get(f) for f in from_fields)
        if any(v is None for v in key):
            continue
        keys.setdefault(key)

    return [(field, [key[index] for key in keys]) for index, field in enumerate(to_fields)]
