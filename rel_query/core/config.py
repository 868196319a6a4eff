"""Declarative configuration models.

Model definitions and query specifications are pydantic models so that
malformed input is rejected at the edge. The registry normalizes model
definitions once; query specifications are validated per call.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, NonNegativeInt, ValidationError, field_validator

from rel_query.core.enums import Direction, LockMode
from rel_query.core.exceptions import QuerySpecError


def _as_list(value: Any) -> Any:
    if isinstance(value, str):
        return [value]
    return value


class FieldDefinition(BaseModel):
    """A model field and the column that stores it."""

    model_config = ConfigDict(frozen=True)

    type: str
    column: str | None = None


class ManyToOneDefinition(BaseModel):
    """Relation where this model holds the foreign key (``N:1``)."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["N:1"]
    model: str
    from_fields: list[str]
    to_fields: list[str]
    optional: bool = False

    coerce_keys = field_validator("from_fields", "to_fields", mode="before")(_as_list)


class OneToManyDefinition(BaseModel):
    """Relation where the target model holds the foreign key (``1:N``)."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["1:N"]
    model: str
    from_fields: list[str]
    to_fields: list[str]

    coerce_keys = field_validator("from_fields", "to_fields", mode="before")(_as_list)


class ThroughDefinition(BaseModel):
    """Join model of a many-to-many relation and its two ``N:1`` relations."""

    model_config = ConfigDict(frozen=True)

    model: str
    from_relation: str
    to_relation: str


class ManyToManyDefinition(BaseModel):
    """Relation resolved through a join model (``N:N``)."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["N:N"]
    model: str
    through: ThroughDefinition


RelationDefinition = Annotated[
    Union[ManyToOneDefinition, OneToManyDefinition, ManyToManyDefinition],
    Field(discriminator="kind"),
]


class ModelDefinition(BaseModel):
    """Table, fields, primary key and relations of one model."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    table: str
    schema_name: str | None = Field(default=None, alias="schema")
    fields: dict[str, FieldDefinition]
    primary_key: list[str]
    relations: dict[str, RelationDefinition] = {}

    coerce_primary_key = field_validator("primary_key", mode="before")(_as_list)


class RegistryConfig(BaseModel):
    """All model definitions known to a registry."""

    model_config = ConfigDict(frozen=True)

    default_schema: str = "public"
    models: dict[str, ModelDefinition]


class QuerySpec(BaseModel):
    """Declarative description of one find query and its nested includes.

    ``order_by`` entries are normalized to ``(path, Direction)`` pairs where
    ``path`` is either a field name or ``relation.field``.
    """

    model_config = ConfigDict(frozen=True, extra="forbid", populate_by_name=True)

    select: tuple[str, ...] = ()
    where: dict[str, Any] | None = None
    include: dict[str, QuerySpec] = {}
    order_by: tuple[tuple[str, Direction], ...] = ()
    limit: NonNegativeInt | None = None
    offset: NonNegativeInt | None = None
    lock: LockMode | None = Field(default=None, alias="for")

    @field_validator("select", mode="before")
    @classmethod
    def unique_select(cls, value: Any) -> Any:
        value = _as_list(value)
        if isinstance(value, (list, tuple)):
            return tuple(dict.fromkeys(value))
        return value

    @field_validator("order_by", mode="before")
    @classmethod
    def normalize_order_by(cls, value: Any) -> Any:
        value = _as_list(value)
        if not isinstance(value, (list, tuple)):
            return value
        entries = []
        for entry in value:
            if isinstance(entry, str):
                entries.append((entry, Direction.ASC))
            elif isinstance(entry, (list, tuple)) and len(entry) == 2:
                path, direction = entry
                if isinstance(direction, str):
                    direction = Direction(direction.upper())
                entries.append((path, direction))
            else:
                raise ValueError(f"invalid order_by entry: {entry!r}")
        return tuple(entries)

    @field_validator("lock", mode="before")
    @classmethod
    def lower_lock(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.lower()
        return value


def coerce_query(model_name: str, query: QuerySpec | dict[str, Any]) -> QuerySpec:
    """Validate *query* into a QuerySpec.

    Raises:
        QuerySpecError: If the query does not validate.
    """
    if isinstance(query, QuerySpec):
        return query
    try:
        return QuerySpec.model_validate(query)
    except ValidationError as e:
        raise QuerySpecError(model_name, str(e)) from e
