"""Entity registry - normalized, read-only model metadata.

The registry is built once from a RegistryConfig. Relation definitions are
resolved into one of three frozen relation types so every consumer can
dispatch on the relation kind with isinstance checks:

    ManyToOneRelation   this model holds the key, joined inline
    OneToManyRelation   the target holds the key, fetched by lateral batch
    ManyToManyRelation  resolved through a join model, fetched by lateral batch
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Union

from rel_query.core.config import (
    ManyToManyDefinition,
    ManyToOneDefinition,
    ModelDefinition,
    RegistryConfig,
)
from rel_query.core.enums import RelationKind
from rel_query.core.exceptions import (
    RegistryConfigError,
    RelationKindError,
    UnknownFieldError,
    UnknownModelError,
    UnknownRelationError,
)

logger = logging.getLogger("rel_query.registry")


@dataclass(frozen=True)
class FieldMetadata:
    name: str
    column: str
    type: str


@dataclass(frozen=True)
class RelationKeys:
    """Field and column names on one side of a relation, position-aligned."""

    fields: tuple[str, ...]
    columns: tuple[str, ...]


@dataclass(frozen=True)
class ManyToOneRelation:
    name: str
    model: str
    source: RelationKeys
    target: RelationKeys
    optional: bool = False
    kind: RelationKind = RelationKind.MANY_TO_ONE


@dataclass(frozen=True)
class OneToManyRelation:
    name: str
    model: str
    source: RelationKeys
    target: RelationKeys
    kind: RelationKind = RelationKind.ONE_TO_MANY


@dataclass(frozen=True)
class ManyToManyRelation:
    name: str
    model: str
    through_model: str
    from_relation: str
    to_relation: str
    kind: RelationKind = RelationKind.MANY_TO_MANY


Relation = Union[ManyToOneRelation, OneToManyRelation, ManyToManyRelation]


@dataclass(frozen=True)
class ModelMetadata:
    """Normalized metadata for one model."""

    name: str
    schema: str
    table: str
    fields: dict[str, FieldMetadata]
    primary_key: tuple[str, ...]
    relations: dict[str, Relation]

    def get_field(self, field_name: str) -> FieldMetadata:
        try:
            return self.fields[field_name]
        except KeyError:
            raise UnknownFieldError(self.name, field_name) from None

    def get_relation(self, relation_name: str) -> Relation:
        try:
            return self.relations[relation_name]
        except KeyError:
            raise UnknownRelationError(self.name, relation_name) from None


def _resolve_keys(model_name: str, fields: dict[str, FieldMetadata], names: list[str]) -> RelationKeys:
    columns = []
    for name in names:
        if name not in fields:
            raise RegistryConfigError(model_name, f"relation key field '{name}' does not exist")
        columns.append(fields[name].column)
    return RelationKeys(fields=tuple(names), columns=tuple(columns))


class ModelRegistry:
    """Normalizes model definitions and serves read-only metadata.

    Args:
        config: A RegistryConfig, or a plain mapping accepted by
            ``RegistryConfig.model_validate``.

    Raises:
        RegistryConfigError: If a definition references a missing model,
            field or relation.
    """

    def __init__(self, config: RegistryConfig | dict[str, Any]) -> None:
        if not isinstance(config, RegistryConfig):
            config = RegistryConfig.model_validate(config)
        self._config = config
        self._models: dict[str, ModelMetadata] = {}
        self._load()

    def _load(self) -> None:
        definitions = self._config.models
        all_fields = {
            name: self._normalize_fields(definition) for name, definition in definitions.items()
        }

        for name, definition in definitions.items():
            fields = all_fields[name]
            for pk in definition.primary_key:
                if pk not in fields:
                    raise RegistryConfigError(name, f"primary key field '{pk}' does not exist")

            relations: dict[str, Relation] = {}
            for relation_name, relation in definition.relations.items():
                if relation.model not in definitions:
                    raise RegistryConfigError(
                        name,
                        f"relation '{relation_name}' references unknown model '{relation.model}'",
                    )
                if isinstance(relation, ManyToManyDefinition):
                    relations[relation_name] = ManyToManyRelation(
                        name=relation_name,
                        model=relation.model,
                        through_model=relation.through.model,
                        from_relation=relation.through.from_relation,
                        to_relation=relation.through.to_relation,
                    )
                    continue

                if len(relation.from_fields) != len(relation.to_fields):
                    raise RegistryConfigError(
                        name, f"relation '{relation_name}' has mismatched key lengths"
                    )
                source = _resolve_keys(name, fields, relation.from_fields)
                target = _resolve_keys(relation.model, all_fields[relation.model], relation.to_fields)
                if isinstance(relation, ManyToOneDefinition):
                    relations[relation_name] = ManyToOneRelation(
                        name=relation_name,
                        model=relation.model,
                        source=source,
                        target=target,
                        optional=relation.optional,
                    )
                else:
                    relations[relation_name] = OneToManyRelation(
                        name=relation_name,
                        model=relation.model,
                        source=source,
                        target=target,
                    )

            self._models[name] = ModelMetadata(
                name=name,
                schema=definition.schema_name or self._config.default_schema,
                table=definition.table,
                fields=fields,
                primary_key=tuple(definition.primary_key),
                relations=relations,
            )

        for model in self._models.values():
            for relation in model.relations.values():
                if isinstance(relation, ManyToManyRelation):
                    self._check_through(model.name, relation)

        logger.info("Loaded %d models into registry", len(self._models))

    @staticmethod
    def _normalize_fields(definition: ModelDefinition) -> dict[str, FieldMetadata]:
        return {
            name: FieldMetadata(
                name=name,
                column=field.column or name,
                type=field.type,
            )
            for name, field in definition.fields.items()
        }

    def _check_through(self, model_name: str, relation: ManyToManyRelation) -> None:
        through = self._models.get(relation.through_model)
        if through is None:
            raise RegistryConfigError(
                model_name,
                f"relation '{relation.name}' has unknown join model '{relation.through_model}'",
            )
        for through_relation in (relation.from_relation, relation.to_relation):
            target = through.relations.get(through_relation)
            if target is None:
                raise RegistryConfigError(
                    model_name,
                    f"join model '{through.name}' has no relation '{through_relation}'",
                )
            if not isinstance(target, ManyToOneRelation):
                raise RelationKindError(through_relation, "N:1", target.kind.value)

    def get_model(self, model_name: str) -> ModelMetadata:
        """Look up normalized metadata by model name.

        Raises:
            UnknownModelError: If no model has this name.
        """
        try:
            return self._models[model_name]
        except KeyError:
            raise UnknownModelError(model_name) from None

    def get_field(self, model_name: str, field_name: str) -> FieldMetadata:
        """Look up one field of a model.

        Raises:
            UnknownModelError: If the model is not registered.
            UnknownFieldError: If the model has no such field.
        """
        return self.get_model(model_name).get_field(field_name)

    def get_relation(self, model_name: str, relation_name: str) -> Relation:
        return self.get_model(model_name).get_relation(relation_name)

    def has_model(self, model_name: str) -> bool:
        return model_name in self._models

    @property
    def model_names(self) -> list[str]:
        """List all registered model names, sorted alphabetically."""
        return sorted(self._models)

    def __len__(self) -> int:
        return len(self._models)
