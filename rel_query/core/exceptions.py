"""RelQuery exception hierarchy.

Every error raised while planning or rendering a query is a programmer
error: the same inputs always fail the same way, so nothing here is
retried and no partial plan is ever returned.
"""

from __future__ import annotations


class RelQueryError(Exception):
    """Base exception for all RelQuery errors."""


# --- Registry (unknown identifiers) ---


class RegistryError(RelQueryError):
    """Base for entity registry errors."""


class UnknownModelError(RegistryError):
    """Raised when a model name is not registered."""

    def __init__(self, model_name: str) -> None:
        self.model_name = model_name
        super().__init__(f"Model not found: '{model_name}'")


class UnknownFieldError(RegistryError):
    """Raised when a field name does not exist on a model."""

    def __init__(self, model_name: str, field_name: str) -> None:
        self.model_name = model_name
        self.field_name = field_name
        super().__init__(f"Field '{field_name}' not found on model '{model_name}'")


class UnknownRelationError(RegistryError):
    """Raised when a relation name does not exist on a model."""

    def __init__(self, model_name: str, relation_name: str) -> None:
        self.model_name = model_name
        self.relation_name = relation_name
        super().__init__(f"Relation '{relation_name}' not found on model '{model_name}'")


class RegistryConfigError(RegistryError):
    """Raised when model definitions are inconsistent at registry build time."""

    def __init__(self, model_name: str, detail: str) -> None:
        self.model_name = model_name
        super().__init__(f"Invalid definition for model '{model_name}': {detail}")


# --- Planning (structural) ---


class PlanError(RelQueryError):
    """Base for structural query planning errors."""


class OrderByPathError(PlanError):
    """Raised when an order-by path names a relation that cannot be joined."""

    def __init__(self, model_name: str, path: str, detail: str) -> None:
        self.model_name = model_name
        self.path = path
        super().__init__(f"Cannot order '{model_name}' by '{path}': {detail}")


class JoinKeyNotFoundError(PlanError):
    """Raised when a wrapped join cannot find its key column in the sub-plan."""

    def __init__(self, relation_name: str, column_name: str) -> None:
        self.relation_name = relation_name
        self.column_name = column_name
        super().__init__(
            f"Join key column '{column_name}' not found in select for relation "
            f"'{relation_name}'"
        )


# --- Misuse ---


class MisuseError(RelQueryError):
    """Base for malformed query input."""


class RelationKindError(MisuseError):
    """Raised when a relation of the wrong kind is used at a given point."""

    def __init__(self, relation_name: str, expected: str, actual: str) -> None:
        self.relation_name = relation_name
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Expected relation '{relation_name}' to be {expected}, but got {actual}"
        )


class QuerySpecError(MisuseError):
    """Raised when a query specification fails validation."""

    def __init__(self, model_name: str, detail: str) -> None:
        self.model_name = model_name
        super().__init__(f"Invalid query for model '{model_name}': {detail}")


class PredicateError(MisuseError):
    """Raised when a where specification cannot be compiled."""


class StatementError(MisuseError):
    """Raised when a statement fragment is built from an unsupported part."""


# --- Execution ---


class ExecutionError(RelQueryError):
    """Base for errors surfaced while orchestrating batched fetches."""


class MultipleRowsError(ExecutionError):
    """Raised when find_one encounters more than one row."""

    def __init__(self, model_name: str, row_count: int) -> None:
        self.model_name = model_name
        self.row_count = row_count
        super().__init__(
            f"find_one for '{model_name}' returned {row_count} rows (expected 0 or 1)"
        )
