"""Enumerations shared by the registry, planner and renderer."""

from __future__ import annotations

from enum import Enum


class RelationKind(Enum):
    """Cardinality of a normalized relation."""

    MANY_TO_ONE = "N:1"
    ONE_TO_MANY = "1:N"
    MANY_TO_MANY = "N:N"


class JoinType(Enum):
    """SQL join keyword used for a many-to-one relation."""

    INNER = "INNER"
    LEFT = "LEFT"


class Direction(Enum):
    """Order-by direction."""

    ASC = "ASC"
    DESC = "DESC"


class LockMode(Enum):
    """Row-locking clause appended to a rendered SELECT."""

    UPDATE = "update"
    NO_KEY_UPDATE = "no key update"
    SHARE = "share"
    KEY_SHARE = "key share"
