"""Composable, injection-safe SQL statements.

SQL text only ever comes from literal strings written in this package.
Values enter through ``param`` and identifiers through ``ident``, so a
rendered statement is always ``(text with placeholders, values)``.

Example:
    stmt = sql("SELECT ", ident("id"), " FROM ", ident("users"), " WHERE ",
               ident("id"), " = ", param(3))
    stmt.text    # 'SELECT "id" FROM "users" WHERE "id" = $1'
    stmt.values  # [3]
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

import sqlparse

from rel_query.core.exceptions import StatementError
from rel_query.core.params import render_placeholders


class Statement:
    """SQL text fragments interleaved with bound values.

    There is always exactly one more fragment than there are values.
    Statements are immutable; combining them returns a new Statement.
    """

    __slots__ = ("_fragments", "_values")

    def __init__(self, fragments: Iterable[str] | str = ("",), values: Iterable[Any] = ()) -> None:
        self._fragments = (fragments,) if isinstance(fragments, str) else tuple(fragments)
        self._values = tuple(values)
        if len(self._fragments) != len(self._values) + 1:
            raise StatementError(
                f"Statement needs {len(self._values) + 1} fragments, got {len(self._fragments)}"
            )

    @property
    def text(self) -> str:
        """SQL text with ``$n`` placeholders."""
        return render_placeholders(self._fragments)

    @property
    def values(self) -> list[Any]:
        """Bound values in placeholder order."""
        return list(self._values)

    @property
    def pretty(self) -> str:
        """Formatted SQL text, for logging and diagnostics only."""
        return sqlparse.format(self.text, reindent=True, keyword_case="upper", indent_width=4)

    def render(self, paramstyle: str = "numeric") -> tuple[str, list[Any]]:
        """Return ``(sql, values)`` using the driver's placeholder style."""
        return render_placeholders(self._fragments, paramstyle), self.values

    @property
    def is_empty(self) -> bool:
        return not self._values and not self._fragments[0]

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Statement):
            return NotImplemented
        return self._fragments == other._fragments and self._values == other._values

    def __hash__(self) -> int:
        return hash(self._fragments)

    def __repr__(self) -> str:
        return f"Statement({self.text!r}, {self.values!r})"


def sql(*parts: Statement | str) -> Statement:
    """Concatenate literal SQL text and nested statements.

    Raises:
        StatementError: If a part is neither ``str`` nor ``Statement``;
            values must be wrapped with ``param``.
    """
    fragments = [""]
    values: list[Any] = []
    for part in parts:
        if isinstance(part, str):
            fragments[-1] += part
        elif isinstance(part, Statement):
            fragments[-1] += part._fragments[0]
            fragments.extend(part._fragments[1:])
            values.extend(part._values)
        else:
            raise StatementError(
                f"Cannot embed {type(part).__name__} in SQL text; wrap values with param()"
            )
    return Statement(fragments, values)


def param(value: Any) -> Statement:
    """Bind *value* as a parameter. ``None``/``True``/``False`` render as literals."""
    if value is None:
        return Statement("NULL")
    if value is True:
        return Statement("TRUE")
    if value is False:
        return Statement("FALSE")
    return Statement(("", ""), (value,))


def ident(name: str) -> Statement:
    """Quote *name* as an SQL identifier."""
    return Statement('"' + name.replace('"', '""') + '"')


def raw(text: str) -> Statement:
    """Wrap trusted SQL text, such as a column type name from the registry."""
    return Statement(text)


def join(parts: Iterable[Statement], separator: str = ", ") -> Statement:
    """Join statements with a literal separator."""
    result: list[Statement | str] = []
    for index, part in enumerate(parts):
        if index:
            result.append(separator)
        result.append(part)
    return sql(*result)
