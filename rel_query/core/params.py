"""Placeholder rendering for driver parameter styles.

A Statement keeps its SQL as text fragments separated by bound values.
This module joins the fragments with the placeholder syntax a driver
expects:

    numeric  $1, $2, ...   (asyncpg, PostgreSQL wire protocol)
    format   %s            (psycopg, literal % doubled)
    qmark    ?
"""

from __future__ import annotations

from functools import lru_cache

from rel_query.core.exceptions import StatementError

PARAMSTYLES = ("numeric", "format", "qmark")


def render_placeholders(fragments: tuple[str, ...], paramstyle: str = "numeric") -> str:
    """Join *fragments* with placeholders in *paramstyle*.

    Args:
        fragments: SQL text pieces; a placeholder goes between each pair.
        paramstyle: One of ``PARAMSTYLES``.

    Returns:
        The complete SQL text.

    Raises:
        StatementError: If the paramstyle is not supported.
    """
    if paramstyle not in PARAMSTYLES:
        raise StatementError(
            f"Unsupported paramstyle '{paramstyle}'; expected one of {list(PARAMSTYLES)}"
        )
    return _render(fragments, paramstyle)


@lru_cache(maxsize=256)
def _render(fragments: tuple[str, ...], paramstyle: str) -> str:
    if paramstyle == "format":
        fragments = tuple(f.replace("%", "%%") for f in fragments)

    parts = [fragments[0]]
    for index, fragment in enumerate(fragments[1:], start=1):
        if paramstyle == "numeric":
            parts.append(f"${index}")
        elif paramstyle == "format":
            parts.append("%s")
        else:
            parts.append("?")
        parts.append(fragment)
    return "".join(parts)
