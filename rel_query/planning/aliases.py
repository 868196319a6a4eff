"""Deterministic table alias allocation."""

from __future__ import annotations

_LETTERS = "abcdefghijklmnopqrstuvwxyz"


def make_table_alias(index: int) -> str:
    """Return the alias for table *index*: a..z, then aa, ab, ... (bijective base 26)."""
    if index < 0:
        raise ValueError(f"Table alias index must be non-negative, got {index}")
    alias = ""
    index += 1
    while index:
        index, remainder = divmod(index - 1, 26)
        alias = _LETTERS[remainder] + alias
    return alias


def make_column_alias(table_alias: str, index: int) -> str:
    return f"{table_alias}_{index}"
