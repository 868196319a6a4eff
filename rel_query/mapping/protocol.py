"""Executor protocols.

The orchestrator never talks to a database itself. An execution layer
supplies an object implementing one of these protocols; rows come back as
dicts keyed by the statement's output column aliases.
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

from rel_query.core.statement import Statement


@runtime_checkable
class QueryExecutor(Protocol):
    """Synchronous executor protocol."""

    def fetch_all(self, statement: Statement) -> list[dict[str, Any]]:
        """Execute *statement* and return every row."""
        ...


@runtime_checkable
class AsyncQueryExecutor(Protocol):
    """Asynchronous executor protocol."""

    async def fetch_all(self, statement: Statement) -> list[dict[str, Any]]:
        """Execute *statement* asynchronously and return every row."""
        ...
