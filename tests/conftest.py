"""Shared test fixtures."""

from __future__ import annotations

from typing import Any

import pytest

from rel_query.core.registry import ModelRegistry
from rel_query.core.statement import Statement


def _blog_config() -> dict[str, Any]:
    return {
        "models": {
            "user": {
                "table": "users",
                "fields": {
                    "id": {"type": "int"},
                    "name": {"type": "text"},
                    "email": {"type": "text"},
                    "deleted_at": {"type": "timestamptz"},
                    "department_id": {"type": "int"},
                    "org_id": {"type": "int"},
                    "org_type": {"type": "text"},
                },
                "primary_key": "id",
                "relations": {
                    "department": {
                        "kind": "N:1",
                        "model": "department",
                        "from_fields": "department_id",
                        "to_fields": "id",
                    },
                    "organization": {
                        "kind": "N:1",
                        "model": "organization",
                        "from_fields": ["org_id", "org_type"],
                        "to_fields": ["id", "type"],
                        "optional": True,
                    },
                    "posts": {
                        "kind": "1:N",
                        "model": "post",
                        "from_fields": "id",
                        "to_fields": "author_id",
                    },
                },
            },
            "department": {
                "table": "departments",
                "fields": {"id": {"type": "int"}, "name": {"type": "text"}},
                "primary_key": "id",
            },
            "organization": {
                "table": "organisations",
                "fields": {
                    "id": {"type": "int"},
                    "type": {"type": "text"},
                    "name": {"type": "text"},
                },
                "primary_key": ["id", "type"],
            },
            "post": {
                "table": "posts",
                "fields": {
                    "id": {"type": "int"},
                    "title": {"type": "text"},
                    "content": {"type": "text", "column": "body"},
                    "author_id": {"type": "int"},
                    "published_at": {"type": "timestamptz"},
                },
                "primary_key": "id",
                "relations": {
                    "author": {
                        "kind": "N:1",
                        "model": "user",
                        "from_fields": "author_id",
                        "to_fields": "id",
                        "optional": True,
                    },
                    "tags": {
                        "kind": "N:N",
                        "model": "tag",
                        "through": {
                            "model": "post_tag",
                            "from_relation": "post",
                            "to_relation": "tag",
                        },
                    },
                },
            },
            "tag": {
                "table": "tags",
                "fields": {"id": {"type": "int"}, "name": {"type": "text"}},
                "primary_key": "id",
            },
            "post_tag": {
                "table": "post_tags",
                "fields": {"post_id": {"type": "int"}, "tag_id": {"type": "int"}},
                "primary_key": ["post_id", "tag_id"],
                "relations": {
                    "post": {
                        "kind": "N:1",
                        "model": "post",
                        "from_fields": "post_id",
                        "to_fields": "id",
                    },
                    "tag": {
                        "kind": "N:1",
                        "model": "tag",
                        "from_fields": "tag_id",
                        "to_fields": "id",
                    },
                },
            },
            "task": {
                "table": "tasks",
                "fields": {
                    "id": {"type": "int"},
                    "title": {"type": "text"},
                    "assignee_id": {"type": "int"},
                },
                "primary_key": "id",
                "relations": {
                    "assignee": {
                        "kind": "N:1",
                        "model": "user",
                        "from_fields": "assignee_id",
                        "to_fields": "id",
                        "optional": True,
                    },
                },
            },
        }
    }


@pytest.fixture
def blog_config() -> dict[str, Any]:
    """Model definitions used across the unit tests. A fresh copy per test."""
    return _blog_config()


@pytest.fixture
def registry(blog_config: dict[str, Any]) -> ModelRegistry:
    """Registry over the blog models."""
    return ModelRegistry(blog_config)


class RecordingExecutor:
    """Executor returning queued row sets in call order and recording statements."""

    def __init__(self, *responses: list[dict[str, Any]]) -> None:
        self.responses = list(responses)
        self.statements: list[Statement] = []

    def fetch_all(self, statement: Statement) -> list[dict[str, Any]]:
        self.statements.append(statement)
        return self.responses.pop(0) if self.responses else []


class AsyncRecordingExecutor(RecordingExecutor):
    """Async variant of RecordingExecutor."""

    async def fetch_all(self, statement: Statement) -> list[dict[str, Any]]:  # type: ignore[override]
        return super().fetch_all(statement)


@pytest.fixture
def recording_executor():
    """Factory for RecordingExecutor instances.

    Usage:
        executor = recording_executor([{"a_0": 1}], [{"a_0": 10, "a_1": 1}])
    """

    def _make(*responses: list[dict[str, Any]]) -> RecordingExecutor:
        return RecordingExecutor(*responses)

    return _make


@pytest.fixture
def async_recording_executor():
    """Factory for AsyncRecordingExecutor instances."""

    def _make(*responses: list[dict[str, Any]]) -> AsyncRecordingExecutor:
        return AsyncRecordingExecutor(*responses)

    return _make
