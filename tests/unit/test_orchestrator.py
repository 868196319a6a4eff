"""Unit tests for the batch fetch orchestrators."""

from __future__ import annotations

import asyncio
import logging

import pytest

from rel_query.core.config import QuerySpec
from rel_query.core.exceptions import MultipleRowsError
from rel_query.core.predicate import Middleware
from rel_query.core.registry import ModelRegistry
from rel_query.mapping.orchestrator import (
    AsyncBatchFetchOrchestrator,
    BatchFetchOrchestrator,
    stitch,
)
from rel_query.mapping.protocol import AsyncQueryExecutor, QueryExecutor
from rel_query.mapping.relations import ToManyQuery

USERS_WITH_POSTS = {
    "select": ["name"],
    "include": {"posts": {"select": ["title"], "order_by": [("published_at", "desc")], "limit": 2}},
}
USER_ROWS = [{"a_0": "alice", "a_1": 1}, {"a_0": "bob", "a_1": 2}]
POST_ROWS = [
    {"a_0": "second", "a_1": 11, "a_2": 1},
    {"a_0": "first", "a_1": 10, "a_2": 1},
]


class TestProtocols:
    def test_recording_executor_is_query_executor(self, recording_executor) -> None:
        assert isinstance(recording_executor(), QueryExecutor)

    def test_async_executor_is_async_query_executor(self, async_recording_executor) -> None:
        assert isinstance(async_recording_executor(), AsyncQueryExecutor)


class TestStitch:
    def test_groups_by_key(self) -> None:
        results = [{"id": 1}, {"id": 2}]
        relation = ToManyQuery("post", QuerySpec(), ("posts",), ("id",), ("author_id",))
        children = [{"id": 10, "author_id": 1}, {"id": 11, "author_id": 1}]
        stitch(results, relation, children)
        assert results == [{"id": 1, "posts": children}, {"id": 2, "posts": []}]

    def test_unwrap(self) -> None:
        results = [{"id": 1}]
        relation = ToManyQuery(
            "post_tag", QuerySpec(), ("tags",), ("id",), ("post_id",), unwrap="tag"
        )
        stitch(results, relation, [{"post_id": 1, "tag_id": 5, "tag": {"id": 5, "name": "sql"}}])
        assert results == [{"id": 1, "tags": [{"id": 5, "name": "sql"}]}]

    def test_nested_path_skips_absent_parent(self) -> None:
        results = [{"id": 10, "author": {"id": 1}}, {"id": 11, "author": None}]
        relation = ToManyQuery("post", QuerySpec(), ("author", "posts"), ("id",), ("author_id",))
        stitch(results, relation, [{"id": 10, "author_id": 1}])
        assert results[0]["author"]["posts"] == [{"id": 10, "author_id": 1}]
        assert results[1]["author"] is None

    def test_composite_key(self) -> None:
        results = [{"org_id": 1, "org_type": "a"}, {"org_id": 1, "org_type": "b"}]
        relation = ToManyQuery(
            "member", QuerySpec(), ("members",), ("org_id", "org_type"), ("id", "type")
        )
        stitch(results, relation, [{"id": 1, "type": "b", "n": 1}])
        assert results[0]["members"] == []
        assert results[1]["members"] == [{"id": 1, "type": "b", "n": 1}]


class TestFindMany:
    def test_without_relations(self, registry: ModelRegistry, recording_executor) -> None:
        executor = recording_executor([{"a_0": 1, "a_1": "alice"}])
        orchestrator = BatchFetchOrchestrator(registry, executor)
        assert orchestrator.find_many("user", {"select": ["id", "name"]}) == [
            {"id": 1, "name": "alice"}
        ]
        (stmt,) = executor.statements
        assert stmt.text == 'SELECT "a"."id" AS "a_0", "a"."name" AS "a_1" FROM "public"."users" AS "a"'

    def test_one_to_many_batched(self, registry: ModelRegistry, recording_executor) -> None:
        executor = recording_executor(USER_ROWS, POST_ROWS)
        orchestrator = BatchFetchOrchestrator(registry, executor)
        results = orchestrator.find_many("user", USERS_WITH_POSTS)

        assert results == [
            {
                "name": "alice",
                "id": 1,
                "posts": [
                    {"title": "second", "id": 11, "author_id": 1},
                    {"title": "first", "id": 10, "author_id": 1},
                ],
            },
            {"name": "bob", "id": 2, "posts": []},
        ]
        assert len(executor.statements) == 2
        batch = executor.statements[1]
        assert batch.text.startswith(
            'SELECT "b".* FROM (SELECT UNNEST(ARRAY[$1,$2]::int[]) AS "author_id") AS "c" '
            "JOIN LATERAL ("
        )
        assert 'ORDER BY "a"."published_at" DESC LIMIT $3' in batch.text
        assert batch.values == [1, 2, 2]

    def test_many_to_many_unwrapped(self, registry: ModelRegistry, recording_executor) -> None:
        executor = recording_executor(
            [{"a_0": "A", "a_1": 1}, {"a_0": "B", "a_1": 2}],
            [
                {"a_0": 1, "a_1": 5, "b_0": "sql", "b_1": 5},
                {"a_0": 1, "a_1": 6, "b_0": "orm", "b_1": 6},
                {"a_0": 2, "a_1": 5, "b_0": "sql", "b_1": 5},
            ],
        )
        orchestrator = BatchFetchOrchestrator(registry, executor)
        results = orchestrator.find_many(
            "post", {"select": ["title"], "include": {"tags": {"select": ["name"]}}}
        )

        assert results == [
            {"title": "A", "id": 1, "tags": [{"name": "sql", "id": 5}, {"name": "orm", "id": 6}]},
            {"title": "B", "id": 2, "tags": [{"name": "sql", "id": 5}]},
        ]
        batch = executor.statements[1]
        assert '"public"."post_tags" AS "a"' in batch.text
        assert 'INNER JOIN "public"."tags" AS "b" ON "a"."tag_id" = "b"."id"' in batch.text
        assert '("d"."post_id" = "a"."post_id")' in batch.text

    def test_many_to_many_limit_applies_per_parent(
        self, registry: ModelRegistry, recording_executor
    ) -> None:
        executor = recording_executor([{"a_0": 1}], [])
        orchestrator = BatchFetchOrchestrator(registry, executor)
        orchestrator.find_many(
            "post", {"include": {"tags": {"order_by": ["name"], "limit": 3, "offset": 1}}}
        )
        batch = executor.statements[1]
        assert batch.text.endswith('ORDER BY "b"."name" ASC LIMIT $2 OFFSET $3) "c" ON TRUE')
        assert batch.values == [1, 3, 1]

    def test_nested_under_many_to_one(self, registry: ModelRegistry, recording_executor) -> None:
        executor = recording_executor(
            [{"a_0": 10, "b_0": 1}, {"a_0": 11, "b_0": None}],
            [{"a_0": 10, "a_1": 1}],
        )
        orchestrator = BatchFetchOrchestrator(registry, executor)
        results = orchestrator.find_many("post", {"include": {"author": {"include": {"posts": {}}}}})

        assert results == [
            {"id": 10, "author": {"id": 1, "posts": [{"id": 10, "author_id": 1}]}},
            {"id": 11, "author": None},
        ]
        assert executor.statements[1].values == [1]

    def test_recurses_into_child_relations(
        self, registry: ModelRegistry, recording_executor
    ) -> None:
        executor = recording_executor(
            [{"a_0": 1}],
            [{"a_0": 10, "a_1": 1}],
            [{"a_0": 10, "a_1": 5, "b_0": 5}],
        )
        orchestrator = BatchFetchOrchestrator(registry, executor)
        results = orchestrator.find_many("user", {"include": {"posts": {"include": {"tags": {}}}}})

        assert results == [{"id": 1, "posts": [{"id": 10, "author_id": 1, "tags": [{"id": 5}]}]}]
        assert len(executor.statements) == 3

    def test_no_parents_no_batch(self, registry: ModelRegistry, recording_executor) -> None:
        executor = recording_executor([])
        orchestrator = BatchFetchOrchestrator(registry, executor)
        assert orchestrator.find_many("user", USERS_WITH_POSTS) == []
        assert len(executor.statements) == 1

    def test_only_null_keys_no_batch(self, registry: ModelRegistry, recording_executor) -> None:
        executor = recording_executor([{"a_0": 11, "b_0": None}])
        orchestrator = BatchFetchOrchestrator(registry, executor)
        results = orchestrator.find_many("post", {"include": {"author": {"include": {"posts": {}}}}})
        assert results == [{"id": 11, "author": None}]
        assert len(executor.statements) == 1

    def test_middleware_applies_to_batches(
        self, registry: ModelRegistry, recording_executor
    ) -> None:
        def only_published(registry: ModelRegistry, model_name: str, where: dict) -> dict:
            if model_name == "post":
                return {**where, "published_at": {"$not": None}}
            return where

        executor = recording_executor([{"a_0": "alice", "a_1": 1}], [])
        orchestrator = BatchFetchOrchestrator(
            registry, executor, middleware=[Middleware(where=only_published)]
        )
        orchestrator.find_many("user", USERS_WITH_POSTS)
        assert executor.statements[0].text.find("published_at") == -1
        assert 'WHERE ("a"."published_at" IS NOT NULL)' in executor.statements[1].text

    def test_logs_statements_at_debug(
        self, registry: ModelRegistry, recording_executor, caplog: pytest.LogCaptureFixture
    ) -> None:
        orchestrator = BatchFetchOrchestrator(registry, recording_executor([]))
        with caplog.at_level(logging.DEBUG, logger="rel_query.orchestrator"):
            orchestrator.find_many("user", {"select": ["id"], "where": {"name": "x"}})
        assert "Executing find_many for 'user'" in caplog.text
        assert "values=['x']" in caplog.text


class TestFindOne:
    def test_single_row(self, registry: ModelRegistry, recording_executor) -> None:
        orchestrator = BatchFetchOrchestrator(registry, recording_executor([{"a_0": 1}]))
        assert orchestrator.find_one("user", {"where": {"id": 1}}) == {"id": 1}

    def test_no_rows(self, registry: ModelRegistry, recording_executor) -> None:
        orchestrator = BatchFetchOrchestrator(registry, recording_executor([]))
        assert orchestrator.find_one("user", {"where": {"id": 1}}) is None

    def test_multiple_rows(self, registry: ModelRegistry, recording_executor) -> None:
        orchestrator = BatchFetchOrchestrator(registry, recording_executor([{"a_0": 1}, {"a_0": 2}]))
        with pytest.raises(MultipleRowsError, match="returned 2 rows") as exc_info:
            orchestrator.find_one("user", {})
        assert exc_info.value.model_name == "user"
        assert exc_info.value.row_count == 2


class TestCount:
    def test_count(self, registry: ModelRegistry, recording_executor) -> None:
        executor = recording_executor([{"count": 3}])
        orchestrator = BatchFetchOrchestrator(registry, executor)
        assert orchestrator.count("user", {"where": {"name": "x"}}) == 3
        assert executor.statements[0].text == (
            'SELECT count(*) AS "count" FROM "public"."users" AS "a" WHERE "a"."name" = $1'
        )

    def test_no_rows(self, registry: ModelRegistry, recording_executor) -> None:
        orchestrator = BatchFetchOrchestrator(registry, recording_executor([]))
        assert orchestrator.count("user", {}) == 0


class TestAsyncOrchestrator:
    def test_find_many(self, registry: ModelRegistry, async_recording_executor) -> None:
        executor = async_recording_executor(USER_ROWS, POST_ROWS)
        orchestrator = AsyncBatchFetchOrchestrator(registry, executor)
        results = asyncio.run(orchestrator.find_many("user", USERS_WITH_POSTS))
        assert [len(r["posts"]) for r in results] == [2, 0]
        assert len(executor.statements) == 2

    def test_sibling_batches(self, registry: ModelRegistry, async_recording_executor) -> None:
        executor = async_recording_executor(
            [{"a_0": 10, "b_0": 1}],
            [{"a_0": 10, "a_1": 5, "b_0": 5}],
            [{"a_0": 10, "a_1": 1}],
        )
        orchestrator = AsyncBatchFetchOrchestrator(registry, executor)
        query = {"include": {"tags": {"select": []}, "author": {"include": {"posts": {}}}}}
        results = asyncio.run(orchestrator.find_many("post", query))
        assert len(executor.statements) == 3
        assert results[0]["author"]["posts"] == [{"id": 10, "author_id": 1}]
        assert results[0]["tags"] == [{"id": 5}]

    def test_no_parents_no_batch(self, registry: ModelRegistry, async_recording_executor) -> None:
        executor = async_recording_executor([])
        orchestrator = AsyncBatchFetchOrchestrator(registry, executor)
        assert asyncio.run(orchestrator.find_many("user", USERS_WITH_POSTS)) == []
        assert len(executor.statements) == 1

    def test_find_one_multiple_rows(
        self, registry: ModelRegistry, async_recording_executor
    ) -> None:
        orchestrator = AsyncBatchFetchOrchestrator(
            registry, async_recording_executor([{"a_0": 1}, {"a_0": 2}])
        )
        with pytest.raises(MultipleRowsError):
            asyncio.run(orchestrator.find_one("user", {}))

    def test_count(self, registry: ModelRegistry, async_recording_executor) -> None:
        orchestrator = AsyncBatchFetchOrchestrator(registry, async_recording_executor([{"count": 7}]))
        assert asyncio.run(orchestrator.count("post", {})) == 7
