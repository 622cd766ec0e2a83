"""Tests for AdminQueryExecutor."""

import orjson
import pytest

from catalog_server.catalog.errors import DecodeError, InvalidJSON, MetadataError, StoreFailure
from catalog_server.catalog.executor import AdminQueryExecutor
from catalog_server.metadata.identity import UserInfo


def _payload(query: dict) -> bytes:
    return orjson.dumps(query)


class TestDecoding:
    @pytest.mark.asyncio
    async def test_invalid_json_opens_no_transaction(self, initialised_engine):
        executor = AdminQueryExecutor(initialised_engine)

        with pytest.raises(InvalidJSON) as exc_info:
            await executor.execute(b"{not json")

        assert exc_info.value.code == "invalid-json"
        assert initialised_engine.begin_count == 0

    @pytest.mark.asyncio
    async def test_unknown_type_opens_no_transaction(self, initialised_engine):
        executor = AdminQueryExecutor(initialised_engine)

        with pytest.raises(DecodeError) as exc_info:
            await executor.execute(_payload({"type": "explode", "args": {}}))

        assert exc_info.value.code == "parse-failed"
        assert exc_info.value.message == 'unknown admin query type "explode"'
        assert initialised_engine.begin_count == 0


class TestExecute:
    @pytest.mark.asyncio
    async def test_track_table(self, initialised_engine):
        executor = AdminQueryExecutor(initialised_engine)

        result = await executor.execute(_payload({"type": "track_table", "args": "author"}))

        assert orjson.loads(result) == {"message": "success"}
        assert ("public", "author") in {
            (row["table_schema"], row["table_name"]) for row in initialised_engine.state.tables["hdb_table"]
        }
        assert initialised_engine.begin_count == 1

    @pytest.mark.asyncio
    async def test_sees_committed_metadata(self, initialised_engine):
        executor = AdminQueryExecutor(initialised_engine)
        await executor.execute(_payload({"type": "track_table", "args": "author"}))

        with pytest.raises(MetadataError) as exc_info:
            await executor.execute(_payload({"type": "track_table", "args": "author"}))

        assert exc_info.value.code == "already-tracked"

    @pytest.mark.asyncio
    async def test_bulk_results_in_order(self, initialised_engine):
        executor = AdminQueryExecutor(initialised_engine)
        query = {
            "type": "bulk",
            "args": [
                {"type": "track_table", "args": "author"},
                {"type": "track_table", "args": {"schema": "public", "name": "article"}},
                {
                    "type": "create_array_relationship",
                    "args": {
                        "table": "author",
                        "name": "articles",
                        "using": {"foreign_key_constraint_on": {"table": "article", "column": "author_id"}},
                    },
                },
            ],
        }

        result = await executor.execute(_payload(query))

        assert orjson.loads(result) == [{"message": "success"}] * 3
        names = [row["rel_name"] for row in initialised_engine.state.tables["hdb_relationship"]]
        assert "articles" in names

    @pytest.mark.asyncio
    async def test_bulk_failure_rolls_back_earlier_items(self, initialised_engine):
        executor = AdminQueryExecutor(initialised_engine)
        query = {
            "type": "bulk",
            "args": [
                {"type": "track_table", "args": "author"},
                {"type": "track_table", "args": "author"},
            ],
        }

        with pytest.raises(MetadataError):
            await executor.execute(_payload(query))

        tracked = {row["table_name"] for row in initialised_engine.state.tables["hdb_table"]}
        assert "author" not in tracked

    @pytest.mark.asyncio
    async def test_store_failure_rolls_back(self, initialised_engine):
        executor = AdminQueryExecutor(initialised_engine)
        initialised_engine.fail_on = "INSERT INTO hdb_catalog.hdb_table"

        with pytest.raises(StoreFailure) as exc_info:
            await executor.execute(_payload({"type": "track_table", "args": "author"}))

        assert exc_info.value.phase == "track table"
        assert len(initialised_engine.state.tables["hdb_table"]) == 6

    @pytest.mark.asyncio
    async def test_untracked_relation_is_constraint_violation(self, initialised_engine):
        executor = AdminQueryExecutor(initialised_engine)

        with pytest.raises(StoreFailure) as exc_info:
            await executor.execute(_payload({"type": "track_table", "args": "missing"}))

        assert exc_info.value.code == "constraint-violation"
        assert exc_info.value.status == 400

    @pytest.mark.asyncio
    async def test_non_admin_rejected(self, initialised_engine):
        executor = AdminQueryExecutor(initialised_engine, identity=UserInfo(role="user"))

        with pytest.raises(MetadataError) as exc_info:
            await executor.execute(_payload({"type": "track_table", "args": "author"}))

        assert exc_info.value.status == 403

    @pytest.mark.asyncio
    async def test_uninitialised_catalog(self, empty_engine):
        executor = AdminQueryExecutor(empty_engine)

        with pytest.raises(StoreFailure) as exc_info:
            await executor.execute(_payload({"type": "track_table", "args": "author"}))

        assert exc_info.value.phase == "schema cache"
