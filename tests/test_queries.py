"""Tests for admin query decoding."""

import pytest

from catalog_server.catalog.errors import DecodeError, InvalidJSON
from catalog_server.metadata.queries import (
    QUERY_TYPES,
    Bulk,
    CreatePermission,
    QualifiedTable,
    TrackTable,
    decode_admin_query,
    parse_admin_query,
)
from catalog_server.metadata.system import SYSTEM_TABLES, system_metadata_query


class TestQualifiedTable:
    def test_plain_name_defaults_to_public(self):
        table = QualifiedTable.model_validate("author")
        assert table.key == ("public", "author")
        assert str(table) == "public.author"

    def test_schema_alias(self):
        table = QualifiedTable.model_validate({"schema": "hdb_catalog", "name": "hdb_table"})
        assert table.schema_name == "hdb_catalog"


class TestDecode:
    def test_track_table_aliases(self):
        for tag in ("track_table", "add_existing_table_or_view"):
            query = decode_admin_query(b'{"type": "%s", "args": "author"}' % tag.encode())
            assert isinstance(query, TrackTable)
            assert query.args.name == "author"

    def test_permission_type_from_tag(self):
        query = parse_admin_query(
            {
                "type": "create_update_permission",
                "args": {"table": "author", "role": "user", "permission": {"columns": ["name"]}},
            }
        )
        assert isinstance(query, CreatePermission)
        assert query.perm_type == "update"

    def test_nested_bulk(self):
        query = parse_admin_query(
            {"type": "bulk", "args": [{"type": "bulk", "args": [{"type": "track_table", "args": "a"}]}]}
        )
        assert isinstance(query, Bulk)
        assert isinstance(query.args[0], Bulk)

    def test_known_types(self):
        assert {"run_sql", "bulk", "track_table", "drop_delete_permission"} <= QUERY_TYPES


class TestDecodeFailures:
    def test_not_json(self):
        with pytest.raises(InvalidJSON):
            decode_admin_query(b"[")

    @pytest.mark.parametrize(
        "value, message",
        [
            ([], 'expected an object with "type" and "args", got list'),
            ({"args": {}}, 'missing "type" in admin query'),
            ({"type": "drop_everything", "args": {}}, 'unknown admin query type "drop_everything"'),
            ({"type": 7, "args": {}}, 'unknown admin query type "7"'),
        ],
    )
    def test_shape_errors(self, value, message):
        with pytest.raises(DecodeError) as exc_info:
            parse_admin_query(value)
        assert exc_info.value.message == message

    def test_unknown_argument(self):
        with pytest.raises(DecodeError) as exc_info:
            parse_admin_query({"type": "untrack_table", "args": {"table": "a", "force": True}})
        assert exc_info.value.message.startswith('invalid "untrack_table" query at')
        assert exc_info.value.details["errors"]

    def test_relationship_needs_exactly_one_method(self):
        with pytest.raises(DecodeError):
            parse_admin_query(
                {"type": "create_object_relationship", "args": {"table": "a", "name": "b", "using": {}}}
            )

    def test_template_type_checked(self):
        with pytest.raises(DecodeError):
            parse_admin_query(
                {"type": "create_query_template", "args": {"name": "q", "template": {"select": {}}}}
            )


class TestSystemQuery:
    def test_tracks_catalog_tables_first(self):
        query = system_metadata_query()

        tracked = [item.args.name for item in query.args if isinstance(item, TrackTable)]
        assert tracked == SYSTEM_TABLES
        assert all(isinstance(item, TrackTable) for item in query.args[: len(SYSTEM_TABLES)])
