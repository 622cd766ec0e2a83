"""Tests for the catalog CLI."""

import pytest

from catalog_server.catalog.bootstrap import INITIALISED_MSG
from catalog_server.catalog.migrations import MIGRATED_MSG
from catalog_server.scripts.catalog_cli import build_parser, main, run_command


@pytest.mark.asyncio
async def test_init(empty_engine, manager_for, capsys):
    args = build_parser().parse_args(["init"])

    code = await run_command(args, manager_for(empty_engine))

    assert code == 0
    assert capsys.readouterr().out.strip() == INITIALISED_MSG


@pytest.mark.asyncio
async def test_migrate(engine_at, manager_for, capsys):
    engine = engine_at("0.8")

    code = await run_command(build_parser().parse_args(["migrate"]), manager_for(engine))

    assert code == 0
    assert capsys.readouterr().out.strip() == MIGRATED_MSG
    assert engine.state.version() == "1.1"


@pytest.mark.asyncio
async def test_execute_from_file(initialised_engine, manager_for, tmp_path, capsys):
    query = tmp_path / "query.json"
    query.write_text('{"type": "track_table", "args": "author"}')

    args = build_parser().parse_args(["execute", "--file", str(query)])
    code = await run_command(args, manager_for(initialised_engine))

    assert code == 0
    assert capsys.readouterr().out.strip() == '{"message":"success"}'


@pytest.mark.asyncio
async def test_failure_exit_code(empty_engine, manager_for, capsys):
    code = await run_command(build_parser().parse_args(["migrate"]), manager_for(empty_engine))

    assert code == 1
    assert "not-initialised" in capsys.readouterr().err


def test_clean_requires_confirmation(capsys):
    assert main(["clean"]) == 2
    assert "--yes" in capsys.readouterr().err


def test_no_command(capsys):
    assert main([]) == 1
