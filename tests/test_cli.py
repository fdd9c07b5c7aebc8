"""
Tests for the supplyprov CLI.
"""

import json
import logging
import os

import pytest

from supplyprov.cli import build_parser, main
from supplyprov.compute.local import LocalConfidentialComputeProvider
from supplyprov.store.wal import WALRecordStore


@pytest.fixture
def wal_dir(tmp_dir, monkeypatch):
    monkeypatch.setenv("SUPPLYPROV_COMPUTE_KEY", LocalConfidentialComputeProvider.generate_key_hex())
    monkeypatch.setenv("SUPPLYPROV_STORE_WAL_SYNC", "false")
    return os.path.join(tmp_dir, "wal")


@pytest.fixture(autouse=True)
def _detach_log_handlers():
    yield
    logger = logging.getLogger("supplyprov")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)


def _run(capsys, wal_dir, *argv):
    code = main(["--wal-dir", wal_dir, "--log-level", "WARNING", *argv])
    out, err = capsys.readouterr()
    return code, out, err


def _create(capsys, wal_dir, record_id="item-1", value=42, *extra):
    code, out, err = _run(
        capsys, wal_dir, "-o", "json", "create",
        "--owner", "acme", "--name", "Pallet", "--value", str(value), "--id", record_id, *extra,
    )
    assert code == 0, err
    return json.loads(out)


class TestParser:
    def test_list_verified_flags(self):
        parser = build_parser()
        assert parser.parse_args(["list"]).verified is None
        assert parser.parse_args(["list", "--verified"]).verified is True
        assert parser.parse_args(["list", "--unverified"]).verified is False

    def test_verified_flags_are_exclusive(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["list", "--verified", "--unverified"])

    def test_command_is_required(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args([])


class TestCommands:
    def test_create_and_verify_across_processes(self, capsys, wal_dir):
        created = _create(capsys, wal_dir, "item-1", 42, "--lifecycle", "in_transit")
        assert created["status"] == "created"
        assert created["public_attributes"]["lifecycle"] == "in_transit"

        code, out, _ = _run(capsys, wal_dir, "-o", "json", "verify", "item-1")
        assert code == 0
        assert json.loads(out)["outcome"] == "committed"
        assert json.loads(out)["clear_value"] == 42

        code, out, _ = _run(capsys, wal_dir, "-o", "json", "verify", "item-1")
        assert json.loads(out)["outcome"] == "already_verified"

        code, out, _ = _run(capsys, wal_dir, "get", "item-1")
        assert "Clear value:        42" in out
        assert "In Transit" in out

    def test_list_table_and_jsonl(self, capsys, wal_dir):
        _create(capsys, wal_dir, "item-1", 1)
        _create(capsys, wal_dir, "item-2", 2)
        _run(capsys, wal_dir, "verify", "item-2")

        code, out, _ = _run(capsys, wal_dir, "list")
        assert code == 0
        assert "item-1" in out and "(encrypted)" in out
        assert "Total: 2 records" in out

        code, out, _ = _run(capsys, wal_dir, "-o", "jsonl", "list", "--verified")
        lines = [json.loads(line) for line in out.splitlines()]
        assert [r["record_id"] for r in lines] == ["item-2"]

    def test_update_and_stats(self, capsys, wal_dir):
        _create(capsys, wal_dir)

        code, out, _ = _run(
            capsys, wal_dir, "-o", "json", "update", "item-1", "--actor", "acme", "--lifecycle", "delivered"
        )
        assert code == 0
        assert json.loads(out)["version"] == 1

        code, out, _ = _run(capsys, wal_dir, "-o", "json", "stats")
        assert json.loads(out)["delivered"] == 1

    def test_status_reports_wal_integrity(self, capsys, wal_dir):
        _create(capsys, wal_dir)

        code, out, _ = _run(capsys, wal_dir, "-o", "json", "status")

        status = json.loads(out)
        assert status["backend"] == "wal"
        assert status["records"] == 1
        assert status["wal_entries"] == 1
        assert status["wal_integrity"] == "OK"
        assert status["available"] is True


class TestErrors:
    def test_conflict(self, capsys, wal_dir):
        _create(capsys, wal_dir)

        code, _, err = _run(
            capsys, wal_dir, "create", "--owner", "acme", "--name", "x", "--value", "1", "--id", "item-1"
        )

        assert code == 1
        assert "Error [conflict]" in err

    def test_validation_lists_fields(self, capsys, wal_dir):
        code, _, err = _run(capsys, wal_dir, "create", "--owner", "acme", "--name", "x", "--value", "-1")

        assert code == 1
        assert "Error [validation_error]" in err
        assert "secret_value:" in err

    def test_not_owner(self, capsys, wal_dir):
        _create(capsys, wal_dir)

        code, _, err = _run(capsys, wal_dir, "update", "item-1", "--actor", "globex", "--name", "x")

        assert code == 1
        assert "Error [forbidden]" in err

    def test_empty_update(self, capsys, wal_dir):
        _create(capsys, wal_dir)

        code, _, err = _run(capsys, wal_dir, "update", "item-1", "--actor", "acme")

        assert code == 1
        assert "changes:" in err

    def test_unknown_record(self, capsys, wal_dir):
        code, _, err = _run(capsys, wal_dir, "verify", "missing")
        assert code == 1
        assert "Error [not_found]" in err

    def test_wal_held_by_another_store(self, capsys, wal_dir):
        holder = WALRecordStore(wal_dir, sync=False)
        try:
            code, _, err = _run(capsys, wal_dir, "list")
        finally:
            holder.close()

        assert code == 1
        assert "Error [store_error]" in err
        assert "in use by another store" in err
