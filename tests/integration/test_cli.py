"""
Integration tests for the docarchive command line tool.

Tests cover:
- insert/find/archive/restore/delete against a SQLite file
- Global configuration flags
- Exit codes and error output
"""

import json
import logging
import os
import tempfile

import pytest

from docarchive.config import LoggingConfig
from docarchive.tools.cli import build_parser, run, setup_logging


class TestCli:
    """Tests for tools.cli.run."""

    @pytest.fixture(autouse=True)
    def restore_logging(self):
        """run() reconfigures the root logger; put it back afterwards."""
        root = logging.getLogger()
        handlers, level = root.handlers[:], root.level
        yield
        root.handlers = handlers
        root.setLevel(level)

    @pytest.fixture
    def db(self, monkeypatch):
        monkeypatch.delenv("DOCARCHIVE_COLLECTION", raising=False)
        monkeypatch.delenv("DOCARCHIVE_EXCLUDE", raising=False)
        monkeypatch.delenv("DOCARCHIVE_BACKEND", raising=False)
        with tempfile.TemporaryDirectory() as tmpdir:
            yield os.path.join(tmpdir, "docs.db")

    def _out(self, capsys):
        return capsys.readouterr().out.splitlines()

    def test_parser_requires_command(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args([])

    def test_insert_prints_ids(self, db, capsys):
        assert run(["--db", db, "insert", "things", '[{"id": "a"}, {"name": "b"}]']) == 0

        ids = self._out(capsys)
        assert len(ids) == 2
        assert ids[0] == "a"

    def test_archive_restore_flow(self, db, capsys):
        run(["--db", db, "insert", "things", '[{"name": "test"}, {"name": "test"}]'])
        capsys.readouterr()

        assert run(["--db", db, "archive", "things", '{"name": "test"}']) == 0
        assert self._out(capsys) == ["Archived 2 document(s)"]

        assert run(["--db", db, "find", "things"]) == 0
        assert self._out(capsys) == []

        assert run(["--db", db, "find", "things", "--archived"]) == 0
        entries = [json.loads(line) for line in self._out(capsys)]
        assert len(entries) == 2
        assert all(entry["originCollection"] == "things" for entry in entries)

        assert run(["--db", db, "restore", "things", '{"name": "test"}']) == 0
        assert self._out(capsys) == ["Restored 2 document(s)"]

        run(["--db", db, "find", "things", '{"name": "test"}'])
        assert len(self._out(capsys)) == 2

    def test_delete_modes(self, db, capsys):
        run(["--db", db, "insert", "things", '[{"id": "1"}, {"id": "2"}]'])

        assert run(["--db", db, "delete", "things", '"1"']) == 0
        assert run(["--db", db, "delete", "things", '"2"', "--permanent"]) == 0
        capsys.readouterr()

        run(["--db", db, "find", "things", "--archived"])
        entries = [json.loads(line) for line in self._out(capsys)]
        assert [entry["originalId"] for entry in entries] == ["1"]

    def test_archive_name_and_no_override_remove(self, db, capsys):
        run(["--db", db, "insert", "things", '{"id": "1"}'])

        assert run(["--db", db, "--no-override-remove", "delete", "things"]) == 0
        assert run(["--db", db, "insert", "things", '{"id": "2"}']) == 0
        assert run(["--db", db, "--archive-name", "trash", "archive", "things"]) == 0
        capsys.readouterr()

        run(["--db", db, "--archive-name", "trash", "find", "things", "--archived"])
        entries = [json.loads(line) for line in self._out(capsys)]
        assert [entry["originalId"] for entry in entries] == ["2"]

        run(["--db", db, "find", "things", "--archived"])
        assert self._out(capsys) == []

    def test_fresh_ids(self, db, capsys):
        run(["--db", db, "insert", "things", '{"id": "1"}'])
        run(["--db", db, "archive", "things"])
        assert run(["--db", db, "--fresh-ids", "restore", "things"]) == 0
        capsys.readouterr()

        run(["--db", db, "find", "things"])
        docs = [json.loads(line) for line in self._out(capsys)]
        assert len(docs) == 1
        assert docs[0]["id"] != "1"

    def test_archive_error_exit_code(self, db, capsys):
        """Engine errors are reported on stderr with exit code 1."""
        assert run(["--db", db, "restore", "archives"]) == 1
        assert "Error:" in capsys.readouterr().err

    def test_duplicate_insert_exit_code(self, db, capsys):
        run(["--db", db, "insert", "things", '{"id": "1"}'])
        assert run(["--db", db, "insert", "things", '{"id": "1"}']) == 1
        assert "already exists" in capsys.readouterr().err

    def test_non_object_document(self, db, capsys):
        assert run(["--db", db, "insert", "things", "[1, 2]"]) == 1

    def test_invalid_backend_setting(self, db, monkeypatch):
        monkeypatch.setenv("DOCARCHIVE_BACKEND", "postgres")
        assert run(["--db", db, "find", "things"]) == 1

    def test_invalid_json_argument(self, db):
        with pytest.raises(SystemExit):
            run(["--db", db, "archive", "things", "{not json"])

    def test_selector_must_be_object_or_id(self, db):
        with pytest.raises(SystemExit):
            run(["--db", db, "archive", "things", "[1]"])

    def test_json_log_lines_carry_extra_fields(self, capsys):
        """JSON logs stay parseable and keep extra={...} context."""
        setup_logging(LoggingConfig(log_format="json"))

        logging.getLogger("docarchive.tests").warning(
            'Document "x" failed', extra={"collection": "things"}
        )

        record = json.loads(capsys.readouterr().err.strip().splitlines()[-1])
        assert record["message"] == 'Document "x" failed'
        assert record["collection"] == "things"

    def test_json_logging_from_commands(self, db, capsys, monkeypatch):
        monkeypatch.setenv("LOG_FORMAT", "json")
        monkeypatch.delenv("LOG_LEVEL", raising=False)
        run(["--db", db, "insert", "things", '[{"name": "test"}, {"name": "test"}]'])

        assert run(["--db", db, "archive", "things"]) == 0

        records = [json.loads(line) for line in capsys.readouterr().err.splitlines()]
        archived = [r for r in records if r.get("archive_collection") == "archives"]
        assert archived[-1]["collection"] == "things"
        assert archived[-1]["count"] == 2
