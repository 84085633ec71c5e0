"""Tests for the sqlperf lint session."""
from pathlib import Path

import pytest

from rules import (
    DEFAULT_VALUE, FILE_ERROR, NON_CONCURRENT_INDEX, NOT_NULL_COLUMN, SYNTAX_ERROR,
)
from session import SourceError, lint, lint_file, lint_source, parse_source, read_source

DATA = Path(__file__).parent / "test_data"


def test_create_table_file_is_clean():
    assert lint_file(DATA / "create_table.sql") == []


def test_add_column_with_default_file():
    assert [d.rule_id for d in lint_file(DATA / "add_column_with_default.sql")] == [DEFAULT_VALUE]


def test_add_column_not_null_file():
    assert [d.rule_id for d in lint_file(DATA / "add_column_not_null.sql")] == [NOT_NULL_COLUMN]


def test_safe_migration_file_is_clean():
    assert lint_file(DATA / "safe_migration.sql") == []


def test_missing_file_is_file_error(tmp_path):
    [d] = lint_file(tmp_path / "nope.sql")
    assert d.rule_id == FILE_ERROR
    assert (d.line, d.col) == (0, 0)
    assert d.code == "E1"


def test_non_utf8_file_is_file_error(tmp_path):
    path = tmp_path / "latin1.sql"
    path.write_bytes(b"ALTER TABLE t ADD COLUMN caf\xe9 int;")
    assert [d.rule_id for d in lint_file(path)] == [FILE_ERROR]


def test_read_source_raises_source_error(tmp_path):
    with pytest.raises(SourceError) as excinfo:
        read_source(tmp_path / "nope.sql")
    assert excinfo.value.diagnostic.rule_id == FILE_ERROR


def test_syntax_error_yields_single_diagnostic():
    diagnostics = lint_file(DATA / "syntax_error.sql")
    assert [d.rule_id for d in diagnostics] == [SYNTAX_ERROR]
    assert diagnostics[0].line == 1


def test_unterminated_string_is_syntax_error():
    assert [d.rule_id for d in lint_source("SELECT 'abc")] == [SYNTAX_ERROR]


def test_no_rules_run_on_unparsable_source():
    sql = "ALTER TABLE t ADD COLUMN c int NOT NULL;\nSELECT (1 FROM t;"
    assert [d.rule_id for d in lint_source(sql)] == [SYNTAX_ERROR]


def test_parse_source_drops_empty_statements():
    statements = parse_source("ALTER TABLE t ADD COLUMN c int;;;")
    assert all(stmt is not None for stmt in statements)
    assert len(statements) == 1


def test_empty_file_is_clean(tmp_path):
    path = tmp_path / "empty.sql"
    path.write_text("")
    assert lint_file(path) == []


def test_batch_processes_every_input(tmp_path):
    a = tmp_path / "a.sql"
    a.write_text("SELECT (1 FROM t;")
    b = tmp_path / "b.sql"
    b.write_text("CREATE TABLE t (id int);")
    c = tmp_path / "c.sql"
    c.write_text("CREATE INDEX idx ON t (id);")
    reported = []
    success = lint([a, b, c], report=lambda path, ds: reported.append((path, [d.rule_id for d in ds])))
    assert success is False
    assert reported == [(a, [SYNTAX_ERROR]), (b, []), (c, [NON_CONCURRENT_INDEX])]


def test_batch_of_clean_inputs_passes():
    assert lint([DATA / "create_table.sql", DATA / "safe_migration.sql"]) is True


def test_empty_batch_passes():
    assert lint([]) is True


def test_ignore_by_rule_id_and_code():
    path = DATA / "add_column_with_default.sql"
    assert lint([path], ignore={DEFAULT_VALUE}) is True
    assert lint([path], ignore={"E4"}) is True
    assert lint([path], ignore={"E3"}) is False


def test_relinting_is_deterministic(tmp_path):
    path = tmp_path / "m.sql"
    path.write_text(
        "CREATE INDEX idx ON t (c);\n"
        "ALTER TABLE t ADD COLUMN c int NOT NULL DEFAULT 0;\n"
        "ALTER TABLE t ADD COLUMN d int DEFAULT 1;\n"
    )
    first = [(d.rule_id, d.line, d.col, d.message) for d in lint_file(path)]
    second = [(d.rule_id, d.line, d.col, d.message) for d in lint_file(path)]
    assert first == second
    assert [r for r, _, _, _ in first] == [NON_CONCURRENT_INDEX, NOT_NULL_COLUMN, DEFAULT_VALUE, DEFAULT_VALUE]


def test_truncated_alter_is_syntax_error():
    assert [d.rule_id for d in lint_source("ALTER TABLE t ADD COLUMN;")] == [SYNTAX_ERROR]


def test_garbled_alter_is_syntax_error():
    sql = "ALTER TABLE t ADD COLUMN c int NOT NULL garbage words;"
    [d] = lint_source(sql)
    assert d.rule_id == SYNTAX_ERROR
    assert "garbage words" in d.message


def test_garbled_create_index_is_syntax_error():
    assert [d.rule_id for d in lint_source("CREATE INDEX idx ON t (c) garbage words;")] == [SYNTAX_ERROR]


def test_other_raw_statements_are_inert():
    assert lint_source("CREATE EXTENSION IF NOT EXISTS pgcrypto;") == []
