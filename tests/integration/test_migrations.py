import sqlite3

import pytest

from src.adapters.sqlite.migrator import SQLiteMigrator


@pytest.fixture
def temp_db_path(tmp_path):
    return str(tmp_path / "test_db.sqlite")


@pytest.fixture
def migrations_dir():
    # Real migrations, so the SQL itself is exercised
    return "migrations"


def test_migrator_creates_migration_table(temp_db_path, migrations_dir):
    SQLiteMigrator(temp_db_path, migrations_dir).run_migrations()

    conn = sqlite3.connect(temp_db_path)
    cursor = conn.execute(
        "SELECT name FROM sqlite_master WHERE type='table' AND name='_migrations'"
    )
    assert cursor.fetchone() is not None
    conn.close()


def test_migrator_applies_documents_table(temp_db_path, migrations_dir):
    applied = SQLiteMigrator(temp_db_path, migrations_dir).run_migrations()
    assert applied == ["0001_documents.sql"]

    conn = sqlite3.connect(temp_db_path)
    cursor = conn.execute(
        "SELECT name FROM sqlite_master WHERE type='table' AND name='documents'"
    )
    assert cursor.fetchone() is not None
    cursor = conn.execute("SELECT filename FROM _migrations WHERE filename='0001_documents.sql'")
    assert cursor.fetchone() is not None
    conn.close()


def test_migrator_is_idempotent(temp_db_path, migrations_dir):
    migrator = SQLiteMigrator(temp_db_path, migrations_dir)
    assert migrator.pending() == ["0001_documents.sql"]

    migrator.run_migrations()
    assert migrator.run_migrations() == []
    assert migrator.pending() == []


def test_down_section_is_not_applied(tmp_path, temp_db_path):
    (tmp_path / "mig").mkdir()
    (tmp_path / "mig" / "0001_t.sql").write_text(
        "-- Up\nCREATE TABLE t (id INTEGER);\n\n-- Down\nDROP TABLE t;\n"
    )
    SQLiteMigrator(temp_db_path, str(tmp_path / "mig")).run_migrations()

    conn = sqlite3.connect(temp_db_path)
    assert conn.execute("SELECT name FROM sqlite_master WHERE name='t'").fetchone() is not None
    conn.close()


def test_broken_migration_raises(tmp_path, temp_db_path):
    (tmp_path / "bad").mkdir()
    (tmp_path / "bad" / "0001_bad.sql").write_text("CREATE TABLE (;")

    with pytest.raises(RuntimeError, match="0001_bad.sql"):
        SQLiteMigrator(temp_db_path, str(tmp_path / "bad")).run_migrations()
