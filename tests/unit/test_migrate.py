"""Tests for the SQL migrations runner."""

from unittest.mock import MagicMock, patch

import psycopg
import pytest

from src.db.migrate import MIGRATIONS_DIR, run_migrations


@pytest.fixture
def migrations(tmp_path):
    (tmp_path / "002_second.sql").write_text("SELECT 2;")
    (tmp_path / "001_first.sql").write_text("SELECT 1;")
    (tmp_path / "notes.txt").write_text("ignored")
    return tmp_path


@pytest.fixture
def mock_connect():
    conn = MagicMock()
    cursor = conn.__enter__.return_value.cursor.return_value.__enter__.return_value
    with patch("src.db.migrate.load_dotenv"), patch(
        "src.db.migrate.psycopg.connect", return_value=conn
    ) as connect:
        yield connect, cursor


def test_applies_sql_files_in_order(monkeypatch, migrations, mock_connect):
    connect, cursor = mock_connect
    monkeypatch.setenv("DATABASE_URL", "postgresql://localhost/test")

    applied = run_migrations(migrations)

    assert applied == ["001_first.sql", "002_second.sql"]
    connect.assert_called_once_with("postgresql://localhost/test", autocommit=True)
    assert [call.args[0] for call in cursor.execute.call_args_list] == [
        "SELECT 1;",
        "SELECT 2;",
    ]


def test_missing_database_url_exits(monkeypatch, migrations, mock_connect):
    monkeypatch.delenv("DATABASE_URL", raising=False)

    with pytest.raises(SystemExit, match="DATABASE_URL is not set"):
        run_migrations(migrations)


def test_empty_directory_exits(monkeypatch, tmp_path, mock_connect):
    monkeypatch.setenv("DATABASE_URL", "postgresql://localhost/test")

    with pytest.raises(SystemExit, match="No .sql files"):
        run_migrations(tmp_path)


def test_connection_failure_includes_hint(monkeypatch, migrations, mock_connect):
    connect, _ = mock_connect
    connect.side_effect = psycopg.OperationalError("password authentication failed")
    monkeypatch.setenv("DATABASE_URL", "postgresql://localhost/test")

    with pytest.raises(SystemExit, match="percent-encode"):
        run_migrations(migrations)


def test_repository_ships_schema_and_queue_migrations():
    names = sorted(path.name for path in MIGRATIONS_DIR.glob("*.sql"))

    assert names == ["001_page_metadata.sql", "002_storage_and_queue.sql"]
    queue_sql = (MIGRATIONS_DIR / "002_storage_and_queue.sql").read_text()
    assert "scrape_requests" in queue_sql
