from __future__ import annotations

import tempfile
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from forecastwatch.registry.db import Database

DSN = "postgresql://u:p@localhost:5432/testdb"


def _attach(db: Database, mock_cursor: MagicMock) -> MagicMock:
    """Wire a mocked pool -> connection -> cursor chain into db."""
    mock_cursor.__enter__ = MagicMock(return_value=mock_cursor)
    mock_cursor.__exit__ = MagicMock(return_value=False)

    mock_conn = MagicMock()
    mock_conn.cursor.return_value = mock_cursor

    mock_pool = MagicMock()
    mock_pool.connection.return_value.__enter__ = MagicMock(return_value=mock_conn)
    mock_pool.connection.return_value.__exit__ = MagicMock(return_value=False)
    db._pool = mock_pool
    return mock_conn


class TestDatabaseInit:
    def test_stores_dsn(self) -> None:
        db = Database(DSN)
        assert db._dsn == DSN

    def test_not_connected_by_default(self) -> None:
        assert Database(DSN)._pool is None


class TestDatabaseExecute:
    def test_execute_returns_dicts(self) -> None:
        db = Database(DSN)
        mock_cursor = MagicMock()
        mock_cursor.description = [("id",), ("ticker",)]
        mock_cursor.fetchall.return_value = [
            {"id": 1, "ticker": "2330"},
            {"id": 2, "ticker": "2317"},
        ]
        _attach(db, mock_cursor)

        result = db.execute("SELECT id, ticker FROM watch.forecasts")

        assert result == [{"id": 1, "ticker": "2330"}, {"id": 2, "ticker": "2317"}]

    def test_execute_no_results(self) -> None:
        db = Database(DSN)
        mock_cursor = MagicMock()
        mock_cursor.description = None
        _attach(db, mock_cursor)

        result = db.execute("UPDATE watch.forecasts SET current_price = %s", (1,))

        assert result == []
        mock_cursor.execute.assert_called_once_with(
            "UPDATE watch.forecasts SET current_price = %s", (1,),
        )

    def test_execute_raises_when_not_connected(self) -> None:
        with pytest.raises(RuntimeError, match="not connected"):
            Database(DSN).execute("SELECT 1")


class TestMigrationRunner:
    def test_finds_and_runs_sql_files(self) -> None:
        db = Database(DSN)
        with tempfile.TemporaryDirectory() as tmpdir:
            (Path(tmpdir) / "001_forecasts.sql").write_text("CREATE TABLE t (id INT);")
            (Path(tmpdir) / "002_index.sql").write_text("CREATE INDEX i ON t (id);")

            mock_cursor = MagicMock()
            mock_cursor.fetchall.return_value = []
            mock_conn = _attach(db, mock_cursor)

            applied = db.run_migrations(tmpdir)

            calls = mock_cursor.execute.call_args_list
            assert "_migrations" in str(calls[0])
            assert "SELECT filename" in str(calls[1])
            # CREATE + SELECT + 2*(SQL + INSERT)
            assert len(calls) == 6
            assert applied == ["001_forecasts.sql", "002_index.sql"]
            assert mock_conn.commit.call_count == 3

    def test_skips_applied_migrations(self) -> None:
        db = Database(DSN)
        with tempfile.TemporaryDirectory() as tmpdir:
            (Path(tmpdir) / "001_forecasts.sql").write_text("CREATE TABLE t (id INT);")
            (Path(tmpdir) / "002_index.sql").write_text("CREATE INDEX i ON t (id);")

            mock_cursor = MagicMock()
            mock_cursor.fetchall.return_value = [{"filename": "001_forecasts.sql"}]
            _attach(db, mock_cursor)

            applied = db.run_migrations(tmpdir)

            assert len(mock_cursor.execute.call_args_list) == 4
            assert applied == ["002_index.sql"]

    def test_bundled_migrations_exist(self) -> None:
        import forecastwatch.registry

        migrations = Path(forecastwatch.registry.__file__).parent / "migrations"
        names = sorted(p.name for p in migrations.glob("*.sql"))
        assert names and names[0] == "001_forecasts.sql"
        assert "watch.forecasts" in (migrations / names[0]).read_text()


class TestHealthCheck:
    def test_healthy(self) -> None:
        db = Database(DSN)
        mock_cursor = MagicMock()
        mock_cursor.description = [("ok",)]
        mock_cursor.fetchall.return_value = [{"ok": 1}]
        _attach(db, mock_cursor)

        assert db.health_check() is True

    def test_unhealthy(self) -> None:
        # Not connected, so execute will raise
        assert Database(DSN).health_check() is False


class TestConnectionPool:
    @patch("forecastwatch.registry.db.ConnectionPool")
    def test_context_manager_opens_and_closes_pool(self, mock_pool_cls: MagicMock) -> None:
        with Database(DSN, max_size=2) as db:
            assert db._pool is mock_pool_cls.return_value

        _, kwargs = mock_pool_cls.call_args
        assert kwargs["max_size"] == 2
        assert "row_factory" in kwargs["kwargs"]
        mock_pool_cls.return_value.wait.assert_called_once()
        mock_pool_cls.return_value.close.assert_called_once()
        assert db._pool is None

    @patch("forecastwatch.registry.db.ConnectionPool")
    def test_connect_is_idempotent(self, mock_pool_cls: MagicMock) -> None:
        db = Database(DSN)
        db.connect()
        db.connect()
        assert mock_pool_cls.call_count == 1
