"""Tests for connector construction and the DB-API cursor adapter."""

import pytest

from sqlextract.config_manager import ExtractConfigManager
from sqlextract.db_connectors import (
    OracleConnector,
    PostgresConnector,
    ResultCursor,
    SqlServerConnector,
    ThreadedCursor,
    get_connector,
)
from sqlextract.export_errors import ConnectionError as DBConnectionError

from .conftest import SqliteConnector


def make_config(**overrides):
    document = {
        "server": "dbhost",
        "database": "warehouse",
        "queries": ["SELECT 1"],
        "outfiles": ["out.csv"],
    }
    document.update(overrides)
    return ExtractConfigManager.from_dict(document)


class TestGetConnector:
    def test_sqlserver_is_default(self):
        connector = get_connector(make_config())
        assert isinstance(connector, SqlServerConnector)
        assert connector.host == "dbhost"
        assert connector.database == "warehouse"

    def test_oracle(self):
        connector = get_connector(make_config(driver="oracle", max_concurrent=4))
        assert isinstance(connector, OracleConnector)
        assert connector.pool_size == 4
        assert connector.port == 1521

    def test_postgres(self):
        connector = get_connector(make_config(driver="postgresql", port=6543, user="etl"))
        assert isinstance(connector, PostgresConnector)
        assert connector.port == 6543
        assert connector.user == "etl"
        assert connector.pool_size == 10

    def test_explicit_pool_size(self):
        connector = get_connector(make_config(driver="postgresql"), pool_size=3)
        assert connector.pool_size == 3


class TestSqlServerConnectionString:
    def test_trusted_connection(self):
        connector = SqlServerConnector("sqlhost01", "sales")
        assert connector.connection_string() == (
            "DRIVER={ODBC Driver 17 for SQL Server};SERVER=sqlhost01;DATABASE=sales;Trusted_Connection=yes;"
        )

    def test_sql_login_and_port(self):
        connector = SqlServerConnector(
            "sqlhost01", "sales", port=14330, user="etl", password="pw",
            odbc_driver="ODBC Driver 18 for SQL Server"
        )
        assert connector.connection_string() == (
            "DRIVER={ODBC Driver 18 for SQL Server};SERVER=sqlhost01,14330;DATABASE=sales;UID=etl;PWD=pw;"
        )


class TestOracleDsn:
    def test_dsn_uses_sid(self):
        connector = OracleConnector("orahost", "ORCL", port=1522)
        assert connector.dsn() == (
            "(DESCRIPTION=(ADDRESS=(PROTOCOL=TCP)(HOST=orahost)(PORT=1522))(CONNECT_DATA=(SID=ORCL)))"
        )


class DescribedCursor:
    description = [("id", None), ("name", None)]

    def __init__(self, rows):
        self.rows = list(rows)

    def fetchmany(self, size):
        batch, self.rows = self.rows[:size], self.rows[size:]
        return batch


@pytest.mark.asyncio
class TestThreadedCursor:
    async def test_columns_and_fetch(self):
        async def run_blocking(func, *args):
            return func(*args)

        cursor = ThreadedCursor(DescribedCursor([(1, "a"), (2, "b"), (3, "c")]), run_blocking)

        assert cursor.columns == ["id", "name"]
        assert await cursor.fetch(2) == [(1, "a"), (2, "b")]
        assert await cursor.fetch(2) == [(3, "c")]
        assert await cursor.fetch(2) == []

    async def test_no_description_means_no_columns(self):
        class NoResult:
            description = None

        cursor = ThreadedCursor(NoResult(), None)
        assert cursor.columns == []

    async def test_cursors_do_not_share_columns(self):
        class NoResult:
            description = None

        first = ThreadedCursor(NoResult(), None)
        second = ThreadedCursor(NoResult(), None)
        first.columns.append("leaked")

        assert second.columns == []
        assert not hasattr(ResultCursor, "columns")


@pytest.mark.asyncio
class TestBlockingConnector:
    async def test_open_cursor_releases_connection(self, sqlite_db):
        connector = SqliteConnector(sqlite_db)
        await connector.connect()

        async with connector.open_cursor("SELECT customer FROM orders ORDER BY order_id") as cursor:
            assert cursor.columns == ["customer"]
            assert await cursor.fetch(10) == [("Alice",), ("Bob",), ("Carol, Inc.",)]

        await connector.close()
        assert connector.acquired == connector.released_connections == 2

    async def test_connect_failure_is_connection_error(self, tmp_path):
        connector = SqliteConnector(tmp_path / "missing_dir" / "db.sqlite")

        with pytest.raises(DBConnectionError) as exc_info:
            await connector.connect()

        assert exc_info.value.host == "localhost"
        assert "SQLite" in str(exc_info.value)

    async def test_sqlserver_unreachable(self):
        connector = SqlServerConnector("unreachable.invalid", "sales", odbc_driver="No Such Driver")

        with pytest.raises(DBConnectionError) as exc_info:
            await connector.connect()

        assert "unreachable.invalid" in str(exc_info.value)
