from __future__ import annotations
import asyncio
import asyncpg
import oracledb
from concurrent.futures import ThreadPoolExecutor
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Callable, List, Optional, Sequence
from .config_manager import ExtractConfig
from .export_errors import ConfigurationError, ConnectionError as DBConnectionError


class ResultCursor:
    """Forward-only cursor over the rows of one query"""

    columns: List[str]

    async def fetch(self, size: int) -> List[Sequence[Any]]:
        """Return up to ``size`` rows; an empty list means the result is exhausted"""
        raise NotImplementedError


class ThreadedCursor(ResultCursor):
    """DB-API cursor whose fetches run in the connector's thread pool"""

    def __init__(self, cursor: Any, run_blocking: Callable[..., Any]) -> None:
        self._cursor = cursor
        self._run_blocking = run_blocking
        self.columns = [desc[0] for desc in cursor.description] if cursor.description else []

    async def fetch(self, size: int) -> List[Sequence[Any]]:
        return list(await self._run_blocking(self._cursor.fetchmany, size))


class AsyncpgCursor(ResultCursor):
    """Server-side asyncpg cursor"""

    def __init__(self, cursor: Optional[asyncpg.cursor.Cursor], columns: List[str]) -> None:
        self._cursor = cursor
        self.columns = columns

    async def fetch(self, size: int) -> List[Sequence[Any]]:
        if self._cursor is None:
            return []
        return list(await self._cursor.fetch(size))


class DatabaseConnector:
    """Base class for database connectors"""

    driver_name = "database"

    def __init__(self, host: str, database: str, port: Optional[int] = None) -> None:
        self.host = host
        self.database = database
        self.port = port
        self.thread_pool: Optional[ThreadPoolExecutor] = None

    async def connect(self, thread_pool: Optional[ThreadPoolExecutor] = None) -> None:
        """Establish the shared connection or pool"""
        raise NotImplementedError

    def open_cursor(self, query: str) -> Any:
        """Async context manager executing ``query`` and yielding a ResultCursor"""
        raise NotImplementedError

    async def close(self) -> None:
        """Release the shared connection or pool"""
        raise NotImplementedError

    async def _run_blocking(self, func: Callable[..., Any], *args: Any) -> Any:
        return await asyncio.get_running_loop().run_in_executor(self.thread_pool, func, *args)

    def _connection_error(self, action: str, error: Exception) -> DBConnectionError:
        location = f"{self.host}:{self.port}" if self.port else self.host
        return DBConnectionError(
            f"Could not {action} {self.driver_name} database '{self.database}' on {location}: {error}",
            host=self.host,
            port=self.port
        )


class BlockingConnector(DatabaseConnector):
    """Connector for DB-API drivers whose calls block the calling thread"""

    async def connect(self, thread_pool: Optional[ThreadPoolExecutor] = None) -> None:
        self.thread_pool = thread_pool
        try:
            await self._run_blocking(self._connect)
        except Exception as e:
            raise self._connection_error("connect to", e) from e

    @asynccontextmanager
    async def open_cursor(self, query: str) -> AsyncIterator[ResultCursor]:
        try:
            conn = await self._run_blocking(self._acquire)
        except Exception as e:
            raise self._connection_error("acquire a connection to", e) from e

        try:
            cursor = conn.cursor()
            try:
                await self._run_blocking(cursor.execute, query)
                yield ThreadedCursor(cursor, self._run_blocking)
            finally:
                await self._run_blocking(self._close_quietly, cursor)
        finally:
            await self._run_blocking(self._release, conn)

    async def close(self) -> None:
        await self._run_blocking(self._disconnect)

    def _connect(self) -> None:
        raise NotImplementedError

    def _acquire(self) -> Any:
        raise NotImplementedError

    def _release(self, conn: Any) -> None:
        self._close_quietly(conn)

    def _disconnect(self) -> None:
        pass

    @staticmethod
    def _close_quietly(resource: Any) -> None:
        try:
            resource.close()
        except Exception:
            pass


class SqlServerConnector(BlockingConnector):
    """SQL Server connector using pyodbc with ODBC connection pooling"""

    driver_name = "SQL Server"

    def __init__(
        self,
        host: str,
        database: str,
        port: Optional[int] = None,
        user: Optional[str] = None,
        password: Optional[str] = None,
        odbc_driver: str = "ODBC Driver 17 for SQL Server"
    ) -> None:
        super().__init__(host, database, port)
        self.user = user
        self.password = password
        self.odbc_driver = odbc_driver

    def connection_string(self) -> str:
        """Build the ODBC connection string, using Windows authentication when no user is set"""
        server = f"{self.host},{self.port}" if self.port else self.host
        parts = [f"DRIVER={{{self.odbc_driver}}}", f"SERVER={server}", f"DATABASE={self.database}"]
        if self.user:
            parts.extend([f"UID={self.user}", f"PWD={self.password or ''}"])
        else:
            parts.append("Trusted_Connection=yes")
        return ";".join(parts) + ";"

    def _connect(self) -> None:
        # Open and return one connection to the ODBC pool to prove the server is reachable
        self._release(self._acquire())

    def _acquire(self) -> Any:
        import pyodbc

        return pyodbc.connect(self.connection_string(), autocommit=True)


class OracleConnector(BlockingConnector):
    """Oracle connector backed by an oracledb session pool"""

    driver_name = "Oracle"

    def __init__(
        self,
        host: str,
        database: str,
        port: Optional[int] = None,
        user: Optional[str] = None,
        password: Optional[str] = None,
        pool_size: int = 10
    ) -> None:
        super().__init__(host, database, port or 1521)
        self.user = user
        self.password = password
        self.pool_size = pool_size
        self.pool = None

    def dsn(self) -> str:
        return f"(DESCRIPTION=(ADDRESS=(PROTOCOL=TCP)(HOST={self.host})(PORT={self.port}))(CONNECT_DATA=(SID={self.database})))"

    def _connect(self) -> None:
        # CLOB/BLOB columns are fetched as str/bytes rather than LOB locators
        oracledb.defaults.fetch_lobs = False
        self.pool = oracledb.create_pool(
            user=self.user,
            password=self.password,
            dsn=self.dsn(),
            min=1,
            max=self.pool_size,
            increment=1
        )

    def _acquire(self) -> Any:
        return self.pool.acquire()

    def _release(self, conn: Any) -> None:
        self.pool.release(conn)

    def _disconnect(self) -> None:
        if self.pool is not None:
            self.pool.close(force=True)
            self.pool = None


class PostgresConnector(DatabaseConnector):
    """PostgreSQL connector backed by an asyncpg pool"""

    driver_name = "PostgreSQL"

    def __init__(
        self,
        host: str,
        database: str,
        port: Optional[int] = None,
        user: Optional[str] = None,
        password: Optional[str] = None,
        pool_size: int = 10
    ) -> None:
        super().__init__(host, database, port or 5432)
        self.user = user
        self.password = password
        self.pool_size = pool_size
        self.pool = None

    async def connect(self, thread_pool: Optional[ThreadPoolExecutor] = None) -> None:
        """Initialize connection pool"""
        self.thread_pool = thread_pool
        try:
            self.pool = await asyncpg.create_pool(
                host=self.host,
                port=self.port,
                user=self.user,
                password=self.password,
                database=self.database,
                min_size=1,
                max_size=self.pool_size
            )
        except Exception as e:
            raise self._connection_error("create a connection pool for", e) from e

    @asynccontextmanager
    async def open_cursor(self, query: str) -> AsyncIterator[ResultCursor]:
        try:
            conn = await self.pool.acquire()
        except Exception as e:
            raise self._connection_error("acquire a connection to", e) from e

        try:
            # Server-side cursors only live inside a transaction
            async with conn.transaction(readonly=True):
                statement = await conn.prepare(query)
                columns = [attribute.name for attribute in statement.get_attributes()]
                cursor = await statement.cursor() if columns else None
                yield AsyncpgCursor(cursor, columns)
        finally:
            await self.pool.release(conn)

    async def close(self) -> None:
        if self.pool is None:
            return
        try:
            async with asyncio.timeout(60):
                await self.pool.close()
        except asyncio.TimeoutError:
            self.pool.terminate()
        self.pool = None


def get_connector(config: ExtractConfig, pool_size: Optional[int] = None) -> DatabaseConnector:
    """
    Create database connector from extraction configuration.

    Args:
        config: Validated extraction configuration
        pool_size: Connections to pool, defaults to the concurrency limit
    """
    pool_size = pool_size or config.max_concurrent

    if config.driver == "sqlserver":
        return SqlServerConnector(
            host=config.server,
            database=config.database,
            port=config.port,
            user=config.user,
            password=config.password,
            odbc_driver=config.odbc_driver
        )

    elif config.driver == "oracle":
        return OracleConnector(
            host=config.server,
            database=config.database,
            port=config.port,
            user=config.user,
            password=config.password,
            pool_size=pool_size
        )

    elif config.driver == "postgresql":
        return PostgresConnector(
            host=config.server,
            database=config.database,
            port=config.port,
            user=config.user,
            password=config.password,
            pool_size=pool_size
        )

    else:
        raise ConfigurationError(f"Unsupported database driver: {config.driver}", config_key="driver")
