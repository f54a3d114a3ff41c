"""Shared fixtures: an instrumented in-memory connector and quiet loggers."""

import asyncio
import sqlite3
from contextlib import asynccontextmanager
from pathlib import Path

import pytest
import yaml

from sqlextract.db_connectors import BlockingConnector, DatabaseConnector, ResultCursor
from sqlextract.export_errors import ConnectionError as DBConnectionError
from sqlextract.logger import ExtractLogger


class FakeCursor(ResultCursor):
    """Serves canned rows, optionally failing once ``fail_after`` rows were served."""

    def __init__(self, columns, rows, fail_after=None, delay=0.0):
        self.columns = list(columns)
        self._rows = list(rows)
        self._position = 0
        self._fail_after = fail_after
        self._delay = delay

    async def fetch(self, size):
        await asyncio.sleep(self._delay)
        if self._fail_after is not None and self._position >= self._fail_after:
            raise RuntimeError("connection reset by peer")
        batch = self._rows[self._position:self._position + size]
        self._position += len(batch)
        return batch


class FakeConnector(DatabaseConnector):
    """
    In-memory connector keyed by query text.

    Counts cursors that are open at the same time so tests can check the
    concurrency limit.
    """

    driver_name = "fake"

    def __init__(self, results=None, failing_queries=(), fail_after=None, delay=0.0, connect_error=None):
        super().__init__("fakehost", "fakedb")
        self.results = results or {}
        self.failing_queries = set(failing_queries)
        self.fail_after = fail_after or {}
        self.delay = delay
        self.connect_error = connect_error
        self.connected = False
        self.closed = False
        self.active = 0
        self.max_active = 0
        self.released = []

    async def connect(self, thread_pool=None):
        self.thread_pool = thread_pool
        if self.connect_error:
            raise DBConnectionError(self.connect_error, host=self.host)
        self.connected = True

    @asynccontextmanager
    async def open_cursor(self, query):
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            await asyncio.sleep(self.delay)
            if query in self.failing_queries:
                raise RuntimeError(f"Invalid object name in '{query}'")
            columns, rows = self.results[query]
            yield FakeCursor(columns, rows, self.fail_after.get(query), self.delay)
        finally:
            self.active -= 1
            self.released.append(query)

    async def close(self):
        self.closed = True


class SqliteConnector(BlockingConnector):
    """Blocking DB-API connector over a sqlite file."""

    driver_name = "SQLite"

    def __init__(self, path):
        super().__init__("localhost", str(path))
        self.path = path
        self.acquired = 0
        self.released_connections = 0

    def _connect(self):
        self._release(self._acquire())

    def _acquire(self):
        self.acquired += 1
        return sqlite3.connect(self.path, check_same_thread=False)

    def _release(self, conn):
        self.released_connections += 1
        conn.close()


@pytest.fixture
def quiet_logger():
    logger = ExtractLogger(name="sqlextract.tests", console_output=False)
    yield logger
    logger.close()


@pytest.fixture
def sample_results():
    return {
        "SELECT a,b FROM t": (["a", "b"], [(1, "x"), (2, None), (3, "z")]),
        "SELECT x FROM t2": (["x"], [("alpha",), ("beta",)]),
    }


@pytest.fixture
def sqlite_db(tmp_path):
    db_path = tmp_path / "sample.db"
    conn = sqlite3.connect(db_path)
    conn.execute("CREATE TABLE orders (order_id INTEGER, customer TEXT, amount REAL, note TEXT)")
    conn.executemany(
        "INSERT INTO orders VALUES (?, ?, ?, ?)",
        [(1, "Alice", 100.5, "first"), (2, "Bob", 250.75, None), (3, "Carol, Inc.", 75.25, "bulk")]
    )
    conn.commit()
    conn.close()
    return db_path


@pytest.fixture
def write_config(tmp_path):
    """Write a YAML config to tmp_path and return its path."""

    def _write(**overrides):
        document = {
            "delimiter": ",",
            "server": "sqlhost01",
            "database": "sales",
            "queries": ["SELECT a,b FROM t", "SELECT x FROM t2"],
            "outfiles": [str(tmp_path / "out1.csv"), str(tmp_path / "out2.csv")],
        }
        document.update(overrides)
        path = Path(tmp_path) / "config.yaml"
        path.write_text(yaml.safe_dump(document), encoding="utf-8")
        return path

    return _write
