from __future__ import annotations
import asyncio
import pandas as pd
import time
from contextlib import AsyncExitStack
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from pathlib import Path
from typing import Any, List, Optional, Sequence, TextIO, Union
from .config_manager import check_unique_outputs, validate_delimiter
from .db_connectors import DatabaseConnector
from .export_errors import (
    ConfigurationError,
    ExportCancelled,
    ExportError,
    FileCreateError,
    FlushError,
    QueryError,
    RowProcessingError,
    SchemaError,
    WriteError,
)
from .logger import ExtractLogger
from .models import ExtractionJob, JobOutcome, JobStatus, RunSummary
from .serializer import serialize_row


def write_records(
    handle: TextIO,
    records: Sequence[Sequence[str]],
    columns: Sequence[str],
    delimiter: str,
    header: bool = False
) -> None:
    """
    Write delimited records to an open text handle.

    Args:
        handle: Output file opened with newline=""
        records: Serialized rows, each as wide as ``columns``
        columns: Column names of the result set
        delimiter: Single field separator character
        header: Write the column names instead of records
    """
    frame = pd.DataFrame(list(records), columns=list(columns), dtype=object)
    frame.to_csv(handle, sep=delimiter, index=False, header=header, lineterminator="\n")


class SqlExtractor:
    """
    Bounded-concurrency SQL extraction manager.

    Owns one shared database connector and a thread pool, and exports the
    result set of each query to its own delimited text file. At most
    ``max_concurrent`` exports are active at any instant.

    Example:
        async with SqlExtractor(connector, max_concurrent=10) as extractor:
            summary = await extractor.run(
                [ExtractionJob("SELECT a, b FROM t", "out/t.csv")],
                delimiter="|"
            )
    """

    def __init__(
        self,
        db_connector: DatabaseConnector,
        max_concurrent: int = 10,
        batch_size: int = 1000,
        encoding: str = "utf-8",
        fail_fast: bool = True,
        logger: Optional[ExtractLogger] = None,
        thread_pool: Optional[ThreadPoolExecutor] = None
    ) -> None:
        """
        Initialize the SqlExtractor instance.

        Args:
            db_connector: Connector shared by every export of the run
            max_concurrent: Maximum number of concurrently active exports
            batch_size: Rows fetched and written per batch
            encoding: Output file encoding
            fail_fast: Stop the run at the first failed export
            logger: Logger for run progress
            thread_pool: Optional custom thread pool for blocking driver and file calls
        """
        if max_concurrent < 1:
            raise ConfigurationError("max_concurrent must be greater than 0", config_key="max_concurrent")
        if batch_size < 1:
            raise ConfigurationError("batch_size must be greater than 0", config_key="batch_size")

        self.db_connector = db_connector
        self.max_concurrent = max_concurrent
        self.batch_size = batch_size
        self.encoding = encoding
        self.fail_fast = fail_fast
        self.logger = logger or ExtractLogger(name="sqlextract.extractor", console_output=False)
        self._owns_thread_pool = thread_pool is None
        self.thread_pool = thread_pool or ThreadPoolExecutor(
            max_workers=max_concurrent,
            thread_name_prefix="sqlextract_"
        )

    async def __aenter__(self) -> "SqlExtractor":
        """Connect the shared connector"""
        try:
            await self.db_connector.connect(self.thread_pool)
        except BaseException:
            if self._owns_thread_pool:
                self.thread_pool.shutdown(wait=False)
            raise
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Close the connector and release the thread pool"""
        try:
            await self.db_connector.close()
        finally:
            if self._owns_thread_pool:
                self.thread_pool.shutdown(wait=False)

    async def _run_blocking(self, func, *args) -> Any:
        return await asyncio.get_running_loop().run_in_executor(self.thread_pool, func, *args)

    async def export_query(
        self,
        query: str,
        output_file: Union[str, Path],
        delimiter: str = ",",
        cancel_event: Optional[asyncio.Event] = None
    ) -> int:
        """
        Execute one query and stream its result set to a delimited file.

        The file is truncated or created first, then the header and every row
        are written in cursor order. A failure part way through leaves the
        partial file on disk.

        Args:
            query: SQL query string to execute
            output_file: Path of the file to create or overwrite
            delimiter: Single field separator character
            cancel_event: Stops the export at the next batch boundary once set

        Returns:
            Number of data rows written
        """
        delimiter = validate_delimiter(delimiter)
        output_path = Path(output_file)
        rows_written = 0

        async with AsyncExitStack() as stack:
            try:
                output_path.parent.mkdir(parents=True, exist_ok=True)
                handle = stack.enter_context(
                    open(output_path, "w", newline="", encoding=self.encoding)
                )
            except OSError as e:
                raise FileCreateError(f"Could not create file {output_path}: {e}", path=str(output_path)) from e

            try:
                cursor = await stack.enter_async_context(self.db_connector.open_cursor(query))
            except ExportError:
                raise
            except Exception as e:
                raise QueryError(f"Unable to execute the provided query '{query}': {e}", query=query) from e

            columns = list(cursor.columns or [])
            if not columns:
                raise SchemaError(
                    f"Columns could not be collected from the result of query '{query}'",
                    query=query
                )

            try:
                await self._run_blocking(write_records, handle, [], columns, delimiter, True)
            except Exception as e:
                raise WriteError(
                    f"Column names could not be written to {output_path}: {e}",
                    path=str(output_path)
                ) from e

            while True:
                if cancel_event is not None and cancel_event.is_set():
                    raise ExportCancelled(
                        f"Export to {output_path} cancelled after {rows_written} rows",
                        path=str(output_path)
                    )
                try:
                    rows = await cursor.fetch(self.batch_size)
                    if not rows:
                        break
                    records = self._serialize_batch(rows, columns, rows_written)
                    await self._run_blocking(write_records, handle, records, columns, delimiter)
                except Exception as e:
                    raise RowProcessingError(
                        f"Export to {output_path} failed after {rows_written} rows: {e}",
                        path=str(output_path),
                        rows_written=rows_written
                    ) from e
                rows_written += len(records)

            try:
                await self._run_blocking(handle.flush)
            except OSError as e:
                raise FlushError(
                    f"Following error occurred while finalizing {output_path}: {e}",
                    path=str(output_path)
                ) from e

        return rows_written

    @staticmethod
    def _serialize_batch(rows: Sequence[Sequence[Any]], columns: List[str], offset: int) -> List[List[str]]:
        records = []
        for position, row in enumerate(rows, offset + 1):
            record = serialize_row(row)
            if len(record) != len(columns):
                raise ValueError(
                    f"row {position} has {len(record)} fields but the header has {len(columns)}"
                )
            records.append(record)
        return records

    async def run(self, jobs: Sequence[ExtractionJob], delimiter: str = ",") -> RunSummary:
        """
        Export every job, with at most ``max_concurrent`` exports active.

        Jobs are admitted in order; admission waits for a free slot. With
        ``fail_fast`` the first failure stops admission and cancels in-flight
        exports at their next batch. The call returns only after every
        launched export has settled.

        Args:
            jobs: Query/output pairs to export
            delimiter: Field separator used for every output

        Returns:
            RunSummary with one outcome per job, in job order

        Raises:
            ConfigurationError: When the delimiter is invalid or two jobs share an output file
        """
        delimiter = validate_delimiter(delimiter)
        check_unique_outputs(list(jobs))

        summary = RunSummary(started_at=datetime.now())
        gate = asyncio.Semaphore(self.max_concurrent)
        cancel_event = asyncio.Event()
        failures: List[ExportError] = []
        outcomes: List[Optional[JobOutcome]] = [None] * len(jobs)
        tasks = []

        for index, job in enumerate(jobs):
            await gate.acquire()
            if cancel_event.is_set():
                gate.release()
                break
            tasks.append(asyncio.create_task(
                self._export_with_gate(index, job, delimiter, gate, cancel_event, failures, outcomes),
                name=f"export:{job.output_file}"
            ))

        results = await asyncio.gather(*tasks, return_exceptions=True)
        for result in results:
            if isinstance(result, BaseException):
                raise result

        for index, job in enumerate(jobs):
            if outcomes[index] is None:
                self.logger.warning(f"Skipped {job.output_file}: run stopped after an earlier failure")
                outcomes[index] = JobOutcome(job=job, status=JobStatus.SKIPPED)

        summary.outcomes = list(outcomes)
        summary.first_error = failures[0] if failures else None
        return summary

    async def _export_with_gate(
        self,
        index: int,
        job: ExtractionJob,
        delimiter: str,
        gate: asyncio.Semaphore,
        cancel_event: asyncio.Event,
        failures: List[ExportError],
        outcomes: List[Optional[JobOutcome]]
    ) -> None:
        start_time = time.time()
        try:
            try:
                rows = await self.export_query(job.query, job.output_file, delimiter, cancel_event)
            finally:
                # The slot covers the export itself, not the bookkeeping below
                gate.release()
        except ExportCancelled as e:
            self.logger.warning(str(e))
            outcomes[index] = JobOutcome(job=job, status=JobStatus.CANCELLED, error=e)
        except ExportError as e:
            failures.append(e)
            if self.fail_fast:
                cancel_event.set()
            self.logger.export_error(job.output_file, e)
            outcomes[index] = JobOutcome(
                job=job,
                status=JobStatus.FAILED,
                rows_written=getattr(e, "rows_written", 0),
                error=e
            )
        else:
            self.logger.export_end(job.output_file, rows, time.time() - start_time)
            outcomes[index] = JobOutcome(job=job, status=JobStatus.SUCCEEDED, rows_written=rows)
