from __future__ import annotations
import asyncio
import time
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Optional, Dict, Any, Union
from .config_manager import ExtractConfig, ExtractConfigManager
from .core import SqlExtractor
from .db_connectors import DatabaseConnector, get_connector
from .logger import ExtractLogger
from .models import RunState, RunSummary


@dataclass(frozen=True)
class RunHandle:
    """Start marker returned by RunController.start"""
    started: float
    started_at: datetime


class RunController:
    """
    Drives one extraction run: timing, connection, scheduling and the final outcome.

    State moves IDLE -> CONNECTING -> SCHEDULING -> ALL_SUCCEEDED or
    ONE_OR_MORE_FAILED and always ends in TERMINATED, including when
    connecting fails.
    """

    def __init__(
        self,
        config: ExtractConfig,
        jobs,
        logger: Optional[ExtractLogger] = None,
        connector: Optional[DatabaseConnector] = None
    ) -> None:
        self.config = config
        self.jobs = list(jobs)
        self.logger = logger or ExtractLogger(log_file=config.log_file)
        self.connector = connector
        self.state = RunState.IDLE

    def start(self) -> RunHandle:
        """Record the start of the run"""
        self.logger.run_start(self.config.database, self.config.server)
        return RunHandle(started=time.monotonic(), started_at=datetime.now())

    def finish(self, handle: RunHandle) -> float:
        """Log and return the elapsed seconds since ``handle`` was taken"""
        duration = time.monotonic() - handle.started
        self.logger.run_end(duration)
        return duration

    async def execute(self) -> RunSummary:
        """
        Connect, export every job and report the outcome

        Returns:
            RunSummary with per-job outcomes, duration and outcome state

        Raises:
            ConnectionError: When the database cannot be reached
        """
        handle = self.start()
        summary = None
        try:
            self.state = RunState.CONNECTING
            connector = self.connector or get_connector(self.config)
            extractor = SqlExtractor(
                connector,
                max_concurrent=self.config.max_concurrent,
                batch_size=self.config.batch_size,
                encoding=self.config.encoding,
                fail_fast=self.config.fail_fast,
                logger=self.logger
            )
            async with extractor:
                self.state = RunState.SCHEDULING
                summary = await extractor.run(self.jobs, delimiter=self.config.delimiter)

            summary.state = RunState.ALL_SUCCEEDED if summary.succeeded else RunState.ONE_OR_MORE_FAILED
            if summary.first_error is not None:
                failed = len(summary.failures)
                self.logger.error(f"{failed} of {len(self.jobs)} extractions failed; first error: {summary.first_error}")
            return summary
        finally:
            duration = self.finish(handle)
            if summary is not None:
                summary.started_at = handle.started_at
                summary.duration = duration
            self.state = RunState.TERMINATED


class ExtractExecutor:
    """
    Synchronous wrapper for RunController to run an extraction without async syntax
    """
    def __init__(
        self,
        config_file: Union[str, Path] = "config.yaml",
        query_parameters: Optional[Dict[str, Any]] = None,
        max_concurrent: Optional[int] = None,
        fail_fast: Optional[bool] = None,
        log_file: Optional[Union[str, Path]] = None,
        connector: Optional[DatabaseConnector] = None
    ):
        """
        Initialize ExtractExecutor

        Args:
            config_file: Path to the YAML extraction config file
            query_parameters: Optional {name} substitutions for queries and output paths
            max_concurrent: Optional override of the configured concurrency limit
            fail_fast: Optional override of the configured failure policy
            log_file: Optional override of the configured log file
            connector: Optional prebuilt connector instead of one built from config
        """
        self.config_manager = ExtractConfigManager(config_file)
        config = self.config_manager.config
        if max_concurrent is not None:
            config.max_concurrent = max_concurrent
        if fail_fast is not None:
            config.fail_fast = fail_fast
        if log_file is not None:
            config.log_file = str(log_file)
        self.config = config
        self.query_parameters = query_parameters
        self.connector = connector

    def execute(self, raise_on_failure: bool = True) -> RunSummary:
        """
        Run every configured extraction

        Args:
            raise_on_failure: Raise the first export error instead of returning a failed summary

        Returns:
            RunSummary of the run
        """
        jobs = self.config_manager.get_jobs(self.query_parameters)
        controller = RunController(
            self.config,
            jobs,
            logger=ExtractLogger(log_file=self.config.log_file),
            connector=self.connector
        )
        try:
            summary = asyncio.run(controller.execute())
        finally:
            controller.logger.close()

        if raise_on_failure and summary.first_error is not None:
            raise summary.first_error
        return summary
