"""
Run-level data classes: jobs, per-job outcomes and the run summary.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional

from .export_errors import ExportError


class RunState(str, Enum):
    """Lifecycle of one extraction run"""
    IDLE = "idle"
    CONNECTING = "connecting"
    SCHEDULING = "scheduling"
    ALL_SUCCEEDED = "all_succeeded"
    ONE_OR_MORE_FAILED = "one_or_more_failed"
    TERMINATED = "terminated"


class JobStatus(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class ExtractionJob:
    """One query paired with the file its results are written to"""
    query: str
    output_file: str


@dataclass
class JobOutcome:
    job: ExtractionJob
    status: JobStatus
    rows_written: int = 0
    error: Optional[ExportError] = None


@dataclass
class RunSummary:
    """
    Result of one scheduler run.

    ``first_error`` is the error of the job that failed first in time, which
    is not necessarily the first job in configuration order.
    """
    outcomes: List[JobOutcome] = field(default_factory=list)
    first_error: Optional[ExportError] = None
    started_at: Optional[datetime] = None
    duration: Optional[float] = None
    state: RunState = RunState.IDLE

    @property
    def succeeded(self) -> bool:
        return all(outcome.status is JobStatus.SUCCEEDED for outcome in self.outcomes)

    @property
    def failures(self) -> List[JobOutcome]:
        return [outcome for outcome in self.outcomes if outcome.status is JobStatus.FAILED]

    @property
    def total_rows(self) -> int:
        return sum(outcome.rows_written for outcome in self.outcomes)

    def outcome_for(self, output_file: str) -> Optional[JobOutcome]:
        for outcome in self.outcomes:
            if outcome.job.output_file == output_file:
                return outcome
        return None
