"""
sqlextract - Concurrent SQL to Delimited Text Extraction Tool

Runs a list of SQL queries against one database and streams each result set
to its own delimited text file, with a bounded number of active exports.

Features:
    - Asynchronous, bounded-concurrency extraction
    - Multiple database support (SQL Server, Oracle, PostgreSQL)
    - YAML configuration with runtime parameters
    - Streaming output in batches, any single character delimiter
    - Fail-fast or collect-all failure policy
"""

__version__ = "1.0.0"
__license__ = "MIT"

from .core import SqlExtractor
from .extract_executor import ExtractExecutor, RunController
from .db_connectors import SqlServerConnector, OracleConnector, PostgresConnector
from .export_errors import ExportError, ConfigurationError
from .logger import ExtractLogger
from .models import ExtractionJob, RunSummary

__all__ = [
    "SqlExtractor",
    "ExtractExecutor",
    "RunController",
    "SqlServerConnector",
    "OracleConnector",
    "PostgresConnector",
    "ExportError",
    "ConfigurationError",
    "ExtractLogger",
    "ExtractionJob",
    "RunSummary"
]
