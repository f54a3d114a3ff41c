from typing import Optional, Any, Dict


class ExportError(Exception):
    """Base exception for all extraction errors"""
    def __init__(self, message: str, error_code: Optional[str] = None, details: Optional[Dict] = None) -> None:
        """
        Initialize export error with detailed information.

        Args:
            message: Error message describing what went wrong
            error_code: Optional error code from the database driver
            details: Optional dictionary containing additional error details
        """
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        super().__init__(self.message)


class ConfigurationError(ExportError):
    """Raised when the extraction configuration is missing or malformed"""
    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        config_value: Optional[Any] = None,
        *args,
        **kwargs
    ) -> None:
        super().__init__(message, *args, **kwargs)
        self.config_key = config_key
        self.config_value = config_value


class ConnectionError(ExportError):
    """Raised when a database connection cannot be established"""
    def __init__(
        self,
        message: str,
        host: Optional[str] = None,
        port: Optional[int] = None,
        *args,
        **kwargs
    ) -> None:
        super().__init__(message, *args, **kwargs)
        self.host = host
        self.port = port


class FileCreateError(ExportError):
    """Raised when an output file cannot be created or truncated"""
    def __init__(self, message: str, path: Optional[str] = None, *args, **kwargs) -> None:
        super().__init__(message, *args, **kwargs)
        self.path = path


class QueryError(ExportError):
    """Raised when a query fails to execute"""
    def __init__(
        self,
        message: str,
        query: Optional[str] = None,
        *args,
        **kwargs
    ) -> None:
        """
        Initialize query error with query details.

        Args:
            message: Error message describing what went wrong
            query: The SQL query that failed
        """
        super().__init__(message, *args, **kwargs)
        self.query = query


class SchemaError(QueryError):
    """Raised when column names cannot be collected from a query result"""


class WriteError(ExportError):
    """Raised when the header record cannot be written"""
    def __init__(self, message: str, path: Optional[str] = None, *args, **kwargs) -> None:
        super().__init__(message, *args, **kwargs)
        self.path = path


class RowProcessingError(ExportError):
    """Raised when reading or writing a row fails part way through an export"""
    def __init__(
        self,
        message: str,
        path: Optional[str] = None,
        rows_written: int = 0,
        *args,
        **kwargs
    ) -> None:
        """
        Initialize row processing error.

        Args:
            message: Error message describing what went wrong
            path: Output file left partially written
            rows_written: Number of data rows written before the failure
        """
        super().__init__(message, *args, **kwargs)
        self.path = path
        self.rows_written = rows_written


class FlushError(ExportError):
    """Raised when buffered output cannot be flushed to disk"""
    def __init__(self, message: str, path: Optional[str] = None, *args, **kwargs) -> None:
        super().__init__(message, *args, **kwargs)
        self.path = path


class ExportCancelled(ExportError):
    """Raised inside an export that was stopped because another job failed"""
    def __init__(self, message: str, path: Optional[str] = None, *args, **kwargs) -> None:
        super().__init__(message, *args, **kwargs)
        self.path = path
