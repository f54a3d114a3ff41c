import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Union, Optional


class ExtractLogger:
    """Extraction logger for tracking run progress and per-file exports"""

    def __init__(
        self,
        log_file: Optional[Union[str, Path]] = None,
        name: str = "sqlextract",
        log_level: int = logging.INFO,
        max_size: int = 10 * 1024 * 1024,  # 10MB
        backup_count: int = 5,
        console_output: bool = True
    ) -> None:
        """
        Initialize the extraction logger.

        Args:
            log_file: Optional path to log file
            name: Logger name (unique identifier)
            log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
            max_size: Maximum size of each log file in bytes
            backup_count: Number of backup log files to keep
            console_output: Whether to also output logs to console
        """
        self.logger = logging.getLogger(name)
        self.logger.setLevel(log_level)

        # Clear existing handlers to avoid duplicates
        for handler in list(self.logger.handlers):
            self.logger.removeHandler(handler)
            handler.close()

        formatter = logging.Formatter(
            fmt="%(asctime)s - %(levelname)s - [%(name)s] - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S"
        )

        if log_file:
            log_path = Path(log_file)
            log_path.parent.mkdir(parents=True, exist_ok=True)

            file_handler = RotatingFileHandler(
                filename=log_path,
                maxBytes=max_size,
                backupCount=backup_count,
                encoding='utf-8'
            )
            file_handler.setFormatter(formatter)
            self.logger.addHandler(file_handler)

        if console_output:
            console_handler = logging.StreamHandler()
            console_handler.setFormatter(formatter)
            self.logger.addHandler(console_handler)

    def log(
        self,
        message: str,
        level: Union[int, str] = logging.INFO,
        extra: Optional[dict] = None
    ) -> None:
        """
        Log a message with the specified level and extra information.

        Args:
            message: Log message
            level: Log level (can be string or integer constant)
            extra: Additional fields to include in log entry
        """
        if isinstance(level, str):
            level = getattr(logging, level.upper(), logging.INFO)

        self.logger.log(level, message, extra=extra)

    def run_start(self, database: str, server: str) -> None:
        """Log the start of an extraction run"""
        self.info(f"Begin extraction process for {database} on {server}.")

    def run_end(self, duration: float) -> None:
        """Log the completion of an extraction run"""
        self.info(f"Completed extraction process in {duration:.2f} seconds")

    def export_end(self, output_file: Union[str, Path], rows: int, execution_time: float) -> None:
        """Log a finished export"""
        self.info(f"Extraction completed for {output_file} ({rows} rows in {execution_time:.2f} seconds)")

    def export_error(self, output_file: Union[str, Path], error: Exception) -> None:
        """Log a failed export"""
        self.error(f"Extraction failed for {output_file}: {error}")

    def info(self, message: str) -> None:
        """Log an info message"""
        self.log(message, logging.INFO)

    def error(self, message: str) -> None:
        """Log an error message"""
        self.log(message, logging.ERROR)

    def warning(self, message: str) -> None:
        """Log a warning message"""
        self.log(message, logging.WARNING)

    def close(self) -> None:
        """Detach and close every handler"""
        for handler in list(self.logger.handlers):
            self.logger.removeHandler(handler)
            handler.close()
