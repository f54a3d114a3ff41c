import codecs
import os
import yaml
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Dict, Any, Optional, Union

from .export_errors import ConfigurationError
from .models import ExtractionJob

SUPPORTED_DRIVERS = {"sqlserver", "oracle", "postgresql"}


@dataclass
class ExtractConfig:
    """Validated extraction settings loaded from a YAML document"""
    server: str
    database: str
    queries: List[str]
    outfiles: List[str]
    delimiter: str = ","
    driver: str = "sqlserver"
    port: Optional[int] = None
    user: Optional[str] = None
    password: Optional[str] = None
    odbc_driver: str = "ODBC Driver 17 for SQL Server"
    max_concurrent: int = 10
    batch_size: int = 1000
    fail_fast: bool = True
    encoding: str = "utf-8"
    log_file: Optional[str] = None
    params: Dict[str, Any] = field(default_factory=dict)


def substitute_parameters(text: str, parameters: Optional[Dict[str, Any]]) -> str:
    """Replace ``{name}`` placeholders; unknown placeholders are left untouched"""
    if not parameters:
        return text
    for key, value in parameters.items():
        text = text.replace(f"{{{key}}}", str(value))
    return text


def validate_delimiter(delimiter: Any) -> str:
    """Return ``delimiter`` if it can separate fields, else raise ConfigurationError"""
    if not isinstance(delimiter, str) or len(delimiter) != 1 or delimiter in ('"', "\r", "\n"):
        raise ConfigurationError(
            f"Delimiter must be a single character other than a quote or line break, got {delimiter!r}",
            config_key="delimiter",
            config_value=delimiter
        )
    return delimiter


def check_unique_outputs(jobs: List[ExtractionJob]) -> None:
    """Reject jobs whose output files resolve to the same path"""
    seen: Dict[Path, str] = {}
    duplicates = []
    for job in jobs:
        resolved = Path(job.output_file).resolve()
        if resolved in seen:
            duplicates.append(f"{seen[resolved]} and {job.output_file}")
        else:
            seen[resolved] = job.output_file
    if duplicates:
        raise ConfigurationError(
            f"Output files must be unique: {'; '.join(duplicates)}",
            config_key="outfiles",
            config_value=duplicates
        )


class ExtractConfigManager:
    """
    Extraction configuration manager for loading and validating YAML config files
    """

    def __init__(self, config_file: Union[str, Path] = "config.yaml"):
        """
        Initialize the configuration manager

        Args:
            config_file: Path to YAML configuration file, defaults to config.yaml

        Raises:
            ConfigurationError: When the file is missing, unreadable or invalid
        """
        self.config_file = Path(config_file)
        if not self.config_file.exists():
            raise ConfigurationError(f"Configuration file not found: {config_file}")

        try:
            raw = yaml.safe_load(self.config_file.read_text(encoding="utf-8"))
        except (OSError, yaml.YAMLError) as e:
            raise ConfigurationError(f"Could not read configuration file {config_file}: {e}") from e

        self.config = self.from_dict(raw)

    @classmethod
    def from_dict(cls, raw: Any) -> ExtractConfig:
        """
        Validate a parsed configuration document

        Args:
            raw: Mapping produced by the YAML parser

        Returns:
            ExtractConfig with defaults applied and environment variables expanded
        """
        if not isinstance(raw, dict):
            raise ConfigurationError("Configuration must be a mapping of settings")

        for key in ("server", "database"):
            value = raw.get(key)
            if not isinstance(value, str) or not value.strip():
                raise ConfigurationError(f"Missing required setting '{key}'", config_key=key, config_value=value)

        queries = cls._string_list(raw, "queries")
        outfiles = cls._string_list(raw, "outfiles")
        if len(queries) != len(outfiles):
            raise ConfigurationError(
                f"'queries' has {len(queries)} entries but 'outfiles' has {len(outfiles)}; "
                "each query needs exactly one output file",
                config_key="outfiles",
                config_value=outfiles
            )
        delimiter = validate_delimiter(raw.get("delimiter", ","))

        driver = str(raw.get("driver", "sqlserver")).lower()
        if driver not in SUPPORTED_DRIVERS:
            raise ConfigurationError(
                f"Unsupported database driver: {driver}. Supported: {', '.join(sorted(SUPPORTED_DRIVERS))}",
                config_key="driver",
                config_value=driver
            )

        params = raw.get("params") or {}
        if not isinstance(params, dict):
            raise ConfigurationError("'params' must be a mapping", config_key="params", config_value=params)

        encoding = raw.get("encoding", "utf-8")
        try:
            codecs.lookup(encoding)
        except (LookupError, TypeError) as e:
            raise ConfigurationError(f"Unknown output encoding: {encoding}", config_key="encoding", config_value=encoding) from e

        fail_fast = raw.get("fail_fast", True)
        if not isinstance(fail_fast, bool):
            raise ConfigurationError("'fail_fast' must be true or false", config_key="fail_fast", config_value=fail_fast)

        return ExtractConfig(
            server=raw["server"],
            database=raw["database"],
            queries=queries,
            outfiles=outfiles,
            delimiter=delimiter,
            driver=driver,
            port=cls._positive_int(raw, "port", None),
            user=cls._expanded(raw.get("user")),
            password=cls._expanded(raw.get("password")),
            odbc_driver=raw.get("odbc_driver", ExtractConfig.odbc_driver),
            max_concurrent=cls._positive_int(raw, "max_concurrent", 10),
            batch_size=cls._positive_int(raw, "batch_size", 1000),
            fail_fast=fail_fast,
            encoding=encoding,
            log_file=raw.get("log_file"),
            params=params
        )

    @staticmethod
    def _string_list(raw: Dict[str, Any], key: str) -> List[str]:
        value = raw.get(key)
        if not isinstance(value, list) or not value:
            raise ConfigurationError(f"'{key}' must be a non-empty list", config_key=key, config_value=value)
        if not all(isinstance(item, str) and item.strip() for item in value):
            raise ConfigurationError(f"Every entry in '{key}' must be a non-empty string", config_key=key, config_value=value)
        return list(value)

    @staticmethod
    def _positive_int(raw: Dict[str, Any], key: str, default: Optional[int]) -> Optional[int]:
        value = raw.get(key, default)
        if value is None:
            return None
        if isinstance(value, bool) or not isinstance(value, int) or value < 1:
            raise ConfigurationError(f"'{key}' must be an integer greater than 0", config_key=key, config_value=value)
        return value

    @staticmethod
    def _expanded(value: Optional[str]) -> Optional[str]:
        # ${VAR} and $VAR references keep credentials out of the file
        if value is None:
            return None
        return os.path.expandvars(str(value))

    def get_jobs(self, parameters: Optional[Dict[str, Any]] = None) -> List[ExtractionJob]:
        """
        Pair queries with output files

        Args:
            parameters: Optional runtime parameters, overriding config params

        Returns:
            List of ExtractionJob in configuration order

        Raises:
            ConfigurationError: When two output paths resolve to the same file
        """
        merged = dict(self.config.params)
        merged.update(parameters or {})
        jobs = [
            ExtractionJob(
                query=substitute_parameters(query, merged),
                output_file=substitute_parameters(output_file, merged)
            )
            for query, output_file in zip(self.config.queries, self.config.outfiles)
        ]
        check_unique_outputs(jobs)
        return jobs
