"""
Command line entry point.

    sqlextract --config config.yaml --param dt=2024-01-01

Exits 0 when every extraction succeeded and 1 on any error.
"""
import argparse
import sys
from typing import Dict, List, Optional

from .export_errors import ConfigurationError, ExportError
from .extract_executor import ExtractExecutor


def _parse_parameters(values: List[str]) -> Dict[str, str]:
    parameters = {}
    for item in values:
        key, sep, value = item.partition("=")
        if not sep or not key:
            raise ConfigurationError(f"Parameters must look like KEY=VALUE, got '{item}'", config_key="param")
        parameters[key] = value
    return parameters


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="sqlextract",
        description="Export the results of SQL queries to delimited text files."
    )
    parser.add_argument(
        "--config",
        default="config.yaml",
        help="A YAML file with the configuration for SQL extraction (default: config.yaml)"
    )
    parser.add_argument(
        "--param",
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Replace {KEY} in queries and output paths; may be repeated"
    )
    parser.add_argument(
        "--max-concurrent",
        type=int,
        default=None,
        help="Override the maximum number of concurrent extractions"
    )
    parser.add_argument(
        "--collect-failures",
        action="store_true",
        help="Run every extraction even after one fails, then report all failures"
    )
    parser.add_argument("--log-file", default=None, help="Also write the log to this file")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        if args.max_concurrent is not None and args.max_concurrent < 1:
            raise ConfigurationError("--max-concurrent must be greater than 0", config_key="max_concurrent")
        executor = ExtractExecutor(
            config_file=args.config,
            query_parameters=_parse_parameters(args.param),
            max_concurrent=args.max_concurrent,
            fail_fast=False if args.collect_failures else None,
            log_file=args.log_file
        )
        summary = executor.execute(raise_on_failure=False)
    except ExportError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if summary.first_error is not None:
        print(f"Error: {summary.first_error}", file=sys.stderr)
        if args.collect_failures:
            for outcome in summary.failures:
                print(f"  failed: {outcome.job.output_file}: {outcome.error}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
