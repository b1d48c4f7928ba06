# cwl_loader/opensearch/load_logs.py
"""
Loads a CloudWatch Logs export file into OpenSearch, one bulk request per line.

Lines are pulled from a generator and handled strictly in file order; the next
line is not read until the current request has settled, so at most one request
is ever in flight and memory stays flat regardless of the file size.
A line that fails at any stage is logged and dropped; nothing is retried.
"""
import argparse
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Iterator, Optional, Tuple

import requests
from dotenv import load_dotenv

from cwl_loader.common.logger import configure_logging, get_logger
from cwl_loader.opensearch.bulk_client import BulkClient, normalize_host
from cwl_loader.opensearch.models import LoadStats
from cwl_loader.opensearch.signer import SigningError, build_signed_request, parse_endpoint
from cwl_loader.opensearch.transformer import TransformError, is_data_line, transform
from cwl_loader.settings import AppSettings, ConfigurationError, get_settings

logger = get_logger(__name__)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def iter_lines(path: Path) -> Iterator[Tuple[int, str]]:
    """Yields (line_number, line) pairs, 1-based, without the line terminator."""
    with open(path, "r", encoding="utf-8") as f:
        for line_number, line in enumerate(f, start=1):
            yield line_number, line.rstrip("\r\n")


class LoadLogs:
    """
    Drives the export file through transform -> sign -> post -> log.
    The counters in `stats` are owned by this object and updated only from `run`.
    """

    def __init__(self, settings: AppSettings, client: Optional[BulkClient] = None, clock: Clock = utc_now):
        self.settings = settings
        self.host = normalize_host(settings.opensearch_endpoint)
        self.credentials = settings.credentials()
        self.client = client or BulkClient(settings)
        self.clock = clock
        self.stats = LoadStats()

    def process_line(self, line_number: int, line: str) -> None:
        """Handles one line end to end. Never raises; every failure is logged and counted."""
        self.stats.lines_read += 1

        if not is_data_line(line):
            logger.debug(f"Line {line_number} - not data, skipped")
            self.stats.skipped += 1
            return

        logger.info(f"Line {line_number} - begin process")
        try:
            bulk = transform(line, self.settings.app_env)
        except TransformError as e:
            logger.warning(f"Line {line_number} - transform error: {e}")
            self.stats.transform_errors += 1
            return
        except Exception as e:
            logger.exception(f"Line {line_number} - unexpected transform error: {e}")
            self.stats.transform_errors += 1
            return

        if bulk is None:
            logger.warning(f"Line {line_number} - transform error: no bulk body produced")
            self.stats.transform_errors += 1
            return

        try:
            request = build_signed_request(
                self.credentials, self.host, bulk.body, self.clock(), default_region=self.settings.aws_region
            )
            logger.info(f"Line {line_number} - sending POST to index {bulk.index_name}")
            self.stats.posted += 1
            result = self.client.post(request)
        except SigningError as e:
            logger.error(f"Line {line_number} - cannot sign request: {e}")
            self.stats.failed += 1
            return
        except requests.exceptions.RequestException as e:
            logger.error(f"Line {line_number} - error on POST: {e}")
            self.stats.transport_errors += 1
            return
        except Exception as e:
            logger.exception(f"Line {line_number} - error on POST: {e}")
            self.stats.transport_errors += 1
            return

        logger.info(f"Line {line_number} - result: {result.status_code}")
        if result.ok:
            self.stats.succeeded += 1
        else:
            self.stats.failed += 1
        if result.status_code != 200 or result.error is not None or result.failed_items:
            logger.warning(f"Line {line_number} - response: {result.to_dict()}")

    def run(self, path: Path) -> LoadStats:
        """Processes every line of `path` and returns the run's counters."""
        logger.info(f"Begin script: loading {path} into {self.host}")
        for line_number, line in iter_lines(path):
            self.process_line(line_number, line)
        logger.info(f"End script: {self.stats.to_dict()}")
        return self.stats


def main(argv: Optional[list] = None) -> int:
    load_dotenv()
    settings = get_settings()
    configure_logging(settings.log_level, json_output=settings.is_production)

    parser = argparse.ArgumentParser(description="Load a CloudWatch Logs export into OpenSearch.")
    parser.add_argument("file", nargs="?", default=settings.logs_file, help="Export file (default: LOGS_FILE)")
    args = parser.parse_args(argv)

    try:
        missing = settings.missing_for_load()
        if missing:
            raise ConfigurationError(f"Missing required environment variables: {', '.join(missing)}")
        try:
            parse_endpoint(normalize_host(settings.opensearch_endpoint))
        except SigningError as e:
            raise ConfigurationError(str(e)) from e
        path = Path(args.file)
        if not path.is_file():
            raise ConfigurationError(f"Input file not found: {path}")
    except ConfigurationError as e:
        logger.error(f"FATAL: {e}")
        return 2

    loader = LoadLogs(settings)
    try:
        loader.run(path)
    finally:
        loader.client.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
