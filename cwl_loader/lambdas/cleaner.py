# cwl_loader/lambdas/cleaner.py
"""
Prunes old published versions of Lambda functions.

Functions whose name matches LAMBDA_REGEX_PATTERN and that have piled up at
least VERSIONS_KEEP numbered versions are cut back to their newest
VERSIONS_RETAIN versions. Progress is cached in a local JSON database so a
long run that gets interrupted does not list everything again.
"""
import re
import sys
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError
from dotenv import load_dotenv

from cwl_loader.common.database import JsonDatabase
from cwl_loader.common.logger import configure_logging, get_logger
from cwl_loader.settings import AppSettings, get_settings

logger = get_logger(__name__)

PAGE_SIZE = 50
LATEST = "$LATEST"

FUNCTIONS_KEY = "lstFunctions"
FETCHED_KEY = "lambdasWithVersions"
DELETE_ERRORS_KEY = "deleteErrors"


def _error_message(e: Exception) -> str:
    if isinstance(e, ClientError):
        return e.response.get('Error', {}).get('Message', str(e))
    return str(e)


@dataclass
class CleanerReport:
    functions: int = 0
    scheduled: int = 0
    deleted: List[str] = field(default_factory=list)
    delete_errors: int = 0


def versions_to_delete(versions: List[int], keep_threshold: int, retain: int) -> List[int]:
    """
    Picks the versions to remove: nothing below the threshold, otherwise
    everything except the `retain` newest ones, oldest first.
    """
    if len(versions) < keep_threshold:
        return []
    ordered = sorted(versions)
    return ordered[:max(len(ordered) - retain, 0)]


class Cleaner:

    def __init__(
        self,
        settings: AppSettings,
        client: Any = None,
        db: Optional[JsonDatabase] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.settings = settings
        self.client = client or boto3.client('lambda', region_name=settings.aws_region or None)
        self.db = db or JsonDatabase(settings.database_file)
        self.sleep = sleep
        self.pattern = re.compile(settings.lambda_regex_pattern)

    def fetch_functions(self) -> List[Dict[str, Any]]:
        """Lists every function in the account/region and keeps the ones matching the pattern."""
        functions = []
        paginator = self.client.get_paginator('list_functions')
        for page in paginator.paginate(PaginationConfig={'PageSize': PAGE_SIZE}):
            for fn in page.get('Functions', []):
                functions.append({"name": fn['FunctionName'], "arn": fn['FunctionArn']})

        logger.info(f"Fetched {len(functions)} functions, filtering by '{self.pattern.pattern}'")
        return [fn for fn in functions if self.pattern.search(fn["name"])]

    def fetch_versions(self, function_name: str) -> List[int]:
        """Returns the numbered versions of a function ($LATEST is not a version we can delete)."""
        versions = []
        paginator = self.client.get_paginator('list_versions_by_function')
        pages = paginator.paginate(FunctionName=function_name, PaginationConfig={'PageSize': PAGE_SIZE})
        for page in pages:
            for version in page.get('Versions', []):
                number = version.get('Version')
                if number and number != LATEST:
                    versions.append(int(number))
        return versions

    def load_functions(self) -> List[Dict[str, Any]]:
        functions = self.db.get_data(FUNCTIONS_KEY, [])
        if functions:
            logger.info("Working with lstFunctions from local db")
            return functions

        logger.info("Fetch lambda list")
        functions = self.fetch_functions()
        logger.info("Save lstFunctions on local db")
        self.db.push(FUNCTIONS_KEY, functions)
        return functions

    def attach_versions(self, functions: List[Dict[str, Any]]) -> None:
        fetched = set(self.db.get_data(FETCHED_KEY, []))
        for fn in functions:
            if fn["name"] in fetched:
                fn.setdefault("versions", [])
                continue
            try:
                logger.info(f"Fetch versions of {fn['name']}")
                fn["versions"] = self.fetch_versions(fn["name"])
                self.db.push(FETCHED_KEY, [fn["name"]], override=False)
            except (ClientError, BotoCoreError) as e:
                logger.error(f"Could not list versions of {fn['name']}: {_error_message(e)}")
                fn["versions"] = []

    def delete_versions(self, functions: List[Dict[str, Any]], report: CleanerReport) -> None:
        for fn in functions:
            for version in fn.get("versionsDelete", []):
                try:
                    self.client.delete_function(FunctionName=fn["name"], Qualifier=str(version))
                    logger.info(f"Deleted: {fn['name']} | {version}")
                    report.deleted.append(f"{fn['name']}:{version}")
                    self.sleep(self.settings.delete_delay_seconds)
                except (ClientError, BotoCoreError) as e:
                    logger.error(f"Delete failed: {fn['name']} | {version}: {_error_message(e)}")
                    report.delete_errors += 1

    def run(self) -> CleanerReport:
        logger.info("Begin script")
        report = CleanerReport()

        functions = self.load_functions()
        report.functions = len(functions)

        logger.info("Fetch lambdas versions")
        self.attach_versions(functions)
        logger.info("Save lstFunctions with versions on local db")
        self.db.push(FUNCTIONS_KEY, functions)

        logger.info("Filter lambdas versions")
        for fn in functions:
            fn["versionsDelete"] = versions_to_delete(
                fn["versions"], self.settings.versions_keep, self.settings.versions_retain
            )
            report.scheduled += len(fn["versionsDelete"])

        logger.info(f"Delete lambdas old versions ({report.scheduled} scheduled)")
        self.delete_versions(functions, report)

        self.db.push(DELETE_ERRORS_KEY, report.delete_errors)
        logger.info(f"Delete Errors: {report.delete_errors}")
        if report.delete_errors > 0:
            # Start from a fresh listing next time
            self.db.delete()

        logger.info("End script")
        return report


def main() -> int:
    load_dotenv()
    settings = get_settings()
    configure_logging(settings.log_level, json_output=settings.is_production)

    if not settings.lambda_regex_pattern:
        logger.error("FATAL: LAMBDA_REGEX_PATTERN is not set; refusing to prune every function.")
        return 2

    Cleaner(settings).run()
    return 0


if __name__ == "__main__":
    sys.exit(main())
