# tests/conftest.py
import logging
from pathlib import Path

import pytest

from cwl_loader.common.logger import ROOT_LOGGER_NAME
from cwl_loader.settings import AppSettings
from tests.helpers import ENDPOINT, FIXTURES_DIR


@pytest.fixture
def settings(tmp_path) -> AppSettings:
    """Settings built from explicit values only, never from the developer's .env."""
    return AppSettings(
        _env_file=None,
        APP_ENV="prod",
        OPENSEARCH_ENDPOINT=ENDPOINT,
        AWS_REGION="us-east-1",
        AWS_ACCESS_KEY_ID="AKIDEXAMPLE",
        AWS_SECRET_ACCESS_KEY="wJalrXUtnFEMI/K7MDENG+bPxRfiCYEXAMPLEKEY",
        AWS_SESSION_TOKEN="session-token",
        REQUEST_TIMEOUT=5,
        LOG_LEVEL="DEBUG",
        DATABASE_FILE=str(tmp_path / "database.json"),
        LAMBDA_REGEX_PATTERN="^orders-",
        VERSIONS_KEEP=5,
        VERSIONS_RETAIN=2,
        DELETE_DELAY_SECONDS=0,
    )


@pytest.fixture(scope="module")
def sample_export() -> Path:
    """One header line and two data lines for domain 'acme'."""
    path = FIXTURES_DIR / "sample_export.csv"
    if not path.exists():
        pytest.fail(f"Sample export not found at: {path}")
    return path


@pytest.fixture(autouse=True)
def reset_package_logger():
    """Drops handlers installed by configure_logging so they never outlive a test's captured stdout."""
    yield
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    logger.setLevel(logging.NOTSET)
