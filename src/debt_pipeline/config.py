"""Configuration module for project settings and environment variables.

This module manages the API endpoints, page sizes, output locations and
run policies for the debt pipeline. Values are read from the environment
(and from a local ``.env`` file, when present) at import time.
"""

import os

from dotenv import load_dotenv

from debt_pipeline.api.models import SeriesSpec
from debt_pipeline.exceptions import ConfigurationError
from debt_pipeline.logging_config import create_logger

load_dotenv()

logger = create_logger(__name__)

# get the local root directory
ROOT_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", ".."))

# International Debt Statistics is source 6 of the World Bank API
API_BASE_URL = os.getenv(
    "API_BASE_URL", "https://api.worldbank.org/v2/sources/6"
).rstrip("/")

METADATA_CONCEPTS = ("country", "series", "counterpart-area", "time")

# Must exceed countries x counterpart areas x years for a single series;
# anything beyond one page is fetched through pagination.
METADATA_PAGE_SIZE = int(os.getenv("METADATA_PAGE_SIZE", "1000"))
BULK_PAGE_SIZE = int(os.getenv("BULK_PAGE_SIZE", "100000"))

# HTTP behaviour
REQUEST_TIMEOUT = float(os.getenv("REQUEST_TIMEOUT", "60"))
HTTP_MAX_ATTEMPTS = int(os.getenv("HTTP_MAX_ATTEMPTS", "1"))
MAX_WORKERS = int(os.getenv("MAX_WORKERS", "4"))

# Output locations
OUTPUT_DIR = os.getenv("OUTPUT_DIR", os.path.join(ROOT_DIR, "data"))
OUTPUT_FORMAT = os.getenv("OUTPUT_FORMAT", "wide").lower()
FETCH_METADATA = os.getenv("FETCH_METADATA", "true").lower() == "true"

# Run policies
FAILURE_POLICY = os.getenv("FAILURE_POLICY", "abort").lower()
DUPLICATE_POLICY = os.getenv("DUPLICATE_POLICY", "error").lower()

OUTPUT_FORMATS = ("long", "wide")
FAILURE_POLICIES = ("abort", "partial")
DUPLICATE_POLICIES = ("error", "last")

# Environment configurations
TARGET = os.getenv("TARGET", "dev").lower()
USERNAME = os.getenv("USERNAME", "default").lower()

# Construct S3 environment path
S3_ENV = TARGET if TARGET == "prod" else f"dev/{TARGET}_{USERNAME}"

ENABLE_S3_UPLOAD = os.getenv("ENABLE_S3_UPLOAD", "false").lower() == "true"
S3_BUCKET_NAME = os.getenv("S3_BUCKET_NAME", "ids-debt-data")
LANDING_AREA_FOLDER = f"{S3_ENV}/landing/ids"

# Bilateral series pulled by a default run: public and publicly guaranteed
# debt stocks and flows, broken down by creditor.
DEFAULT_SERIES = (
    SeriesSpec("debt_stocks", "DT.DOD.DPPG.CD"),
    SeriesSpec("disbursements", "DT.DIS.DPPG.CD"),
    SeriesSpec("principal_repayments", "DT.AMT.DPPG.CD"),
    SeriesSpec("interest_payments", "DT.INT.DPPG.CD"),
)


def validate_config(
    output_format=None,
    failure_policy=None,
    duplicate_policy=None,
    output_dir=None,
):
    """
    Validate critical configuration parameters.

    Arguments override the module-level settings, so that values coming
    from the command line are checked the same way as the environment.

    :raises ConfigurationError: If configuration is invalid
    """
    output_dir = output_dir or OUTPUT_DIR

    enumerations = [
        ("OUTPUT_FORMAT", output_format or OUTPUT_FORMAT, OUTPUT_FORMATS),
        ("FAILURE_POLICY", failure_policy or FAILURE_POLICY, FAILURE_POLICIES),
        ("DUPLICATE_POLICY", duplicate_policy or DUPLICATE_POLICY, DUPLICATE_POLICIES),
    ]
    for setting, value, allowed in enumerations:
        if value not in allowed:
            raise ConfigurationError(
                f"Invalid {setting}: {value!r} (expected one of {', '.join(allowed)})"
            )

    positive_settings = [
        ("METADATA_PAGE_SIZE", METADATA_PAGE_SIZE),
        ("BULK_PAGE_SIZE", BULK_PAGE_SIZE),
        ("REQUEST_TIMEOUT", REQUEST_TIMEOUT),
        ("HTTP_MAX_ATTEMPTS", HTTP_MAX_ATTEMPTS),
        ("MAX_WORKERS", MAX_WORKERS),
    ]
    for setting, value in positive_settings:
        if value <= 0:
            raise ConfigurationError(f"{setting} must be positive, got {value}")

    if not API_BASE_URL:
        raise ConfigurationError("API_BASE_URL is not configured")

    try:
        os.makedirs(output_dir, exist_ok=True)
    except OSError as e:
        raise ConfigurationError(
            f"Unable to create output directory at {output_dir}: {e}"
        )

    if ENABLE_S3_UPLOAD and not S3_BUCKET_NAME:
        raise ConfigurationError(
            "S3 upload is enabled but no bucket name is specified"
        )

    logger.info("Configuration validation successful")
