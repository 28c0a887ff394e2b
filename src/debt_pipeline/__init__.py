"""Pipeline package for International Debt Statistics.

This package fetches bilateral external debt series from the World Bank
API, reshapes them into tabular form and writes them to CSV together with
the metadata lookups.
"""

import os

from debt_pipeline.logging_config import create_logger

__version__ = "0.1.0"

logger = create_logger(__name__)


def init_pipeline_package() -> None:
    """Log package details at debug level."""
    logger.debug("🚀 Initializing IDS Debt Pipeline Package")
    logger.debug("   📦 Modules: api, ingest, persist, upload")

    package_path = os.path.dirname(os.path.abspath(__file__))
    logger.debug(f"   📂 Package Path: {package_path}")


init_pipeline_package()
