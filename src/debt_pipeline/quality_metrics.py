"""Data quality checks for the consolidated observation table.

This module detects duplicate observations at the dataset grain, applies
the configured conflict policy, and computes summary metrics for the run
log. Queries run in DuckDB directly over the pandas DataFrame.
"""

from dataclasses import asdict, dataclass
from typing import Dict, Optional

import duckdb
import pandas as pd

from debt_pipeline.exceptions import DuplicateObservationError
from debt_pipeline.logging_config import create_logger
from debt_pipeline.transform import GRAIN_COLUMNS

logger = create_logger(__name__)

DUPLICATE_COLUMNS = GRAIN_COLUMNS + ["occurrences"]


@dataclass
class DatasetSummary:
    """Summary metrics for a long-format dataset."""

    total_records: int
    total_series: int
    total_debtors: int
    total_creditors: int
    year_range_min: Optional[int]
    year_range_max: Optional[int]

    def to_dict(self) -> Dict:
        return asdict(self)


class QualityMetrics:
    """Calculate quality metrics for observation tables."""

    def __init__(self, connection: Optional[duckdb.DuckDBPyConnection] = None):
        """Initialize quality metrics calculator.

        Args:
            connection: DuckDB connection. If None, creates an in-memory one.
        """
        self.con = connection if connection else duckdb.connect()

    def close(self) -> None:
        self.con.close()

    def _query(self, dataset: pd.DataFrame, sql: str) -> pd.DataFrame:
        self.con.register("observations", dataset)
        try:
            return self.con.execute(sql).df()
        finally:
            self.con.unregister("observations")

    def find_duplicate_keys(self, dataset: pd.DataFrame) -> pd.DataFrame:
        """List grain tuples that occur more than once.

        Args:
            dataset: Long-format observation table

        Returns:
            DataFrame with the grain columns and an ``occurrences`` count
        """
        if dataset.empty:
            return pd.DataFrame(columns=DUPLICATE_COLUMNS)

        grain = ", ".join(GRAIN_COLUMNS)
        return self._query(
            dataset,
            f"""
            SELECT {grain}, COUNT(*) AS occurrences
            FROM observations
            GROUP BY {grain}
            HAVING COUNT(*) > 1
            ORDER BY {grain}
            """,
        )

    def resolve_duplicates(self, dataset: pd.DataFrame, policy: str) -> pd.DataFrame:
        """Apply the duplicate policy to a long-format dataset.

        Args:
            dataset: Long-format observation table
            policy: ``error`` to reject duplicates, ``last`` to keep the
                last occurrence of each grain tuple

        Raises:
            DuplicateObservationError: If policy is ``error`` and duplicates exist
        """
        duplicates = self.find_duplicate_keys(dataset)
        if duplicates.empty:
            return dataset

        if policy == "error":
            sample = duplicates.head(5).to_dict("records")
            raise DuplicateObservationError(
                f"{len(duplicates)} series/debtor/creditor/year keys have more "
                f"than one value, e.g. {sample}"
            )

        if policy == "last":
            logger.warning(
                f"Keeping the last value for {len(duplicates)} duplicated keys"
            )
            return dataset.drop_duplicates(GRAIN_COLUMNS, keep="last").reset_index(
                drop=True
            )

        raise ValueError(f"Unknown duplicate policy: {policy!r}")

    def summarize_dataset(self, dataset: pd.DataFrame) -> DatasetSummary:
        """Count rows and distinct dimension values of a dataset."""
        if dataset.empty:
            return DatasetSummary(0, 0, 0, 0, None, None)

        row = self._query(
            dataset,
            """
            SELECT
                COUNT(*) AS total_records,
                COUNT(DISTINCT series_short_name) AS total_series,
                COUNT(DISTINCT debtor_country_id) AS total_debtors,
                COUNT(DISTINCT creditor_id) AS total_creditors,
                MIN(year) AS year_range_min,
                MAX(year) AS year_range_max
            FROM observations
            """,
        ).iloc[0]

        summary = DatasetSummary(
            total_records=int(row["total_records"]),
            total_series=int(row["total_series"]),
            total_debtors=int(row["total_debtors"]),
            total_creditors=int(row["total_creditors"]),
            year_range_min=int(row["year_range_min"]),
            year_range_max=int(row["year_range_max"]),
        )
        logger.info(f"Dataset summary: {summary.to_dict()}")
        return summary
