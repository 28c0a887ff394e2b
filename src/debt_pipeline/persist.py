"""Persistence and layout conversion for the observation tables.

The long layout (one row per year) is the canonical in-memory form; the
wide layout (one column per year) is what gets stored, because it is far
more compact on disk. Both directions are lossless for datasets with one
value per series, debtor, creditor and year.
"""

import os
from datetime import date
from typing import Dict, Iterable, Optional

import pandas as pd

import debt_pipeline.config as config
from debt_pipeline.api.models import SeriesSpec
from debt_pipeline.exceptions import PersistenceError
from debt_pipeline.logging_config import create_logger
from debt_pipeline.quality_metrics import QualityMetrics
from debt_pipeline.transform import (
    KEY_COLUMNS,
    OBSERVATION_COLUMNS,
    empty_dataset,
    sort_dataset,
)
from debt_pipeline.utils import standardize_filename

logger = create_logger(__name__)

DATASET_FILE = "ids_bilateral_{layout}.csv"
LAST_UPDATED_FILE = "last_updated.csv"
LAST_UPDATED_COLUMNS = ["series_short_name", "series_code", "last_updated"]


def dataset_path(output_dir: str, layout: str) -> str:
    return os.path.join(output_dir, DATASET_FILE.format(layout=layout))


def metadata_path(output_dir: str, concept: str) -> str:
    return os.path.join(output_dir, f"{standardize_filename(f'metadata_{concept}')}.csv")


def last_updated_path(output_dir: str) -> str:
    return os.path.join(output_dir, LAST_UPDATED_FILE)


def pivot_wide(
    dataset: pd.DataFrame, duplicate_policy: Optional[str] = None
) -> pd.DataFrame:
    """Pivot a long dataset to one column per year.

    :param dataset: Long-format DataFrame with OBSERVATION_COLUMNS
    :param duplicate_policy: ``error`` or ``last`` (default: DUPLICATE_POLICY)
    :return: DataFrame with KEY_COLUMNS followed by one column per year,
        labelled with the year as a string in ascending order
    :raises DuplicateObservationError: If duplicates exist under ``error``
    """
    if dataset.empty:
        return pd.DataFrame(columns=KEY_COLUMNS)

    metrics = QualityMetrics()
    try:
        dataset = metrics.resolve_duplicates(
            dataset, duplicate_policy or config.DUPLICATE_POLICY
        )
    finally:
        metrics.close()

    wide = (
        dataset.set_index(KEY_COLUMNS + ["year"])["value"]
        .unstack("year")
        .sort_index(axis=1)
    )
    wide.columns = [str(year) for year in wide.columns]
    return wide.reset_index()


def pivot_long(wide: pd.DataFrame) -> pd.DataFrame:
    """Collapse the year columns of a wide dataset back into rows.

    Empty cells are dropped, so ``pivot_long(pivot_wide(d))`` holds the
    same rows as ``d``.
    """
    year_columns = [column for column in wide.columns if column not in KEY_COLUMNS]
    if wide.empty or not year_columns:
        return empty_dataset()

    long = wide.melt(
        id_vars=KEY_COLUMNS,
        value_vars=year_columns,
        var_name="year",
        value_name="value",
    ).dropna(subset=["value"])
    long = long[OBSERVATION_COLUMNS].astype({"year": "int64", "value": "float64"})
    return sort_dataset(long)


def write_csv(table: pd.DataFrame, path: str) -> str:
    """Write a table to ``path`` as CSV, creating the parent directory.

    :raises PersistenceError: If the file cannot be written
    """
    try:
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        table.to_csv(path, index=False)
    except OSError as e:
        raise PersistenceError(f"Failed to write {path}: {e}")

    logger.info(f"Wrote {path} ({len(table)} rows)")
    return path


def read_wide_csv(path: str) -> pd.DataFrame:
    """Read a wide dataset written by write_csv.

    Key columns are read verbatim, so codes such as ``NA`` survive; only
    empty year cells become NaN.
    """
    try:
        header = pd.read_csv(path, nrows=0).columns
        year_columns = [column for column in header if column not in KEY_COLUMNS]
        return pd.read_csv(
            path,
            dtype={column: str for column in KEY_COLUMNS},
            keep_default_na=False,
            na_values={column: [""] for column in year_columns},
        )
    except OSError as e:
        raise PersistenceError(f"Failed to read {path}: {e}")


def last_updated_frame(
    last_updated: Dict[str, date], series_specs: Iterable[SeriesSpec]
) -> pd.DataFrame:
    """Tabulate the last-updated date of each series that was fetched."""
    rows = [
        (spec.short_name, spec.api_code, last_updated[spec.short_name].isoformat())
        for spec in series_specs
        if spec.short_name in last_updated
    ]
    return pd.DataFrame(rows, columns=LAST_UPDATED_COLUMNS)
