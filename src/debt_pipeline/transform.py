"""Reshape bulk API responses into observation tables.

This module turns the nested ``source.data[].variable[]`` structure of the
bulk data endpoint into one row per series, debtor, creditor and year, and
reads the API's last-updated date for a series.
"""

import math
import re
from dataclasses import astuple
from datetime import date, datetime
from typing import Iterable, List, Sequence, Union

import pandas as pd

from debt_pipeline.api.models import (
    COUNTERPART_AREA,
    COUNTRY,
    DIMENSIONS,
    TIME,
    DataPoint,
    Observation,
    RawApiResponse,
    Variable,
    parse_bulk_page,
)
from debt_pipeline.exceptions import ParseError, ShapeError
from debt_pipeline.logging_config import create_logger

logger = create_logger(__name__)

OBSERVATION_COLUMNS = [
    "series_short_name",
    "debtor_country_id",
    "debtor_country_name",
    "creditor_id",
    "creditor_name",
    "year",
    "value",
]
KEY_COLUMNS = [
    "series_short_name",
    "debtor_country_id",
    "debtor_country_name",
    "creditor_id",
    "creditor_name",
]
# Grain of the dataset: one value per series, debtor, creditor and year
GRAIN_COLUMNS = ["series_short_name", "debtor_country_id", "creditor_id", "year"]
SORT_COLUMNS = ["year", "series_short_name", "debtor_country_name", "creditor_name"]

_YEAR = re.compile(r"\d{4}")

Responses = Union[RawApiResponse, Sequence[RawApiResponse]]


def _as_list(responses: Responses) -> List[RawApiResponse]:
    if isinstance(responses, RawApiResponse):
        return [responses]
    return list(responses)


def _parse_year(variable: Variable) -> int:
    """Read the year from the time dimension (``"2020"`` or ``"YR2020"``)."""
    if variable.value and _YEAR.fullmatch(variable.value.strip()):
        return int(variable.value.strip())

    code = variable.id.strip()
    if code.upper().startswith("YR"):
        code = code[2:]
    if _YEAR.fullmatch(code):
        return int(code)

    raise ShapeError(
        f"Time dimension is not a 4-digit year: id={variable.id!r}, value={variable.value!r}"
    )


def _parse_value(raw) -> float:
    try:
        value = float(raw)
    except (TypeError, ValueError):
        raise ParseError(f"Observation value is not numeric: {raw!r}")
    if not math.isfinite(value):
        raise ParseError(f"Observation value is not a finite number: {raw!r}")
    return value


def _is_missing(raw) -> bool:
    return raw is None or (isinstance(raw, str) and not raw.strip())


def to_observation(point: DataPoint, series_short_name: str) -> Observation:
    """Map one data point onto the observation shape.

    :raises ShapeError: If the dimensions are not exactly the four concepts
    """
    for concept in DIMENSIONS:
        point.dimension(concept)

    country = point.dimension(COUNTRY)
    creditor = point.dimension(COUNTERPART_AREA)
    return Observation(
        series_short_name=series_short_name,
        debtor_country_id=country.id,
        debtor_country_name=country.value or country.id,
        creditor_id=creditor.id,
        creditor_name=creditor.value or creditor.id,
        year=_parse_year(point.dimension(TIME)),
        value=_parse_value(point.value),
    )


def observations_to_frame(observations: Iterable[Observation]) -> pd.DataFrame:
    """Build a long-format table from observations."""
    frame = pd.DataFrame(
        [astuple(observation) for observation in observations],
        columns=OBSERVATION_COLUMNS,
    )
    return frame.astype({"year": "int64", "value": "float64"})


def empty_dataset() -> pd.DataFrame:
    return observations_to_frame([])


def sort_dataset(dataset: pd.DataFrame) -> pd.DataFrame:
    """Sort by year, series, debtor name and creditor name."""
    return dataset.sort_values(SORT_COLUMNS, kind="mergesort").reset_index(drop=True)


def flatten(responses: Responses, series_short_name: str) -> pd.DataFrame:
    """Flatten the bulk data response(s) of one series into observations.

    Entries without a value are dropped. An entry lacking one of the four
    dimensions fails the whole series.

    :param responses: One response or the pages of a paginated response
    :param series_short_name: Short name to stamp on every row
    :return: Long-format DataFrame with OBSERVATION_COLUMNS
    :raises ParseError: If a body is not a bulk data response
    :raises ShapeError: If a data point has an unexpected shape
    """
    observations = []
    dropped = 0
    for response in _as_list(responses):
        page = parse_bulk_page(response.json())
        for point in page.data:
            if _is_missing(point.value):
                dropped += 1
                continue
            observations.append(to_observation(point, series_short_name))

    logger.info(
        f"Flattened {series_short_name}: {len(observations)} observations "
        f"({dropped} empty values dropped)"
    )
    return observations_to_frame(observations)


def extract_last_updated(responses: Responses) -> date:
    """Read the API's last-updated date for a series.

    :raises ParseError: If ``lastupdated`` is absent or not ``YYYY-MM-DD``
    """
    response = _as_list(responses)[0]
    payload = response.json()
    if not isinstance(payload, dict):
        raise ParseError("Expected a JSON object with a 'lastupdated' field")

    raw = payload.get("lastupdated")
    source = payload.get("source")
    if not raw and isinstance(source, dict):
        raw = source.get("lastupdated")
    if not raw:
        raise ParseError(f"Response from {response.url} has no 'lastupdated' field")

    try:
        return datetime.strptime(str(raw), "%Y-%m-%d").date()
    except ValueError:
        raise ParseError(f"'lastupdated' is not a YYYY-MM-DD date: {raw!r}")
