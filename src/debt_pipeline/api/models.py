"""Typed structures for the statistics API and the records built from it.

The API answers with two known JSON shapes: the bulk data endpoint
(``source.data[].variable[]``) and the metadata concept endpoints
(``source[].concept[].variable[]``). Both are parsed into the dataclasses
below, failing fast when the shape does not match.
"""

import json
from dataclasses import dataclass, field
from functools import cached_property
from typing import Any, Dict, List, Optional

from debt_pipeline.exceptions import ParseError, ShapeError

# Dimension concepts every bulk data point must carry
SERIES = "series"
COUNTRY = "country"
COUNTERPART_AREA = "counterpart-area"
TIME = "time"
DIMENSIONS = (SERIES, COUNTRY, COUNTERPART_AREA, TIME)


@dataclass(frozen=True)
class SeriesSpec:
    """A statistical series to pull, identified by a short name and API code."""

    short_name: str
    api_code: str


@dataclass(frozen=True)
class MetadataEntry:
    """One valid value of a concept, e.g. a country code and its name."""

    code: str
    name: str


@dataclass(frozen=True)
class Observation:
    """The value of one series for a debtor, creditor and year."""

    series_short_name: str
    debtor_country_id: str
    debtor_country_name: str
    creditor_id: str
    creditor_name: str
    year: int
    value: float


@dataclass(frozen=True)
class RawApiResponse:
    """HTTP response body and status for a single request."""

    url: str
    status_code: int
    body: str

    def json(self) -> Any:
        try:
            return json.loads(self.body)
        except ValueError as e:
            raise ParseError(f"Malformed JSON from {self.url}: {e}")


@dataclass(frozen=True)
class Variable:
    concept: str
    id: str
    value: Optional[str]


@dataclass
class DataPoint:
    """A bulk data entry.

    The dimension variables are parsed on first access, so entries that are
    dropped for having no value are never shape-checked.
    """

    raw_variables: Any
    value: Any

    @cached_property
    def variables(self) -> Dict[str, Variable]:
        """Dimension variables keyed by lowercase concept.

        :raises ShapeError: If the variable list is malformed, repeats a
            concept or carries a concept other than the four dimensions
        """
        if not isinstance(self.raw_variables, list):
            raise ShapeError(
                f"Data entry has no 'variable' list: {self.raw_variables!r}"
            )

        variables = {}
        for raw in self.raw_variables:
            variable = _parse_variable(raw)
            if variable.concept in variables:
                raise ShapeError(
                    f"Data point repeats the '{variable.concept}' dimension"
                )
            variables[variable.concept] = variable

        unexpected = sorted(set(variables) - set(DIMENSIONS))
        if unexpected:
            raise ShapeError(
                f"Data point has unexpected dimensions: {', '.join(unexpected)}"
            )
        return variables

    def dimension(self, concept: str) -> Variable:
        try:
            return self.variables[concept]
        except KeyError:
            raise ShapeError(
                f"Data point is missing the '{concept}' dimension "
                f"(found: {', '.join(sorted(self.variables)) or 'none'})"
            )


@dataclass
class BulkDataPage:
    data: List[DataPoint]
    last_updated: Optional[str] = None
    page: int = 1
    pages: int = 1


@dataclass
class MetadataPage:
    entries: List[MetadataEntry] = field(default_factory=list)
    page: int = 1
    pages: int = 1


def page_numbers(payload: Dict[str, Any]) -> tuple:
    """Read ``page``/``pages``; the API sends them as numbers or strings."""
    try:
        page = int(payload.get("page") or 1)
        pages = int(payload.get("pages") or 1)
    except (TypeError, ValueError) as e:
        raise ParseError(f"Invalid pagination fields: {e}")
    return page, pages


def _source_blocks(payload: Any) -> List[Dict[str, Any]]:
    if not isinstance(payload, dict):
        raise ParseError(
            f"Expected a JSON object at the top level, got {type(payload).__name__}"
        )
    if "source" not in payload:
        # Errors come back as [{"message": [...]}] or {"message": ...}
        raise ParseError(f"Response has no 'source' block: {str(payload)[:200]}")

    source = payload["source"]
    blocks = source if isinstance(source, list) else [source]
    if not all(isinstance(block, dict) for block in blocks):
        raise ParseError("Unexpected 'source' block shape")
    return blocks


def _parse_variable(raw: Any) -> Variable:
    if not isinstance(raw, dict) or "concept" not in raw or "id" not in raw:
        raise ShapeError(f"Malformed dimension variable: {raw!r}")
    value = raw.get("value")
    return Variable(
        concept=str(raw["concept"]).strip().lower(),
        id=str(raw["id"]),
        value=None if value is None else str(value),
    )


def parse_bulk_page(payload: Any) -> BulkDataPage:
    """Parse one page of the bulk data endpoint.

    :param payload: Decoded JSON body
    :return: BulkDataPage with one DataPoint per entry
    :raises ParseError: If the body is not a bulk data response
    """
    source = _source_blocks(payload)[0]
    raw_data = source.get("data")
    if not isinstance(raw_data, list):
        raise ParseError("Response has no 'source.data' array")

    data = []
    for entry in raw_data:
        if not isinstance(entry, dict):
            raise ParseError(f"Unexpected data entry: {entry!r}")
        data.append(
            DataPoint(raw_variables=entry.get("variable"), value=entry.get("value"))
        )

    page, pages = page_numbers(payload)
    last_updated = payload.get("lastupdated") or source.get("lastupdated")
    return BulkDataPage(data=data, last_updated=last_updated, page=page, pages=pages)


def parse_metadata_page(payload: Any) -> MetadataPage:
    """Parse one page of a metadata concept endpoint into code/name entries."""
    entries = []
    for block in _source_blocks(payload):
        concepts = block.get("concept")
        if not isinstance(concepts, list):
            raise ParseError("Metadata response has no 'source.concept' array")
        for concept in concepts:
            if not isinstance(concept, dict):
                raise ParseError(f"Unexpected concept entry: {concept!r}")
            variables = concept.get("variable")
            if variables is None and isinstance(concept.get("value"), list):
                variables = concept["value"]
            if not isinstance(variables, list):
                raise ParseError(
                    f"Concept {concept.get('id')!r} has no variable list"
                )
            for raw in variables:
                if not isinstance(raw, dict) or "id" not in raw:
                    raise ParseError(f"Malformed metadata entry: {raw!r}")
                entries.append(
                    MetadataEntry(code=str(raw["id"]), name=str(raw.get("value") or ""))
                )

    page, pages = page_numbers(payload)
    return MetadataPage(entries=entries, page=page, pages=pages)
