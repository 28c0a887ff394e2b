"""HTTP client for the International Debt Statistics API.

Builds the query URLs, performs the GET requests (following pagination)
and resolves metadata concepts into code/name lookup tables.
"""

from typing import List, Optional
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import pandas as pd
import requests

import debt_pipeline.config as config
from debt_pipeline.api.models import (
    RawApiResponse,
    page_numbers,
    parse_metadata_page,
)
from debt_pipeline.error_handler import retryable_operation, with_context
from debt_pipeline.exceptions import NetworkError, PipelineBaseError, TransientError
from debt_pipeline.logging_config import create_logger

logger = create_logger(__name__)

METADATA_COLUMNS = ["code", "name"]


def create_session() -> requests.Session:
    """Create an HTTP session that asks the API for JSON."""
    session = requests.Session()
    session.headers.update({"Accept": "application/json"})
    return session


def build_metadata_url(concept: str, per_page: Optional[int] = None) -> str:
    """Build the URL listing every valid value of a concept."""
    per_page = per_page or config.METADATA_PAGE_SIZE
    return f"{config.API_BASE_URL}/{concept}?per_page={per_page}&format=JSON"


def build_bulk_query_url(series_code: str, per_page: Optional[int] = None) -> str:
    """Build the URL for all countries, counterpart areas and years of a series.

    :param series_code: API code of the series, e.g. ``DT.DOD.DPPG.CD``
    :param per_page: Page size (default: BULK_PAGE_SIZE)
    :return: Fully-qualified request URL
    """
    per_page = per_page or config.BULK_PAGE_SIZE
    return (
        f"{config.API_BASE_URL}/country/all/series/{series_code}"
        f"/counterpart-area/all/time/all?per_page={per_page}&format=JSON"
    )


def with_page(url: str, page: int) -> str:
    """Return ``url`` with its ``page`` query parameter set."""
    parts = urlsplit(url)
    query = [(k, v) for k, v in parse_qsl(parts.query) if k != "page"]
    query.append(("page", str(page)))
    return urlunsplit(parts._replace(query=urlencode(query, safe=".")))


def _get(session: requests.Session, url: str, timeout: float) -> RawApiResponse:
    logger.debug(f"GET {url}")
    try:
        response = session.get(url, timeout=timeout)
    except requests.RequestException as e:
        raise NetworkError(f"GET {url} failed: {e}", url=url)

    if not 200 <= response.status_code < 300:
        raise NetworkError(
            f"GET {url} returned HTTP {response.status_code}",
            url=url,
            status_code=response.status_code,
        )

    return RawApiResponse(url=url, status_code=response.status_code, body=response.text)


def fetch(
    url: str,
    session: Optional[requests.Session] = None,
    timeout: Optional[float] = None,
) -> RawApiResponse:
    """Issue a single GET request.

    Non-success status codes and connection failures raise NetworkError.
    Transient failures are retried up to HTTP_MAX_ATTEMPTS times.

    :raises NetworkError: If the request fails or the status is not 2xx
    """
    session = session or create_session()
    timeout = timeout or config.REQUEST_TIMEOUT

    get = retryable_operation(
        max_attempts=config.HTTP_MAX_ATTEMPTS, retry_on=(TransientError,)
    )(_get)
    return get(session, url, timeout)


def fetch_all_pages(
    url: str, session: Optional[requests.Session] = None
) -> List[RawApiResponse]:
    """Fetch ``url`` and every further page the API reports.

    :return: Responses in page order, the first one being ``url`` itself
    """
    session = session or create_session()
    first = fetch(url, session=session)

    payload = first.json()
    pages = page_numbers(payload)[1] if isinstance(payload, dict) else 1

    responses = [first]
    if pages > 1:
        logger.info(f"Response spans {pages} pages, fetching the rest: {url}")
        for page in range(2, pages + 1):
            responses.append(fetch(with_page(url, page), session=session))
    return responses


def fetch_metadata(
    concept: str, session: Optional[requests.Session] = None
) -> pd.DataFrame:
    """Fetch every valid code and name of a metadata concept.

    :param concept: One of ``country``, ``series``, ``counterpart-area``, ``time``
    :param session: Optional HTTP session to reuse
    :return: DataFrame with columns ``code`` and ``name``
    """
    if concept not in config.METADATA_CONCEPTS:
        logger.warning(f"Unrecognized concept {concept!r}, passing it to the API as-is")

    try:
        responses = fetch_all_pages(build_metadata_url(concept), session=session)
        entries = []
        for response in responses:
            entries.extend(parse_metadata_page(response.json()).entries)
    except PipelineBaseError as e:
        raise with_context(e, f"metadata:{concept}") from e

    lookup = pd.DataFrame(
        [(entry.code, entry.name) for entry in entries], columns=METADATA_COLUMNS
    )
    duplicated = lookup["code"].duplicated()
    if duplicated.any():
        logger.warning(
            f"Dropping {int(duplicated.sum())} duplicate codes from concept {concept!r}"
        )
        lookup = lookup[~duplicated].reset_index(drop=True)

    logger.info(f"Resolved {len(lookup)} entries for concept {concept!r}")
    return lookup
