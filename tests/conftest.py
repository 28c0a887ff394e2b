"""Pytest configuration and shared fixtures for the IDS debt pipeline tests.

This module provides fixtures for:
- Stubbed HTTP sessions serving canned API payloads
- Bulk data and metadata payload builders
- Mock AWS S3 services using moto
- Temporary file management
"""

import json
import tempfile
from pathlib import Path
from typing import Any, Callable, Dict, Generator, List, Optional
from unittest.mock import MagicMock

import boto3
import pandas as pd
import pytest
from moto import mock_aws

from debt_pipeline.api.models import RawApiResponse


# ============================================================================
# Payload Builders
# ============================================================================

def data_point(
    series: str = "DT.DOD.DPPG.CD",
    country: str = "USA",
    country_name: str = "United States",
    counterpart: str = "WLD",
    counterpart_name: str = "World",
    year: str = "2020",
    value: Any = "500.0",
) -> Dict[str, Any]:
    """Build one entry of the bulk data endpoint's ``source.data`` array."""
    return {
        "variable": [
            {"concept": "Country", "id": country, "value": country_name},
            {"concept": "Series", "id": series, "value": f"Series {series}"},
            {"concept": "Counterpart-Area", "id": counterpart, "value": counterpart_name},
            {"concept": "Time", "id": f"YR{year}", "value": year},
        ],
        "value": value,
    }


def bulk_payload(
    data: List[Dict[str, Any]],
    lastupdated: Optional[str] = "2022-12-06",
    page: int = 1,
    pages: int = 1,
) -> Dict[str, Any]:
    """Build a bulk data response body."""
    payload = {
        "page": page,
        "pages": pages,
        "per_page": 100000,
        "total": len(data),
        "source": {
            "id": "6",
            "name": "International Debt Statistics",
            "data": data,
        },
    }
    if lastupdated is not None:
        payload["lastupdated"] = lastupdated
    return payload


def metadata_payload(
    concept: str, entries: List[tuple], page: int = 1, pages: int = 1
) -> Dict[str, Any]:
    """Build a metadata concept response body from (code, name) pairs."""
    return {
        "page": page,
        "pages": pages,
        "per_page": "1000",
        "total": str(len(entries)),
        "source": [
            {
                "id": "6",
                "name": "International Debt Statistics",
                "concept": [
                    {
                        "id": concept.title(),
                        "variable": [{"id": code, "value": name} for code, name in entries],
                    }
                ],
            }
        ],
    }


def raw_response(payload: Any, url: str = "https://example.test/bulk") -> RawApiResponse:
    """Wrap a payload as a successful RawApiResponse."""
    return RawApiResponse(url=url, status_code=200, body=json.dumps(payload))


@pytest.fixture
def payloads():
    """Expose the payload builders to tests."""
    return {
        "data_point": data_point,
        "bulk": bulk_payload,
        "metadata": metadata_payload,
        "raw_response": raw_response,
    }


# ============================================================================
# HTTP Session Fixtures
# ============================================================================

def _http_response(status_code: int, payload: Any) -> MagicMock:
    response = MagicMock()
    response.status_code = status_code
    response.text = payload if isinstance(payload, str) else json.dumps(payload)
    return response


@pytest.fixture
def stub_session() -> Callable[[Dict[str, Any]], MagicMock]:
    """Build a mock ``requests.Session`` serving canned payloads.

    Routes map a URL substring to a payload, an ``(status_code, payload)``
    tuple, or an exception instance to raise. The longest matching
    substring wins; unmatched URLs get a 404.
    """

    def make(routes: Dict[str, Any]) -> MagicMock:
        def get(url, timeout=None):
            matches = [key for key in routes if key in url]
            if not matches:
                return _http_response(404, {"message": "not found"})
            route = routes[max(matches, key=len)]
            if isinstance(route, Exception):
                raise route
            if isinstance(route, tuple):
                return _http_response(*route)
            return _http_response(200, route)

        session = MagicMock()
        session.get.side_effect = get
        session.__enter__.return_value = session
        return session

    return make


@pytest.fixture
def series_payloads() -> Dict[str, Dict[str, Any]]:
    """Bulk payloads for two series with overlapping years and one null value."""
    return {
        "DT.DOD.DPPG.CD": bulk_payload(
            [
                data_point("DT.DOD.DPPG.CD", "KEN", "Kenya", "CHN", "China", "2021", "900.5"),
                data_point("DT.DOD.DPPG.CD", "KEN", "Kenya", "WLD", "World", "2020", "1200"),
                data_point("DT.DOD.DPPG.CD", "AGO", "Angola", "CHN", "China", "2020", None),
                data_point("DT.DOD.DPPG.CD", "AGO", "Angola", "CHN", "China", "2021", 42.0),
            ],
            lastupdated="2022-12-06",
        ),
        "DT.INT.DPPG.CD": bulk_payload(
            [
                data_point("DT.INT.DPPG.CD", "KEN", "Kenya", "CHN", "China", "2020", "15.25"),
                data_point("DT.INT.DPPG.CD", "AGO", "Angola", "WLD", "World", "2021", None),
            ],
            lastupdated="2023-01-15",
        ),
    }


@pytest.fixture
def metadata_payloads() -> Dict[str, Dict[str, Any]]:
    """Metadata payloads for the four concepts, keyed by URL fragment."""
    return {
        "/country?": metadata_payload(
            "country", [("AGO", "Angola"), ("KEN", "Kenya")]
        ),
        "/series?": metadata_payload(
            "series",
            [("DT.DOD.DPPG.CD", "External debt stocks"), ("DT.INT.DPPG.CD", "Interest payments")],
        ),
        "/counterpart-area?": metadata_payload(
            "counterpart-area", [("CHN", "China"), ("WLD", "World")]
        ),
        "/time?": metadata_payload("time", [("YR2020", "2020"), ("YR2021", "2021")]),
    }


# ============================================================================
# Environment and Configuration Fixtures
# ============================================================================

@pytest.fixture(scope="session")
def test_env_vars() -> Dict[str, str]:
    """Provide test environment variables."""
    return {
        "TARGET": "dev",
        "USERNAME": "testuser",
        "S3_BUCKET_NAME": "test-ids-debt-data",
        "AWS_ACCESS_KEY_ID": "testing",
        "AWS_SECRET_ACCESS_KEY": "testing",
        "AWS_SECURITY_TOKEN": "testing",
        "AWS_SESSION_TOKEN": "testing",
        "AWS_DEFAULT_REGION": "us-east-1",
    }


@pytest.fixture
def no_retry_delay(monkeypatch):
    """Make retry backoff instantaneous."""
    monkeypatch.setattr("debt_pipeline.error_handler.time.sleep", lambda seconds: None)


# ============================================================================
# AWS S3 Mocking Fixtures
# ============================================================================

@pytest.fixture
def aws_credentials(test_env_vars: Dict[str, str], monkeypatch):
    """Mock AWS credentials for moto."""
    for key, value in test_env_vars.items():
        if key.startswith("AWS_"):
            monkeypatch.setenv(key, value)
    monkeypatch.delenv("AWS_ROLE_ARN", raising=False)


@pytest.fixture
def s3_client(aws_credentials, test_env_vars: Dict[str, str]):
    """Provide a mocked S3 client."""
    with mock_aws():
        yield boto3.client("s3", region_name=test_env_vars["AWS_DEFAULT_REGION"])


@pytest.fixture
def s3_bucket(s3_client, test_env_vars: Dict[str, str]) -> str:
    """Create a test S3 bucket."""
    bucket_name = test_env_vars["S3_BUCKET_NAME"]
    s3_client.create_bucket(Bucket=bucket_name)
    return bucket_name


# ============================================================================
# Test Data Fixtures
# ============================================================================

@pytest.fixture
def sample_long_dataset() -> pd.DataFrame:
    """A small long-format dataset with one value per key and year."""
    return pd.DataFrame(
        {
            "series_short_name": ["debt_stocks", "debt_stocks", "debt_stocks", "interest"],
            "debtor_country_id": ["KEN", "KEN", "AGO", "KEN"],
            "debtor_country_name": ["Kenya", "Kenya", "Angola", "Kenya"],
            "creditor_id": ["CHN", "CHN", "WLD", "CHN"],
            "creditor_name": ["China", "China", "World", "China"],
            "year": [2020, 2021, 2021, 2020],
            "value": [100.5, 200.25, 300.0, 7.5],
        }
    )


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Provide a temporary directory for testing."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)
