"""
Custom exceptions for the debt pipeline.

This module defines a hierarchy of exceptions so that callers can tell
network failures apart from malformed responses and from local I/O problems.
"""


class PipelineBaseError(Exception):
    """
    Base exception for all pipeline-related errors.

    All custom exceptions in the pipeline should inherit from this class.
    """

    pass


class ConfigurationError(PipelineBaseError):
    """
    Raised when there are configuration-related issues.

    This exception is used when:
    - Configuration values are invalid
    - Output directories cannot be created
    """

    pass


class TransientError(PipelineBaseError):
    """
    Raised for transient errors that may succeed on retry.

    These are temporary errors such as:
    - Network timeouts
    - Temporary service unavailability
    """

    pass


class NetworkError(TransientError):
    """
    Raised when an HTTP request to the statistics API fails.

    Covers connection errors, timeouts and non-success status codes.
    """

    def __init__(self, message: str, url: str = None, status_code: int = None):
        super().__init__(message)
        self.url = url
        self.status_code = status_code


class ParseError(PipelineBaseError):
    """
    Raised when a response body cannot be interpreted.

    Covers issues such as:
    - Malformed JSON
    - Missing expected fields (``source``, ``data``, ``lastupdated``)
    - Values that cannot be converted to numbers or dates
    """

    pass


class ShapeError(ParseError):
    """
    Raised when an observation does not carry the expected dimensions.

    Every data point must identify its series, country, counterpart area
    and time period.
    """

    pass


class PersistenceError(PipelineBaseError):
    """Raised when writing or reading an output file fails."""

    pass


class S3OperationError(PipelineBaseError):
    """
    Raised for S3-specific operation errors.

    Covers issues such as:
    - Authentication failures
    - File upload errors
    - Bucket or object access issues
    """

    pass


class IngestError(PipelineBaseError):
    """
    Raised when the ingestion run as a whole fails.

    Wraps the underlying error after it has been logged with context.
    """

    pass


class DuplicateObservationError(PipelineBaseError):
    """
    Raised when the consolidated dataset holds more than one value
    for the same series, debtor, creditor and year.
    """

    pass
