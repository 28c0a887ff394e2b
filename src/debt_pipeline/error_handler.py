"""
Error handling utilities for the debt pipeline.

This module provides:
- Retry logic with exponential backoff
- Partial failure collection and reporting
- Error categorization (transient vs permanent)
"""

import copy
import functools
import random
import time
from enum import Enum
from typing import Any, Callable, List, Optional, Tuple, Type

from debt_pipeline.exceptions import NetworkError, TransientError
from debt_pipeline.logging_config import create_logger

logger = create_logger(__name__)


class ErrorCategory(str, Enum):
    """Categories of errors for handling strategy."""
    TRANSIENT = "transient"  # Temporary errors that may succeed on retry
    PERMANENT = "permanent"  # Errors that will not resolve with retry
    UNKNOWN = "unknown"  # Uncategorized errors


class PartialFailureException(Exception):
    """Exception raised when some operations succeed and some fail.

    Attributes:
        failures: List of (item, exception) tuples
        successes: List of successfully processed items
        total_count: Total number of items attempted
    """

    def __init__(
        self,
        failures: List[Tuple[Any, Exception]],
        successes: List[Any],
        message: str = "Partial failure occurred"
    ):
        self.failures = failures
        self.successes = successes
        self.total_count = len(failures) + len(successes)
        self.failure_count = len(failures)
        self.success_count = len(successes)

        failure_summary = "\n".join([
            f"  - {item}: {str(exc)[:100]}"
            for item, exc in failures[:10]
        ])

        if len(failures) > 10:
            failure_summary += f"\n  ... and {len(failures) - 10} more failures"

        super().__init__(
            f"{message}\n"
            f"Successes: {self.success_count}/{self.total_count}\n"
            f"Failures: {self.failure_count}/{self.total_count}\n"
            f"Failed items:\n{failure_summary}"
        )


class PartialFailureCollector:
    """Collects errors during batch processing for partial failure handling.

    Example:
        collector = PartialFailureCollector()
        for spec in series_specs:
            try:
                process(spec)
                collector.add_success(spec.short_name)
            except Exception as e:
                collector.add_failure(spec.short_name, e)

        collector.raise_if_failures("Processing series failed")
    """

    def __init__(self):
        self.failures: List[Tuple[Any, Exception]] = []
        self.successes: List[Any] = []

    def add_failure(self, item: Any, exception: Exception) -> None:
        """Record a failed item."""
        self.failures.append((item, exception))
        logger.warning(f"Item failed: {item} - {str(exception)[:200]}")

    def add_success(self, item: Any) -> None:
        """Record a successful item."""
        self.successes.append(item)

    def has_failures(self) -> bool:
        return len(self.failures) > 0

    def has_successes(self) -> bool:
        return len(self.successes) > 0

    def get_total_count(self) -> int:
        return len(self.failures) + len(self.successes)

    def raise_if_failures(self, message: str = "Operation had failures") -> None:
        """Raise PartialFailureException if any failures occurred.

        Args:
            message: Error message for the exception

        Raises:
            PartialFailureException: If any failures were recorded
        """
        if self.has_failures():
            raise PartialFailureException(
                failures=self.failures,
                successes=self.successes,
                message=message
            )

    def log_summary(self) -> None:
        """Log a summary of successes and failures."""
        total = self.get_total_count()
        if total == 0:
            logger.info("No items processed")
            return

        success_rate = (len(self.successes) / total) * 100
        logger.info(
            f"Batch processing summary: {len(self.successes)}/{total} "
            f"succeeded ({success_rate:.1f}%)"
        )

        if self.has_failures():
            logger.warning(f"Failed items: {len(self.failures)}/{total}")
            for item, exc in self.failures[:5]:
                logger.warning(f"  - {item}: {str(exc)[:100]}")


def with_context(exception: Exception, context: str) -> Exception:
    """Return a copy of ``exception`` whose message is prefixed with ``context``.

    The copy keeps the original type and attributes, so callers can still
    catch and inspect it as before.
    """
    labelled = copy.copy(exception)
    labelled.args = (f"[{context}] {exception}",)
    return labelled


def categorize_error(exception: Exception) -> ErrorCategory:
    """Categorize an error as transient or permanent.

    Args:
        exception: The exception to categorize

    Returns:
        ErrorCategory indicating if error is transient or permanent
    """
    if isinstance(exception, NetworkError) and exception.status_code is not None:
        # Client errors other than throttling will not go away on retry
        if 400 <= exception.status_code < 500 and exception.status_code != 429:
            return ErrorCategory.PERMANENT
        return ErrorCategory.TRANSIENT

    if isinstance(exception, (TransientError, ConnectionError, TimeoutError)):
        return ErrorCategory.TRANSIENT

    if isinstance(exception, (FileNotFoundError, PermissionError)):
        return ErrorCategory.PERMANENT

    return ErrorCategory.UNKNOWN


def retryable_operation(
    max_attempts: int = 3,
    initial_delay: float = 1.0,
    max_delay: float = 60.0,
    exponential_base: float = 2.0,
    jitter: bool = True,
    retry_on: Optional[Tuple[Type[Exception], ...]] = None,
) -> Callable:
    """Decorator for retrying operations with exponential backoff.

    Args:
        max_attempts: Maximum number of attempts (1 disables retrying)
        initial_delay: Initial delay between retries in seconds
        max_delay: Maximum delay between retries in seconds
        exponential_base: Base for exponential backoff calculation
        jitter: Whether to add random jitter to delays
        retry_on: Tuple of exception types to retry on (None = all)

    Returns:
        Decorated function with retry logic

    Example:
        @retryable_operation(max_attempts=5, initial_delay=2.0)
        def download(url):
            ...
    """

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            attempt = 0

            while True:
                attempt += 1

                try:
                    return func(*args, **kwargs)

                except Exception as e:
                    if retry_on and not isinstance(e, retry_on):
                        raise

                    error_category = categorize_error(e)

                    if error_category == ErrorCategory.PERMANENT:
                        logger.error(
                            f"Permanent error in {func.__name__}, "
                            f"not retrying: {e}"
                        )
                        raise

                    if attempt >= max_attempts:
                        if max_attempts > 1:
                            logger.error(
                                f"All {max_attempts} attempts failed for "
                                f"{func.__name__}: {e}"
                            )
                        raise

                    current_delay = min(
                        initial_delay * (exponential_base ** (attempt - 1)),
                        max_delay
                    )

                    if jitter:
                        current_delay *= (0.5 + random.random() * 0.5)

                    logger.warning(
                        f"Attempt {attempt}/{max_attempts} failed for "
                        f"{func.__name__}: {e}. "
                        f"Retrying in {current_delay:.2f}s... "
                        f"(Error category: {error_category.value})"
                    )

                    time.sleep(current_delay)

        return wrapper

    return decorator
