"""Test suite for the IDS debt pipeline.

This package contains tests for the pipeline including:
- Unit tests for individual modules
- Integration tests running a full ingestion against stubbed API responses
"""

__version__ = "0.1.0"
