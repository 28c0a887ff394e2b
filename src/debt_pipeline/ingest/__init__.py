"""Ingest package for the International Debt Statistics pipeline.

This module sequences the fetch, flatten and consolidate steps over the
configured series and persists the result.
"""
