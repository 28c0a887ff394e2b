"""API package for the International Debt Statistics endpoints.

Contains the typed response structures and the HTTP client used to
query bulk data and metadata concepts.
"""
