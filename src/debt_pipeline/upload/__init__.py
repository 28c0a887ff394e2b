"""Upload package for publishing pipeline outputs.

This module pushes the CSV files written by a pipeline run to the
S3 landing area when S3 upload is enabled.
"""
