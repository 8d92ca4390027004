"""Hemnet listing photo ingestion and email notification lambdas."""

__version__ = "0.1.0"
