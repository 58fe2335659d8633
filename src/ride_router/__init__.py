"""Rider route planner: roster ingestion, tour construction and interactive route editing."""

__version__ = "0.1.0"
