"""Bulk generation job queue."""

__version__ = "0.1.0"
