"""Quota Pool Engine."""

__version__ = "1.0.0"
