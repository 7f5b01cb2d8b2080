"""Reproducible-build comparison and verdict engine."""

__version__ = "0.4.0"
