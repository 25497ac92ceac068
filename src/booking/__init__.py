"""Availability and reservation lifecycle engine for trailer rentals."""

__version__ = "0.1.0"
