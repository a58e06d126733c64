"""Faceted athlete search: criteria in, ranked pages out."""

__version__ = "0.1.0"
