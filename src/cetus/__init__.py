"""Cetus: bootstrap and process supervision for the cetus MySQL proxy."""

__version__ = "2.3.0"
