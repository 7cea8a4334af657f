"""Mediathek catalog sync and query service"""

__version__ = "0.1.0"
