"""Availarr: catalog availability reconciliation for embed streaming sources."""

__version__ = "1.0.0"
