"""Tracking-plan reconciliation engine for tag-management containers."""

__version__ = "0.4.0"
