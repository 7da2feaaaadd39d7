"""Charge engine - payment charge and refund reconciliation service."""

__version__ = "0.1.0"
