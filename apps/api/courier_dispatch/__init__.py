"""Courier dispatch, order lifecycle and settlement service."""

__version__ = "0.1.0"
