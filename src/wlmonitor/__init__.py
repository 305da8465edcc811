"""Wiener Linien departure monitor widgets."""

__version__ = "0.3.0"
