"""Viber relay: bot session lifecycle, message dispatch and event fan-out."""

__version__ = "0.1.0"
