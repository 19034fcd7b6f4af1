"""Discord raid coordination bot."""

__version__ = "0.1.0"
