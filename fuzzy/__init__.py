"""Fuzzy - administration panel for streaming channels, bouquets and providers."""

__version__ = "1.0.0"
