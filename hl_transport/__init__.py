"""Authenticated transport core for the Hyperliquid exchange."""

__version__ = "0.1.0"
