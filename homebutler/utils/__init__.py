"""Utility modules for homebutler."""

from homebutler.utils.console import ColorfulFormatter, RequestFormatter

__all__ = ["ColorfulFormatter", "RequestFormatter"]
