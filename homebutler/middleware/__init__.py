"""homebutler middleware components."""

from homebutler.middleware.base import ButlerMiddleware
from homebutler.middleware.errors import ErrorHandlingMiddleware
from homebutler.middleware.logging import LoggingMiddleware

__all__ = [
    "ButlerMiddleware",
    "ErrorHandlingMiddleware",
    "LoggingMiddleware",
]
