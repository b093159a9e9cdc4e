"""Middlewares package."""
from lockin.presentation.api.middlewares.logging import LoggingMiddleware

__all__ = ["LoggingMiddleware"]
