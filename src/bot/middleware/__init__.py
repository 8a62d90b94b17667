"""Bot middlewares"""
from .database import DatabaseMiddleware
from .logging import LoggingMiddleware

__all__ = ["DatabaseMiddleware", "LoggingMiddleware"]
