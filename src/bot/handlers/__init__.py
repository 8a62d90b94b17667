"""Handlers for KAVARA bot"""

from . import start, loyalty, loyalty_admin

__all__ = ["start", "loyalty", "loyalty_admin"]
