"""
Logging handlers for the host.
This module provides the handler that persists log records to SQLite.
"""

from .sql import SQLiteHandler

__all__ = ["SQLiteHandler"]
