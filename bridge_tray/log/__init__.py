"""
Logging module for the host.
This module provides the function that sets up console and database logging.
"""

from .setup import setup_logging

__all__ = ["setup_logging"]
