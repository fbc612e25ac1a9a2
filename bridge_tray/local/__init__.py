"""
Local package for the Bridge Tray host.

This package provides the host-level configuration through the app_globals
singleton, along with the sidecar supervisor, tray presentation and console.
"""

from .config import app_globals

__all__ = ["app_globals"]
