"""
This module initializes the local database management system.
It exposes the manager for the log and health-history database.
"""

from .log import LogDBManager, LogEntry, HealthTransition

__all__ = ["LogDBManager", "LogEntry", "HealthTransition"]
