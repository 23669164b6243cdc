"""
Service layer for the Vinted scout.

This module contains configuration loading, the request delay source and
SQLite persistence for alerts.
"""

from .alert_store import AlertStore
from .config_manager import ConfigurationManager, DelayConfigLoader

__all__ = [
    "AlertStore",
    "ConfigurationManager",
    "DelayConfigLoader",
]
