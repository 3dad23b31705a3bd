"""
Serving Module
"""
from .settings_store import init_redis, close_redis, get_redis, SettingsStore
from .cache import MetricsCache
from .dashboard import DashboardService, DashboardRegistry

__all__ = [
    "init_redis",
    "close_redis",
    "get_redis",
    "SettingsStore",
    "MetricsCache",
    "DashboardService",
    "DashboardRegistry",
]
