"""
Data Ingestion Module
"""
from .auth import AuthContext, AuthSession
from .cancellation import CancellationToken
from .orchestrator import FetchOrchestrator, FetchState
from .sources import DashboardSource, RawDataset, SourceName, SqlDashboardSource

__all__ = [
    "AuthContext",
    "AuthSession",
    "CancellationToken",
    "FetchOrchestrator",
    "FetchState",
    "DashboardSource",
    "RawDataset",
    "SourceName",
    "SqlDashboardSource",
]
