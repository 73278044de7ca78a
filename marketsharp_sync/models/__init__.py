"""
Data models for the sync application
"""

from .credentials import TenantCredentials
from .marketsharp import (
    RemoteContact,
    RemoteAddress,
    RemotePhone,
    RemoteJob,
    RemoteJobContact,
    RemoteContract,
)
from .store import (
    MirrorContact,
    MirrorJob,
    OperationalJob,
    OperationalJobFields,
    SyncRun,
    SyncStatus,
)

__all__ = [
    "TenantCredentials",
    "RemoteContact",
    "RemoteAddress",
    "RemotePhone",
    "RemoteJob",
    "RemoteJobContact",
    "RemoteContract",
    "MirrorContact",
    "MirrorJob",
    "OperationalJob",
    "OperationalJobFields",
    "SyncRun",
    "SyncStatus",
]
