"""
Utility modules
"""

from .run_guard import SyncAlreadyRunning, TenantRunGuard, run_guard

__all__ = ["SyncAlreadyRunning", "TenantRunGuard", "run_guard"]
