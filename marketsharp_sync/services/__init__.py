"""
Service modules for API clients, the local store and the sync engine
"""

from .ms_client import MarketSharpClient
from .ms_rest_client import MarketSharpRestClient
from .store import SupabaseStore, TableStore
from .run_logger import SyncRunLogger
from .sync_engine import SyncEngine

__all__ = [
    "MarketSharpClient",
    "MarketSharpRestClient",
    "SupabaseStore",
    "TableStore",
    "SyncRunLogger",
    "SyncEngine",
]
