"""
Background EPG sync job
"""
from .epg_sync_service import EPGSyncService
from .monitoring import SyncMonitor
from .scheduler import SyncScheduler

__all__ = ['EPGSyncService', 'SyncMonitor', 'SyncScheduler']
