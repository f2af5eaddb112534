"""
Persistence for SkyBoard.

The rolling flight history is kept in memory and mirrored to a JSON
document with size-bounded, gzip-archived rotation.
"""

from skyboard.storage.rolling_history import RollingHistoryStore, PersistWorker

__all__ = ['RollingHistoryStore', 'PersistWorker']
