"""
Data models for SkyBoard.

Immutable value objects shared by every layer:
1. EntitySnapshot - one observation of one tracked aircraft
2. DailyStatistics - derived "today" statistics
3. Period - dashboard reporting window
"""

from skyboard.models.snapshot import EntitySnapshot, DailyStatistics
from skyboard.models.period import Period

__all__ = [
    'EntitySnapshot',
    'DailyStatistics',
    'Period',
]
