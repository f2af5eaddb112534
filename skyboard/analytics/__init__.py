"""
Analytics module for SkyBoard.

Pure functions that turn entity snapshots into dashboard figures:
- Daily statistics over the rolling window
- Ground-ratio delay estimate (fallback when no status feed is configured)
- Severity lookups for delay and cancellation reasons
"""

from skyboard.analytics.daily_stats import (
    derive_daily_statistics,
    estimate_ground_delays,
    estimate_delay_minutes,
    infer_delay_reason,
    infer_cancellation_reason,
    percent_change,
    site_status,
)

__all__ = [
    'derive_daily_statistics',
    'estimate_ground_delays',
    'estimate_delay_minutes',
    'infer_delay_reason',
    'infer_cancellation_reason',
    'percent_change',
    'site_status',
]
