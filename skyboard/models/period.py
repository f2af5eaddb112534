"""
Dashboard reporting periods.

"today" is served from the live layer; every longer window is served
from the historical statistics layer.
"""

from enum import Enum


class Period(str, Enum):
    """
    Reporting window requested by the dashboard.

    - TODAY: live feed + rolling 24h history
    - WEEK/MONTH: scaled from the latest monthly aggregate
    - QUARTER/YEAR: latest quarterly/yearly aggregate
    """
    TODAY = 'today'
    WEEK = 'week'
    MONTH = 'month'
    QUARTER = 'quarter'
    YEAR = 'year'

    @classmethod
    def parse(cls, value: str) -> 'Period':
        """Parse a query-string value. Raises ValueError for unknown periods."""
        try:
            return cls((value or '').strip().lower())
        except ValueError:
            valid = ', '.join(p.value for p in cls)
            raise ValueError(f'Unknown period {value!r}; expected one of: {valid}') from None

    @property
    def is_live(self) -> bool:
        return self is Period.TODAY

    @property
    def granularity(self) -> str:
        """Historical trend series that best matches this window."""
        if self is Period.QUARTER:
            return 'quarterly'
        if self is Period.YEAR:
            return 'yearly'
        return 'monthly'

    @property
    def granularity_multiplier(self) -> float:
        """Scale applied to one aggregate of `granularity`."""
        if self is Period.TODAY:
            return 1 / 30
        if self is Period.WEEK:
            return 7 / 30
        return 1.0

    @property
    def monthly_multiplier(self) -> float:
        """Scale applied to one monthly aggregate when no better series exists."""
        return {
            Period.TODAY: 1 / 30,
            Period.WEEK: 7 / 30,
            Period.MONTH: 1.0,
            Period.QUARTER: 3.0,
            Period.YEAR: 12.0,
        }[self]

    @property
    def trend_days(self) -> int:
        """Number of daily trend points shown for this window."""
        if self is Period.QUARTER:
            return 90
        if self is Period.YEAR:
            return 365
        return 30
