"""Exception hierarchy for SkyBoard."""

from typing import Optional


class SkyboardError(Exception):
    """Base exception for all SkyBoard errors."""


class ProviderError(SkyboardError):
    """
    An upstream data provider failed.

    Covers network errors, timeouts, non-2xx responses and payloads
    that cannot be parsed into the provider's record types.
    """

    def __init__(
        self,
        message: str,
        provider: str = 'unknown',
        status_code: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.provider = provider
        self.status_code = status_code


class QuotaExceededError(ProviderError):
    """The live-position feed's daily call quota is exhausted."""

    def __init__(self, limit: int, provider: str = 'opensky') -> None:
        super().__init__(
            f'Daily call quota of {limit} exhausted',
            provider=provider,
        )
        self.limit = limit


class ConfigurationError(SkyboardError):
    """Invalid configuration. Fatal at startup."""
