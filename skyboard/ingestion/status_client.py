"""
National airspace status feed client.

Fetches per-site current conditions (delay programs, ground stops,
average delay). The feed is optional: when no URL is configured the
aggregator falls back to the ground-ratio delay estimate.

Expected payload: a JSON list (or an object with a "sites" list) of
records such as
    {"siteId": "ORD", "status": "Air Traffic Control",
     "avgDelay": 35, "delays": 178, "cancellations": 23}

Field names vary between feeds, so SiteStatus.from_dict accepts the
common aliases and turns anything missing into an explicit None.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import requests

from skyboard.exceptions import ProviderError

logger = logging.getLogger(__name__)

PROVIDER = 'status-feed'


def _first(data: Dict[str, Any], *keys: str) -> Any:
    for key in keys:
        if data.get(key) is not None:
            return data[key]
    return None


def _optional_number(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


@dataclass(frozen=True)
class SiteStatus:
    """Current condition reported for one site."""
    site_id: str
    condition_label: str
    mean_delay_minutes: float
    delays: Optional[int] = None
    cancellations: Optional[int] = None

    @classmethod
    def from_dict(cls, data: Any) -> Optional['SiteStatus']:
        """
        Build from a feed record.

        Returns None for records without a usable site identifier.
        """
        if not isinstance(data, dict):
            return None

        site_id = _first(data, 'siteId', 'site_id', 'airport', 'code')
        if not site_id or not isinstance(site_id, str):
            return None

        label = _first(data, 'conditionLabel', 'condition_label', 'status', 'reason')
        mean_delay = _optional_number(_first(data, 'meanDelayMinutes', 'mean_delay_minutes', 'avgDelay'))
        delays = _optional_number(data.get('delays'))
        cancellations = _optional_number(data.get('cancellations'))

        return cls(
            site_id=site_id.strip().upper(),
            condition_label=str(label) if label is not None else 'Unknown',
            mean_delay_minutes=mean_delay or 0.0,
            delays=int(delays) if delays is not None else None,
            cancellations=int(cancellations) if cancellations is not None else None,
        )

    def to_dict(self) -> dict:
        return {
            'site': self.site_id,
            'condition': self.condition_label,
            'mean_delay_minutes': self.mean_delay_minutes,
            'delays': self.delays,
            'cancellations': self.cancellations,
        }


def delay_totals(statuses: List[SiteStatus]) -> Dict[str, int]:
    """Sum reported delays and cancellations across sites."""
    return {
        'total_delays': sum(s.delays or 0 for s in statuses),
        'total_cancellations': sum(s.cancellations or 0 for s in statuses),
    }


class StatusFeedClient:
    """
    Client for the airspace status feed.

    One call returns the current condition of every reporting site.
    """

    def __init__(
        self,
        url: Optional[str] = None,
        timeout: float = 10.0,
        session: Optional[requests.Session] = None,
    ):
        self.url = url
        self.timeout = timeout
        self.session = session or requests.Session()

        if not self.url:
            logger.warning('Status feed URL not configured - delays will be estimated')

    @classmethod
    def from_config(cls, status_config) -> 'StatusFeedClient':
        return cls(url=status_config.url, timeout=status_config.timeout_seconds)

    @property
    def is_configured(self) -> bool:
        return bool(self.url)

    def get_site_statuses(self) -> List[SiteStatus]:
        """
        Fetch current site conditions.

        Raises:
            ProviderError if the feed is not configured, unreachable,
            or returns something other than a list of records
        """
        if not self.url:
            raise ProviderError('Status feed is not configured', provider=PROVIDER)

        try:
            response = self.session.get(
                self.url,
                headers={'Accept': 'application/json'},
                timeout=self.timeout,
            )
            response.raise_for_status()
            data = response.json()
        except requests.exceptions.Timeout as e:
            raise ProviderError(f'Status feed timed out after {self.timeout}s', provider=PROVIDER) from e
        except requests.exceptions.HTTPError as e:
            status = e.response.status_code if e.response is not None else None
            raise ProviderError(f'Status feed returned HTTP {status}', provider=PROVIDER, status_code=status) from e
        except requests.exceptions.RequestException as e:
            raise ProviderError(f'Status feed request failed: {e}', provider=PROVIDER) from e
        except ValueError as e:
            raise ProviderError('Status feed returned a non-JSON body', provider=PROVIDER) from e

        records = data.get('sites') if isinstance(data, dict) else data
        if not isinstance(records, list):
            raise ProviderError('Status feed payload has no site list', provider=PROVIDER)

        statuses = [s for s in (SiteStatus.from_dict(r) for r in records) if s is not None]
        skipped = len(records) - len(statuses)
        if skipped:
            logger.debug(f'Skipped {skipped} status records without a site id')

        logger.info(f'Received status for {len(statuses)} sites')
        return statuses
