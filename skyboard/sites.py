"""
Tracked sites (airports) used as spatial grouping anchors.

The built-in table covers the 30 busiest US airports. A replacement
table can be supplied as a JSON list of {"code", "name", "lat", "lon"}
objects via SITES_FILE.

A malformed table is the one unrecoverable configuration error: the
proximity index cannot function without it, so validation raises
ConfigurationError and the process refuses to start.
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, Iterable, List, Optional

from skyboard.exceptions import ConfigurationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Site:
    """A fixed point of interest with known coordinates."""
    code: str
    name: str
    lat: float
    lon: float

    def to_dict(self) -> dict:
        return {
            'code': self.code,
            'name': self.name,
            'latitude': self.lat,
            'longitude': self.lon,
        }


DEFAULT_SITES: List[Site] = [
    Site('ATL', 'Hartsfield-Jackson Atlanta Intl', 33.6407, -84.4277),
    Site('DFW', 'Dallas Fort Worth Intl', 32.8998, -97.0403),
    Site('DEN', 'Denver Intl', 39.8561, -104.6737),
    Site('ORD', "Chicago O'Hare Intl", 41.9742, -87.9073),
    Site('LAX', 'Los Angeles Intl', 33.9425, -118.4081),
    Site('CLT', 'Charlotte Douglas Intl', 35.2144, -80.9473),
    Site('MCO', 'Orlando Intl', 28.4312, -81.3081),
    Site('LAS', 'Harry Reid Intl', 36.0840, -115.1537),
    Site('PHX', 'Phoenix Sky Harbor Intl', 33.4352, -112.0101),
    Site('MIA', 'Miami Intl', 25.7959, -80.2870),
    Site('SEA', 'Seattle-Tacoma Intl', 47.4502, -122.3088),
    Site('IAH', 'George Bush Intercontinental', 29.9902, -95.3368),
    Site('JFK', 'John F Kennedy Intl', 40.6413, -73.7781),
    Site('EWR', 'Newark Liberty Intl', 40.6895, -74.1745),
    Site('FLL', 'Fort Lauderdale-Hollywood Intl', 26.0742, -80.1506),
    Site('MSP', 'Minneapolis-St Paul Intl', 44.8848, -93.2223),
    Site('SFO', 'San Francisco Intl', 37.6213, -122.3790),
    Site('DTW', 'Detroit Metropolitan Wayne County', 42.2162, -83.3554),
    Site('BOS', 'Boston Logan Intl', 42.3656, -71.0096),
    Site('PHL', 'Philadelphia Intl', 39.8744, -75.2424),
    Site('LGA', 'LaGuardia', 40.7769, -73.8740),
    Site('BWI', 'Baltimore/Washington Intl', 39.1774, -76.6684),
    Site('IAD', 'Washington Dulles Intl', 38.9531, -77.4565),
    Site('MDW', 'Chicago Midway Intl', 41.7868, -87.7522),
    Site('DCA', 'Ronald Reagan Washington National', 38.8512, -77.0402),
    Site('SAN', 'San Diego Intl', 32.7338, -117.1933),
    Site('TPA', 'Tampa Intl', 27.9755, -82.5332),
    Site('PDX', 'Portland Intl', 45.5898, -122.5951),
    Site('STL', 'St Louis Lambert Intl', 38.7487, -90.3700),
    Site('HNL', 'Daniel K Inouye Intl', 21.3187, -157.9225),
]


def _site_from_record(index: int, record: Any) -> Site:
    if not isinstance(record, dict):
        raise ConfigurationError(f'Site #{index} is not an object: {record!r}')

    code = record.get('code')
    if not code or not isinstance(code, str):
        raise ConfigurationError(f'Site #{index} has no code')

    try:
        lat = float(record['lat'])
        lon = float(record['lon'])
    except (KeyError, TypeError, ValueError):
        raise ConfigurationError(f'Site {code} has missing or non-numeric coordinates') from None

    return Site(
        code=code.strip().upper(),
        name=str(record.get('name') or code),
        lat=lat,
        lon=lon,
    )


def validate_sites(sites: Iterable[Site]) -> List[Site]:
    """
    Check a site table for usable coordinates and unique codes.

    Raises:
        ConfigurationError: if the table is empty, a coordinate is out
            of range, or a code appears twice.
    """
    sites = list(sites)
    if not sites:
        raise ConfigurationError('Site table is empty')

    seen = set()
    for site in sites:
        if not (-90 <= site.lat <= 90):
            raise ConfigurationError(f'Site {site.code} latitude {site.lat} out of range')
        if not (-180 <= site.lon <= 180):
            raise ConfigurationError(f'Site {site.code} longitude {site.lon} out of range')
        if site.code in seen:
            raise ConfigurationError(f'Duplicate site code {site.code}')
        seen.add(site.code)

    return sites


def load_sites(path: Optional[str] = None) -> List[Site]:
    """
    Load and validate the site table.

    Args:
        path: JSON file with a list of site objects, or None for the
              built-in table.
    """
    if not path:
        return validate_sites(DEFAULT_SITES)

    try:
        with open(path, 'r', encoding='utf-8') as fh:
            raw = json.load(fh)
    except (OSError, ValueError) as e:
        raise ConfigurationError(f'Cannot read site table {path}: {e}') from e

    if not isinstance(raw, list):
        raise ConfigurationError(f'Site table {path} must be a JSON list')

    sites = validate_sites(_site_from_record(i, r) for i, r in enumerate(raw))
    logger.info(f'Loaded {len(sites)} sites from {path}')
    return sites
