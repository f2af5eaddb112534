"""
OpenSky Network API client (live-position provider).

Handles communication with the OpenSky REST API, including:
- Authentication (optional but recommended for higher rate limits)
- Bounding box queries for geographic filtering
- Request timeouts so a hung call cannot stall the refresh timer
- Translation of every failure into ProviderError

The client is stateless apart from its HTTP session. Quota accounting
lives in the live snapshot cache, which is the only caller.

OpenSky state vector format (array indices):
0: icao24          - ICAO24 hex address
1: callsign        - Callsign (8 chars max)
2: origin_country  - Country of registration
3: time_position   - Unix timestamp of last position update
4: last_contact    - Unix timestamp of last message
5: longitude       - WGS84 longitude
6: latitude        - WGS84 latitude
7: baro_altitude   - Barometric altitude (meters)
8: on_ground       - Boolean
9: velocity        - Ground speed (m/s)
10: true_track     - Track angle (degrees, 0=north)
11: vertical_rate  - Vertical rate (m/s)
12: sensors        - Sensor IDs (array)
13: geo_altitude   - Geometric altitude (meters)
14: squawk         - Transponder code
15: spi            - Special position indicator
16: position_source - 0=ADS-B, 1=ASTERIX, 2=MLAT, 3=FLARM
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Optional, List, Tuple, Any

import requests
from requests.auth import HTTPBasicAuth

from skyboard.exceptions import ProviderError

logger = logging.getLogger(__name__)

PROVIDER = 'opensky'


@dataclass
class BoundingBox:
    """
    Geographic bounding box for API queries.

    OpenSky expects: lamin, lomin, lamax, lomax
    (latitude min, longitude min, latitude max, longitude max)
    """
    lat_min: float
    lat_max: float
    lon_min: float
    lon_max: float

    @classmethod
    def from_tuple(cls, bounds: Tuple[float, float, float, float]) -> 'BoundingBox':
        """Build from (lat_min, lon_min, lat_max, lon_max)."""
        lat_min, lon_min, lat_max, lon_max = bounds
        return cls(lat_min=lat_min, lat_max=lat_max, lon_min=lon_min, lon_max=lon_max)

    def to_params(self) -> dict:
        """Convert to OpenSky API query parameters."""
        return {
            'lamin': self.lat_min,
            'lamax': self.lat_max,
            'lomin': self.lon_min,
            'lomax': self.lon_max,
        }


def _as_float(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _as_int(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


@dataclass
class StateVector:
    """
    Parsed state vector from OpenSky API.

    Normalizes the raw array format into a typed dataclass.
    Values not reported by the aircraft are None.
    """
    icao24: str
    callsign: Optional[str]
    origin_country: Optional[str]
    time_position: Optional[int]
    last_contact: Optional[int]
    longitude: Optional[float]
    latitude: Optional[float]
    baro_altitude: Optional[float]
    on_ground: bool
    velocity: Optional[float]
    true_track: Optional[float]
    vertical_rate: Optional[float]
    geo_altitude: Optional[float]
    squawk: Optional[str]
    spi: bool
    position_source: Optional[int]

    @classmethod
    def from_array(cls, arr: List[Any]) -> Optional['StateVector']:
        """
        Parse OpenSky state vector array into StateVector object.

        Returns None if the array is malformed or missing required fields.
        Numeric fields of the wrong type become None rather than failing
        the whole vector.
        """
        if not isinstance(arr, (list, tuple)) or len(arr) < 17:
            return None

        icao24 = arr[0]
        if not icao24 or not isinstance(icao24, str):
            return None

        # Normalize callsign (strip whitespace, handle None)
        callsign = arr[1]
        if isinstance(callsign, str):
            callsign = callsign.strip() or None
        else:
            callsign = None

        return cls(
            icao24=icao24.strip().lower(),
            callsign=callsign,
            origin_country=arr[2] if isinstance(arr[2], str) else None,
            time_position=_as_int(arr[3]),
            last_contact=_as_int(arr[4]),
            longitude=_as_float(arr[5]),
            latitude=_as_float(arr[6]),
            baro_altitude=_as_float(arr[7]),
            on_ground=bool(arr[8]),
            velocity=_as_float(arr[9]),
            true_track=_as_float(arr[10]),
            vertical_rate=_as_float(arr[11]),
            geo_altitude=_as_float(arr[13]),
            squawk=arr[14] if isinstance(arr[14], str) else None,
            spi=bool(arr[15]),
            position_source=_as_int(arr[16]),
        )

    def has_position(self) -> bool:
        """Check if this state has valid position data."""
        return self.latitude is not None and self.longitude is not None

    @property
    def identifier(self) -> str:
        """Callsign when reported, otherwise the ICAO24 address."""
        return self.callsign or self.icao24


@dataclass
class LiveFeed:
    """One bulk snapshot from the live-position feed."""
    capture_time: int
    states: List[StateVector] = field(default_factory=list)


class OpenSkyClient:
    """
    Client for OpenSky Network API.

    Handles:
    - GET requests to /states/all endpoint
    - Optional authentication for higher rate limits
    - Bounding box filtering
    """

    def __init__(
        self,
        username: Optional[str] = None,
        password: Optional[str] = None,
        base_url: str = 'https://opensky-network.org/api',
        timeout: float = 15.0,
        bounds: Optional[BoundingBox] = None,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.bounds = bounds
        self.auth = None
        if username and password:
            self.auth = HTTPBasicAuth(username, password)
            logger.info('OpenSky client initialized with authentication')
        else:
            logger.warning('OpenSky client running without authentication (lower rate limits)')

        self.session = session or requests.Session()
        self.session.headers.update({
            'Accept': 'application/json',
            'User-Agent': 'SkyBoard/1.0',
        })

    @classmethod
    def from_config(cls, opensky_config) -> 'OpenSkyClient':
        """Create client from OpenSkyConfig."""
        bounds = BoundingBox.from_tuple(opensky_config.bounds) if opensky_config.bounds else None
        return cls(
            username=opensky_config.username,
            password=opensky_config.password,
            base_url=opensky_config.base_url,
            timeout=opensky_config.timeout_seconds,
            bounds=bounds,
        )

    def get_states(self, bbox: Optional[BoundingBox] = None) -> LiveFeed:
        """
        Fetch current state vectors from OpenSky.

        Args:
            bbox: Optional bounding box; defaults to the configured bounds

        Returns:
            LiveFeed with the OpenSky server time and the state vectors
            that carry a position

        Raises:
            ProviderError on network/API errors or an unparseable body
        """
        url = f'{self.base_url}/states/all'
        bbox = bbox or self.bounds
        params = bbox.to_params() if bbox else {}

        logger.debug(f'Fetching states: {url} params={params}')

        try:
            response = self.session.get(
                url,
                params=params,
                auth=self.auth,
                timeout=self.timeout,
            )
            response.raise_for_status()
            data = response.json()

        except requests.exceptions.Timeout as e:
            logger.error('OpenSky API timeout')
            raise ProviderError(f'OpenSky timed out after {self.timeout}s', provider=PROVIDER) from e
        except requests.exceptions.HTTPError as e:
            status = e.response.status_code if e.response is not None else None
            if status == 429:
                logger.warning('OpenSky rate limit exceeded')
            else:
                logger.error(f'OpenSky API error: {status}')
            raise ProviderError(f'OpenSky returned HTTP {status}', provider=PROVIDER, status_code=status) from e
        except requests.exceptions.RequestException as e:
            logger.error(f'OpenSky request failed: {e}')
            raise ProviderError(f'OpenSky request failed: {e}', provider=PROVIDER) from e
        except ValueError as e:
            raise ProviderError('OpenSky returned a non-JSON body', provider=PROVIDER) from e

        if not isinstance(data, dict):
            raise ProviderError('OpenSky response is not an object', provider=PROVIDER)

        api_time = _as_int(data.get('time')) or int(time.time())
        states_raw = data.get('states') or []

        logger.info(f'Received {len(states_raw)} state vectors from OpenSky')

        states = []
        for arr in states_raw:
            sv = StateVector.from_array(arr)
            if sv and sv.has_position():
                states.append(sv)

        logger.debug(f'Parsed {len(states)} valid state vectors with positions')

        return LiveFeed(capture_time=api_time, states=states)

    def fetch_live_feed(self) -> LiveFeed:
        """Provider callable used by the live snapshot cache."""
        return self.get_states()
