"""
Site proximity indexing.

Groups entities by the nearest tracked site within a radius. Distances
are great-circle (haversine). The full sites x entities distance matrix
is computed with NumPy in one pass; both dimensions are bounded
(tens of sites, thousands of entities), so this stays well under the
refresh interval.

Each entity is assigned to at most one site: the nearest one, and only
if it lies within the radius. Ties go to the site listed first.
"""

import math
from dataclasses import dataclass, field
from typing import Dict, List, Sequence, Tuple

import numpy as np

from skyboard.models import EntitySnapshot
from skyboard.sites import Site

EARTH_RADIUS_NM = 3440.065
EARTH_RADIUS_KM = 6371.0


def haversine_distance(
    lat1: float, lon1: float,
    lat2: float, lon2: float,
    radius: float = EARTH_RADIUS_NM,
) -> float:
    """
    Calculate great-circle distance between two points.

    Returns nautical miles by default; pass EARTH_RADIUS_KM for km.
    """
    lat1_rad = math.radians(lat1)
    lat2_rad = math.radians(lat2)
    delta_lat = math.radians(lat2 - lat1)
    delta_lon = math.radians(lon2 - lon1)

    a = (
        math.sin(delta_lat / 2) ** 2 +
        math.cos(lat1_rad) * math.cos(lat2_rad) *
        math.sin(delta_lon / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return radius * c


def distance_matrix(
    sites: Sequence[Site],
    entities: Sequence[EntitySnapshot],
    radius: float = EARTH_RADIUS_NM,
) -> np.ndarray:
    """Haversine distances, shape (len(sites), len(entities))."""
    site_lat = np.radians(np.array([s.lat for s in sites], dtype=np.float64))[:, None]
    site_lon = np.radians(np.array([s.lon for s in sites], dtype=np.float64))[:, None]
    ent_lat = np.radians(np.array([e.lat for e in entities], dtype=np.float64))[None, :]
    ent_lon = np.radians(np.array([e.lon for e in entities], dtype=np.float64))[None, :]

    a = (
        np.sin((ent_lat - site_lat) / 2) ** 2 +
        np.cos(site_lat) * np.cos(ent_lat) *
        np.sin((ent_lon - site_lon) / 2) ** 2
    )
    a = np.clip(a, 0.0, 1.0)

    return radius * 2 * np.arctan2(np.sqrt(a), np.sqrt(1 - a))


@dataclass(frozen=True)
class SiteAssignment:
    """An entity associated with its nearest site."""
    entity: EntitySnapshot
    site_code: str
    distance_nm: float


@dataclass(frozen=True)
class SiteIndex:
    """Entities grouped by nearest site. Sites with no entities are absent."""
    by_site: Dict[str, Tuple[SiteAssignment, ...]] = field(default_factory=dict)
    radius_nm: float = 50.0

    def entities_near(self, site_code: str) -> List[EntitySnapshot]:
        return [a.entity for a in self.by_site.get(site_code.upper(), ())]

    def assignments_near(self, site_code: str) -> Tuple[SiteAssignment, ...]:
        return self.by_site.get(site_code.upper(), ())

    @property
    def sites_with_activity(self) -> int:
        return len(self.by_site)

    def busiest(self, limit: int = 5) -> List[Tuple[str, int]]:
        """(site_code, entity_count) pairs, most entities first, ties by code."""
        counts = [(code, len(assignments)) for code, assignments in self.by_site.items()]
        counts.sort(key=lambda item: (-item[1], item[0]))
        return counts[:limit]


def build_site_index(
    entities: Sequence[EntitySnapshot],
    sites: Sequence[Site],
    radius_nm: float,
) -> SiteIndex:
    """
    Assign each entity to its nearest site within radius_nm.

    O(sites x entities) distance evaluations, vectorized.
    """
    if not entities or not sites:
        return SiteIndex(radius_nm=radius_nm)

    distances = distance_matrix(sites, entities)
    nearest = np.argmin(distances, axis=0)
    nearest_distance = distances[nearest, np.arange(len(entities))]
    within = nearest_distance <= radius_nm

    grouped: Dict[str, List[SiteAssignment]] = {}
    for idx in np.flatnonzero(within):
        site = sites[int(nearest[idx])]
        grouped.setdefault(site.code, []).append(
            SiteAssignment(
                entity=entities[int(idx)],
                site_code=site.code,
                distance_nm=float(nearest_distance[idx]),
            )
        )

    return SiteIndex(
        by_site={code: tuple(items) for code, items in grouped.items()},
        radius_nm=radius_nm,
    )
