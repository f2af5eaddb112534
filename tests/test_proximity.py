from __future__ import annotations

import pytest

from skyboard.ingestion.proximity import (
    EARTH_RADIUS_KM,
    build_site_index,
    distance_matrix,
    haversine_distance,
)
from skyboard.models import EntitySnapshot
from skyboard.sites import Site


def _entity(entity_id: str, lat: float, lon: float) -> EntitySnapshot:
    return EntitySnapshot(
        id=entity_id, altitude=5000, speed=250, on_ground=False, timestamp=0, lat=lat, lon=lon
    )


def test_haversine_known_distance() -> None:
    # JFK -> LAX is roughly 2,150 nm / 3,980 km
    nm = haversine_distance(40.6413, -73.7781, 33.9425, -118.4081)
    km = haversine_distance(40.6413, -73.7781, 33.9425, -118.4081, radius=EARTH_RADIUS_KM)

    assert nm == pytest.approx(2145, rel=0.01)
    assert km == pytest.approx(3974, rel=0.01)


def test_distance_matrix_matches_scalar_haversine(sites) -> None:
    entities = [_entity("A", 41.0, -87.0), _entity("B", 34.0, -84.0)]

    matrix = distance_matrix(sites, entities)

    assert matrix.shape == (len(sites), len(entities))
    for i, site in enumerate(sites):
        for j, entity in enumerate(entities):
            assert matrix[i, j] == pytest.approx(
                haversine_distance(site.lat, site.lon, entity.lat, entity.lon)
            )


def test_entity_within_two_radii_goes_to_nearest_only(sites) -> None:
    # Between ORD and MDW, closer to MDW
    entity = _entity("SWA1", 41.83, -87.78)

    index = build_site_index([entity], sites, radius_nm=50)

    assert index.entities_near("MDW") == [entity]
    assert index.entities_near("ORD") == []
    assert index.sites_with_activity == 1


def test_every_entity_assigned_at_most_once(sites) -> None:
    entities = [_entity(f"E{i}", 41.70 + i * 0.02, -87.95 + i * 0.01) for i in range(20)]

    index = build_site_index(entities, sites, radius_nm=50)

    assigned = [a.entity.id for assignments in index.by_site.values() for a in assignments]
    assert len(assigned) == len(set(assigned)) == 20
    for code, assignments in index.by_site.items():
        site = next(s for s in sites if s.code == code)
        for assignment in assignments:
            for other in sites:
                assert assignment.distance_nm <= haversine_distance(
                    other.lat, other.lon, assignment.entity.lat, assignment.entity.lon
                ) + 1e-9
            assert assignment.site_code == site.code


def test_entities_outside_radius_are_unassigned(sites) -> None:
    index = build_site_index([_entity("FAR1", 10.0, -30.0)], sites, radius_nm=50)

    assert index.by_site == {}
    assert index.busiest() == []


def test_busiest_orders_by_count_then_code() -> None:
    sites = [Site("AAA", "A", 0.0, 0.0), Site("BBB", "B", 10.0, 10.0), Site("CCC", "C", 20.0, 20.0)]
    entities = [
        _entity("1", 0.1, 0.1),
        _entity("2", 10.1, 10.1),
        _entity("3", 20.1, 20.1),
        _entity("4", 20.0, 20.1),
    ]

    index = build_site_index(entities, sites, radius_nm=50)

    assert index.busiest(limit=2) == [("CCC", 2), ("AAA", 1)]


def test_empty_inputs_give_empty_index(sites) -> None:
    assert build_site_index([], sites, radius_nm=50).by_site == {}
    assert build_site_index([_entity("A", 41.0, -87.0)], [], radius_nm=50).by_site == {}
