"""
Proximity query over open requests.

`find_nearby()` is a pure function: it receives the pool of requests from the
storage collaborator and never performs I/O itself. Only `active` requests are
discoverable; answered/completed ones are reached through the owner's private list.

Both index backends honor the same contract:
- keep requests whose distance from the center is <= radius_km,
- order nearest first, ties in pool order,
- a non-positive radius only matches a request sitting exactly on the center,
- malformed pool entries are skipped instead of failing the whole query.
"""

from __future__ import annotations

import logging
from typing import Iterable, Iterator, Protocol

from nearask.config.settings import Settings
from nearask.core.geo import GeoPoint, is_valid_point
from nearask.core.spatial_index import SpatialGridIndex, within_radius
from nearask.domain.models import ACTIVE, NearbyRequest, Request

logger = logging.getLogger(__name__)

_Entry = tuple[int, Request, float, float]


class ProximityIndex(Protocol):
    def within(self, center, radius_km: float) -> list[NearbyRequest]: ...


def _active_entries(pool: Iterable[Request]) -> Iterator[_Entry]:
    for seq, request in enumerate(pool):
        if not isinstance(request, Request):
            logger.debug("Skipping pool entry #%d: not a Request (%s)", seq, type(request).__name__)
            continue
        try:
            if request.status != ACTIVE:
                continue
            lat = float(request.location.lat)
            lon = float(request.location.lon)
        except (AttributeError, TypeError, ValueError):
            logger.debug("Skipping request %s: unreadable location", getattr(request, "id", seq))
            continue
        if not is_valid_point(lat, lon):
            logger.debug("Skipping request %s: invalid location (%s, %s)", request.id, lat, lon)
            continue
        yield seq, request, lat, lon


def _origin(center) -> GeoPoint:
    return GeoPoint(lat=float(center.lat), lon=float(center.lon))


class LinearScanIndex:
    """O(n) scan over a snapshot of the pool."""

    def __init__(self, pool: Iterable[Request]):
        self._entries = list(_active_entries(pool))

    def within(self, center, radius_km: float) -> list[NearbyRequest]:
        origin = _origin(center)
        hits: list[tuple[float, int, Request]] = []
        for seq, request, lat, lon in self._entries:
            d = within_radius(origin, lat, lon, float(radius_km))
            if d is not None:
                hits.append((d, seq, request))
        hits.sort(key=lambda h: (h[0], h[1]))
        return [NearbyRequest(request=r, distance_km=d) for d, _, r in hits]


class GridIndex:
    """Grid-bucketed snapshot; same results as `LinearScanIndex`, fewer distance calls."""

    def __init__(self, pool: Iterable[Request], *, cell_size_deg: float = 0.05):
        self._grid: SpatialGridIndex[_Entry] = SpatialGridIndex(
            _active_entries(pool),
            get_latlon=lambda e: (e[2], e[3]),
            cell_size_deg=cell_size_deg,
        )

    def within(self, center, radius_km: float) -> list[NearbyRequest]:
        origin = _origin(center)
        hits = self._grid.query_within(lat=origin.lat, lon=origin.lon, radius_km=float(radius_km))
        return [NearbyRequest(request=entry[1], distance_km=d) for entry, d in hits]


def build_index(pool: Iterable[Request], settings: Settings) -> ProximityIndex:
    """Build the proximity backend selected by `proximity.index`."""
    cfg = settings.proximity
    if cfg.index == "grid":
        return GridIndex(pool, cell_size_deg=cfg.grid_cell_size_deg)
    return LinearScanIndex(pool)


def find_nearby(center, radius_km: float, pool: Iterable[Request]) -> list[NearbyRequest]:
    """Return active requests within `radius_km` of `center`, nearest first."""
    return LinearScanIndex(pool).within(center, radius_km)
