"""
Lightweight spatial indexing (lat/lon grid buckets).

Used to avoid O(N) scans when the set of open requests grows. Cells are fixed
slices of latitude/longitude, so the grid works anywhere on the globe: queries
wrap across the antimeridian and fall back to full longitude rings when the
search circle contains a pole.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Callable, Generic, Iterable, TypeVar

from nearask.core.geo import EARTH_RADIUS_KM, GeoPoint, haversine_km, is_valid_point

T = TypeVar("T")


def within_radius(center: GeoPoint, lat: float, lon: float, radius_km: float) -> float | None:
    """Return the distance to (lat, lon) if it falls inside the radius, else None.

    A non-positive radius only matches a point exactly equal to the center.
    """
    if radius_km <= 0:
        if lat == center.lat and lon == center.lon:
            return 0.0
        return None
    d = haversine_km(center, GeoPoint(lat=lat, lon=lon))
    return d if d <= radius_km else None


@dataclass(frozen=True)
class _Entry(Generic[T]):
    item: T
    seq: int
    lat: float
    lon: float


class SpatialGridIndex(Generic[T]):
    def __init__(
        self,
        items: Iterable[T],
        *,
        get_latlon: Callable[[T], tuple[float, float]],
        cell_size_deg: float = 0.05,
    ):
        if float(cell_size_deg) <= 0:
            raise ValueError("cell_size_deg must be > 0")
        # Round the cell size so rows and columns tile the sphere exactly.
        self._n_rows = max(1, int(math.ceil(180.0 / float(cell_size_deg))))
        self._n_cols = max(1, int(math.ceil(360.0 / float(cell_size_deg))))
        self._row_deg = 180.0 / self._n_rows
        self._col_deg = 360.0 / self._n_cols
        self._cells: dict[tuple[int, int], list[_Entry[T]]] = {}
        self._entries: list[_Entry[T]] = []

        for it in items:
            try:
                lat, lon = get_latlon(it)
                lat_f = float(lat)
                lon_f = float(lon)
            except (AttributeError, TypeError, ValueError):
                continue
            if not is_valid_point(lat_f, lon_f):
                continue
            e = _Entry(item=it, seq=len(self._entries), lat=lat_f, lon=lon_f)
            self._entries.append(e)
            self._cells.setdefault((self._row(lat_f), self._col(lon_f) % self._n_cols), []).append(e)

    def __len__(self) -> int:
        return len(self._entries)

    def _row(self, lat: float) -> int:
        return min(self._n_rows - 1, max(0, int(math.floor((lat + 90.0) / self._row_deg))))

    def _col(self, lon: float) -> int:
        # Not wrapped: callers take the modulo so ranges can straddle the antimeridian.
        return int(math.floor((lon + 180.0) / self._col_deg))

    def _candidates(self, lat: float, lon: float, radius_km: float) -> Iterable[_Entry[T]]:
        delta = max(0.0, float(radius_km)) / EARTH_RADIUS_KM
        if delta >= math.pi:
            return self._entries

        delta_deg = math.degrees(delta)
        lat_min = lat - delta_deg
        lat_max = lat + delta_deg
        rows = range(max(0, self._row(lat_min) - 1), min(self._n_rows - 1, self._row(lat_max) + 1) + 1)

        cols: Iterable[int]
        if lat_min <= -90.0 or lat_max >= 90.0:
            # The circle contains a pole: every longitude is reachable.
            cols = range(self._n_cols)
        else:
            s = math.sin(delta) / math.cos(math.radians(lat))
            if s >= 1.0:
                cols = range(self._n_cols)
            else:
                dlon_deg = math.degrees(math.asin(s))
                c0 = self._col(lon - dlon_deg) - 1
                c1 = self._col(lon + dlon_deg) + 1
                if c1 - c0 + 1 >= self._n_cols:
                    cols = range(self._n_cols)
                else:
                    cols = sorted({c % self._n_cols for c in range(c0, c1 + 1)})

        out: list[_Entry[T]] = []
        for row in rows:
            for col in cols:
                cell = self._cells.get((row, col))
                if cell:
                    out.extend(cell)
        return out

    def query_within(self, *, lat: float, lon: float, radius_km: float) -> list[tuple[T, float]]:
        """Return `(item, distance_km)` pairs inside the radius, nearest first.

        Ties keep insertion order.
        """
        origin = GeoPoint(lat=float(lat), lon=float(lon))
        hits: list[tuple[float, int, T]] = []
        for e in self._candidates(origin.lat, origin.lon, radius_km):
            d = within_radius(origin, e.lat, e.lon, float(radius_km))
            if d is not None:
                hits.append((d, e.seq, e.item))
        hits.sort(key=lambda h: (h[0], h[1]))
        return [(item, d) for d, _, item in hits]
