"""Axis-aligned envelopes and the linear helpers built on them."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import shapely
from shapely.geometry import box

from .projection import reproject_geometry, transformer_for


@dataclass(frozen=True, slots=True)
class Point:
    x: float
    y: float


class Bounds:
    """Envelope with ``nw = (min x, max y)`` and ``se = (max x, min y)``.

    Both corners stay ``None`` until the first ``extend``; the envelope only
    ever grows after that.
    """

    __slots__ = ("nw", "se")

    def __init__(self) -> None:
        self.nw: Point | None = None
        self.se: Point | None = None

    @classmethod
    def from_extent(cls, maxx: float, maxy: float, minx: float, miny: float) -> Bounds:
        bounds = cls()
        bounds.extend(maxx, maxy)
        bounds.extend(minx, miny)
        return bounds

    @property
    def is_empty(self) -> bool:
        return self.nw is None

    @property
    def width(self) -> float:
        if self.nw is None or self.se is None:
            return 0.0
        return abs(self.se.x - self.nw.x)

    @property
    def height(self) -> float:
        if self.nw is None or self.se is None:
            return 0.0
        return abs(self.se.y - self.nw.y)

    def extend(self, x: float, y: float) -> None:
        x = float(x)
        y = float(y)
        if self.nw is None or self.se is None:
            self.nw = Point(x, y)
            self.se = Point(x, y)
            return
        self.nw = Point(min(self.nw.x, x), max(self.nw.y, y))
        self.se = Point(max(self.se.x, x), min(self.se.y, y))

    def buffer(self, delta: float) -> Bounds:
        """Return a copy grown by ``delta`` (in these bounds' units) on every side."""
        nw, se = self.corners()
        grown = Bounds()
        grown.nw = Point(nw.x - delta, nw.y + delta)
        grown.se = Point(se.x + delta, se.y - delta)
        return grown

    def contains(self, x: float, y: float) -> bool:
        if self.nw is None or self.se is None:
            return False
        return self.nw.x <= x <= self.se.x and self.se.y <= y <= self.nw.y

    def as_tuple(self) -> tuple[float, float, float, float]:
        """``(minx, miny, maxx, maxy)``, the order shapely uses."""
        nw, se = self.corners()
        return (nw.x, se.y, se.x, nw.y)

    def corners(self) -> tuple[Point, Point]:
        if self.nw is None or self.se is None:
            raise ValueError("Bounds are empty")
        return (self.nw, self.se)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Bounds):
            return NotImplemented
        return self.nw == other.nw and self.se == other.se

    def __repr__(self) -> str:
        return f"Bounds(nw={self.nw!r}, se={self.se!r})"


def project(source: Bounds, x: float, y: float, target: Bounds) -> Point:
    """Map ``(x, y)`` from ``source`` space into ``target`` space.

    Each axis is interpolated independently and keeps its direction: the
    minimum of one space lands on the minimum of the other. Raster "y down"
    handling belongs to the map's affine matrix, not to this helper.
    """
    s_nw, s_se = source.corners()
    t_nw, t_se = target.corners()
    if source.width:
        px = t_nw.x + (x - s_nw.x) * (target.width / source.width)
    else:
        px = t_nw.x
    if source.height:
        py = t_se.y + (y - s_se.y) * (target.height / source.height)
    else:
        py = t_se.y
    return Point(px, py)


@dataclass(frozen=True, slots=True)
class QueryRegion:
    """Rectangular spatial filter tagged with the CRS it is expressed in."""

    geometry: Any
    crs: Any

    def to_crs(self, target: Any) -> QueryRegion:
        if self.crs == target:
            return self
        transformer = transformer_for(self.crs, target)
        return QueryRegion(geometry=reproject_geometry(self.geometry, transformer), crs=target)


# Edges are split before reprojection so curved projections keep their shape.
_REGION_SEGMENTS = 16


def to_query_region(bounds: Bounds, srs: Any) -> QueryRegion:
    region = box(*bounds.as_tuple())
    span = max(bounds.width, bounds.height)
    if span > 0:
        region = shapely.segmentize(region, span / _REGION_SEGMENTS)
    return QueryRegion(geometry=region, crs=srs)
