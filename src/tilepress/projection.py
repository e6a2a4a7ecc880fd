"""Spatial reference parsing and geometry reprojection through pyproj."""

from __future__ import annotations

import math
from functools import lru_cache
from typing import Any

from pyproj import CRS, Transformer
from pyproj.exceptions import CRSError
from shapely.ops import transform

from .errors import SpatialReferenceError

WGS84 = "+proj=longlat +ellps=WGS84 +datum=WGS84 +no_defs"
MERCATOR = (
    "+proj=merc +a=6378137 +b=6378137 +lat_ts=0.0 +lon_0=0.0 +x_0=0.0 +y_0=0 "
    "+k=1.0 +units=m +nadgrids=@null +wktext +no_defs +over"
)
# Half the circumference of the spherical mercator world, in meters.
MERCATOR_ORIGIN_SHIFT = math.pi * 6378137.0
SLIPPY_SIZE = 256


def parse_srs(text: str) -> CRS:
    """Parse any user input pyproj understands (EPSG code, PROJ string, WKT)."""
    if not isinstance(text, str) or not text.strip():
        raise SpatialReferenceError("Spatial reference must be a non-empty string")
    try:
        return CRS.from_user_input(text.strip())
    except CRSError as exc:
        raise SpatialReferenceError(f"Unparsable spatial reference '{text}': {exc}") from exc


@lru_cache(maxsize=64)
def transformer_for(source: CRS, target: CRS) -> Transformer:
    return Transformer.from_crs(source, target, always_xy=True)


def reproject_geometry(geometry: Any, transformer: Transformer) -> Any:
    """Reproject a shapely geometry; raises when any coordinate fails."""
    if geometry.is_empty:
        return geometry

    def _apply(x: Any, y: Any, z: Any = None) -> Any:
        if z is None:
            return transformer.transform(x, y, errcheck=True)
        return transformer.transform(x, y, z, errcheck=True)

    projected = transform(_apply, geometry)
    if not all(math.isfinite(value) for value in projected.bounds):
        raise SpatialReferenceError("Reprojection produced non-finite coordinates")
    return projected
