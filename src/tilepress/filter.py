"""One query plus its styles: the unit of a single render pass."""

from __future__ import annotations

import dataclasses
import logging
import math
import time
from typing import TYPE_CHECKING, Any, Iterable, Sequence

import cairo
from pyproj.exceptions import ProjError

from .bounds import QueryRegion, to_query_region
from .errors import CanvasError, SpatialReferenceError, TilepressError
from .geodata import DataSource
from .lithograph import Lithograph
from .owned_list import OwnedList
from .projection import reproject_geometry, transformer_for
from .style import (
    CLOSED_SHAPE_KEYS,
    OPEN_PATH_KEYS,
    POINT_KEYS,
    Style,
    StyleKind,
    apply_styles,
    lookup_style,
)

if TYPE_CHECKING:
    from .map import Map

_LOGGER = logging.getLogger("tilepress.filter")

# Displacement, in device pixels, below which the vertex walker drops a vertex.
SIMPLIFY_THRESHOLD_PX = 0.5

_COLLECTION_TYPES = frozenset(
    {"MultiPoint", "MultiLineString", "MultiPolygon", "GeometryCollection"}
)


class Filter:
    """A query against a layer's data source and the styles for its features."""

    def __init__(self, query: str) -> None:
        self._query = _require_query(query)
        self.styles: OwnedList[Style] = OwnedList()
        self.error: TilepressError | None = None
        self._owner: Any = None

    @property
    def query(self) -> str:
        return self._query

    def set_query(self, query: str) -> None:
        self._query = _require_query(query)

    @property
    def seamless(self) -> bool:
        return lookup_style(self.styles, "seamless") is not None

    def add_style(self, style: Style | str, argument: Any = None) -> Style:
        """Append a style, either an existing ``Style`` or a literal ``key, argument``."""
        if not isinstance(style, Style):
            style = Style.literal(style, argument)
        return self.styles.push(style)

    def close(self) -> None:
        self.styles.release()

    def process(
        self,
        map_: Map,
        source: DataSource,
        lithograph: Lithograph,
        ctx: cairo.Context,
    ) -> None:
        """Query, draw and composite this filter's features onto ``ctx``.

        Errors resolving the source, building the envelope, querying or
        creating the filter surface abort the pass; they are recorded on
        ``self.error`` and re-raised. Features whose geometry is missing or
        cannot be reprojected are skipped.
        """
        started = time.perf_counter()
        try:
            drawn, skipped = self._process(map_, source, lithograph, ctx)
        except TilepressError as exc:
            self.error = exc
            _LOGGER.error("Filter '%s' failed: %s", self._query, exc)
            raise
        _LOGGER.debug(
            "Filter '%s' drew %d features (%d skipped) in %.3fs",
            self._query,
            drawn,
            skipped,
            time.perf_counter() - started,
        )

    def _process(
        self,
        map_: Map,
        source: DataSource,
        lithograph: Lithograph,
        ctx: cairo.Context,
    ) -> tuple[int, int]:
        probe = source.execute(self._query, limit=1)
        if probe is None or probe.crs is None:
            _LOGGER.debug("Filter '%s' produced no layer; nothing to draw", self._query)
            return (0, 0)
        source_crs = probe.crs

        try:
            region = self._query_region(map_).to_crs(source_crs)
            transformer = transformer_for(source_crs, map_.srs)
        except ProjError as exc:
            raise SpatialReferenceError(
                f"Cannot transform between map and source spatial references: {exc}"
            ) from exc

        result = source.execute(self._query, region)
        if result is None:
            return (0, 0)

        surface, sub_ctx = self._create_surface(map_, ctx)
        drawn = 0
        skipped = 0
        for feature in result:
            if feature.geometry is None:
                skipped += 1
                continue
            try:
                geometry = reproject_geometry(feature.geometry, transformer)
            except (ProjError, SpatialReferenceError) as exc:
                _LOGGER.debug("Skipping feature %r: %s", feature.properties, exc)
                skipped += 1
                continue
            self._dispatch(geometry, sub_ctx)
            lithograph.add_placement(
                dataclasses.replace(feature, geometry=geometry), self.styles, sub_ctx
            )
            drawn += 1

        ctx.save()
        ctx.identity_matrix()
        ctx.set_operator(cairo.OPERATOR_OVER)
        ctx.set_source_surface(surface, 0, 0)
        ctx.paint()
        ctx.restore()
        surface.finish()
        return (drawn, skipped)

    def _query_region(self, map_: Map) -> QueryRegion:
        bounds = map_.bounds
        if map_.buffer > 0:
            # Convert the pixel buffer into map units so it looks the same at
            # every zoom level.
            matrix = map_.transform_matrix()
            matrix.invert()
            dx, _ = matrix.transform_distance(map_.buffer, map_.buffer)
            bounds = bounds.buffer(abs(dx))
        return to_query_region(bounds, map_.srs)

    def _create_surface(
        self, map_: Map, ctx: cairo.Context
    ) -> tuple[cairo.Surface, cairo.Context]:
        try:
            surface = ctx.get_target().create_similar(
                cairo.CONTENT_COLOR_ALPHA, map_.width, map_.height
            )
            sub_ctx = cairo.Context(surface)
        except (cairo.Error, MemoryError) as exc:
            raise CanvasError(f"Cannot create filter surface: {exc}") from exc
        if self.seamless:
            sub_ctx.set_operator(cairo.OPERATOR_SATURATE)
        sub_ctx.set_fill_rule(cairo.FILL_RULE_EVEN_ODD)
        sub_ctx.set_matrix(map_.transform_matrix())
        return (surface, sub_ctx)

    def _dispatch(self, geometry: Any, ctx: cairo.Context) -> None:
        geom_type = geometry.geom_type
        if geom_type == "Polygon":
            self._plot_polygon(geometry, ctx)
        elif geom_type in ("LineString", "LinearRing"):
            self._plot_line(geometry, ctx)
        elif geom_type == "Point":
            self._plot_point(geometry, ctx)
        elif geom_type in _COLLECTION_TYPES:
            for part in geometry.geoms:
                if part is not None:
                    self._dispatch(part, ctx)

    def _plot_polygon(self, geometry: Any, ctx: cairo.Context) -> None:
        ctx.save()
        ctx.new_path()
        seamless = self.seamless
        # Shapely polygons are flat: one exterior ring plus holes, which the
        # even-odd fill rule carves out.
        for ring in _polygon_rings(geometry):
            walk_vertices(ctx, ring.coords, seamless=seamless)
            ctx.close_path()
        ctx.close_path()
        apply_styles(ctx, self.styles, *CLOSED_SHAPE_KEYS)
        ctx.clip()
        ctx.restore()

    def _plot_line(self, geometry: Any, ctx: cairo.Context) -> None:
        ctx.save()
        ctx.new_path()
        walk_vertices(ctx, geometry.coords, seamless=self.seamless)
        apply_styles(ctx, self.styles, *OPEN_PATH_KEYS)
        ctx.restore()

    def _plot_point(self, geometry: Any, ctx: cairo.Context) -> None:
        style = lookup_style(self.styles, "radius")
        if style is None or style.kind is not StyleKind.LITERAL:
            return
        ctx.save()
        # The radius is in pixels; keep it constant under the map transform.
        radius, _ = ctx.device_to_user_distance(float(style.argument or 0.0), 0.0)
        radius = abs(radius)
        ctx.new_path()
        for coord in geometry.coords:
            x, y = float(coord[0]), float(coord[1])
            ctx.new_sub_path()
            ctx.arc(x, y, radius, 0.0, 2 * math.pi)
            ctx.close_path()
        apply_styles(ctx, self.styles, *POINT_KEYS)
        ctx.restore()

    def __repr__(self) -> str:
        return f"Filter({self._query!r}, styles={len(self.styles)})"


def walk_vertices(
    ctx: cairo.Context,
    coords: Iterable[Sequence[float]],
    *,
    seamless: bool = False,
) -> None:
    """Add ``coords`` to the current path as one sub-path.

    A vertex is emitted only once it sits at least half a device pixel away
    from the last emitted one, unless ``seamless`` is set. The final vertex is
    always emitted.
    """
    points = [(float(c[0]), float(c[1])) for c in coords]
    if not points:
        return
    last_x, last_y = points[0]
    ctx.move_to(last_x, last_y)
    for x, y in points[1:]:
        dx, dy = ctx.user_to_device_distance(last_x - x, last_y - y)
        if seamless or abs(dx) >= SIMPLIFY_THRESHOLD_PX or abs(dy) >= SIMPLIFY_THRESHOLD_PX:
            ctx.line_to(x, y)
            last_x, last_y = x, y
    ctx.line_to(*points[-1])


def _polygon_rings(geometry: Any) -> list[Any]:
    if geometry.is_empty:
        return []
    return [geometry.exterior, *geometry.interiors]


def _require_query(query: Any) -> str:
    if not isinstance(query, str) or not query.strip():
        raise ValueError("Expected non-empty query string")
    return query
