"""Map configuration, the validity state machine and rendering."""

from __future__ import annotations

import logging
import math
import sys
import time
from enum import Enum
from pathlib import Path
from typing import Any, Callable

import cairo
from PIL import Image

from .bounds import Bounds, project
from .errors import (
    VALID,
    CanvasError,
    OutOfMemoryError,
    Outcome,
    TilepressError,
    ValidationError,
)
from .filter import Filter
from .geodata import GeodataEngine, default_engine
from .layer import Layer
from .lithograph import Lithograph, NullLithograph
from .owned_list import OwnedList
from .projection import MERCATOR, MERCATOR_ORIGIN_SHIFT, SLIPPY_SIZE, parse_srs
from .style import Style, parse_color

_LOGGER = logging.getLogger("tilepress.map")

# ARGB32 pixels are native-endian 32-bit words.
_ARGB32_RAWMODE = "BGRa" if sys.byteorder == "little" else "aRGB"


class MapState(Enum):
    OK = "ok"
    ERROR = "error"


class Map:
    """Top-level render configuration.

    Every mutator returns an ``Outcome``. The first failure is recorded on
    ``error`` and moves the map to ``MapState.ERROR``, which is terminal:
    later mutators do nothing and return the recorded error.
    """

    def __init__(
        self,
        *,
        engine: GeodataEngine | None = None,
        lithograph: Lithograph | None = None,
    ) -> None:
        self.bounds: Bounds | None = None
        self.srs: Any | None = None
        self.layers: OwnedList[Layer] = OwnedList(release=Layer.close)
        self.buffer: float = 0.0
        self.width: int = 0
        self.height: int = 0
        self.bgcolor: tuple[float, float, float, float] | None = None
        self.state = MapState.OK
        self.error: TilepressError | None = None
        self._last_filter: Filter | None = None
        self.engine: GeodataEngine = engine if engine is not None else default_engine()
        self.lithograph: Lithograph = lithograph if lithograph is not None else NullLithograph()

    # -- mutators ---------------------------------------------------------

    def set_srs(self, srs: str) -> Outcome:
        def _apply() -> None:
            self.srs = parse_srs(srs)

        return self._mutate("set_srs", _apply)

    def set_size(self, width: int, height: int) -> Outcome:
        def _apply() -> None:
            size = (_positive_int(width, "width"), _positive_int(height, "height"))
            self.width, self.height = size

        return self._mutate("set_size", _apply)

    def set_bounds(self, maxx: float, maxy: float, minx: float, miny: float) -> Outcome:
        def _apply() -> None:
            values = [float(v) for v in (maxx, maxy, minx, miny)]
            if not all(math.isfinite(v) for v in values):
                raise ValueError("Bounds must be finite numbers")
            self.bounds = Bounds.from_extent(*values)

        return self._mutate("set_bounds", _apply)

    def set_buffer(self, pixels: float) -> Outcome:
        def _apply() -> None:
            value = float(pixels)
            if not math.isfinite(value) or value < 0:
                raise ValueError("Buffer must be a non-negative number of pixels")
            self.buffer = value

        return self._mutate("set_buffer", _apply)

    def set_bgcolor(self, color: str) -> Outcome:
        def _apply() -> None:
            self.bgcolor = parse_color(color)

        return self._mutate("set_bgcolor", _apply)

    def set_slippy(self, x: int, y: int, z: int) -> Outcome:
        """Configure the map as the spherical-mercator tile ``z/x/y``."""

        def _apply() -> None:
            if z < 0:
                raise ValueError("Zoom level must be >= 0")
            tiles = 2**z
            if not (0 <= x < tiles and 0 <= y < tiles):
                raise ValueError(f"Tile {x}/{y} is outside zoom level {z}")
            self.srs = parse_srs(MERCATOR)
            self.width = SLIPPY_SIZE
            self.height = SLIPPY_SIZE
            self.bounds = slippy_bounds(x, y, z)

        return self._mutate("set_slippy", _apply)

    def add_layer(self, layer: Layer | str) -> Outcome:
        """Append a layer (an existing ``Layer`` or a source string).

        The source is opened once to check it is reachable.
        """

        def _apply() -> None:
            candidate = layer if isinstance(layer, Layer) else Layer(layer)
            handle = self.engine.open_shared(candidate.source)
            self.engine.release(handle)
            self.layers.push(candidate)
            if candidate.filters.tail is not None:
                self._last_filter = candidate.filters.tail

        return self._mutate("add_layer", _apply)

    def add_filter(self, filter_: Filter | str) -> Outcome:
        """Append a filter to the most recently added layer."""

        def _apply() -> None:
            layer = self.layers.tail
            if layer is None:
                raise ValidationError("add_filter: no layer to attach the filter to")
            self._last_filter = layer.add_filter(filter_)

        return self._mutate("add_filter", _apply)

    def add_style(self, style: Style | str, argument: Any = None) -> Outcome:
        """Append a style to the most recently added filter, whichever layer holds it."""

        def _apply() -> None:
            filter_ = self._last_filter
            if filter_ is None:
                raise ValidationError("add_style: no filter to attach the style to")
            filter_.add_style(style, argument)

        return self._mutate("add_style", _apply)

    # -- validity ---------------------------------------------------------

    def isvalid(self) -> Outcome:
        """Check the state flag and that every field rendering needs is present."""
        if self.state is MapState.ERROR:
            return Outcome.invalid(self._recorded_error())
        missing: list[str] = []
        if self.srs is None:
            missing.append("spatial reference")
        if self.bounds is None:
            missing.append("bounds")
        if not self.layers:
            missing.append("data source")
        if not self.width:
            missing.append("width")
        if not self.height:
            missing.append("height")
        if not any(layer.filters for layer in self.layers):
            missing.append("filter")
        if missing:
            return Outcome.invalid(ValidationError("Map is missing: " + ", ".join(missing)))
        return VALID

    def transform_matrix(self) -> cairo.Matrix:
        """Affine map from map coordinates to raster pixels (y flipped)."""
        if self.bounds is None or not self.bounds.width or not self.bounds.height:
            raise ValidationError("Map bounds must have a non-zero area")
        nw, _ = self.bounds.corners()
        sx = self.width / self.bounds.width
        sy = self.height / self.bounds.height
        return cairo.Matrix(sx, 0.0, 0.0, -sy, -nw.x * sx, nw.y * sy)

    # -- rendering --------------------------------------------------------

    def render_to_surface(self) -> cairo.ImageSurface:
        """Render every layer; raises the ``TilepressError`` that stopped it."""
        outcome = self.isvalid()
        if outcome.error is not None:
            raise outcome.error
        started = time.perf_counter()
        try:
            surface = cairo.ImageSurface(cairo.FORMAT_ARGB32, self.width, self.height)
            ctx = cairo.Context(surface)
        except (cairo.Error, MemoryError) as exc:
            raise self._fail(CanvasError(f"Cannot create map surface: {exc}")) from exc

        if self.bgcolor is not None:
            ctx.set_source_rgba(*self.bgcolor)
            ctx.paint()

        for layer in self.layers:
            try:
                layer.process(self, self.engine, self.lithograph, ctx)
            except TilepressError as exc:
                raise self._fail(exc)
        surface.flush()
        _LOGGER.info(
            "Rendered %dx%d map (%d layers) in %.2fs",
            self.width,
            self.height,
            len(self.layers),
            time.perf_counter() - started,
        )
        return surface

    def render_to_image(self) -> Image.Image:
        return surface_to_image(self.render_to_surface())

    def render_to_png(self, path: str | Path) -> Outcome:
        try:
            image = self.render_to_image()
        except TilepressError as exc:
            _LOGGER.error("Render aborted: %s", exc)
            return Outcome.invalid(exc)
        out = Path(path)
        out.parent.mkdir(parents=True, exist_ok=True)
        image.save(out, format="PNG")
        _LOGGER.info("Wrote %s", out)
        return VALID

    def close(self) -> None:
        """Release layers, their filters and styles, then the map's own fields."""
        self.layers.release()
        self._last_filter = None
        self.bounds = None
        self.srs = None

    def __enter__(self) -> Map:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    # -- internals --------------------------------------------------------

    def _mutate(self, name: str, action: Callable[[], None]) -> Outcome:
        if self.state is MapState.ERROR:
            return Outcome.invalid(self._recorded_error())
        try:
            action()
        except MemoryError:
            error: TilepressError = OutOfMemoryError(f"Out of memory in {name}")
        except TilepressError as exc:
            error = exc
        except (TypeError, ValueError) as exc:
            error = ValidationError(f"{name}: {exc}")
        else:
            return VALID
        return Outcome.invalid(self._fail(error))

    def _fail(self, error: TilepressError) -> TilepressError:
        if self.state is MapState.OK:
            _LOGGER.error("Map entered error state: %s", error)
        self.state = MapState.ERROR
        if self.error is None:
            self.error = error
        return error

    def _recorded_error(self) -> TilepressError:
        return self.error or ValidationError("Map is in the error state")


def slippy_bounds(x: int, y: int, z: int) -> Bounds:
    """Spherical-mercator bounds of the slippy tile ``z/x/y``."""
    world_px = SLIPPY_SIZE * 2**z
    pixels = Bounds.from_extent(world_px, world_px, 0, 0)
    shift = MERCATOR_ORIGIN_SHIFT
    world = Bounds.from_extent(shift, shift, -shift, -shift)
    # Tile rows count down from the top; pixel bounds count up from the bottom.
    nw = project(pixels, x * SLIPPY_SIZE, world_px - y * SLIPPY_SIZE, world)
    se = project(pixels, (x + 1) * SLIPPY_SIZE, world_px - (y + 1) * SLIPPY_SIZE, world)
    return Bounds.from_extent(se.x, nw.y, nw.x, se.y)


def surface_to_image(surface: cairo.ImageSurface) -> Image.Image:
    """Convert a premultiplied ARGB32 surface into a straight-alpha RGBA image."""
    surface.flush()
    size = (surface.get_width(), surface.get_height())
    return Image.frombytes(
        "RGBA", size, bytes(surface.get_data()), "raw", _ARGB32_RAWMODE, surface.get_stride()
    )


def _positive_int(value: Any, field_name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValueError(f"Expected positive integer for '{field_name}'")
    return value
