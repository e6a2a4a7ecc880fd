"""Typed loader for YAML map definitions."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping, cast

import yaml

from .errors import Outcome
from .geodata import GeodataEngine
from .lithograph import Lithograph
from .map import Map


def _mapping(value: Any, field_name: str) -> Mapping[str, Any]:
    if not isinstance(value, Mapping):
        raise ValueError(f"Expected mapping for '{field_name}'")
    return cast(Mapping[str, Any], value)


def _list(value: Any, field_name: str) -> list[Any]:
    if not isinstance(value, list):
        raise ValueError(f"Expected list for '{field_name}'")
    return value


def _str(value: Any, field_name: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"Expected non-empty string for '{field_name}'")
    return value.strip()


def _int(value: Any, field_name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"Expected integer for '{field_name}'")
    return value


def _float(value: Any, field_name: str) -> float:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    raise ValueError(f"Expected float for '{field_name}'")


def _bool(value: Any, field_name: str) -> bool:
    if not isinstance(value, bool):
        raise ValueError(f"Expected boolean for '{field_name}'")
    return value


def _style_arg(value: Any, field_name: str) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (str, int, float)):
        return str(value)
    raise ValueError(f"Expected scalar value for '{field_name}'")


def _source_from_cfg(value: Any, field_name: str, root_dir: Path) -> str:
    raw = _str(value, field_name)
    candidate = root_dir / raw
    # Only existing relative files are anchored; DSNs pass through untouched.
    if not Path(raw).is_absolute() and candidate.exists():
        return str(candidate)
    return raw


@dataclass(frozen=True, slots=True)
class BoundsConfig:
    maxx: float
    maxy: float
    minx: float
    miny: float

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> BoundsConfig:
        return cls(
            maxx=_float(raw.get("maxx"), "map.bounds.maxx"),
            maxy=_float(raw.get("maxy"), "map.bounds.maxy"),
            minx=_float(raw.get("minx"), "map.bounds.minx"),
            miny=_float(raw.get("miny"), "map.bounds.miny"),
        )


@dataclass(frozen=True, slots=True)
class TileConfig:
    x: int
    y: int
    z: int

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> TileConfig:
        return cls(
            x=_int(raw.get("x"), "map.tile.x"),
            y=_int(raw.get("y"), "map.tile.y"),
            z=_int(raw.get("z"), "map.tile.z"),
        )


@dataclass(frozen=True, slots=True)
class MapSettings:
    srs: str | None
    width: int | None
    height: int | None
    bounds: BoundsConfig | None
    tile: TileConfig | None
    buffer: float
    bgcolor: str | None

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> MapSettings:
        bounds_raw = raw.get("bounds")
        tile_raw = raw.get("tile")
        if bounds_raw is not None and tile_raw is not None:
            raise ValueError("Use only one of 'map.bounds' or 'map.tile'")
        bgcolor_raw = raw.get("bgcolor")
        srs_raw = raw.get("srs")
        width_raw = raw.get("width")
        height_raw = raw.get("height")
        return cls(
            srs=_str(srs_raw, "map.srs") if srs_raw is not None else None,
            width=_int(width_raw, "map.width") if width_raw is not None else None,
            height=_int(height_raw, "map.height") if height_raw is not None else None,
            bounds=(
                BoundsConfig.from_mapping(_mapping(bounds_raw, "map.bounds"))
                if bounds_raw is not None
                else None
            ),
            tile=(
                TileConfig.from_mapping(_mapping(tile_raw, "map.tile"))
                if tile_raw is not None
                else None
            ),
            buffer=_float(raw.get("buffer", 0), "map.buffer"),
            bgcolor=_str(bgcolor_raw, "map.bgcolor") if bgcolor_raw is not None else None,
        )


@dataclass(frozen=True, slots=True)
class FilterConfig:
    query: str
    styles: tuple[tuple[str, str], ...]

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any], field_name: str) -> FilterConfig:
        styles_raw = raw.get("styles", {})
        styles: list[tuple[str, str]] = []
        if styles_raw is not None:
            for key, value in _mapping(styles_raw, f"{field_name}.styles").items():
                key_name = _str(key, f"{field_name}.styles key")
                if key_name == "seamless":
                    # The style is a flag: present means on.
                    if not _bool(value, f"{field_name}.styles.seamless"):
                        continue
                styles.append((key_name, _style_arg(value, f"{field_name}.styles.{key_name}")))
        return cls(query=_str(raw.get("query"), f"{field_name}.query"), styles=tuple(styles))


@dataclass(frozen=True, slots=True)
class LayerConfig:
    source: str
    filters: tuple[FilterConfig, ...]

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any], field_name: str, root_dir: Path) -> LayerConfig:
        filters: list[FilterConfig] = []
        for idx, item in enumerate(_list(raw.get("filters", []), f"{field_name}.filters")):
            item_name = f"{field_name}.filters[{idx}]"
            filters.append(FilterConfig.from_mapping(_mapping(item, item_name), item_name))
        return cls(
            source=_source_from_cfg(raw.get("source"), f"{field_name}.source", root_dir),
            filters=tuple(filters),
        )


@dataclass(frozen=True, slots=True)
class MapConfig:
    source_path: Path
    map: MapSettings
    layers: tuple[LayerConfig, ...]
    output: Path | None

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any], source_path: Path) -> MapConfig:
        root_dir = source_path.parent.resolve()
        layers = tuple(
            LayerConfig.from_mapping(_mapping(item, f"layers[{idx}]"), f"layers[{idx}]", root_dir)
            for idx, item in enumerate(_list(raw.get("layers"), "layers"))
        )
        output_raw = raw.get("output")
        output: Path | None = None
        if output_raw is not None:
            output = Path(_str(output_raw, "output"))
            if not output.is_absolute():
                output = root_dir / output
        return cls(
            source_path=source_path.resolve(),
            map=MapSettings.from_mapping(_mapping(raw.get("map"), "map")),
            layers=layers,
            output=output,
        )


def load_map_config(path: str | Path) -> MapConfig:
    """Load and validate a YAML map definition into typed settings."""
    cfg_path = Path(path).resolve()
    if not cfg_path.exists():
        raise FileNotFoundError(f"Config file not found: {cfg_path}")
    with cfg_path.open("r", encoding="utf-8") as fh:
        raw = yaml.safe_load(fh)
    if not isinstance(raw, Mapping):
        raise ValueError("Top-level config must be a YAML mapping")
    return MapConfig.from_mapping(cast(Mapping[str, Any], raw), cfg_path)


def build_map(
    cfg: MapConfig,
    *,
    engine: GeodataEngine | None = None,
    lithograph: Lithograph | None = None,
    tile: TileConfig | None = None,
) -> Map:
    """Drive a fresh ``Map`` through its mutators in configuration order.

    Mutators stop at the first failure; the returned map then carries the
    error in ``map.error`` and reports it from ``isvalid()``. A tile (passed
    in or configured) replaces the configured srs, size and bounds.
    """
    m = Map(engine=engine, lithograph=lithograph)
    settings = cfg.map
    tile = tile or settings.tile
    outcomes: list[Outcome] = []
    if tile is not None:
        outcomes.append(m.set_slippy(tile.x, tile.y, tile.z))
    else:
        if settings.srs is not None:
            outcomes.append(m.set_srs(settings.srs))
        if settings.width is not None or settings.height is not None:
            outcomes.append(m.set_size(settings.width or 0, settings.height or 0))
        if settings.bounds is not None:
            b = settings.bounds
            outcomes.append(m.set_bounds(b.maxx, b.maxy, b.minx, b.miny))
    outcomes.append(m.set_buffer(settings.buffer))
    if settings.bgcolor is not None:
        outcomes.append(m.set_bgcolor(settings.bgcolor))
    if not all(outcomes):
        return m

    for layer_cfg in cfg.layers:
        if not m.add_layer(layer_cfg.source):
            return m
        for filter_cfg in layer_cfg.filters:
            if not m.add_filter(filter_cfg.query):
                return m
            for key, argument in filter_cfg.styles:
                if not m.add_style(key, argument):
                    return m
    return m
