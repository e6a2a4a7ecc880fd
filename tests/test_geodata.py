from __future__ import annotations

import json
from pathlib import Path

import pytest
from shapely.geometry import box

pytest.importorskip("geopandas")
pytest.importorskip("pyogrio")

from tilepress.bounds import Bounds, to_query_region  # noqa: E402
from tilepress.errors import DataSourceError  # noqa: E402
from tilepress.geodata import GeoPandasEngine  # noqa: E402
from tilepress.map import Map  # noqa: E402
from tilepress.projection import parse_srs  # noqa: E402


def _square(name: str, minx: float, miny: float, maxx: float, maxy: float) -> dict:
    return {
        "type": "Feature",
        "properties": {"name": name},
        "geometry": box(minx, miny, maxx, maxy).__geo_interface__,
    }


@pytest.fixture
def land_path(tmp_path: Path) -> str:
    path = tmp_path / "land.geojson"
    collection = {
        "type": "FeatureCollection",
        "name": "land",
        "features": [
            _square("west", 2, 2, 6, 14),
            _square("east", 10, 2, 14, 14),
            _square("faraway", 100, 50, 110, 60),
        ],
    }
    path.write_text(json.dumps(collection), encoding="utf-8")
    return str(path)


def test_open_unknown_source(tmp_path: Path) -> None:
    engine = GeoPandasEngine()
    with pytest.raises(DataSourceError):
        engine.open_shared(str(tmp_path / "missing.gpkg"))
    assert engine.refcount(str(tmp_path / "missing.gpkg")) == 0


def test_shared_handles_are_cached(land_path: str) -> None:
    engine = GeoPandasEngine()
    first = engine.open_shared(land_path)
    second = engine.open_shared(land_path)
    assert first is second
    assert engine.refcount(land_path) == 3

    engine.release(first)
    engine.release(second)
    # The cache keeps its own reference between renders.
    assert engine.refcount(land_path) == 1

    engine.close_all()
    assert engine.refcount(land_path) == 0


def test_probe_and_spatial_query(land_path: str) -> None:
    engine = GeoPandasEngine()
    handle = engine.open_shared(land_path)
    try:
        probe = handle.execute("SELECT * FROM land", limit=1)
        assert probe is not None and probe.crs is not None
        assert len(probe.features) == 1

        region = to_query_region(Bounds.from_extent(16, 16, 0, 0), parse_srs("EPSG:4326"))
        result = handle.execute("SELECT * FROM land", region)
        names = sorted(feature.properties["name"] for feature in result)
        assert names == ["east", "west"]
    finally:
        engine.release(handle)


def test_bad_sql_is_a_data_source_error(land_path: str) -> None:
    engine = GeoPandasEngine()
    handle = engine.open_shared(land_path)
    try:
        with pytest.raises(DataSourceError):
            handle.execute("SELECT * FROM no_such_layer")
    finally:
        engine.release(handle)


def test_render_from_geojson(land_path: str) -> None:
    with Map(engine=GeoPandasEngine()) as m:
        assert m.set_srs("EPSG:4326")
        assert m.set_size(16, 16)
        assert m.set_bounds(16, 16, 0, 0)
        assert m.set_bgcolor("#ffffff")
        assert m.add_layer(land_path)
        assert m.add_filter("SELECT * FROM land")
        assert m.add_style("fill", "#000000")

        image = m.render_to_image()

    assert image.getpixel((4, 8)) == (0, 0, 0, 255)
    assert image.getpixel((8, 8)) == (255, 255, 255, 255)
    assert image.getpixel((12, 8)) == (0, 0, 0, 255)
