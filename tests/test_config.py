from __future__ import annotations

from pathlib import Path
from textwrap import dedent

import pytest

from tilepress.config import TileConfig, build_map, load_map_config
from tilepress.errors import ErrorKind
from tilepress.map import MapState
from tilepress.validate import Validator, format_report_lines

SOURCE = "mem://world"

_CONFIG = """\
map:
  srs: EPSG:3857
  width: 64
  height: 32
  bounds: {maxx: 20, maxy: 10, minx: -20, miny: -10}
  buffer: 2
  bgcolor: "#ffffff"
layers:
  - source: mem://world
    filters:
      - query: SELECT * FROM land
        styles:
          fill: "#e0d8c0"
          stroke: "#333333"
          weight: 1.5
      - query: SELECT * FROM rivers
        styles:
          seamless: true
output: out/world.png
"""


def _write(tmp_path: Path, text: str) -> Path:
    path = tmp_path / "map.yaml"
    path.write_text(dedent(text), encoding="utf-8")
    return path


def test_load_map_config(tmp_path: Path) -> None:
    cfg = load_map_config(_write(tmp_path, _CONFIG))

    assert cfg.map.srs == "EPSG:3857"
    assert (cfg.map.width, cfg.map.height) == (64, 32)
    assert cfg.map.bounds.maxx == 20.0
    assert cfg.map.buffer == 2.0
    assert cfg.output == tmp_path.resolve() / "out" / "world.png"
    layer = cfg.layers[0]
    assert layer.source == SOURCE
    land, rivers = layer.filters
    assert land.styles == (("fill", "#e0d8c0"), ("stroke", "#333333"), ("weight", "1.5"))
    assert rivers.styles == (("seamless", "true"),)


def test_relative_sources_resolve_next_to_the_config(tmp_path: Path) -> None:
    (tmp_path / "data").mkdir()
    (tmp_path / "data" / "world.gpkg").write_bytes(b"")
    cfg = load_map_config(
        _write(
            tmp_path,
            """\
            map: {srs: EPSG:4326}
            layers:
              - source: data/world.gpkg
              - source: PG:dbname=gis
            """,
        )
    )
    assert cfg.layers[0].source == str(tmp_path.resolve() / "data" / "world.gpkg")
    assert cfg.layers[1].source == "PG:dbname=gis"


@pytest.mark.parametrize(
    "text, message",
    [
        ("- just a list\n", "Top-level config"),
        ("layers: []\n", "'map'"),
        ("map: {}\nlayers: {}\n", "'layers'"),
        ("map: {width: wide}\nlayers: []\n", "map.width"),
        ("map: {}\nlayers: [{filters: []}]\n", "layers[0].source"),
        ("map: {}\nlayers: [{source: a, filters: [{styles: {}}]}]\n", "layers[0].filters[0].query"),
        (
            "map: {bounds: {maxx: 1, maxy: 1, minx: 0, miny: 0}, tile: {x: 0, y: 0, z: 0}}\n"
            "layers: []\n",
            "only one",
        ),
    ],
)
def test_config_errors_name_the_field(tmp_path: Path, text: str, message: str) -> None:
    with pytest.raises(ValueError) as excinfo:
        load_map_config(_write(tmp_path, text))
    assert message in str(excinfo.value)


def test_missing_config_file(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        load_map_config(tmp_path / "absent.yaml")


def test_build_map_drives_the_mutators(tmp_path: Path, engine) -> None:
    engine.add_query(SOURCE, "SELECT * FROM land", [])
    cfg = load_map_config(_write(tmp_path, _CONFIG))

    m = build_map(cfg, engine=engine)

    assert m.state is MapState.OK
    assert m.isvalid()
    assert (m.width, m.height) == (64, 32)
    assert m.bounds.as_tuple() == (-20.0, -10.0, 20.0, 10.0)
    assert m.buffer == 2.0
    assert m.bgcolor == (1.0, 1.0, 1.0, 1.0)
    land, rivers = m.layers.head.filters
    assert [s.key for s in land.styles] == ["fill", "stroke", "weight"]
    assert rivers.seamless


def test_build_map_for_a_tile(tmp_path: Path, engine) -> None:
    engine.add_query(SOURCE, "SELECT * FROM land", [])
    cfg = load_map_config(_write(tmp_path, _CONFIG))

    m = build_map(cfg, engine=engine, tile=TileConfig(x=1, y=1, z=1))

    assert (m.width, m.height) == (256, 256)
    minx, miny, maxx, maxy = m.bounds.as_tuple()
    assert minx == pytest.approx(0.0, abs=1e-6)
    assert maxy == pytest.approx(0.0, abs=1e-6)
    assert maxx > 0 > miny


def test_build_map_stops_at_the_first_failure(tmp_path: Path, engine) -> None:
    engine.add_query(SOURCE, "SELECT * FROM land", [])
    cfg = load_map_config(
        _write(
            tmp_path,
            """\
            map: {srs: EPSG:3857, width: 8, height: 8, bounds: {maxx: 1, maxy: 1, minx: 0, miny: 0}}
            layers:
              - source: mem://world
                filters:
                  - query: SELECT * FROM land
                    styles: {glitter: "gold", fill: "#000000"}
            """,
        )
    )

    m = build_map(cfg, engine=engine)

    assert m.state is MapState.ERROR
    assert m.error.kind is ErrorKind.VALIDATION
    assert not m.layers.head.filters.head.styles


def test_validator_reports(tmp_path: Path, engine) -> None:
    engine.add_query(SOURCE, "SELECT * FROM land", [])
    cfg = load_map_config(_write(tmp_path, _CONFIG))

    report = Validator(cfg, engine=engine).run()

    assert report.ok
    assert any("1 layers, 2 filters, 4 styles" in info for info in report.infos)
    lines = list(format_report_lines(report))
    assert lines[-1] == "[OK] Validation completed with no errors."


def test_validator_flags_unknown_styles_and_incomplete_maps(tmp_path: Path, engine) -> None:
    engine.add_query(SOURCE, "SELECT * FROM land", [])
    cfg = load_map_config(
        _write(
            tmp_path,
            """\
            map: {srs: EPSG:3857}
            layers:
              - source: mem://world
                filters:
                  - query: SELECT * FROM land
                    styles: {glitter: gold}
                  - query: SELECT * FROM empty
            """,
        )
    )

    report = Validator(cfg, engine=engine).run()

    assert not report.ok
    assert any("unknown style 'glitter'" in error for error in report.errors)
    assert any("Map is not renderable" in error for error in report.errors)
    assert any("SELECT * FROM empty" in warning for warning in report.warnings)
    assert any(line.startswith("[ERROR]") for line in format_report_lines(report))


@pytest.mark.parametrize("flag, expected", [("true", (("seamless", "true"),)), ("false", ())])
def test_seamless_is_a_boolean_flag(tmp_path: Path, flag: str, expected: tuple) -> None:
    cfg = load_map_config(
        _write(
            tmp_path,
            f"""\
            map: {{srs: EPSG:3857}}
            layers:
              - source: mem://world
                filters:
                  - query: SELECT * FROM rivers
                    styles: {{seamless: {flag}}}
            """,
        )
    )
    assert cfg.layers[0].filters[0].styles == expected


def test_seamless_rejects_non_boolean_values(tmp_path: Path) -> None:
    with pytest.raises(ValueError) as excinfo:
        load_map_config(
            _write(
                tmp_path,
                """\
                map: {srs: EPSG:3857}
                layers:
                  - source: mem://world
                    filters:
                      - query: SELECT * FROM rivers
                        styles: {seamless: "off"}
                """,
            )
        )
    assert "layers[0].filters[0].styles.seamless" in str(excinfo.value)
