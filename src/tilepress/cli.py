"""CLI entrypoint for tilepress."""

from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import Sequence

from .config import MapConfig, TileConfig, build_map, load_map_config
from .errors import TilepressError
from .util import setup_logging
from .validate import Validator, format_report_lines

LOGGER = logging.getLogger("tilepress.cli")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tilepress",
        description="Render thematic map tiles from vector data sources.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    def add_common(p: argparse.ArgumentParser) -> None:
        p.add_argument("--config", default="map.yaml", help="Path to YAML map definition.")
        p.add_argument("--verbose", action="store_true", help="Enable debug logs.")
        p.add_argument("--log-file", default=None, help="Also write logs to this file.")

    render_p = subparsers.add_parser("render", help="Render the configured map to PNG.")
    add_common(render_p)
    render_p.add_argument(
        "--output",
        default=None,
        help="Output PNG path. Overrides 'output' from the config.",
    )

    tile_p = subparsers.add_parser("tile", help="Render one slippy-map tile to PNG.")
    add_common(tile_p)
    tile_p.add_argument("--z", type=int, required=True, help="Zoom level.")
    tile_p.add_argument("--x", type=int, required=True, help="Tile column.")
    tile_p.add_argument("--y", type=int, required=True, help="Tile row.")
    tile_p.add_argument(
        "--output",
        default=None,
        help="Output PNG path. Defaults to '<z>_<x>_<y>.png' next to the config.",
    )

    validate_p = subparsers.add_parser("validate", help="Validate the map definition.")
    add_common(validate_p)

    return parser


def _load_and_setup(args: argparse.Namespace) -> MapConfig:
    log_file = Path(args.log_file) if args.log_file else None
    setup_logging(log_file, verbose=args.verbose)
    return load_map_config(args.config)


def _render(cfg: MapConfig, output: Path, *, tile: TileConfig | None = None) -> int:
    m = build_map(cfg, tile=tile)
    try:
        outcome = m.isvalid()
        if outcome.error is not None:
            LOGGER.error("Map is not renderable: %s", outcome.error)
            return 1
        outcome = m.render_to_png(output)
        if outcome.error is not None:
            LOGGER.error("Render failed: %s", outcome.error)
            return 1
    finally:
        m.close()
    return 0


def _run_render(cfg: MapConfig, *, output: str | None) -> int:
    out = Path(output) if output else cfg.output
    if out is None:
        LOGGER.error("No output path: pass --output or set 'output' in the config.")
        return 1
    return _render(cfg, out)


def _run_tile(cfg: MapConfig, *, z: int, x: int, y: int, output: str | None) -> int:
    out = Path(output) if output else cfg.source_path.parent / f"{z}_{x}_{y}.png"
    LOGGER.info("Rendering tile %d/%d/%d", z, x, y)
    return _render(cfg, out, tile=TileConfig(x=x, y=y, z=z))


def _run_validate(cfg: MapConfig) -> int:
    report = Validator(cfg).run()
    for line in format_report_lines(report):
        LOGGER.info(line)
    return 0 if report.ok else 1


def _dispatch(args: argparse.Namespace) -> int:
    try:
        cfg = _load_and_setup(args)
    except (FileNotFoundError, ValueError) as exc:
        LOGGER.error("Invalid config: %s", exc)
        return 1
    command = str(args.command)
    try:
        if command == "render":
            return _run_render(cfg, output=args.output)
        if command == "tile":
            return _run_tile(cfg, z=args.z, x=args.x, y=args.y, output=args.output)
        if command == "validate":
            return _run_validate(cfg)
    except TilepressError as exc:
        LOGGER.error("%s failed: %s", command, exc)
        return 1
    raise ValueError(f"Unknown command: {command}")


def main(argv: Sequence[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    return _dispatch(args)


if __name__ == "__main__":
    raise SystemExit(main())
