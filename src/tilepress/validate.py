"""Validation of map definitions before rendering."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable

from .config import MapConfig, build_map
from .geodata import GeodataEngine
from .style import is_known_style


@dataclass(slots=True)
class ValidationReport:
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    infos: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors

    def add_error(self, msg: str) -> None:
        self.errors.append(msg)

    def add_warning(self, msg: str) -> None:
        self.warnings.append(msg)

    def add_info(self, msg: str) -> None:
        self.infos.append(msg)


class Validator:
    """Checks a map definition and the map it builds."""

    def __init__(self, cfg: MapConfig, *, engine: GeodataEngine | None = None) -> None:
        self.cfg = cfg
        self.engine = engine

    def run(self) -> ValidationReport:
        report = ValidationReport()
        self._validate_layers(report)
        self._validate_map(report)
        return report

    def _validate_layers(self, report: ValidationReport) -> None:
        if not self.cfg.layers:
            report.add_error("Map definition has no layers.")
            return
        filter_count = 0
        style_count = 0
        for idx, layer in enumerate(self.cfg.layers):
            if not layer.filters:
                report.add_warning(f"Layer {idx} ({layer.source}) has no filters and draws nothing.")
            for filter_cfg in layer.filters:
                filter_count += 1
                if not filter_cfg.styles:
                    report.add_warning(
                        f"Filter '{filter_cfg.query}' has no styles and draws nothing visible."
                    )
                for key, _ in filter_cfg.styles:
                    style_count += 1
                    if not is_known_style(key):
                        report.add_error(f"Filter '{filter_cfg.query}' uses unknown style '{key}'.")
        report.add_info(
            f"Loaded {len(self.cfg.layers)} layers, {filter_count} filters, {style_count} styles "
            f"from {self.cfg.source_path}"
        )

    def _validate_map(self, report: ValidationReport) -> None:
        m = build_map(self.cfg, engine=self.engine)
        try:
            outcome = m.isvalid()
            if outcome.error is not None:
                report.add_error(f"Map is not renderable: {outcome.error}")
                return
            report.add_info(
                f"Map is renderable: {m.width}x{m.height} px, srs={m.srs.to_string()}"
            )
        finally:
            m.close()


def format_report_lines(report: ValidationReport) -> Iterable[str]:
    if report.infos:
        for info in report.infos:
            yield f"[INFO] {info}"
    if report.warnings:
        for warning in report.warnings:
            yield f"[WARN] {warning}"
    if report.errors:
        for error in report.errors:
            yield f"[ERROR] {error}"
    if report.ok:
        yield "[OK] Validation completed with no errors."
