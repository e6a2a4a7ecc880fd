from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import pytest
from pyproj import CRS

from tilepress.bounds import QueryRegion
from tilepress.errors import DataSourceError
from tilepress.geodata import Feature, QueryResult
from tilepress.map import Map


@dataclass
class FakeSource:
    source: str
    results: dict[str, QueryResult] = field(default_factory=dict)
    failing: dict[str, str] = field(default_factory=dict)
    calls: list[tuple[str, QueryRegion | None, int | None]] = field(default_factory=list)
    # Return every feature regardless of the region, like an unindexed source.
    ignore_region: bool = False

    def execute(
        self,
        query: str,
        region: QueryRegion | None = None,
        *,
        limit: int | None = None,
    ) -> QueryResult | None:
        self.calls.append((query, region, limit))
        if query in self.failing:
            raise DataSourceError(self.failing[query])
        result = self.results.get(query)
        if result is None:
            return None
        features = list(result.features)
        if region is not None and not self.ignore_region:
            features = [
                f for f in features if f.geometry is None or f.geometry.intersects(region.geometry)
            ]
        if limit is not None:
            features = features[:limit]
        return QueryResult(crs=result.crs, features=tuple(features))


class FakeEngine:
    """In-memory engine keyed by source string, counting references."""

    def __init__(self) -> None:
        self.sources: dict[str, FakeSource] = {}
        self.refcounts: dict[str, int] = {}
        self.opens: list[str] = []

    def add_query(
        self,
        source: str,
        query: str,
        geometries: list[Any],
        *,
        crs: str = "EPSG:3857",
        properties: list[dict[str, Any]] | None = None,
    ) -> FakeSource:
        handle = self.sources.setdefault(source, FakeSource(source))
        props = properties or [{"id": idx} for idx in range(len(geometries))]
        handle.results[query] = QueryResult(
            crs=CRS.from_user_input(crs),
            features=tuple(Feature(geometry=g, properties=p) for g, p in zip(geometries, props)),
        )
        return handle

    def add_failing_query(self, source: str, query: str, message: str) -> FakeSource:
        handle = self.sources.setdefault(source, FakeSource(source))
        handle.failing[query] = message
        return handle

    def open_shared(self, source: str) -> FakeSource:
        if source not in self.sources:
            raise DataSourceError(f"Error opening data source '{source}'")
        self.opens.append(source)
        self.refcounts[source] = self.refcounts.get(source, 0) + 1
        return self.sources[source]

    def release(self, handle: FakeSource) -> None:
        self.refcounts[handle.source] -= 1


@dataclass
class RecordingLithograph:
    events: list[tuple[str, Any]] = field(default_factory=list)

    def add_placement(self, feature: Feature, styles: Any, ctx: Any) -> None:
        self.events.append(("placement", feature))

    def apply(self, styles: Any) -> None:
        self.events.append(("apply", styles))

    @property
    def placements(self) -> list[Feature]:
        return [payload for kind, payload in self.events if kind == "placement"]


@pytest.fixture
def engine() -> FakeEngine:
    return FakeEngine()


@pytest.fixture
def lithograph() -> RecordingLithograph:
    return RecordingLithograph()


@pytest.fixture
def small_map(engine: FakeEngine, lithograph: RecordingLithograph) -> Map:
    """16x16 px map over the box (0, 0)-(16, 16) on a white background."""
    m = Map(engine=engine, lithograph=lithograph)
    assert m.set_srs("EPSG:3857")
    assert m.set_size(16, 16)
    assert m.set_bounds(16, 16, 0, 0)
    assert m.set_bgcolor("#ffffff")
    return m
